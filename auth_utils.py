from datetime import datetime, timezone

from passlib.context import CryptContext
from jose import jwt, JWTError

from config import SECRET_KEY, ALGORITHM, BCRYPT_ROUNDS
from errors import AuthenticationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, token_id: str, expires_at: datetime) -> str:
    """JWT mit user_id, jti (= AuthToken.id) und Ablaufzeit (expires_at ist naive UTC)."""
    payload = {
        "user_id": user_id,
        "jti": token_id,
        "exp": int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid token")
    if payload.get("user_id") is None or not payload.get("jti"):
        raise AuthenticationError("Invalid token")
    return payload

from fastapi import APIRouter, Depends

from auth_service import AuthService, user_to_schema
from dependencies import get_current_user, get_auth_service, get_locale
from messages import trans
from models import User
from schemas import PreferencesUpdate

router = APIRouter(prefix="/user", tags=["user"])


def _user_payload(user: User) -> dict:
    return {
        "user": user_to_schema(user),
        "preferences": {
            "language": user.preferred_language,
            "timezone": user.timezone,
            "notifications": user.get_notification_preferences(),
        },
    }


@router.get("")
def read_user(user: User = Depends(get_current_user)):
    return _user_payload(user)


@router.put("/preferences")
def update_preferences(data: PreferencesUpdate, user: User = Depends(get_current_user),
                       auth: AuthService = Depends(get_auth_service), locale: str = Depends(get_locale)):
    """Sprache, Zeitzone und Benachrichtigungen ändern; der Sprach-Cache wird verworfen."""
    user = auth.update_preferences(user, data)
    payload = _user_payload(user)
    payload["message"] = trans("user.preferences_updated", data.preferred_language or locale)
    return payload


@router.delete("")
def deactivate_account(user: User = Depends(get_current_user), auth: AuthService = Depends(get_auth_service),
                       locale: str = Depends(get_locale)):
    """Soft-Delete des Kontos; alle Tokens werden widerrufen, Login danach nicht mehr möglich."""
    auth.deactivate(user)
    return {"message": trans("auth.account_deleted", locale)}

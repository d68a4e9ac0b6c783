from fastapi import APIRouter, Depends, Request
from slowapi.util import get_remote_address

from auth_service import AuthService, user_to_schema
from dependencies import get_auth_service, get_current_user, get_current_token, get_locale
from messages import trans
from models import User, AuthToken
from rate_limit import auth_limiter
from schemas import RegisterRequest, LoginRequest, AuthResponse, MessageResponse, UserOut

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(message: str, user: User, token: str, row: AuthToken) -> AuthResponse:
    return AuthResponse(
        message=message,
        user=user_to_schema(user),
        token=token,
        token_type="bearer",
        expires_at=row.expires_at,
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(request: Request, data: RegisterRequest, auth: AuthService = Depends(get_auth_service),
             locale: str = Depends(get_locale)):
    """
    Registriert einen neuen Benutzer im System.

    Prüft, ob die E-Mail bereits existiert, speichert das Passwort gehasht (bcrypt)
    und stellt direkt ein Token mit 30 Tagen Laufzeit aus.

    Args:
        request (Request): Für das Rate Limiting (IP).
        data (RegisterRequest): Name, E-Mail, Passwort, optional Sprache und Zeitzone.
        auth (AuthService): Auth-Service mit DB-Session.
        locale (str): Aufgelöste Sprache; Standard für preferred_language.

    Returns:
        AuthResponse: Benutzer, Token und Ablaufzeitpunkt.

    Raises:
        UserAlreadyExistsError (409): Wenn die E-Mail bereits vergeben ist.
        RateLimitedError (429): Mehr als 3 Versuche pro Minute.
    """
    auth_limiter.check("register", get_remote_address(request), data.email)
    user, token, row = auth.register(data, locale)
    return _auth_response(trans("auth.register_success", locale), user, token, row)


@router.post("/login", response_model=AuthResponse)
def login(request: Request, data: LoginRequest, auth: AuthService = Depends(get_auth_service),
          locale: str = Depends(get_locale)):
    """
    Authentifiziert einen Benutzer und stellt ein Bearer-Token aus.

    Unbekannte E-Mail und falsches Passwort liefern dieselbe Antwort.
    Ohne `remember` werden alle anderen Tokens des Benutzers widerrufen
    und das neue Token gilt 24 Stunden, sonst 30 Tage.

    Args:
        request (Request): Für das Rate Limiting (IP).
        data (LoginRequest): E-Mail, Passwort, remember.
        auth (AuthService): Auth-Service mit DB-Session.
        locale (str): Aufgelöste Sprache.

    Returns:
        AuthResponse: Benutzer, Token und Ablaufzeitpunkt.

    Raises:
        InvalidCredentialsError (401): Falsche Zugangsdaten.
        AccountDeactivatedError (403): Konto deaktiviert.
        RateLimitedError (429): Mehr als 5 Versuche pro Minute (Brute-Force-Schutz).
    """
    ip = get_remote_address(request)
    auth_limiter.check("login", ip, data.email)
    user, token, row = auth.login(data)
    auth_limiter.clear("login", ip, data.email)
    return _auth_response(trans("auth.login_success", locale), user, token, row)


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, user: User = Depends(get_current_user), row: AuthToken = Depends(get_current_token),
           auth: AuthService = Depends(get_auth_service), locale: str = Depends(get_locale)):
    """Widerruft das aktuell verwendete Token."""
    auth_limiter.check("logout", get_remote_address(request), user.email)
    auth.logout(row)
    return MessageResponse(message=trans("auth.logout_success", locale))


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(request: Request, user: User = Depends(get_current_user),
               auth: AuthService = Depends(get_auth_service), locale: str = Depends(get_locale)):
    """Widerruft alle Tokens des Benutzers (alle Geräte)."""
    auth_limiter.check("logout-all", get_remote_address(request), user.email)
    auth.logout_all(user)
    return MessageResponse(message=trans("auth.logout_all_success", locale))


@router.post("/refresh", response_model=AuthResponse)
def refresh(request: Request, user: User = Depends(get_current_user), row: AuthToken = Depends(get_current_token),
            auth: AuthService = Depends(get_auth_service), locale: str = Depends(get_locale)):
    """
    Ersetzt das aktuelle Token durch ein neues mit gleicher Ablaufzeit.

    Das alte Token ist danach ungültig; beide sind nie gleichzeitig gültig.
    """
    auth_limiter.check("refresh", get_remote_address(request), user.email)
    token, new_row = auth.refresh(user, row)
    return _auth_response(trans("auth.token_refresh_success", locale), user, token, new_row)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user_to_schema(user)

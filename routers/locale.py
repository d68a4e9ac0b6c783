import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cache import UserLocaleCache
from config import SUPPORTED_LOCALES
from dependencies import get_db, get_locale, get_optional_user_id, get_user_locale_cache
from messages import trans
from models import User
from schemas import LocaleSwitch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/locale", tags=["locale"])


@router.get("")
def current_locale(locale: str = Depends(get_locale), user_id: Optional[int] = Depends(get_optional_user_id),
                   db: Session = Depends(get_db)):
    preferred = None
    if user_id is not None:
        preferred = db.query(User.preferred_language).filter(User.id == user_id).scalar()
    return {
        "current_locale": locale,
        "supported_locales": list(SUPPORTED_LOCALES),
        "user_preferred_locale": preferred,
    }


@router.post("")
def switch_locale(data: LocaleSwitch, request: Request, user_id: Optional[int] = Depends(get_optional_user_id),
                  db: Session = Depends(get_db),
                  user_locale_cache: UserLocaleCache = Depends(get_user_locale_cache)):
    """Wechselt die Sprache: in der Session und, falls angemeldet, im Benutzerprofil."""
    request.session["locale"] = data.locale
    if user_id is not None:
        user = db.get(User, user_id)
        user.preferred_language = data.locale
        db.commit()
        user_locale_cache.put(user_id, data.locale)
        logger.info("User %s switched locale to %s", user_id, data.locale)
    request.state.locale = data.locale
    return {
        "message": trans("locale.switched", data.locale),
        "locale": data.locale,
    }

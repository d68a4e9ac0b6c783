import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from config import CORS_ORIGINS, ALLOWED_HOSTS, SESSION_SECRET, LOG_DIR, LOG_LEVEL
from database import init_db
from dependencies import limiter, redis_cache, get_db, get_cache, get_locale, request_locale
from errors import AppError, TaskValidationError, RateLimitedError
from logging_setup import setup_logging
from messages import trans

# Routers
from routers.auth import router as auth_router
from routers.tasks import router as tasks_router
from routers.subtasks import router as subtasks_router
from routers.user import router as user_router
from routers.locale import router as locale_router

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("request")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(log_dir=LOG_DIR, console_level=getattr(logging, LOG_LEVEL, logging.INFO))
    init_db()
    redis_cache.connect()
    logger.info("API started")
    yield
    redis_cache.close()


# Sprache wird für jeden Request zuerst aufgelöst, damit auch Fehlerantworten lokalisiert sind
app = FastAPI(title="Aufgabenplaner API", lifespan=lifespan, dependencies=[Depends(get_locale)])

# Rate Limiter Setup (Globally available via app.state.limiter)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, code: str, message: str, extra=None, headers=None):
    body = {"message": message, "code": code}
    body.update(extra or {})
    response = JSONResponse(status_code=status_code, content={"error": body}, headers=headers)
    response.headers["Content-Language"] = request_locale(request)
    return response


def app_error_handler(request: Request, exc: AppError):
    locale = request_locale(request)
    extra = exc.extra()
    params = {}
    if isinstance(exc, TaskValidationError):
        extra["errors"] = {
            field: [trans(key, locale) for key in keys]
            for field, keys in exc.errors.items()
        }
    if isinstance(exc, RateLimitedError):
        params["seconds"] = exc.retry_after
    if exc.status_code >= 500:
        logger.error("Request failed: %r", exc)
    else:
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return _error_response(request, exc.status_code, exc.code, trans(exc.message_key, locale, **params),
                           extra, exc.headers())


def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for err in exc.errors():
        # "body"/"query" vorne abschneiden: ("body", "name", "en") -> "name.en"
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "request"
        errors.setdefault(field, []).append(err.get("msg", "Invalid value"))
    return _error_response(request, 422, "VALIDATION_ERROR",
                           trans("general.validation_failed", request_locale(request)), {"errors": errors})


# Custom Rate Limit Handler
def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    retry_after = exc.limit.limit.get_expiry() if hasattr(exc, "limit") else 60
    logging.getLogger("security").warning("API rate limit exceeded: %s %s", request.client.host if request.client else "-", exc.detail)
    locale = request_locale(request)
    return _error_response(request, 429, "TOO_MANY_REQUESTS", trans("auth.throttle", locale, seconds=retry_after),
                           {"retry_after": retry_after}, {"Retry-After": str(retry_after)})


app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)


# Custom Middleware for Security Headers
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = "default-src 'self'; script-src 'self' 'unsafe-inline' 'unsafe-eval'; style-src 'self' 'unsafe-inline';"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Loggt Methode, Pfad, Status, Dauer und User; setzt Content-Language."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        locale = getattr(request.state, "locale", None)
        if locale and "content-language" not in response.headers:
            response.headers["Content-Language"] = locale
        request_logger.info(
            "%s %s %s %.1fms user=%s",
            request.method, request.url.path, response.status_code, duration_ms,
            getattr(request.state, "user_id", None),
        )
        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET, same_site="lax")

# Middleware
app.add_middleware(
    CORSMiddleware,
    # Allow explicit origins only (Strict CORS)
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    TrustedHostMiddleware,
    # Strict Host Header Validation
    allowed_hosts=ALLOWED_HOSTS
)

# Include Routers
app.include_router(auth_router)
app.include_router(tasks_router)
app.include_router(subtasks_router)
app.include_router(user_router)
app.include_router(locale_router)


@app.get("/health")
@limiter.exempt
def health(request: Request, db: Session = Depends(get_db), cache=Depends(get_cache)):
    try:
        db.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.error("Health check: database unavailable: %s", e)
        database_ok = False
    cache_ok = cache.ping()
    return {
        "status": "ok" if database_ok else "error",
        "database": database_ok,
        "cache": cache_ok,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

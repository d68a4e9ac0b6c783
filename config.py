import os
from dotenv import load_dotenv

load_dotenv()

# --- Security ---
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    SECRET_KEY = "devsecret"
ALGORITHM = os.getenv("ALGORITHM", "HS256")
SESSION_SECRET = os.getenv("SESSION_SECRET", SECRET_KEY)
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# --- Infrastruktur ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./aufgaben.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CACHE_PREFIX = os.getenv("CACHE_PREFIX", "planner:")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
NOTIFICATION_QUEUE = os.getenv("NOTIFICATION_QUEUE", "notifications")

# --- Lokalisierung ---
SUPPORTED_LOCALES = ("en", "de", "fr")
FALLBACK_LOCALE = "en"
DEFAULT_LOCALE = os.getenv("APP_LOCALE", "en").strip().lower()
if DEFAULT_LOCALE not in SUPPORTED_LOCALES:
    DEFAULT_LOCALE = FALLBACK_LOCALE

# --- Token-Laufzeiten ---
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))
REMEMBER_TOKEN_TTL_DAYS = int(os.getenv("REMEMBER_TOKEN_TTL_DAYS", "30"))

# --- Cache (Sekunden) ---
USER_LOCALE_CACHE_TTL = int(os.getenv("USER_LOCALE_CACHE_TTL", "3600"))
TASK_LIST_CACHE_TTL = int(os.getenv("TASK_LIST_CACHE_TTL", "300"))
TASK_STATS_CACHE_TTL = int(os.getenv("TASK_STATS_CACHE_TTL", "900"))

# --- Rate Limiting ---
API_RATE_LIMIT = os.getenv("API_RATE_LIMIT", "120/minute")
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "5/minute")
REGISTER_RATE_LIMIT = os.getenv("REGISTER_RATE_LIMIT", "3/minute")
AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "10/minute")

# --- HTTP ---
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0").split(",") if h.strip()]

# --- Logging ---
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

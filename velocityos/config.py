import os

class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")
    WTF_CSRF_SECRET_KEY = SECRET_KEY
    WTF_CSRF_TIME_LIMIT = None
    # Checked per-request by the API blueprint (cookie-authenticated writes only)
    WTF_CSRF_CHECK_DEFAULT = False

    # Database (env in prod; dev/test may use default)
    try:
        from dotenv import dotenv_values
        _ENV_FALLBACK = dotenv_values(".env")
    except Exception:
        _ENV_FALLBACK = {}
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    API_VERSION = os.getenv("API_VERSION", "1.0.0")

    # Cookies: secure-by-default
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Firebase ID token cookie (set by POST /api/auth/session)
    AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "authToken")
    AUTH_COOKIE_MAX_AGE = int(os.getenv("AUTH_COOKIE_MAX_AGE", str(60 * 60 * 24 * 5)))
    AUTH_COOKIE_SECURE = False

    # CORS for the JSON API (comma separated origins, "*" for any)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Flask-Limiter: coarse global fallback; per-route limits where it matters
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "1000 per hour")
    RATELIMIT_HEADERS_ENABLED = True

    # --- Firebase Admin ---
    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
    FIREBASE_CHECK_REVOKED = (os.getenv("FIREBASE_CHECK_REVOKED", "false").lower() == "true")

    # --- Mail ---
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = (os.getenv("MAIL_USE_TLS", "true").lower() == "true")
    MAIL_USE_SSL = (os.getenv("MAIL_USE_SSL", "false").lower() == "true")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "VelocityOS <no-reply@local.test>")
    MAIL_SUPPRESS_SEND = (os.getenv("MAIL_SUPPRESS_SEND", "false").lower() == "true")
    EMAIL_WEBHOOK_SECRET = os.getenv("EMAIL_WEBHOOK_SECRET")

    # Used for absolute links (OAuth return pages, emails)
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

    # --- Stripe (Billing) ---
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    # Dashboard revenue is reported in this currency; others are listed separately
    REPORTING_CURRENCY = (os.getenv("REPORTING_CURRENCY", "usd") or "usd").lower()

    # Subscription price ids per plan (per environment via env vars)
    STRIPE_PRICE_VELOCITYOS_STARTER = os.getenv("STRIPE_PRICE_VELOCITYOS_STARTER")
    STRIPE_PRICE_FOUNDING_997 = os.getenv("STRIPE_PRICE_FOUNDING_997")
    STRIPE_PRICE_AGENCY_RESELLER = os.getenv("STRIPE_PRICE_AGENCY_RESELLER")
    STRIPE_PRICE_VELOCITYOS_ENTERPRISE = os.getenv("STRIPE_PRICE_VELOCITYOS_ENTERPRISE")
    # Optional metered add-on prices (same naming, _METERED suffix)
    STRIPE_PRICE_VELOCITYOS_STARTER_METERED = os.getenv("STRIPE_PRICE_VELOCITYOS_STARTER_METERED")
    STRIPE_PRICE_FOUNDING_997_METERED = os.getenv("STRIPE_PRICE_FOUNDING_997_METERED")
    STRIPE_PRICE_AGENCY_RESELLER_METERED = os.getenv("STRIPE_PRICE_AGENCY_RESELLER_METERED")
    STRIPE_PRICE_VELOCITYOS_ENTERPRISE_METERED = os.getenv("STRIPE_PRICE_VELOCITYOS_ENTERPRISE_METERED")

    # --- Google Workspace OAuth ---
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI")
    GOOGLE_AUTH_URL = os.getenv("GOOGLE_AUTH_URL", "https://accounts.google.com/o/oauth2/v2/auth")
    GOOGLE_TOKEN_URL = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")
    GOOGLE_HTTP_TIMEOUT = float(os.getenv("GOOGLE_HTTP_TIMEOUT", "15"))

    # --- Gemini ---
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.7"))
    GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "2048"))

    # Token salt for signed OAuth state values
    OAUTH_STATE_SALT = os.getenv("OAUTH_STATE_SALT", "oauth-state-v1")

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    MAIL_SUPPRESS_SEND = True

class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # SECRET_KEY / DATABASE_URL presence is enforced in create_app()
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    AUTH_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")
    MAIL_SUPPRESS_SEND = False

class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    MAIL_SUPPRESS_SEND = True
    RATELIMIT_ENABLED = False

_ENV_MAP = {
    "development": DevelopmentConfig,
    "staging": ProductionConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)

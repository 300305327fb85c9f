import os


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- Payment gateway (Paystack-compatible API) ---
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY")
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT = float(os.environ.get("PAYSTACK_TIMEOUT", 15))

    # --- Subscriptions ---
    # Plan used for the onboarding trial. Falls back to the default plan.
    TRIAL_PLAN_SLUG = os.environ.get("TRIAL_PLAN_SLUG", "pro")

    # --- Email (SMTP) ---
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Invoicely")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS")  # defaults to MAIL_USERNAME

    # --- SMS (Termii) ---
    TERMII_API_BASE = os.environ.get("TERMII_API_BASE", "https://api.ng.termii.com/api")
    TERMII_API_KEY = os.environ.get("TERMII_API_KEY")
    TERMII_SENDER_ID = os.environ.get("TERMII_SENDER_ID")

    # --- WhatsApp Business Cloud API ---
    # When disabled, WhatsApp delivery falls back to a wa.me click-to-chat link.
    WHATSAPP_API_ENABLED = os.environ.get(
        "WHATSAPP_API_ENABLED", ""
    ).lower() in ("1", "true", "yes")
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get("WHATSAPP_PHONE_NUMBER_ID")
    WHATSAPP_ACCESS_TOKEN = os.environ.get("WHATSAPP_ACCESS_TOKEN")
    WHATSAPP_API_VERSION = os.environ.get("WHATSAPP_API_VERSION", "v18.0")
    WHATSAPP_DEFAULT_COUNTRY_CODE = os.environ.get("WHATSAPP_DEFAULT_COUNTRY_CODE", "234")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "PAYSTACK_SECRET_KEY",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    PAYSTACK_SECRET_KEY = "sk_test_fake"
    PAYSTACK_BASE_URL = "https://api.paystack.test"
    PAYSTACK_TIMEOUT = 2
    APP_BASE_URL = "http://localhost:5000"
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}

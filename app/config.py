import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "var")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "procurement_lifecycle.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)
    DB_CONNECT_TIMEOUT_SECONDS = _int_env("DB_CONNECT_TIMEOUT_SECONDS", 10)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-procurement-lifecycle")
    TRUST_PRINCIPAL_HEADERS = _bool_env("TRUST_PRINCIPAL_HEADERS", False)

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    REQUEST_LOCK_TIMEOUT_SECONDS = _int_env("REQUEST_LOCK_TIMEOUT_SECONDS", 10)
    METRICS_ENABLED = _bool_env("METRICS_ENABLED", True)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is required in production.")
        if env == "production" and self.SECRET_KEY == "dev-secret-procurement-lifecycle":
            raise RuntimeError("SECRET_KEY is insecure for production.")
        if env == "production" and self.TRUST_PRINCIPAL_HEADERS:
            raise RuntimeError("TRUST_PRINCIPAL_HEADERS must not be enabled in production.")

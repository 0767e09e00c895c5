import logging
import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
DEBUG = _get_bool(os.getenv("DEBUG"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./counselling.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int("JWT_EXPIRES_MINUTES", 60)

# Notifications older than this are removed by the sweep; 0 keeps them forever.
NOTIFICATION_TTL_DAYS = _get_int("NOTIFICATION_TTL_DAYS", 30)
NOTIFICATION_SWEEP_INTERVAL_SECONDS = _get_int("NOTIFICATION_SWEEP_INTERVAL_SECONDS", 3600)
NOTIFICATION_MAX_ATTEMPTS = _get_int("NOTIFICATION_MAX_ATTEMPTS", 3)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if NOTIFICATION_MAX_ATTEMPTS < 1:
        raise RuntimeError(f"NOTIFICATION_MAX_ATTEMPTS must be >= 1, got {NOTIFICATION_MAX_ATTEMPTS}")
    if NOTIFICATION_TTL_DAYS < 0:
        raise RuntimeError(f"NOTIFICATION_TTL_DAYS must be >= 0, got {NOTIFICATION_TTL_DAYS}")
    if NOTIFICATION_SWEEP_INTERVAL_SECONDS < 0:
        raise RuntimeError(
            f"NOTIFICATION_SWEEP_INTERVAL_SECONDS must be >= 0, got {NOTIFICATION_SWEEP_INTERVAL_SECONDS}"
        )


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

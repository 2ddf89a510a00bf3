import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./telehealth.db")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Consultation rooms
SESSION_WINDOW_MINUTES = int(os.getenv("SESSION_WINDOW_MINUTES", "30"))
JOIN_TIMEOUT_SECONDS = float(os.getenv("JOIN_TIMEOUT_SECONDS", "10"))
STORE_WRITE_ATTEMPTS = int(os.getenv("STORE_WRITE_ATTEMPTS", "3"))
STORE_RETRY_DELAY_SECONDS = float(os.getenv("STORE_RETRY_DELAY_SECONDS", "0.2"))
SWEEP_ENABLED = _get_bool(os.getenv("SWEEP_ENABLED"), default=True)
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
SIGNALING_REQUIRE_TOKEN = _get_bool(
    os.getenv("SIGNALING_REQUIRE_TOKEN"),
    default=APP_ENV.lower() == "production",
)

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SESSION_WINDOW_MINUTES <= 0:
        raise RuntimeError("SESSION_WINDOW_MINUTES must be positive.")
    if STORE_WRITE_ATTEMPTS < 1:
        raise RuntimeError("STORE_WRITE_ATTEMPTS must be at least 1.")

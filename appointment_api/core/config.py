import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")
PORT = int(os.getenv("PORT", "3000"))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./appointments.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

FRONTEND_URL = os.getenv("FRONTEND_URL", "")
VERCEL_URL = os.getenv("VERCEL_URL", "")

BOOKING_HOLD_MINUTES = int(os.getenv("BOOKING_HOLD_MINUTES", "15"))
BOOKING_EXPIRY_BATCH_SIZE = int(os.getenv("BOOKING_EXPIRY_BATCH_SIZE", "100"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))


def is_production() -> bool:
    return APP_ENV.lower() == "production"


def is_development() -> bool:
    return APP_ENV.lower() == "development"


def allowed_origins() -> list[str]:
    origins = ["http://localhost:3000", "http://localhost:3001", FRONTEND_URL]
    return [origin for origin in origins if origin]


def public_server_url() -> str:
    if is_production() and VERCEL_URL:
        return f"https://{VERCEL_URL}"
    return f"http://localhost:{PORT}"


def validate_runtime_config() -> None:
    if is_production() and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if BOOKING_HOLD_MINUTES <= 0:
        raise RuntimeError("BOOKING_HOLD_MINUTES must be a positive number of minutes.")
    if BOOKING_EXPIRY_BATCH_SIZE <= 0:
        raise RuntimeError("BOOKING_EXPIRY_BATCH_SIZE must be a positive number.")

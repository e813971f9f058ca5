import os
from pathlib import Path
from dotenv import load_dotenv

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env"

if env_path.exists():
    load_dotenv(dotenv_path=env_path)
else:
    load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class TaskFlowConfig:
    def __init__(self) -> None:
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskflow.db")

        # Session token
        self.SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-in-production")
        self.ALGORITHM = os.getenv("ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)  # 7 days
        self.COOKIE_NAME = os.getenv("COOKIE_NAME", "auth-token")
        self.COOKIE_SECURE = _env_bool("COOKIE_SECURE", False)

        self.APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
        self.API_URL = os.getenv("API_URL", "http://localhost:8000").rstrip("/")
        self.CORS_ORIGINS = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()
        ]

        # Email
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY")
        self.RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
        self.EMAIL_FROM = os.getenv("EMAIL_FROM", "TaskFlow <notifications@taskflow.app>")
        self.EMAIL_DISPATCH_MODE = os.getenv("EMAIL_DISPATCH_MODE", "inline").lower()
        self.DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "America/Sao_Paulo")

        # Client poller
        self.ALERT_COOLDOWN_SECONDS = _env_int("ALERT_COOLDOWN_SECONDS", 60)
        self.POLL_INTERVAL_SECONDS = _env_int("POLL_INTERVAL_SECONDS", 10)

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


config = TaskFlowConfig()

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

MIN_SECRET_LENGTH = 32
EMAIL_BACKENDS = {"gmail", "log"}


class ConfigError(RuntimeError):
    pass


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw_value = os.getenv(name, default)
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    jwt_secret: str = os.getenv("JWT_SECRET", "")
    jwt_refresh_secret: str = os.getenv("JWT_REFRESH_SECRET", "")
    jwt_algorithm: str = os.getenv("ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")
    )
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
    magic_link_expire_minutes: int = int(os.getenv("MAGIC_LINK_EXPIRE_MINUTES", "5"))
    magic_link_retention_hours: int = int(
        os.getenv("MAGIC_LINK_RETENTION_HOURS", "24")
    )
    clock_skew_seconds: int = int(os.getenv("CLOCK_SKEW_SECONDS", "5"))
    db_timeout_seconds: int = int(os.getenv("DB_TIMEOUT_SECONDS", "10"))
    db_read_retries: int = int(os.getenv("DB_READ_RETRIES", "2"))
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
    allowed_origins: tuple[str, ...] = _env_list(
        "ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    )
    email_backend: str = os.getenv("EMAIL_BACKEND", "log").strip().lower()
    email_sender: str = os.getenv("EMAIL_SENDER") or os.getenv("GMAIL_SENDER", "")
    email_subject: str = os.getenv("EMAIL_SUBJECT", "Your Login Link")
    gmail_token_file: str = os.getenv("GMAIL_TOKEN_FILE", "")
    gmail_credentials_file: str = os.getenv(
        "GMAIL_CREDENTIALS_FILE", os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", "")
    )
    seed_admin_email: str = os.getenv("SEED_ADMIN_EMAIL", "").strip().lower()
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def validate(self) -> None:
        """Reject configuration the service cannot run with.

        Called once at startup so that a bad deployment fails to boot
        instead of failing individual requests.
        """
        problems = []
        if len(self.jwt_secret) < MIN_SECRET_LENGTH:
            problems.append(
                f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters"
            )
        if len(self.jwt_refresh_secret) < MIN_SECRET_LENGTH:
            problems.append(
                f"JWT_REFRESH_SECRET must be at least {MIN_SECRET_LENGTH} characters"
            )
        if self.jwt_secret and self.jwt_secret == self.jwt_refresh_secret:
            problems.append("JWT_REFRESH_SECRET must differ from JWT_SECRET")
        lifetimes = {
            "ACCESS_TOKEN_EXPIRE_MINUTES": self.access_token_expire_minutes,
            "REFRESH_TOKEN_EXPIRE_DAYS": self.refresh_token_expire_days,
            "MAGIC_LINK_EXPIRE_MINUTES": self.magic_link_expire_minutes,
        }
        for name, value in lifetimes.items():
            if value <= 0:
                problems.append(f"{name} must be positive")
        if self.clock_skew_seconds < 0:
            problems.append("CLOCK_SKEW_SECONDS cannot be negative")
        if self.email_backend not in EMAIL_BACKENDS:
            problems.append(
                f"EMAIL_BACKEND must be one of {', '.join(sorted(EMAIL_BACKENDS))}"
            )
        if problems:
            raise ConfigError("; ".join(problems))


settings = Settings()

import os
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from dotenv import load_dotenv

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "https://monish-s03.github.io"]


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read once from the environment."""

    mongo_uri: Optional[str] = None
    mongo_db_name: str = "storefront"
    mongo_timeout_ms: int = 5000
    port: int = 5000

    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 24 * 60
    admin_emails: FrozenSet[str] = frozenset()
    bcrypt_rounds: int = 12

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_starttls: bool = True
    smtp_timeout: float = 30.0
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    mail_from_name: str = "Store Orders"
    operator_email: Optional[str] = None
    currency_symbol: str = "₹"

    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    orders_list_requires_auth: bool = False

    environment: str = "development"
    log_level: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        email_user = os.getenv("EMAIL_USER") or None
        return cls(
            mongo_uri=os.getenv("MONGO_URI") or None,
            mongo_db_name=os.getenv("MONGO_DB_NAME", "storefront"),
            mongo_timeout_ms=int(os.getenv("MONGO_TIMEOUT_MS", 5000)),
            port=int(os.getenv("PORT", 5000)),
            jwt_secret=os.getenv("JWT_SECRET") or None,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_expires_minutes=int(os.getenv("JWT_EXPIRES_MINUTES", 24 * 60)),
            admin_emails=frozenset(e.lower() for e in _split(os.getenv("ADMIN_EMAILS"))),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", 587)),
            smtp_starttls=_flag(os.getenv("SMTP_STARTTLS"), default=True),
            smtp_timeout=float(os.getenv("SMTP_TIMEOUT", 30)),
            email_user=email_user,
            email_pass=os.getenv("EMAIL_PASS") or None,
            mail_from_name=os.getenv("MAIL_FROM_NAME", "Store Orders"),
            operator_email=os.getenv("OPERATOR_EMAIL") or email_user,
            currency_symbol=os.getenv("CURRENCY_SYMBOL", "₹"),
            cors_origins=_split(os.getenv("CORS_ORIGINS")) or list(DEFAULT_CORS_ORIGINS),
            orders_list_requires_auth=_flag(os.getenv("ORDERS_LIST_REQUIRES_AUTH")),
            environment=(os.getenv("ENVIRONMENT") or "development").lower(),
            log_level=os.getenv("LOG_LEVEL") or None,
        )

    def is_admin(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.admin_emails

"""
Runtime configuration.

All values come from the environment (optionally via a ``.env`` file).
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

load_dotenv()

BACKEND_ALIASES = {
    "memory": "memory",
    "inmemory": "memory",
    "dynamodb": "dynamodb",
    "dynamo": "dynamodb",
    "postgres": "relational",
    "postgresql": "relational",
    "relational": "relational",
    "sql": "relational",
}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class RelationalSettings:
    database_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./xplay.db"))
    pool_size: int = field(
        default_factory=lambda: int(os.getenv("DATABASE_POOL_SIZE", "5")))
    echo: bool = field(default_factory=lambda: _flag("DATABASE_ECHO"))

    @property
    def url(self) -> str:
        # Heroku-style URLs are not accepted by SQLAlchemy 2.x
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url


@dataclass
class DynamoDBSettings:
    region: str = field(
        default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))
    access_key_id: Optional[str] = field(
        default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID") or None)
    secret_access_key: Optional[str] = field(
        default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY") or None)
    endpoint_url: Optional[str] = field(
        default_factory=lambda: os.getenv("DYNAMODB_ENDPOINT_URL") or None)
    table_prefix: str = field(
        default_factory=lambda: os.getenv("DYNAMODB_TABLE_PREFIX", "XPlayHD_"))
    init_timeout: float = field(
        default_factory=lambda: float(os.getenv("DYNAMODB_INIT_TIMEOUT", "5")))


@dataclass
class AdminSettings:
    email: Optional[str] = field(
        default_factory=lambda: os.getenv("XPLAY_ADMIN_EMAIL") or None)
    username: Optional[str] = field(
        default_factory=lambda: os.getenv("XPLAY_ADMIN_USERNAME") or None)
    password: Optional[str] = field(
        default_factory=lambda: os.getenv("XPLAY_ADMIN_PASSWORD") or None)

    @property
    def enabled(self) -> bool:
        return bool(self.email and self.username and self.password)


@dataclass
class Settings:
    """
    Root settings object.

    Usage:
        settings = load_settings()
        storage = create_storage(settings)
    """

    backend: str = field(
        default_factory=lambda: os.getenv("XPLAY_STORAGE_BACKEND", "memory"))
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    relational: RelationalSettings = field(default_factory=RelationalSettings)
    dynamodb: DynamoDBSettings = field(default_factory=DynamoDBSettings)
    admin: AdminSettings = field(default_factory=AdminSettings)

    @property
    def backend_name(self) -> str:
        """Canonical backend name; raises ConfigurationError if unknown."""
        key = (self.backend or "").strip().lower().replace("-", "").replace("_", "")
        try:
            return BACKEND_ALIASES[key]
        except KeyError:
            raise ConfigurationError(
                f"Unknown storage backend {self.backend!r}; "
                f"expected one of: memory, dynamodb, postgres"
            ) from None


def load_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    # boto's own debug output drowns out ours
    logging.getLogger("botocore").setLevel(logging.WARNING)

import logging

from ..config import Settings
from ..database import make_engine
from ..exceptions import DuplicateUserError
from ..schemas import UserCreate, UserUpdate
from .base import Storage, backend_guard
from .dynamodb import DynamoDBStorage
from .memory import MemoryStorage
from .relational import RelationalStorage

logger = logging.getLogger(__name__)

__all__ = [
    "Storage",
    "MemoryStorage",
    "RelationalStorage",
    "DynamoDBStorage",
    "backend_guard",
    "create_storage",
    "ensure_admin",
]


def _build(settings: Settings) -> Storage:
    backend = settings.backend_name
    if backend == "memory":
        return MemoryStorage()
    if backend == "relational":
        relational = settings.relational
        return RelationalStorage(make_engine(relational.url, relational.pool_size, relational.echo))
    dynamodb = settings.dynamodb
    return DynamoDBStorage(
        region=dynamodb.region,
        table_prefix=dynamodb.table_prefix,
        endpoint_url=dynamodb.endpoint_url,
        access_key_id=dynamodb.access_key_id,
        secret_access_key=dynamodb.secret_access_key,
        init_timeout=dynamodb.init_timeout,
    )


def ensure_admin(storage: Storage, settings: Settings) -> None:
    """Create the configured admin account if missing and flag it admin."""
    admin = settings.admin
    if not admin.enabled:
        return

    user = storage.get_user_by_email(admin.email)
    if user is None:
        try:
            user = storage.create_user(UserCreate(
                username=admin.username,
                email=admin.email,
                password=admin.password,
                display_name=admin.username,
            ))
            logger.info(f"Created admin user {admin.username}")
        except DuplicateUserError as e:
            logger.warning(f"Admin bootstrap skipped: {str(e)}")
            return

    if not user.is_admin:
        storage.update_user(user.id, UserUpdate(is_admin=True))
        logger.info(f"Granted admin to user {user.id}")


def create_storage(settings: Settings) -> Storage:
    """
    Build the configured backend, create its tables and bootstrap the admin.

    The returned handle is meant to be created once at startup and passed to
    whatever needs it.
    """
    storage = _build(settings)
    logger.info(f"Using {storage.name} storage backend")
    storage.initialize()
    ensure_admin(storage, settings)
    return storage

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from xplay.config import RelationalSettings
from xplay.database import Base
# Explicit imports so every model registers with Base.metadata
from xplay.database import (  # noqa: F401
    User, Channel, Video, Comment, Subscription, LikedVideo, VideoHistory, SiteSettings,
)

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# alembic.ini wins; otherwise DATABASE_URL (loaded from .env by xplay.config)
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", RelationalSettings().url)

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Emits SQL to the script output using just the URL, so no DBAPI
    needs to be installed.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    configuration = config.get_section(config.config_ini_section) or {}
    if not configuration.get("sqlalchemy.url"):
        configuration["sqlalchemy.url"] = config.get_main_option("sqlalchemy.url")
    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

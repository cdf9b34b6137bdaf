"""
Alembic migration environment for the ticketing schema.

The sync URL comes from settings. Pass `-x url=...` to migrate another
database (for example a local SQLite file) without touching the env.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from ticketing.db.base import Base
from ticketing.models import User, Event, Booking, BookingSeat  # noqa: F401 - Import models for autogenerate
from ticketing.core.config import get_settings

config = context.config
settings = get_settings()

url_override = context.get_x_argument(as_dictionary=True).get("url")
config.set_main_option("sqlalchemy.url", url_override or settings.DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit the migration as a SQL script."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=_is_sqlite(url),
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # SQLite cannot ALTER constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

import skieshare.models  # noqa: F401,E402  registers every table on Base.metadata
from skieshare.core.database import DATABASE_URL, Base  # noqa: E402

target_metadata = Base.metadata


def _sync_url() -> str:
    return DATABASE_URL.replace("+aiosqlite", "").replace("+asyncpg", "")


def run_migrations_offline():
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_sync_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"},
        compare_type=True, compare_server_default=True
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode using a sync engine built
    from the app's DATABASE_URL (the async driver is dropped from the URL)."""
    connectable = create_engine(_sync_url(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

import asyncio
from logging.config import fileConfig
import os
import sys

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

# ensure the tripcoin package is importable
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from tripcoin.config import settings
from tripcoin.db.base import Base
import tripcoin.models  # noqa: F401  registers the mapped tables

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    """`alembic -x dburl=...` wins over DATABASE_URL, e.g. for a throwaway sqlite file."""
    return context.get_x_argument(as_dictionary=True).get("dburl") or str(settings.DATABASE_URL)


def configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        # seat and balance columns are guarded by CHECK constraints and exact types
        "compare_type": True,
        # sqlite can only alter tables by copy-and-move
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline():
    url = database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_kwargs(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection, url: str):
    context.configure(connection=connection, **configure_kwargs(url))

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online():
    url = database_url()
    connectable = create_async_engine(url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations, url)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

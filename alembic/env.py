import asyncio
import sys
from logging.config import fileConfig
from os.path import abspath, dirname

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
  fileConfig(config.config_file_name)

# Add the project root to the path so we can import 'problem_worker'
sys.path.insert(0, dirname(dirname(abspath(__file__))))

# Must import models so they are attached to Base.metadata
import problem_worker.schema.problems  # noqa: E402, F401
from problem_worker.config import get_database_settings  # noqa: E402
from problem_worker.core.database import Base, to_async_url  # noqa: E402

target_metadata = Base.metadata


def _database_url() -> str:
  url = to_async_url(get_database_settings().pg_dsn)
  if not url:
    raise RuntimeError("DATABASE_URL must be set to run migrations.")
  return url


def run_migrations_offline() -> None:
  """Run migrations in 'offline' mode.

  Emits SQL to the script output without a live connection.
  """
  context.configure(url=_database_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"})

  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata)

  with context.begin_transaction():
    context.run_migrations()


async def run_async_migrations() -> None:
  configuration = config.get_section(config.config_ini_section) or {}
  configuration["sqlalchemy.url"] = _database_url()
  connectable = async_engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

  async with connectable.connect() as connection:
    await connection.run_sync(do_run_migrations)

  await connectable.dispose()


def run_migrations_online() -> None:
  """Run migrations in 'online' mode."""

  asyncio.run(run_async_migrations())


if context.is_offline_mode():
  run_migrations_offline()
else:
  run_migrations_online()

"""Database initialization helper.

Creates the configured database when it does not exist yet, for local and dev
environments. The database name is validated before it is used in SQL because
CREATE DATABASE cannot be parameterized in PostgreSQL. Apply the schema
afterwards with `alembic upgrade head`, or pass `--create-tables` for a quick
throwaway setup.
"""

import argparse
import asyncio
import os
import re
import sys

from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


_DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def _validate_database_name(db_name: str) -> str:
  """Validate a PostgreSQL database name used as an identifier."""
  if not db_name:
    raise ValueError("Target database name is empty.")

  if not _DB_NAME_PATTERN.fullmatch(db_name):
    raise ValueError("Target database name contains invalid characters (allowed: A-Z, a-z, 0-9, _).")

  return db_name


async def create_database_if_not_exists(dsn: str) -> None:
  """Create the configured database if it does not already exist."""
  from problem_worker.core.database import to_async_url

  url = make_url(to_async_url(dsn) or dsn)
  target_db = _validate_database_name(url.database or "")

  # Connect to the maintenance database to check/create the target DB
  postgres_url = url.set(database="postgres")
  print(f"Connecting to postgres to check for database '{target_db}'...")

  # CREATE DATABASE cannot run inside a transaction
  engine = create_async_engine(postgres_url, isolation_level="AUTOCOMMIT")
  try:
    async with engine.connect() as conn:
      result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": target_db})
      if result.scalar() == 1:
        print(f"Database '{target_db}' already exists.")
      else:
        print(f"Database '{target_db}' does not exist. Creating...")
        await conn.execute(text(f'CREATE DATABASE "{target_db}"'))
        print(f"Database '{target_db}' created successfully.")
  finally:
    await engine.dispose()


async def create_tables() -> None:
  """Create the problems table directly from the ORM metadata."""
  from problem_worker.core.database import Base, dispose_engine, get_db_engine
  from problem_worker.schema import problems  # noqa: F401

  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("Database not configured")
  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    print("Tables created.")
  finally:
    await dispose_engine()


async def _run(args: argparse.Namespace) -> None:
  from problem_worker.config import get_database_settings

  dsn = get_database_settings().pg_dsn
  if not dsn:
    print("Error: DATABASE_URL is not set.")
    sys.exit(1)

  try:
    await create_database_if_not_exists(dsn)
    if args.create_tables:
      await create_tables()
  except Exception as e:
    print(f"Error initializing database: {e}")
    sys.exit(1)


if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Create the worker database if missing.")
  parser.add_argument("--create-tables", action="store_true", help="Also create tables from the ORM metadata (skips migrations).")
  asyncio.run(_run(parser.parse_args()))

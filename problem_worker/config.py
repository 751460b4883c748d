"""Worker configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from problem_worker.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_QUEUE_NAME = "problem_generation_queue"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the problem generator worker."""

  environment: str
  debug: bool
  pg_dsn: str | None
  rabbitmq_url: str | None
  queue_name: str
  prefetch_count: int
  gemini_api_key: str | None
  extraction_model: str
  generation_model: str
  extraction_model_defaulted: bool
  generation_model_defaulted: bool
  ai_timeout_seconds: float
  store_timeout_seconds: float
  startup_deadline_seconds: float
  finalize_max_attempts: int
  log_dir: str
  log_max_bytes: int
  log_backup_count: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity only."""

  debug: bool
  pg_dsn: str | None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a positive integer.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  raw = os.getenv(name, default)
  try:
    value = float(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a positive number of seconds.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive number of seconds.")
  return value


def _pg_dsn() -> str | None:
  # The ingress service only knows DATABASE_URL, so keep it as the fallback.
  return _optional_str(os.getenv("PROBLEM_WORKER_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("PROBLEM_WORKER_ENV", "development").strip().lower()
  debug = _parse_bool(os.getenv("PROBLEM_WORKER_DEBUG"))

  extraction_model = _optional_str(os.getenv("GEMINI_EXTRACTION_MODEL"))
  generation_model = _optional_str(os.getenv("GEMINI_GENERATION_MODEL"))

  log_backup_count = int(os.getenv("PROBLEM_WORKER_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("PROBLEM_WORKER_LOG_BACKUP_COUNT must be zero or a positive integer.")

  queue_name = (os.getenv("PROBLEM_WORKER_QUEUE_NAME") or DEFAULT_QUEUE_NAME).strip()
  if not queue_name:
    raise ValueError("PROBLEM_WORKER_QUEUE_NAME must not be blank.")

  return Settings(
    environment=environment,
    debug=debug,
    pg_dsn=_pg_dsn(),
    rabbitmq_url=_optional_str(os.getenv("RABBITMQ_URL")),
    queue_name=queue_name,
    prefetch_count=_positive_int("PROBLEM_WORKER_PREFETCH_COUNT", "1"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    extraction_model=extraction_model or DEFAULT_GEMINI_MODEL,
    generation_model=generation_model or DEFAULT_GEMINI_MODEL,
    extraction_model_defaulted=extraction_model is None,
    generation_model_defaulted=generation_model is None,
    ai_timeout_seconds=_positive_float("PROBLEM_WORKER_AI_TIMEOUT_SECONDS", "300"),
    store_timeout_seconds=_positive_float("PROBLEM_WORKER_STORE_TIMEOUT_SECONDS", "30"),
    startup_deadline_seconds=_positive_float("PROBLEM_WORKER_STARTUP_DEADLINE_SECONDS", "60"),
    finalize_max_attempts=_positive_int("PROBLEM_WORKER_FINALIZE_MAX_ATTEMPTS", "3"),
    log_dir=(os.getenv("PROBLEM_WORKER_LOG_DIR") or "./logs").strip(),
    log_max_bytes=_positive_int("PROBLEM_WORKER_LOG_MAX_BYTES", "5242880"),
    log_backup_count=log_backup_count,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring broker or model configuration."""
  # Migrations and operator scripts only need the DSN.
  return DatabaseSettings(debug=_parse_bool(os.getenv("PROBLEM_WORKER_DEBUG")), pg_dsn=_pg_dsn())

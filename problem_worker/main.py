"""Worker process entry point: connect dependencies and consume jobs."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from problem_worker.ai.client import build_ai_client
from problem_worker.config import Settings, get_settings
from problem_worker.core.database import dispose_engine, get_db_engine, get_session_factory, ping_database, redact_dsn
from problem_worker.core.exceptions import ConfigurationError, StartupConnectionError
from problem_worker.core.logging import initialize_logging
from problem_worker.jobs.consumer import JobConsumer
from problem_worker.jobs.processor import ProblemJobProcessor
from problem_worker.queue.rabbitmq import QueueClient
from problem_worker.storage.postgres_problems_repo import PostgresProblemsRepository
from problem_worker.utils.backoff import connect_with_backoff

logger = logging.getLogger("problem_worker.main")


def validate_settings(settings: Settings) -> None:
  """Fail fast when a required connection setting is absent."""
  missing = []
  if not settings.pg_dsn:
    missing.append("DATABASE_URL")
  if not settings.rabbitmq_url:
    missing.append("RABBITMQ_URL")
  if not settings.gemini_api_key:
    missing.append("GEMINI_API_KEY")
  if missing:
    raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")


def _install_signal_handlers(consumer: JobConsumer) -> None:
  loop = asyncio.get_running_loop()
  for sig in (signal.SIGINT, signal.SIGTERM):
    try:
      loop.add_signal_handler(sig, consumer.request_stop)
    except NotImplementedError:
      # Platforms without loop signal support fall back to KeyboardInterrupt.
      logger.debug("Signal handler for %s not supported on this platform", sig.name)


async def run_worker(settings: Settings) -> None:
  """Connect to the database and broker, then consume until stopped."""
  engine = get_db_engine()
  session_factory = get_session_factory()
  if engine is None or session_factory is None:
    raise ConfigurationError("Database not configured")

  logger.info("Connecting to database %s", redact_dsn(settings.pg_dsn))
  await connect_with_backoff("database", lambda: ping_database(engine), deadline_seconds=settings.startup_deadline_seconds)

  queue_client = QueueClient(settings.rabbitmq_url or "", settings.queue_name, prefetch_count=settings.prefetch_count)
  logger.info("Connecting to RabbitMQ %s", redact_dsn(settings.rabbitmq_url))
  await connect_with_backoff("rabbitmq", queue_client.connect, deadline_seconds=settings.startup_deadline_seconds)

  try:
    repo = PostgresProblemsRepository(session_factory, timeout_seconds=settings.store_timeout_seconds)
    processor = ProblemJobProcessor(repo=repo, ai_client=build_ai_client(settings), finalize_max_attempts=settings.finalize_max_attempts)
    consumer = JobConsumer(queue=queue_client.queue, processor=processor)
    _install_signal_handlers(consumer)
    logger.info("Worker started")
    await consumer.run()
  finally:
    await queue_client.close()
    await dispose_engine()
    logger.info("Worker shut down")


def main() -> int:
  settings = get_settings()
  log_path = initialize_logging(settings)
  logger.info("Logging to %s", log_path)

  try:
    validate_settings(settings)
    asyncio.run(run_worker(settings))
  except ConfigurationError as exc:
    logger.error("%s", exc)
    return 2
  except StartupConnectionError as exc:
    logger.error("Startup failed: %s", exc)
    return 1
  except KeyboardInterrupt:
    logger.info("Interrupted")
  return 0


if __name__ == "__main__":
  sys.exit(main())

"""Retry logic for job store writes with retryable vs non-retryable classification."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

T = TypeVar("T")
logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, admin/crash shutdown, cannot_connect_now
_RETRYABLE_SQLSTATES = {"40001", "40P01", "57P01", "57P02", "57P03"}
_CONNECTIVITY_HINTS = ("connection", "timeout", "reset", "network", "broken pipe", "closed")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a job store failure."""

  retryable: bool
  reason: str
  sqlstate: str | None


def _extract_sqlstate(exc: BaseException) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy-wrapped driver error."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    for attr in ("sqlstate", "pgcode"):
      value = getattr(exc.orig, attr, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: BaseException) -> DBFailureClassification:
  """Decide whether a failed write is worth repeating.

  Timeouts, dropped connections, serialization conflicts and deadlocks are
  transient. Integrity, schema and programming errors are permanent.
  """
  sqlstate = _extract_sqlstate(exc)
  if sqlstate in _RETRYABLE_SQLSTATES:
    return DBFailureClassification(retryable=True, reason="transient server condition", sqlstate=sqlstate)
  if sqlstate and sqlstate[:2] in {"23", "42", "28"}:
    return DBFailureClassification(retryable=False, reason="integrity, schema or permission error", sqlstate=sqlstate)
  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, reason="integrity error", sqlstate=sqlstate)
  if isinstance(exc, (TimeoutError, ConnectionError, InterfaceError)):
    return DBFailureClassification(retryable=True, reason=f"{type(exc).__name__}", sqlstate=sqlstate)
  if isinstance(exc, OperationalError):
    message = str(exc).lower()
    if any(hint in message for hint in _CONNECTIVITY_HINTS):
      return DBFailureClassification(retryable=True, reason="connectivity error", sqlstate=sqlstate)
    return DBFailureClassification(retryable=False, reason="operational error (unknown cause)", sqlstate=sqlstate)
  return DBFailureClassification(retryable=False, reason=f"unclassified error: {type(exc).__name__}", sqlstate=sqlstate)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 3, initial_backoff_ms: int = 200, max_backoff_ms: int = 5000, jitter: bool = True) -> T:
  """Run an idempotent store operation, retrying transient failures with exponential backoff.

  Args:
    operation_name: Human-readable name for logging.
    func: Zero-argument coroutine factory; called once per attempt.
    max_attempts: Total attempts including the first.
    initial_backoff_ms: Delay before the second attempt.
    max_backoff_ms: Upper bound for any single delay.
    jitter: Spread delays by up to 25% in either direction.

  Raises:
    The last exception when it is non-retryable or attempts are exhausted.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
    except asyncio.CancelledError:
      raise
    except Exception as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "Store operation failed: operation=%s attempt=%d/%d retryable=%s sqlstate=%s reason=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.retryable,
        classification.sqlstate or "none",
        classification.reason,
      )
      if not classification.retryable or attempt >= max_attempts:
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        spread = backoff_ms * 0.25
        backoff_ms += random.uniform(-spread, spread)
      await asyncio.sleep(backoff_ms / 1000.0)
      continue

    if attempt > 1:
      logger.info("Store operation succeeded after retry: operation=%s attempt=%d/%d", operation_name, attempt, max_attempts)
    return result

"""Startup connection retries with exponential backoff, full jitter and a deadline."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from problem_worker.core.exceptions import StartupConnectionError

T = TypeVar("T")
logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, *, base_seconds: float, max_seconds: float, rng: random.Random | None = None) -> float:
  """Return the full-jitter delay before retry number `attempt` (1-based)."""
  ceiling = min(max_seconds, base_seconds * (2 ** (attempt - 1)))
  return (rng or random).uniform(0, ceiling)


async def connect_with_backoff(
  name: str,
  connect: Callable[[], Awaitable[T]],
  *,
  deadline_seconds: float,
  base_seconds: float = 0.5,
  max_seconds: float = 10.0,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  clock: Callable[[], float] = time.monotonic,
) -> T:
  """Call `connect` until it succeeds or `deadline_seconds` have elapsed.

  Each attempt is itself bounded by the remaining time, so a connect call that
  hangs cannot outlive the deadline. Exhaustion raises
  `StartupConnectionError` chained to the last failure.
  """
  started = clock()
  attempt = 0
  last_error: BaseException | None = None

  while True:
    remaining = deadline_seconds - (clock() - started)
    if remaining <= 0:
      break
    attempt += 1
    try:
      async with asyncio.timeout(remaining):
        result = await connect()
    except asyncio.CancelledError:
      raise
    except Exception as exc:  # noqa: BLE001
      last_error = exc
      delay = backoff_delay(attempt, base_seconds=base_seconds, max_seconds=max_seconds)
      remaining = deadline_seconds - (clock() - started)
      if remaining <= 0:
        break
      delay = min(delay, remaining)
      logger.warning("%s unavailable (attempt %d): %s. Retrying in %.1fs...", name, attempt, exc, delay)
      await sleep(delay)
      continue

    if attempt > 1:
      logger.info("%s connected after %d attempts.", name, attempt)
    else:
      logger.info("%s connected.", name)
    return result

  raise StartupConnectionError(f"{name} unreachable after {attempt} attempts within {deadline_seconds:.0f}s") from last_error

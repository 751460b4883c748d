"""Retry logic for provider rate limiting."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

_RATE_LIMIT_HINTS = ("429", "too many requests", "resource exhausted", "resource_exhausted", "quota exceeded")


def is_rate_limit_error(exc: BaseException) -> bool:
  """Return True when an exception looks like a 429 / quota response."""
  code = getattr(exc, "code", None)
  if code == 429:
    return True
  message = str(exc).lower()
  return any(hint in message for hint in _RATE_LIMIT_HINTS)


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args: object, retries: int = 3, base_delay: float = 1.0, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep, **kwargs: object) -> T:
  """
  Execute a provider call, retrying only rate-limit errors.

  Delays grow exponentially from `base_delay` with up to one second of jitter.
  Any other error is raised immediately.
  """
  for attempt in range(retries):
    try:
      return await func(*args, **kwargs)
    except Exception as exc:
      if not is_rate_limit_error(exc):
        raise
      delay = base_delay * (2**attempt) + random.uniform(0, 1)
      logger.warning("Rate limited (attempt %d/%d): %s. Retrying in %.1fs...", attempt + 1, retries, exc, delay)
      await sleep(delay)

  # Final attempt
  return await func(*args, **kwargs)

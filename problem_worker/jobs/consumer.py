"""Queue consumer loop feeding delivered jobs to the orchestrator."""

from __future__ import annotations

import asyncio
import logging

from aio_pika.abc import AbstractIncomingMessage, AbstractQueue
from pydantic import ValidationError

from problem_worker.core.exceptions import JobFinalizationError
from problem_worker.jobs.models import JobOutcome
from problem_worker.jobs.processor import ProblemJobProcessor
from problem_worker.queue.rabbitmq import JobMessage

logger = logging.getLogger(__name__)


class JobConsumer:
  """Consume job messages one at a time and acknowledge each after processing.

  Stopping is cooperative: an idle consumer stops at once, a busy one finishes
  the in-flight message (including its acknowledgement) first.
  """

  def __init__(self, *, queue: AbstractQueue, processor: ProblemJobProcessor) -> None:
    self._queue = queue
    self._processor = processor
    self._stop_requested = False
    self._busy = False
    self._consume_task: asyncio.Task[None] | None = None

  @property
  def stop_requested(self) -> bool:
    return self._stop_requested

  def request_stop(self) -> None:
    """Ask the loop to exit; safe to call from a signal handler."""
    if self._stop_requested:
      return
    self._stop_requested = True
    logger.info("Shutdown requested%s", ", finishing in-flight job" if self._busy else "")
    if not self._busy and self._consume_task is not None:
      self._consume_task.cancel()

  async def run(self) -> None:
    """Consume until `request_stop` is called."""
    self._consume_task = asyncio.create_task(self._consume())
    try:
      await self._consume_task
    except asyncio.CancelledError:
      if not self._stop_requested:
        raise
    finally:
      self._consume_task = None
    logger.info("Consumer stopped")

  async def _consume(self) -> None:
    logger.info("Waiting for messages on '%s'", self._queue.name)
    async with self._queue.iterator() as messages:
      async for message in messages:
        self._busy = True
        try:
          await self.handle_message(message)
        finally:
          self._busy = False
        if self._stop_requested:
          break

  async def handle_message(self, message: AbstractIncomingMessage) -> JobOutcome | None:
    """Process one delivery and settle it; returns the outcome when a job ran."""
    try:
      job = JobMessage.model_validate_json(message.body)
    except ValidationError as exc:
      # Acknowledged so a malformed body cannot loop forever.
      logger.error("Dropping undecodable message %r: %s", message.body[:200], exc)
      await message.ack()
      return None

    try:
      outcome = await self._processor.process_job(job.problem_id)
    except JobFinalizationError as exc:
      logger.error("Requeueing problem %d: %s", job.problem_id, exc)
      await message.nack(requeue=True)
      return None
    except Exception:
      logger.exception("Unexpected error while processing problem %d", job.problem_id)
      await message.ack()
      return None

    await message.ack()
    logger.info("Problem %d finished with status %s", outcome.problem_id, outcome.status)
    return outcome

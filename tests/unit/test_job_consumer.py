from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from problem_worker.core.exceptions import JobFinalizationError
from problem_worker.jobs.consumer import JobConsumer
from problem_worker.jobs.models import JobOutcome
from problem_worker.queue.rabbitmq import JobMessage, encode_job_message


def _message(body: bytes) -> MagicMock:
  message = MagicMock()
  message.body = body
  message.ack = AsyncMock()
  message.nack = AsyncMock()
  message.reject = AsyncMock()
  return message


class _FakeQueue:
  """Queue double whose iterator yields scripted messages, then idles."""

  name = "problem_generation_queue"

  def __init__(self, messages: list[MagicMock]) -> None:
    self._messages = messages
    self.exhausted = asyncio.Event()

  def iterator(self) -> _FakeQueue:
    return self

  async def __aenter__(self) -> _FakeQueue:
    return self

  async def __aexit__(self, *exc: object) -> None:
    return None

  def __aiter__(self) -> _FakeQueue:
    return self

  async def __anext__(self) -> MagicMock:
    if self._messages:
      return self._messages.pop(0)
    self.exhausted.set()
    # Idle like a real consumer waiting for the next delivery.
    await asyncio.Event().wait()
    raise StopAsyncIteration


def test_job_message_round_trip() -> None:
  assert JobMessage.model_validate_json(encode_job_message(42)).problem_id == 42


@pytest.mark.anyio
async def test_handle_message_acks_after_processing() -> None:
  processor = MagicMock()
  processor.process_job = AsyncMock(return_value=JobOutcome(problem_id=7, status="completed"))
  consumer = JobConsumer(queue=MagicMock(), processor=processor)
  message = _message(b'{"problem_id": 7}')

  outcome = await consumer.handle_message(message)

  assert outcome.status == "completed"
  processor.process_job.assert_awaited_once_with(7)
  message.ack.assert_awaited_once()
  message.nack.assert_not_awaited()


@pytest.mark.anyio
async def test_failed_jobs_are_acknowledged() -> None:
  processor = MagicMock()
  processor.process_job = AsyncMock(return_value=JobOutcome(problem_id=8, status="failed", stage="extract_structure", error_message="boom"))
  consumer = JobConsumer(queue=MagicMock(), processor=processor)
  message = _message(b'{"problem_id": 8}')

  await consumer.handle_message(message)

  message.ack.assert_awaited_once()


@pytest.mark.anyio
@pytest.mark.parametrize("body", [b"not json", b'{"problem_id": "abc"}', b"{}", b'{"problem_id": "5"}'])
async def test_undecodable_messages_are_dropped(body: bytes) -> None:
  processor = MagicMock()
  processor.process_job = AsyncMock()
  consumer = JobConsumer(queue=MagicMock(), processor=processor)
  message = _message(body)

  assert await consumer.handle_message(message) is None

  processor.process_job.assert_not_awaited()
  message.ack.assert_awaited_once()


@pytest.mark.anyio
@pytest.mark.parametrize("status", ["completed", "failed"])
async def test_finalization_error_requeues_message(status: str) -> None:
  processor = MagicMock()
  processor.process_job = AsyncMock(side_effect=JobFinalizationError(9, TimeoutError(), status=status))
  consumer = JobConsumer(queue=MagicMock(), processor=processor)
  message = _message(b'{"problem_id": 9}')

  await consumer.handle_message(message)

  message.nack.assert_awaited_once_with(requeue=True)
  message.ack.assert_not_awaited()


@pytest.mark.anyio
async def test_unexpected_error_is_logged_and_acked() -> None:
  processor = MagicMock()
  processor.process_job = AsyncMock(side_effect=ValueError("unexpected"))
  consumer = JobConsumer(queue=MagicMock(), processor=processor)
  message = _message(b'{"problem_id": 10}')

  await consumer.handle_message(message)

  message.ack.assert_awaited_once()


@pytest.mark.anyio
async def test_run_processes_in_order_and_stops_when_idle() -> None:
  processed: list[int] = []

  async def _process(problem_id: int) -> JobOutcome:
    processed.append(problem_id)
    return JobOutcome(problem_id=problem_id, status="completed")

  processor = MagicMock()
  processor.process_job = AsyncMock(side_effect=_process)
  messages = [_message(b'{"problem_id": 1}'), _message(b'{"problem_id": 2}')]
  queue = _FakeQueue(list(messages))
  consumer = JobConsumer(queue=queue, processor=processor)

  task = asyncio.create_task(consumer.run())
  await asyncio.wait_for(queue.exhausted.wait(), timeout=1)
  consumer.request_stop()
  await asyncio.wait_for(task, timeout=1)

  assert processed == [1, 2]
  for message in messages:
    message.ack.assert_awaited_once()


@pytest.mark.anyio
async def test_stop_during_job_finishes_in_flight_message() -> None:
  started = asyncio.Event()
  release = asyncio.Event()

  async def _process(problem_id: int) -> JobOutcome:
    started.set()
    await release.wait()
    return JobOutcome(problem_id=problem_id, status="completed")

  processor = MagicMock()
  processor.process_job = AsyncMock(side_effect=_process)
  first, second = _message(b'{"problem_id": 1}'), _message(b'{"problem_id": 2}')
  consumer = JobConsumer(queue=_FakeQueue([first, second]), processor=processor)

  task = asyncio.create_task(consumer.run())
  await asyncio.wait_for(started.wait(), timeout=1)
  consumer.request_stop()
  release.set()
  await asyncio.wait_for(task, timeout=1)

  first.ack.assert_awaited_once()
  second.ack.assert_not_awaited()
  assert processor.process_job.await_count == 1

"""RabbitMQ access for the durable problem generation queue."""

from __future__ import annotations

import logging

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractQueue, AbstractRobustConnection
from pydantic import BaseModel, ConfigDict

from problem_worker.config import DEFAULT_QUEUE_NAME

logger = logging.getLogger(__name__)


class JobMessage(BaseModel):
  """Queue message body: the identifier of a job row."""

  model_config = ConfigDict(strict=True)

  problem_id: int


def encode_job_message(problem_id: int) -> bytes:
  return JobMessage(problem_id=problem_id).model_dump_json().encode("utf-8")


class QueueClient:
  """Connection, channel and queue handle for one worker process.

  The queue is declared durable and the channel limited to `prefetch_count`
  unacknowledged deliveries, so a worker never holds more jobs than it runs.
  """

  def __init__(self, url: str, queue_name: str = DEFAULT_QUEUE_NAME, *, prefetch_count: int = 1) -> None:
    self._url = url
    self.queue_name = queue_name
    self._prefetch_count = prefetch_count
    self._connection: AbstractRobustConnection | None = None
    self._channel: AbstractChannel | None = None
    self._queue: AbstractQueue | None = None

  async def connect(self) -> None:
    """Open the connection, set QoS and declare the queue."""
    connection = await aio_pika.connect_robust(self._url)
    try:
      channel = await connection.channel()
      await channel.set_qos(prefetch_count=self._prefetch_count)
      queue = await channel.declare_queue(self.queue_name, durable=True)
    except Exception:
      await connection.close()
      raise
    self._connection, self._channel, self._queue = connection, channel, queue
    logger.info("Connected to RabbitMQ, queue '%s' declared (prefetch %d)", self.queue_name, self._prefetch_count)

  @property
  def queue(self) -> AbstractQueue:
    if self._queue is None:
      raise RuntimeError("Queue client is not connected")
    return self._queue

  async def publish_job(self, problem_id: int) -> None:
    """Publish a persistent job message to the default exchange."""
    if self._channel is None:
      raise RuntimeError("Queue client is not connected")
    message = aio_pika.Message(body=encode_job_message(problem_id), content_type="application/json", delivery_mode=aio_pika.DeliveryMode.PERSISTENT)
    await self._channel.default_exchange.publish(message, routing_key=self.queue_name)
    logger.info("Published problem id %d to '%s'", problem_id, self.queue_name)

  async def close(self) -> None:
    if self._connection is not None and not self._connection.is_closed:
      await self._connection.close()
    self._connection = self._channel = self._queue = None

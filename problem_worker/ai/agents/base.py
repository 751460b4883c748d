"""Base class for the pipeline stage agents."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from problem_worker.ai.client import AIGenerationClient, Endpoint
from problem_worker.ai.json_sanitizer import sanitize_json_response
from problem_worker.ai.providers.base import ContentPart, UsageCounters
from problem_worker.core.exceptions import StageError

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT", bound=BaseModel)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageResult(Generic[OutputT]):
  """Validated stage payload plus the token counters of its model call."""

  payload: OutputT
  usage: UsageCounters


class BaseAgent(ABC, Generic[InputT, OutputT]):
  """Base agent with shared model-call and parsing logic."""

  name: str
  endpoint: Endpoint
  output_model: type[OutputT]
  # Used in the "no content from Gemini for ..." diagnostic.
  purpose: str

  def __init__(self, *, client: AIGenerationClient) -> None:
    self._client = client

  @abstractmethod
  async def run(self, input_data: InputT) -> StageResult[OutputT]:
    """Run the agent on input data."""

  async def _generate(self, parts: Sequence[ContentPart]) -> StageResult[OutputT]:
    response = await self._client.generate(self.endpoint, parts)
    if not response.has_content:
      raise StageError(f"no content from Gemini for {self.purpose}")

    logger.debug("%s raw response:\n%s", self.name, response.text)
    final_json = sanitize_json_response(response.text)

    try:
      payload = self.output_model.model_validate_json(final_json)
    except ValidationError as exc:
      raise StageError(f"failed to unmarshal final JSON ({self.purpose}): {exc}. Final JSON string: {final_json}") from exc

    return StageResult(payload=payload, usage=response.usage)

"""AI generation client shared by both pipeline stages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Literal

from problem_worker.ai.providers.base import AIModel, ContentPart, ModelResponse
from problem_worker.ai.providers.gemini import GeminiProvider
from problem_worker.config import Settings

Endpoint = Literal["structuring", "generation"]

logger = logging.getLogger(__name__)


class AIGenerationClient:
  """Stateless facade over the structuring and generation model endpoints.

  Built once at startup and passed to the stages, so tests can substitute
  fake models without touching module state.
  """

  def __init__(self, *, structuring_model: AIModel, generation_model: AIModel, timeout_seconds: float | None = None) -> None:
    self._models: dict[Endpoint, AIModel] = {"structuring": structuring_model, "generation": generation_model}
    self._timeout_seconds = timeout_seconds

  def model_name(self, endpoint: Endpoint) -> str:
    return self._models[endpoint].name

  async def generate(self, endpoint: Endpoint, parts: Sequence[ContentPart]) -> ModelResponse:
    """Call one endpoint; raises TimeoutError when the deadline passes."""
    model = self._models[endpoint]
    async with asyncio.timeout(self._timeout_seconds):
      return await model.generate_content(parts)


def build_ai_client(settings: Settings, provider: GeminiProvider | None = None) -> AIGenerationClient:
  """Construct the client from settings, warning when default model names are used."""
  if settings.extraction_model_defaulted:
    logger.warning("GEMINI_EXTRACTION_MODEL not set, using default '%s'", settings.extraction_model)
  if settings.generation_model_defaulted:
    logger.warning("GEMINI_GENERATION_MODEL not set, using default '%s'", settings.generation_model)

  provider = provider or GeminiProvider(api_key=settings.gemini_api_key)
  client = AIGenerationClient(
    structuring_model=provider.get_model(settings.extraction_model),
    generation_model=provider.get_model(settings.generation_model),
    timeout_seconds=settings.ai_timeout_seconds,
  )
  logger.info("AI client initialized with extraction model %s and generation model %s (JSON mode)", settings.extraction_model, settings.generation_model)
  return client

"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Final

from google import genai
from google.genai import types

from problem_worker.ai.backoff import retry_with_backoff
from problem_worker.ai.providers.base import AIModel, Candidate, ContentPart, ModelResponse, Provider, UsageCounters

logger = logging.getLogger(__name__)


def _to_sdk_part(part: ContentPart) -> types.Part:
  if part.text is not None:
    return types.Part.from_text(text=part.text)
  return types.Part.from_bytes(data=part.data or b"", mime_type=part.mime_type or "application/octet-stream")


def _candidate_texts(candidate: Any) -> tuple[str, ...]:
  """Collect the text parts of one SDK candidate, skipping thoughts and binary parts."""
  content = getattr(candidate, "content", None)
  parts = getattr(content, "parts", None) or []
  texts: list[str] = []
  for part in parts:
    if getattr(part, "thought", False):
      continue
    text = getattr(part, "text", None)
    if text:
      texts.append(text)
  return tuple(texts)


def parse_sdk_response(response: Any) -> ModelResponse:
  """Convert a google-genai response into the provider-neutral ModelResponse."""
  candidates = tuple(Candidate(parts=_candidate_texts(candidate)) for candidate in (getattr(response, "candidates", None) or []))
  usage_metadata = getattr(response, "usage_metadata", None)
  usage = UsageCounters()
  if usage_metadata is not None:
    usage = UsageCounters(prompt_tokens=int(usage_metadata.prompt_token_count or 0), candidates_tokens=int(usage_metadata.candidates_token_count or 0))
  return ModelResponse(candidates=candidates, usage=usage)


class GeminiModel(AIModel):
  """Gemini model client that always asks for JSON output."""

  def __init__(self, name: str, client: genai.Client) -> None:
    self.name: str = name
    self._client = client
    self._config = types.GenerateContentConfig(response_mime_type="application/json")

  async def generate_content(self, parts: Sequence[ContentPart]) -> ModelResponse:
    """Generate a JSON response from Gemini for the ordered request parts."""
    contents = [_to_sdk_part(part) for part in parts]
    # Use the async client to avoid blocking the asyncio event loop.
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=contents, config=self._config)
    parsed = parse_sdk_response(response)
    logger.debug("Gemini %s response (%d candidates):\n%s", self.name, len(parsed.candidates), parsed.text)
    return parsed


class GeminiProvider(Provider):
  """Gemini provider sharing one SDK client across models."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"

  def __init__(self, api_key: str | None = None, client: genai.Client | None = None) -> None:
    self.name: str = "gemini"
    if client is None:
      if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      client = genai.Client(api_key=api_key)
    self._client = client

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = (model or self._DEFAULT_MODEL).strip()
    if not model_name.startswith("gemini-"):
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, self._client)

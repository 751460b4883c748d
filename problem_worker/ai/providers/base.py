"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ContentPart:
  """One request part: either text or a typed binary blob."""

  text: str | None = None
  data: bytes | None = None
  mime_type: str | None = None

  def __post_init__(self) -> None:
    if (self.text is None) == (self.data is None):
      raise ValueError("ContentPart requires exactly one of text or data.")
    if self.data is not None and not self.mime_type:
      raise ValueError("Binary content parts require a mime_type.")

  @classmethod
  def from_text(cls, text: str) -> ContentPart:
    return cls(text=text)

  @classmethod
  def from_bytes(cls, data: bytes, mime_type: str) -> ContentPart:
    return cls(data=data, mime_type=mime_type)


@dataclass(frozen=True)
class UsageCounters:
  """Prompt and response token counts reported for one model call."""

  prompt_tokens: int = 0
  candidates_tokens: int = 0


@dataclass(frozen=True)
class Candidate:
  """One candidate output as an ordered list of its text parts."""

  parts: tuple[str, ...] = ()


@dataclass(frozen=True)
class ModelResponse:
  """Zero or more candidates plus usage counters."""

  candidates: tuple[Candidate, ...] = ()
  usage: UsageCounters = field(default_factory=UsageCounters)

  @property
  def has_content(self) -> bool:
    return bool(self.candidates) and bool(self.candidates[0].parts)

  @property
  def text(self) -> str:
    """Concatenated text of the first candidate."""
    if not self.candidates:
      return ""
    return "".join(self.candidates[0].parts)


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str

  @abstractmethod
  async def generate_content(self, parts: Sequence[ContentPart]) -> ModelResponse:
    """Generate a response for the ordered request parts."""


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""

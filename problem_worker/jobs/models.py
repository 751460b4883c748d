"""Domain models for problem generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["queued", "processing", "completed", "failed"]
OutcomeStatus = Literal["completed", "failed", "skipped", "aborted"]

JOB_STATUSES: tuple[JobStatus, ...] = ("queued", "processing", "completed", "failed")
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

DEFAULT_FILE_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class JobInput:
  """The submitted input of a job: exactly one of text or a binary blob."""

  text: str | None = None
  data: bytes | None = None
  mime_type: str = DEFAULT_FILE_MIME_TYPE

  def __post_init__(self) -> None:
    has_text = bool(self.text)
    has_data = bool(self.data)
    if has_text == has_data:
      raise ValueError("JobInput requires exactly one of text or data.")

  @property
  def is_text(self) -> bool:
    return bool(self.text)


@dataclass(frozen=True)
class TokenUsage:
  """Token counters for both model calls, persisted together with the output."""

  structure_prompt_tokens: int = 0
  structure_candidates_tokens: int = 0
  generation_prompt_tokens: int = 0
  generation_candidates_tokens: int = 0

  def __post_init__(self) -> None:
    for name in ("structure_prompt_tokens", "structure_candidates_tokens", "generation_prompt_tokens", "generation_candidates_tokens"):
      if getattr(self, name) < 0:
        raise ValueError(f"{name} must be non-negative.")

  @property
  def total_tokens(self) -> int:
    return self.structure_prompt_tokens + self.structure_candidates_tokens + self.generation_prompt_tokens + self.generation_candidates_tokens


@dataclass
class ProblemRecord:
  """Snapshot of one problem row."""

  problem_id: int
  status: JobStatus
  error_message: str = ""
  raw_input_text: str | None = None
  has_input_file: bool = False
  exam_title: str | None = None
  major_sections: list[dict[str, Any]] | None = None
  generated_output: dict[str, Any] | None = None
  token_usage: TokenUsage = field(default_factory=TokenUsage)
  created_at: str | None = None


@dataclass(frozen=True)
class JobStatusView:
  """What a status poller is allowed to see for a job."""

  problem_id: int
  status: JobStatus
  generated_output: dict[str, Any] | None = None
  error: str | None = None

  @classmethod
  def from_record(cls, record: ProblemRecord) -> JobStatusView:
    if record.status == "completed":
      return cls(problem_id=record.problem_id, status=record.status, generated_output=record.generated_output)
    if record.status == "failed":
      return cls(problem_id=record.problem_id, status=record.status, error=record.error_message)
    return cls(problem_id=record.problem_id, status=record.status)


@dataclass(frozen=True)
class JobOutcome:
  """Result of one orchestrator execution for a delivered message."""

  problem_id: int
  status: OutcomeStatus
  stage: str | None = None
  error_message: str | None = None

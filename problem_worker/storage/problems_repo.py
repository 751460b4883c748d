"""Storage interface for problem generation jobs."""

from __future__ import annotations

from typing import Protocol

from problem_worker.ai.contracts import GeneratedData, ProblemStructure
from problem_worker.jobs.models import JobInput, JobStatus, JobStatusView, ProblemRecord, TokenUsage


class ProblemsRepository(Protocol):
  """Repository contract used by the pipeline orchestrator.

  Every write is a single UPDATE statement so status pollers never observe a
  partially written row.
  """

  async def claim_job(self, problem_id: int) -> bool:
    """Move a job from queued to processing; return False when it was not queued."""

  async def get_job(self, problem_id: int) -> ProblemRecord | None:
    """Fetch a job snapshot by identifier."""

  async def get_input_data(self, problem_id: int) -> JobInput:
    """Return the job's submitted input, raising when the row or input is missing."""

  async def update_status(self, problem_id: int, status: JobStatus, error_message: str = "", *, expected_status: JobStatus | None = None) -> bool:
    """Write status and error message; return False when the guard did not match."""

  async def save_result(self, problem_id: int, structure: ProblemStructure, generated: GeneratedData, token_usage: TokenUsage) -> None:
    """Persist structure, generated output and token counters together."""

  async def get_status_view(self, problem_id: int) -> JobStatusView | None:
    """Return the poller-facing view of a job."""

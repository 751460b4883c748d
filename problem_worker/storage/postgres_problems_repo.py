"""Postgres-backed repository for problem generation jobs using SQLAlchemy."""

from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from problem_worker.ai.contracts import GeneratedData, ProblemStructure
from problem_worker.core.database import get_session_factory
from problem_worker.core.exceptions import JobInputError, JobNotFoundError
from problem_worker.jobs.models import JobInput, JobStatus, JobStatusView, ProblemRecord, TokenUsage
from problem_worker.schema.problems import Problem
from problem_worker.storage.problems_repo import ProblemsRepository


class PostgresProblemsRepository(ProblemsRepository):
  """Persist problem jobs to Postgres.

  Writes are issued as single UPDATE statements guarded on the current status,
  which keeps transitions forward-only without any application-level locking.
  Every call runs under `timeout_seconds` so a stalled connection surfaces as
  a `TimeoutError` instead of blocking the worker indefinitely.
  """

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None, *, timeout_seconds: float | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")
    self._timeout_seconds = timeout_seconds

  async def claim_job(self, problem_id: int) -> bool:
    stmt = update(Problem).where(Problem.id == problem_id, Problem.processing_status == "queued").values(processing_status="processing", error_message="")
    return await self._execute_update(stmt) == 1

  async def get_job(self, problem_id: int) -> ProblemRecord | None:
    async with asyncio.timeout(self._timeout_seconds):
      async with self._session_factory() as session:
        row = await session.get(Problem, problem_id)
        if row is None:
          return None
        return self._model_to_record(row)

  async def get_input_data(self, problem_id: int) -> JobInput:
    async with asyncio.timeout(self._timeout_seconds):
      async with self._session_factory() as session:
        stmt = select(Problem.raw_input_text, Problem.raw_input_file).where(Problem.id == problem_id)
        row = (await session.execute(stmt)).one_or_none()
    if row is None:
      raise JobNotFoundError(problem_id)
    raw_text, raw_file = row
    if raw_text:
      return JobInput(text=raw_text)
    if raw_file:
      return JobInput(data=bytes(raw_file))
    raise JobInputError(f"no input data found for problem id {problem_id}")

  async def update_status(self, problem_id: int, status: JobStatus, error_message: str = "", *, expected_status: JobStatus | None = None) -> bool:
    stmt = update(Problem).where(Problem.id == problem_id)
    if expected_status is not None:
      stmt = stmt.where(Problem.processing_status == expected_status)
    if status == "completed":
      # A completed job must always carry its output.
      stmt = stmt.where(Problem.generated_questions.is_not(None))
    stmt = stmt.values(processing_status=status, error_message=error_message)
    return await self._execute_update(stmt) == 1

  async def save_result(self, problem_id: int, structure: ProblemStructure, generated: GeneratedData, token_usage: TokenUsage) -> None:
    meta = structure.exam_meta
    values: dict[str, Any] = {
      "exam_title": meta.exam_title,
      "duration_minutes": meta.exam_duration,
      "is_open_book": meta.open_book,
      "allowed_materials": list(meta.allowed_materials) if meta.allowed_materials is not None else None,
      "question_format_is_latex": meta.question_format_is_latex,
      "answer_format_is_latex": meta.answer_format_is_latex,
      "major_sections": [section.model_dump() for section in structure.structure.major_sections],
      "generated_questions": generated.model_dump(),
      "structure_prompt_tokens": token_usage.structure_prompt_tokens,
      "structure_candidates_tokens": token_usage.structure_candidates_tokens,
      "generation_prompt_tokens": token_usage.generation_prompt_tokens,
      "generation_candidates_tokens": token_usage.generation_candidates_tokens,
    }
    stmt = update(Problem).where(Problem.id == problem_id, Problem.processing_status == "processing").values(**values)
    if await self._execute_update(stmt) != 1:
      raise RuntimeError(f"problem {problem_id} is missing or not processing; result not saved")

  async def get_status_view(self, problem_id: int) -> JobStatusView | None:
    record = await self.get_job(problem_id)
    if record is None:
      return None
    return JobStatusView.from_record(record)

  async def _execute_update(self, stmt: Any) -> int:
    async with asyncio.timeout(self._timeout_seconds):
      async with self._session_factory() as session:
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        await session.commit()
        return int(result.rowcount or 0)

  def _model_to_record(self, row: Problem) -> ProblemRecord:
    return ProblemRecord(
      problem_id=int(row.id),
      status=row.processing_status,  # type: ignore[arg-type]
      error_message=row.error_message or "",
      raw_input_text=row.raw_input_text,
      has_input_file=bool(row.raw_input_file),
      exam_title=row.exam_title,
      major_sections=row.major_sections,
      generated_output=row.generated_questions,
      token_usage=TokenUsage(
        structure_prompt_tokens=int(row.structure_prompt_tokens or 0),
        structure_candidates_tokens=int(row.structure_candidates_tokens or 0),
        generation_prompt_tokens=int(row.generation_prompt_tokens or 0),
        generation_candidates_tokens=int(row.generation_candidates_tokens or 0),
      ),
      created_at=row.created_at.isoformat() if row.created_at is not None else None,
    )

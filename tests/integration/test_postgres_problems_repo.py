"""Repository tests against SQLite through aiosqlite.

The repository only issues portable UPDATE/SELECT statements, so the guarded
transitions can be exercised without a Postgres server.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from problem_worker.ai.contracts import GeneratedData, ProblemStructure
from problem_worker.core.database import Base
from problem_worker.core.exceptions import JobInputError, JobNotFoundError
from problem_worker.jobs.models import TokenUsage
from problem_worker.schema.problems import Problem
from problem_worker.storage.postgres_problems_repo import PostgresProblemsRepository


@pytest.fixture
async def session_factory(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'problems.db'}")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  yield async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  await engine.dispose()


async def _insert(factory: async_sessionmaker[AsyncSession], **values: object) -> int:
  async with factory() as session:
    row = Problem(**values)
    session.add(row)
    await session.commit()
    return int(row.id)


def _structure(structure_json: str) -> ProblemStructure:
  return ProblemStructure.model_validate_json(structure_json)


def _generated(generated_json: str) -> GeneratedData:
  return GeneratedData.model_validate_json(generated_json)


@pytest.mark.anyio
async def test_claim_is_conditional(session_factory) -> None:
  repo = PostgresProblemsRepository(session_factory, timeout_seconds=5)
  problem_id = await _insert(session_factory, raw_input_text="2+2=?")

  assert await repo.claim_job(problem_id)
  assert not await repo.claim_job(problem_id)
  assert not await repo.claim_job(problem_id + 100)

  record = await repo.get_job(problem_id)
  assert record.status == "processing"
  assert record.created_at is not None


@pytest.mark.anyio
async def test_get_input_data_prefers_text(session_factory) -> None:
  repo = PostgresProblemsRepository(session_factory)
  text_id = await _insert(session_factory, raw_input_text="question", raw_input_file=b"%PDF")
  file_id = await _insert(session_factory, raw_input_file=b"%PDF-1.7")
  empty_id = await _insert(session_factory)

  assert (await repo.get_input_data(text_id)).text == "question"
  file_input = await repo.get_input_data(file_id)
  assert file_input.data == b"%PDF-1.7"
  assert file_input.mime_type == "application/pdf"
  with pytest.raises(JobInputError, match=f"no input data found for problem id {empty_id}"):
    await repo.get_input_data(empty_id)
  with pytest.raises(JobNotFoundError):
    await repo.get_input_data(9999)


@pytest.mark.anyio
async def test_save_result_then_complete(session_factory, structure_json, generated_json) -> None:
  repo = PostgresProblemsRepository(session_factory)
  problem_id = await _insert(session_factory, raw_input_text="2+2=?")
  await repo.claim_job(problem_id)

  # Completion is refused until the output exists.
  assert not await repo.update_status(problem_id, "completed", expected_status="processing")

  await repo.save_result(problem_id, _structure(structure_json), _generated(generated_json), TokenUsage(1, 2, 3, 4))
  assert await repo.update_status(problem_id, "completed", expected_status="processing")

  record = await repo.get_job(problem_id)
  assert record.status == "completed"
  assert record.exam_title == "Arithmetic Quiz"
  assert record.major_sections[0]["section_title"] == "Addition"
  assert record.generated_output["questions"][0]["question_text"] == "What is 2+2?"
  assert record.token_usage == TokenUsage(1, 2, 3, 4)

  async with session_factory() as session:
    row = await session.get(Problem, problem_id)
    assert row.duration_minutes == 30
    assert row.allowed_materials == ["pencil"]
    assert row.is_open_book is False

  view = await repo.get_status_view(problem_id)
  assert view.generated_output is not None
  assert view.error is None


@pytest.mark.anyio
async def test_save_result_requires_processing(session_factory, structure_json, generated_json) -> None:
  repo = PostgresProblemsRepository(session_factory)
  problem_id = await _insert(session_factory, raw_input_text="x")

  with pytest.raises(RuntimeError, match="not processing"):
    await repo.save_result(problem_id, _structure(structure_json), _generated(generated_json), TokenUsage())


@pytest.mark.anyio
async def test_failed_write_is_guarded(session_factory) -> None:
  repo = PostgresProblemsRepository(session_factory)
  problem_id = await _insert(session_factory, raw_input_text="x")

  # Not processing yet, so the guarded write does nothing.
  assert not await repo.update_status(problem_id, "failed", "failed at stage 'x': y", expected_status="processing")

  await repo.claim_job(problem_id)
  assert await repo.update_status(problem_id, "failed", "failed at stage 'extract_structure': no content", expected_status="processing")
  assert not await repo.update_status(problem_id, "failed", "again", expected_status="processing")

  view = await repo.get_status_view(problem_id)
  assert view.status == "failed"
  assert view.error == "failed at stage 'extract_structure': no content"
  assert view.generated_output is None
  assert await repo.get_status_view(9999) is None

"""Shared fixtures and test doubles for the worker test suite."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import replace

import pytest

# Keep tests independent of a developer's local .env file.
os.environ.setdefault("PROBLEM_WORKER_LOG_DIR", "/tmp/problem_worker_test_logs")

from problem_worker.ai.client import AIGenerationClient  # noqa: E402
from problem_worker.ai.contracts import GeneratedData, ProblemStructure  # noqa: E402
from problem_worker.ai.providers.base import AIModel, Candidate, ContentPart, ModelResponse, UsageCounters  # noqa: E402
from problem_worker.core.exceptions import JobInputError, JobNotFoundError  # noqa: E402
from problem_worker.jobs.models import JobInput, JobStatus, JobStatusView, ProblemRecord, TokenUsage  # noqa: E402

STRUCTURE_JSON = """{
  "exam_meta": {"exam_title": "Arithmetic Quiz", "exam_duration": 30, "open_book": false, "allowed_materials": ["pencil"], "question_format_is_latex": false, "answer_format_is_latex": false},
  "structure": {"major_sections": [{"section_index": "1", "section_title": "Addition", "sub_questions": [{"question_index": "1-1", "topic": "arithmetic", "keywords": ["sum"], "difficulty": "easy"}]}]}
}"""

GENERATED_JSON = """{
  "exam_meta": {"exam_title": "Arithmetic Quiz", "open_book": false, "question_format_is_latex": false, "answer_format_is_latex": false},
  "questions": [{"question_index": "1-1", "topic": "arithmetic", "keywords": ["sum"], "difficulty": "easy", "question_text": "What is 2+2?", "answer_text": "4"}]
}"""


def text_response(text: str, *, prompt_tokens: int = 10, candidates_tokens: int = 20) -> ModelResponse:
  """Build a single-candidate response carrying `text`."""
  return ModelResponse(candidates=(Candidate(parts=(text,)),), usage=UsageCounters(prompt_tokens=prompt_tokens, candidates_tokens=candidates_tokens))


class FakeModel(AIModel):
  """Scripted model returning queued responses (or raising queued errors) in order."""

  def __init__(self, name: str, responses: Sequence[ModelResponse | Exception] = ()) -> None:
    self.name = name
    self._responses = list(responses)
    self.calls: list[list[ContentPart]] = []

  def script(self, *responses: ModelResponse | Exception) -> None:
    self._responses.extend(responses)

  async def generate_content(self, parts: Sequence[ContentPart]) -> ModelResponse:
    self.calls.append(list(parts))
    if not self._responses:
      raise AssertionError(f"{self.name} called more times than scripted")
    response = self._responses.pop(0)
    if isinstance(response, Exception):
      raise response
    return response


class InMemoryProblemsRepository:
  """In-memory job store mirroring the guarded single-statement writes of the real repository."""

  def __init__(self) -> None:
    self.records: dict[int, ProblemRecord] = {}
    self.inputs: dict[int, tuple[str | None, bytes | None]] = {}
    self.structures: dict[int, ProblemStructure] = {}
    self.status_history: dict[int, list[str]] = {}
    # Operation name -> exceptions to raise on the next calls.
    self.failures: dict[str, list[Exception]] = {}

  def add_job(self, problem_id: int, *, text: str | None = None, data: bytes | None = None, status: JobStatus = "queued") -> None:
    self.records[problem_id] = ProblemRecord(problem_id=problem_id, status=status, raw_input_text=text, has_input_file=bool(data))
    self.inputs[problem_id] = (text, data)
    self.status_history[problem_id] = [status]

  def fail_next(self, operation: str, *errors: Exception) -> None:
    self.failures.setdefault(operation, []).extend(errors)

  def _maybe_fail(self, operation: str) -> None:
    pending = self.failures.get(operation)
    if pending:
      raise pending.pop(0)

  def _set_status(self, problem_id: int, status: JobStatus, error_message: str) -> None:
    self.records[problem_id] = replace(self.records[problem_id], status=status, error_message=error_message)
    self.status_history[problem_id].append(status)

  async def claim_job(self, problem_id: int) -> bool:
    self._maybe_fail("claim_job")
    record = self.records.get(problem_id)
    if record is None or record.status != "queued":
      return False
    self._set_status(problem_id, "processing", "")
    return True

  async def get_job(self, problem_id: int) -> ProblemRecord | None:
    self._maybe_fail("get_job")
    return self.records.get(problem_id)

  async def get_input_data(self, problem_id: int) -> JobInput:
    self._maybe_fail("get_input_data")
    if problem_id not in self.records:
      raise JobNotFoundError(problem_id)
    text, data = self.inputs[problem_id]
    if text:
      return JobInput(text=text)
    if data:
      return JobInput(data=data)
    raise JobInputError(f"no input data found for problem id {problem_id}")

  async def update_status(self, problem_id: int, status: JobStatus, error_message: str = "", *, expected_status: JobStatus | None = None) -> bool:
    self._maybe_fail(f"update_status:{status}")
    record = self.records.get(problem_id)
    if record is None:
      return False
    if expected_status is not None and record.status != expected_status:
      return False
    if status == "completed" and record.generated_output is None:
      return False
    self._set_status(problem_id, status, error_message)
    return True

  async def save_result(self, problem_id: int, structure: ProblemStructure, generated: GeneratedData, token_usage: TokenUsage) -> None:
    self._maybe_fail("save_result")
    record = self.records.get(problem_id)
    if record is None or record.status != "processing":
      raise RuntimeError(f"problem {problem_id} is missing or not processing; result not saved")
    self.structures[problem_id] = structure
    self.records[problem_id] = replace(
      record,
      exam_title=structure.exam_meta.exam_title,
      major_sections=[section.model_dump() for section in structure.structure.major_sections],
      generated_output=generated.model_dump(),
      token_usage=token_usage,
    )

  async def get_status_view(self, problem_id: int) -> JobStatusView | None:
    record = self.records.get(problem_id)
    return JobStatusView.from_record(record) if record else None


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def repo() -> InMemoryProblemsRepository:
  return InMemoryProblemsRepository()


@pytest.fixture
def structuring_model() -> FakeModel:
  return FakeModel("gemini-structuring-test")


@pytest.fixture
def generation_model() -> FakeModel:
  return FakeModel("gemini-generation-test")


@pytest.fixture
def ai_client(structuring_model: FakeModel, generation_model: FakeModel) -> AIGenerationClient:
  return AIGenerationClient(structuring_model=structuring_model, generation_model=generation_model, timeout_seconds=5)


@pytest.fixture
def make_response():
  return text_response


@pytest.fixture
def structure_json() -> str:
  return STRUCTURE_JSON


@pytest.fixture
def generated_json() -> str:
  return GENERATED_JSON

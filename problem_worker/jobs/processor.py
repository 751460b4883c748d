"""Pipeline orchestrator for problem generation jobs."""

from __future__ import annotations

import logging

from problem_worker.ai.agents.generator import ProblemGeneratorAgent
from problem_worker.ai.agents.structurer import StructureExtractorAgent
from problem_worker.ai.client import AIGenerationClient
from problem_worker.core.exceptions import JobFinalizationError
from problem_worker.jobs.models import JobOutcome, TokenUsage
from problem_worker.storage.problems_repo import ProblemsRepository
from problem_worker.utils.db_retry import execute_with_retry

STAGE_CLAIM = "update_status_processing"
STAGE_INPUT = "get_input_data"
STAGE_STRUCTURE = "extract_structure"
STAGE_GENERATE = "generate_problem"
STAGE_SAVE = "save_result"
STAGE_COMPLETE = "update_status_completed"
STAGE_FAIL = "update_status_failed"


def describe_error(exc: BaseException) -> str:
  """Readable cause text; some errors (timeouts) stringify to nothing."""
  text = str(exc).strip()
  return text or type(exc).__name__


def stage_failure_message(stage: str, exc: BaseException) -> str:
  return f"failed at stage '{stage}': {describe_error(exc)}"


class ProblemJobProcessor:
  """Run one job through claim, both AI stages, persistence and completion.

  Stages run strictly in order. Any stage error ends the job as `failed` with
  a stage-tagged message; the process itself never crashes on a bad job.
  Cancellation is never caught here, so a shutdown interrupts the current
  await and leaves the job in `processing` for the redelivery path.
  """

  def __init__(
    self,
    *,
    repo: ProblemsRepository,
    ai_client: AIGenerationClient,
    finalize_max_attempts: int = 3,
    structurer: StructureExtractorAgent | None = None,
    generator: ProblemGeneratorAgent | None = None,
  ) -> None:
    self._repo = repo
    self._finalize_max_attempts = finalize_max_attempts
    self._structurer = structurer or StructureExtractorAgent(client=ai_client)
    self._generator = generator or ProblemGeneratorAgent(client=ai_client)
    self._logger = logging.getLogger(__name__)
    # problem id -> (stage, message) of failures whose `failed` write never landed.
    self._pending_failures: dict[int, tuple[str, str]] = {}

  async def process_job(self, problem_id: int) -> JobOutcome:
    """Process a single delivered job and report how it ended.

    Raises:
      JobFinalizationError: The job could not be marked completed (result
        saved) or failed (stage error); the caller should requeue the message.
    """
    self._logger.info("Processing problem id %d", problem_id)

    try:
      claimed = await self._repo.claim_job(problem_id)
      if not claimed:
        return await self._handle_unclaimed(problem_id)
    except JobFinalizationError:
      raise
    except Exception as exc:
      message = stage_failure_message(STAGE_CLAIM, exc)
      self._logger.error("Problem %d aborted: %s", problem_id, message)
      return JobOutcome(problem_id=problem_id, status="aborted", stage=STAGE_CLAIM, error_message=message)

    stage = STAGE_INPUT
    try:
      job_input = await self._repo.get_input_data(problem_id)
      self._logger.info("Problem %d input loaded (%s)", problem_id, "text" if job_input.is_text else job_input.mime_type)

      stage = STAGE_STRUCTURE
      structure = await self._structurer.run(job_input)
      self._logger.info("Problem %d structure extracted: %d major sections", problem_id, len(structure.payload.structure.major_sections))

      stage = STAGE_GENERATE
      generated = await self._generator.run(structure.payload)
      self._logger.info("Problem %d generated %d questions", problem_id, len(generated.payload.questions))

      stage = STAGE_SAVE
      token_usage = TokenUsage(
        structure_prompt_tokens=structure.usage.prompt_tokens,
        structure_candidates_tokens=structure.usage.candidates_tokens,
        generation_prompt_tokens=generated.usage.prompt_tokens,
        generation_candidates_tokens=generated.usage.candidates_tokens,
      )
      await self._repo.save_result(problem_id, structure.payload, generated.payload, token_usage)
    except Exception as exc:
      return await self._fail(problem_id, stage, exc)

    await self._finalize(problem_id)
    self._logger.info("Problem %d completed (%d tokens)", problem_id, token_usage.total_tokens)
    return JobOutcome(problem_id=problem_id, status="completed")

  async def _handle_unclaimed(self, problem_id: int) -> JobOutcome:
    record = await self._repo.get_job(problem_id)
    pending = self._pending_failures.pop(problem_id, None)
    if record is None:
      self._logger.warning("Problem %d not found, skipping message", problem_id)
      return JobOutcome(problem_id=problem_id, status="skipped", stage=STAGE_CLAIM, error_message=f"problem id {problem_id} not found")

    if record.status == "processing" and record.generated_output is not None:
      # Result saved by an earlier delivery whose final write failed.
      self._logger.info("Problem %d has a saved result, finishing it", problem_id)
      await self._finalize(problem_id)
      return JobOutcome(problem_id=problem_id, status="completed")

    if record.status == "processing" and pending is not None:
      stage, message = pending
      self._logger.info("Problem %d has an unrecorded stage failure, recording it", problem_id)
      await self._record_failure(problem_id, stage, message)
      return JobOutcome(problem_id=problem_id, status="failed", stage=stage, error_message=message)

    if record.status == "processing":
      self._logger.error("STALLED_JOB problem_id=%d: processing with no saved result, skipping redelivery; needs reconciliation", problem_id)
    else:
      self._logger.warning("Problem %d is %s, skipping duplicate delivery", problem_id, record.status)
    return JobOutcome(problem_id=problem_id, status="skipped", stage=STAGE_CLAIM)

  async def _finalize(self, problem_id: int) -> None:
    async def _mark_completed() -> None:
      if not await self._repo.update_status(problem_id, "completed", expected_status="processing"):
        raise RuntimeError(f"problem {problem_id} is not processing or has no saved output")

    try:
      await execute_with_retry(operation_name=STAGE_COMPLETE, func=_mark_completed, max_attempts=self._finalize_max_attempts)
    except Exception as exc:
      self._logger.error("Problem %d: %s", problem_id, stage_failure_message(STAGE_COMPLETE, exc))
      raise JobFinalizationError(problem_id, exc) from exc

  async def _fail(self, problem_id: int, stage: str, exc: Exception) -> JobOutcome:
    message = stage_failure_message(stage, exc)
    self._logger.error("Problem %d failed: %s", problem_id, message, exc_info=exc)
    await self._record_failure(problem_id, stage, message)
    return JobOutcome(problem_id=problem_id, status="failed", stage=stage, error_message=message)

  async def _record_failure(self, problem_id: int, stage: str, message: str) -> None:
    """Write `failed` with retry; keep the message for the redelivery when the write never lands.

    Raises:
      JobFinalizationError: The failure could not be recorded; the caller
        should requeue the message.
    """

    async def _mark_failed() -> bool:
      return await self._repo.update_status(problem_id, "failed", message, expected_status="processing")

    try:
      recorded = await execute_with_retry(operation_name=STAGE_FAIL, func=_mark_failed, max_attempts=self._finalize_max_attempts)
    except Exception as exc:
      self._pending_failures[problem_id] = (stage, message)
      self._logger.error("Problem %d: could not record failure status: %s", problem_id, describe_error(exc))
      raise JobFinalizationError(problem_id, exc, status="failed") from exc

    if not recorded:
      self._logger.warning("Problem %d was no longer processing; failure not recorded", problem_id)

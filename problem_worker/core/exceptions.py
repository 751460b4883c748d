"""Exception hierarchy shared by the worker components."""

from __future__ import annotations


class ProblemWorkerError(Exception):
  """Base class for worker errors."""


class JobNotFoundError(ProblemWorkerError):
  """Raised when a problem row does not exist."""

  def __init__(self, problem_id: int) -> None:
    super().__init__(f"problem id {problem_id} not found")
    self.problem_id = problem_id


class JobInputError(ProblemWorkerError):
  """Raised when a problem row carries no usable input."""


class ResponseSanitizationError(ProblemWorkerError):
  """Raised when model output cannot be turned into valid JSON.

  The offending text is kept on the exception so the failure can be debugged
  from the job's error message without re-querying the model.
  """

  def __init__(self, message: str, *, text: str = "") -> None:
    super().__init__(message)
    self.text = text


class StageError(ProblemWorkerError):
  """Raised by a pipeline stage when its model call yields no usable result."""


class JobFinalizationError(ProblemWorkerError):
  """Raised when a job's terminal status (`completed` or `failed`) could not be written."""

  def __init__(self, problem_id: int, cause: BaseException, *, status: str = "completed") -> None:
    super().__init__(f"could not mark problem {problem_id} {status}: {cause}")
    self.problem_id = problem_id
    self.cause = cause
    self.status = status


class StartupConnectionError(ProblemWorkerError):
  """Raised when an infrastructure dependency stays unreachable past the startup deadline."""


class ConfigurationError(ProblemWorkerError):
  """Raised at startup when required settings are missing."""

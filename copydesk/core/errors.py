"""Domain exceptions raised by the job, eval and orchestration services."""

from __future__ import annotations


class CopydeskError(Exception):
  """Base class for service-level errors surfaced to callers."""


class NotFoundError(CopydeskError):
  """Raised when a referenced job or record does not exist."""


class ConflictError(CopydeskError):
  """Raised when a state transition is not allowed from the current state."""


class InvalidStateError(CopydeskError):
  """Raised when an operation requires a state the record is not in."""


class ConfigurationError(CopydeskError):
  """Raised for missing personas or unregistered agents."""


class JobCanceledError(Exception):
  """Raised when a job is canceled while a pipeline run is in flight."""


class OrchestrationError(RuntimeError):
  """Raised when the orchestration pipeline cannot reach a terminal state."""

  def __init__(self, message: str, logs: list[str] | None = None) -> None:
    super().__init__(message)
    self.logs = list(logs or [])

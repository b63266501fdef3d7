from copydesk.config import Settings
from copydesk.storage.postgres_repos import PostgresEvalsRepository, PostgresGoldenExamplesRepository, PostgresJobsRepository, PostgresPersonasRepository, PostgresStepsRepository
from copydesk.storage.repos import EvalsRepository, GoldenExamplesRepository, JobsRepository, PersonasRepository, StepsRepository


def _require_postgres(settings: Settings) -> None:
  # Enforce Postgres-backed storage for every pipeline table.
  if not settings.pg_dsn:
    raise ValueError("COPYDESK_PG_DSN must be set to enable Postgres persistence.")


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  _require_postgres(settings)
  return PostgresJobsRepository()


def _get_steps_repo(settings: Settings) -> StepsRepository:
  """Return the active steps repository."""
  _require_postgres(settings)
  return PostgresStepsRepository()


def _get_evals_repo(settings: Settings) -> EvalsRepository:
  """Return the active evals repository."""
  _require_postgres(settings)
  return PostgresEvalsRepository()


def _get_golden_repo(settings: Settings) -> GoldenExamplesRepository:
  """Return the active golden examples repository."""
  _require_postgres(settings)
  return PostgresGoldenExamplesRepository()


def _get_personas_repo(settings: Settings) -> PersonasRepository:
  """Return the active personas repository."""
  _require_postgres(settings)
  return PostgresPersonasRepository()

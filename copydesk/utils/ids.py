"""Identifier utilities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def generate_job_id() -> str:
  """Return a new article job identifier."""
  return str(uuid.uuid4())


def generate_record_id() -> str:
  """Return a new identifier for steps, evals and golden examples."""
  return str(uuid.uuid4())


def now_iso() -> str:
  """Return the current UTC time in the persisted timestamp format."""
  return datetime.now(UTC).strftime(_DATE_FORMAT)

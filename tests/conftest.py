"""Shared fixtures: in-memory repositories, a scripted provider and the API client."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Collection
from dataclasses import replace
from typing import Any

os.environ.setdefault("COPYDESK_ALLOWED_ORIGINS", "http://localhost:3000")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from copydesk.ai.backoff import RetryConfig  # noqa: E402
from copydesk.ai.providers.base import ChatMessage, GenerationProvider, RawCompletion  # noqa: E402
from copydesk.ai.utils.cost import TokenUsage  # noqa: E402
from copydesk.jobs.models import AgentType, EvaluationRecord, GoldenExampleRecord, JobRecord, JobStatus, PersonaRecord, StepLogEntry, StepRecord, StepStatus  # noqa: E402
from copydesk.utils.ids import now_iso  # noqa: E402

TEST_MODEL = "claude-sonnet-4-5"

SIMPLE_ARTICLE = """# How to Pour a Concrete Patio

A concrete patio gives you a flat place to sit outside. It lasts for years. This guide shows each step.

## Plan the Space

Pick a flat spot near the house. Mark the edges with stakes and string. Check the ground for pipes first.

## Build the Forms

Set wood boards along the string line. Keep the top of each board level. Add a small slope so rain runs off.

## Pour and Finish

Mix the concrete and fill the forms. Pull a straight board across the top. Smooth the surface with a float.

## Let It Cure

Keep the slab damp for a week. Do not drive on it for a month. A good cure makes the patio strong.
"""


class InMemoryJobsRepository:
  """Dict-backed jobs repository that mimics row-level persistence."""

  def __init__(self) -> None:
    self.records: dict[str, JobRecord] = {}

  async def create_job(self, record: JobRecord) -> None:
    self.records[record.job_id] = replace(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self.records.get(job_id)
    return replace(record) if record is not None else None

  async def update_job(self, job_id: str, *, expected_status: JobStatus | None = None, clear_current_agent: bool = False, **fields: Any) -> JobRecord | None:
    record = self.records.get(job_id)
    if record is None or (expected_status is not None and record.status != expected_status):
      return None
    changes = {key: value for key, value in fields.items() if value is not None}
    if clear_current_agent:
      changes["current_agent"] = None
    updated = replace(record, **changes, updated_at=now_iso())
    self.records[job_id] = updated
    return replace(updated)

  async def transition_status(
    self,
    job_id: str,
    *,
    from_statuses: Collection[JobStatus],
    to_status: JobStatus,
    clear_current_agent: bool = False,
    **fields: Any,
  ) -> JobRecord | None:
    record = self.records.get(job_id)
    if record is None or record.status not in from_statuses:
      return None
    return await self.update_job(job_id, status=to_status, clear_current_agent=clear_current_agent, **fields)

  async def list_jobs(self, limit: int, offset: int, status: JobStatus | None = None, created_by: str | None = None) -> tuple[list[JobRecord], int]:
    matches = [record for record in reversed(list(self.records.values())) if (status is None or record.status == status) and (created_by is None or record.created_by == created_by)]
    return [replace(record) for record in matches[offset : offset + limit]], len(matches)

  async def claim_next_pending(self) -> JobRecord | None:
    pending = [(index, record) for index, record in enumerate(self.records.values()) if record.status == "pending"]
    if not pending:
      return None
    _, chosen = min(pending, key=lambda item: (-item[1].priority, item[1].created_at, item[0]))
    return await self.transition_status(chosen.job_id, from_statuses=("pending",), to_status="processing", started_at=now_iso())

  async def count_by_status(self, status: JobStatus) -> int:
    return sum(1 for record in self.records.values() if record.status == status)


class InMemoryStepsRepository:
  def __init__(self) -> None:
    self.records: dict[str, StepRecord] = {}

  async def create_step(self, record: StepRecord) -> None:
    self.records[record.step_id] = replace(record)

  async def update_step(
    self,
    step_id: str,
    *,
    status: StepStatus | None = None,
    logs: list[StepLogEntry] | None = None,
    **fields: Any,
  ) -> StepRecord | None:
    record = self.records.get(step_id)
    if record is None:
      return None
    changes = {key: value for key, value in fields.items() if value is not None}
    if status is not None:
      changes["status"] = status
    if logs is not None:
      changes["logs"] = list(logs)
    updated = replace(record, **changes)
    updated = replace(updated, total_tokens=updated.prompt_tokens + updated.completion_tokens)
    self.records[step_id] = updated
    return replace(updated)

  async def list_steps(self, job_id: str) -> list[StepRecord]:
    return sorted((replace(record) for record in self.records.values() if record.job_id == job_id), key=lambda record: record.sequence)


class InMemoryEvalsRepository:
  def __init__(self) -> None:
    self.records: list[EvaluationRecord] = []

  async def create_eval(self, record: EvaluationRecord) -> None:
    self.records.append(record)

  async def list_evals(self, job_id: str) -> list[EvaluationRecord]:
    return [record for record in self.records if record.job_id == job_id]

  async def list_recent_automated(self, limit: int) -> list[EvaluationRecord]:
    return [record for record in reversed(self.records) if record.eval_type == "automated"][:limit]


class InMemoryGoldenExamplesRepository:
  def __init__(self) -> None:
    self.records: dict[str, GoldenExampleRecord] = {}

  async def create_examples(self, records: list[GoldenExampleRecord]) -> None:
    for record in records:
      self.records[record.example_id] = record

  async def find_for_agent(self, agent_type: AgentType, limit: int) -> list[GoldenExampleRecord]:
    matches = [record for record in self.records.values() if record.agent_type is agent_type and record.is_active]
    return sorted(matches, key=lambda record: (-record.quality_score, record.usage_count))[:limit]

  async def increment_usage(self, example_ids: list[str]) -> None:
    for example_id in example_ids:
      record = self.records[example_id]
      self.records[example_id] = replace(record, usage_count=record.usage_count + 1)


class InMemoryPersonasRepository:
  def __init__(self, personas: list[PersonaRecord] | None = None) -> None:
    self.records: dict[str, PersonaRecord] = {persona.persona_id: persona for persona in personas or []}

  async def get_persona(self, persona_id: str) -> PersonaRecord | None:
    return self.records.get(persona_id)

  async def get_default(self, agent_type: AgentType) -> PersonaRecord | None:
    for persona in self.records.values():
      if persona.agent_type is agent_type and persona.is_default and persona.is_enabled:
        return persona
    return None

  async def create_persona(self, record: PersonaRecord) -> None:
    self.records[record.persona_id] = record


Response = str | Exception | Callable[[list[ChatMessage], str | None], str]


class ScriptedProvider(GenerationProvider):
  """Replays queued responses in call order and records every request."""

  def __init__(self, responses: list[Response] | None = None, *, usage: TokenUsage | None = None, retry_config: RetryConfig | None = None) -> None:
    super().__init__(retry_config=retry_config or RetryConfig(max_retries=0, use_jitter=False))
    self.name = "scripted"
    self.responses: list[Response] = list(responses or [])
    self.usage = usage or TokenUsage(prompt_tokens=100, completion_tokens=50)
    self.calls: list[dict[str, Any]] = []

  def queue(self, *responses: Response) -> None:
    self.responses.extend(responses)

  async def _complete(self, messages: list[ChatMessage], *, model: str, temperature: float, max_tokens: int, system: str | None, stop: list[str] | None) -> RawCompletion:
    self.calls.append({"messages": messages, "model": model, "temperature": temperature, "max_tokens": max_tokens, "system": system})
    if not self.responses:
      raise AssertionError("ScriptedProvider ran out of responses")
    response = self.responses.pop(0)
    if isinstance(response, Exception):
      raise response
    content = response(messages, system) if callable(response) else response
    return RawCompletion(content=content, model=model, stop_reason="end_turn", usage=self.usage)

  @property
  def prompts(self) -> list[str]:
    return [call["messages"][-1].content for call in self.calls]


def research_json(**overrides: Any) -> str:
  payload: dict[str, Any] = {
    "keywordData": {"searchVolume": 2400, "difficulty": 35, "intent": "informational"},
    "competitors": [
      {"url": "https://example.com/patio", "title": "Concrete Patio Guide", "wordCount": 1800},
      {"url": "https://example.org/diy", "title": "DIY Patio Slab", "wordCount": 1200},
    ],
    "relatedKeywords": ["patio slab", "concrete patio cost"],
    "paaQuestions": ["How thick should a concrete patio be?", "Do I need rebar in a patio?"],
    "contentGaps": ["Curing in cold weather"],
  }
  payload.update(overrides)
  return json.dumps(payload)


def draft_json(content: str = SIMPLE_ARTICLE, **overrides: Any) -> str:
  payload: dict[str, Any] = {"title": "How to Pour a Concrete Patio", "slug": "how-to-pour-a-concrete-patio", "content": content, "excerpt": "A simple guide to planning, pouring and curing a concrete patio."}
  payload.update(overrides)
  return json.dumps(payload)


def seo_json(**overrides: Any) -> str:
  payload: dict[str, Any] = {
    "metaTitle": "How to Pour a Concrete Patio",
    "metaDescription": "Plan, pour and cure a concrete patio with this step by step guide.",
    "internalLinks": [{"anchorText": "concrete cost", "suggestedTarget": "/pricing", "reason": "pricing intent"}],
    "optimizationScore": 82,
    "recommendations": ["Add a FAQ section"],
  }
  payload.update(overrides)
  return json.dumps(payload)


def review_json(score: int = 90, *, issues: list[dict[str, Any]] | None = None, feedback: str = "Looks good.") -> str:
  dimensions = {"readability": score, "seo": score, "accuracy": score, "engagement": score, "brandVoice": score}
  return json.dumps({"overallScore": score, "dimensionScores": dimensions, "issues": issues or [], "feedback": feedback})


def make_persona(agent_type: AgentType, *, persona_id: str | None = None, model: str = TEST_MODEL, is_default: bool = True, is_enabled: bool = True) -> PersonaRecord:
  return PersonaRecord(persona_id=persona_id or f"persona-{agent_type.value}", agent_type=agent_type, name=f"Default {agent_type.value}", model=model, is_default=is_default, is_enabled=is_enabled)


def make_job(job_id: str = "job-1", *, status: JobStatus = "pending", keyword: str = "concrete patio", max_iterations: int = 3, **overrides: Any) -> JobRecord:
  timestamp = now_iso()
  return JobRecord(job_id=job_id, keyword=keyword, status=status, created_at=timestamp, updated_at=timestamp, max_iterations=max_iterations, **overrides)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def steps_repo() -> InMemoryStepsRepository:
  return InMemoryStepsRepository()


@pytest.fixture
def evals_repo() -> InMemoryEvalsRepository:
  return InMemoryEvalsRepository()


@pytest.fixture
def golden_repo() -> InMemoryGoldenExamplesRepository:
  return InMemoryGoldenExamplesRepository()


@pytest.fixture
def personas_repo() -> InMemoryPersonasRepository:
  return InMemoryPersonasRepository([make_persona(agent_type) for agent_type in AgentType])


@pytest.fixture
def provider() -> ScriptedProvider:
  return ScriptedProvider()


@pytest.fixture
def settings():
  from copydesk.config import get_settings

  return get_settings()


@pytest.fixture
async def async_client(jobs_repo, steps_repo, evals_repo, golden_repo, settings):
  from copydesk.api.deps import get_eval_service, get_job_queue, get_stream_adapter
  from copydesk.jobs.stream import ProgressStreamAdapter
  from copydesk.main import app
  from copydesk.services.evals import EvalService
  from copydesk.services.jobs import JobQueueService

  async def _no_sleep(_: float) -> None:
    return None

  app.dependency_overrides[get_job_queue] = lambda: JobQueueService(jobs_repo=jobs_repo, steps_repo=steps_repo, evals_repo=evals_repo, settings=settings)
  app.dependency_overrides[get_eval_service] = lambda: EvalService(jobs_repo=jobs_repo, steps_repo=steps_repo, evals_repo=evals_repo, golden_repo=golden_repo)
  app.dependency_overrides[get_stream_adapter] = lambda: ProgressStreamAdapter(jobs_repo=jobs_repo, steps_repo=steps_repo, poll_interval_seconds=0.01, sleep=_no_sleep)
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()

from __future__ import annotations

import pytest
from conftest import make_job

from copydesk.ai.orchestrator import OrchestrationResult
from copydesk.api.deps import get_orchestrator
from copydesk.jobs.models import AgentType, StepRecord
from copydesk.main import app
from copydesk.utils.ids import now_iso


class _StubOrchestrator:
  def __init__(self) -> None:
    self.executed: list[str] = []

  async def execute(self, job_id: str) -> OrchestrationResult:
    self.executed.append(job_id)
    return OrchestrationResult(success=True, job_id=job_id, status="completed", iterations=1)


@pytest.mark.anyio
async def test_health(async_client) -> None:
  response = await async_client.get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_create_job_returns_pending_record(async_client, jobs_repo) -> None:
  payload = {"keyword": "  concrete patio ", "priority": 5, "settings": {"maxIterations": 2, "skipAgents": ["seo"]}}
  response = await async_client.post("/v1/articles", json=payload, headers={"X-Actor-Id": "editor-1"})
  assert response.status_code == 201
  body = response.json()
  assert body["status"] == "pending"
  assert body["keyword"] == "concrete patio"
  assert body["max_iterations"] == 2
  assert body["priority"] == 5
  assert body["created_by"] == "editor-1"
  assert body["progress_percent"] == 0
  assert jobs_repo.records[body["job_id"]].settings["skip_agents"] == ["seo"]


@pytest.mark.parametrize(
  "payload",
  [
    {"keyword": "   "},
    {"keyword": ""},
    {"keyword": "x" * 201},
    {"keyword": 42},
    {"keyword": "patio", "priority": 101},
    {"keyword": "patio", "settings": {"skipAgents": ["writer"]}},
    {"keyword": "patio", "settings": {"maxIterations": 0}},
    {"keyword": "patio", "unexpected": True},
  ],
)
@pytest.mark.anyio
async def test_create_job_rejects_invalid_payloads(async_client, payload) -> None:
  response = await async_client.post("/v1/articles", json=payload)
  assert response.status_code == 422
  for error in response.json()["detail"]:
    assert "input" not in error


@pytest.mark.anyio
async def test_list_jobs_filters_by_status(async_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job("a"))
  await jobs_repo.create_job(make_job("b", status="completed"))
  response = await async_client.get("/v1/articles", params={"status": "completed", "limit": 10})
  assert response.status_code == 200
  body = response.json()
  assert body["total"] == 1
  assert body["limit"] == 10
  assert [item["job_id"] for item in body["items"]] == ["b"]

  assert (await async_client.get("/v1/articles", params={"limit": 0})).status_code == 422
  assert (await async_client.get("/v1/articles", params={"status": "unknown"})).status_code == 422


@pytest.mark.anyio
async def test_get_job_detail_includes_steps(async_client, jobs_repo, steps_repo) -> None:
  await jobs_repo.create_job(make_job(status="processing", current_agent=AgentType.WRITER))
  await steps_repo.create_step(StepRecord(step_id="s1", job_id="job-1", agent_type=AgentType.RESEARCH, iteration=1, sequence=1, status="completed", created_at=now_iso(), output={"keyword": "concrete patio"}))
  response = await async_client.get("/v1/articles/job-1")
  assert response.status_code == 200
  body = response.json()
  assert body["job"]["current_agent"] == "writer"
  assert body["steps"][0]["agent_type"] == "research"
  assert body["steps"][0]["output"] == {"keyword": "concrete patio"}
  assert body["evals"] == []


@pytest.mark.anyio
async def test_unknown_job_is_404(async_client) -> None:
  response = await async_client.get("/v1/articles/missing")
  assert response.status_code == 404
  assert response.json()["detail"] == "Job not found: missing"
  assert response.json()["requestId"]


@pytest.mark.anyio
async def test_cancel_job_then_conflict(async_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job())
  response = await async_client.post("/v1/articles/job-1/cancel")
  assert response.status_code == 200
  assert response.json()["status"] == "cancelled"

  again = await async_client.post("/v1/articles/job-1/cancel")
  assert again.status_code == 409
  assert again.json()["detail"] == "Cannot cancel job in status cancelled"


@pytest.mark.anyio
async def test_execute_runs_pending_job_in_background(async_client, jobs_repo) -> None:
  stub = _StubOrchestrator()
  app.dependency_overrides[get_orchestrator] = lambda: stub
  await jobs_repo.create_job(make_job())
  await jobs_repo.create_job(make_job("done", status="completed"))

  response = await async_client.post("/v1/articles/job-1/execute")
  assert response.status_code == 202
  assert response.json() == {"job_id": "job-1", "status": "accepted"}
  assert stub.executed == ["job-1"]

  conflict = await async_client.post("/v1/articles/done/execute")
  assert conflict.status_code == 409
  assert stub.executed == ["job-1"]


@pytest.mark.anyio
async def test_stream_emits_terminal_event(async_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job(status="completed", progress_percent=100))
  response = await async_client.get("/v1/articles/job-1/stream")
  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  assert response.headers["cache-control"] == "no-cache"
  assert response.text.startswith("event: completed\ndata: {")
  assert '"progressPercent":100' in response.text


@pytest.mark.anyio
async def test_stream_unknown_job_reports_error_event(async_client) -> None:
  response = await async_client.get("/v1/articles/missing/stream")
  assert response.text == 'event: error\ndata: {"type":"error","message":"Job not found"}\n\n'


@pytest.mark.anyio
async def test_human_eval_round_trip(async_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job(status="completed"))
  payload = {
    "dimension_scores": {"readability": 80, "seo": 70, "accuracy": 90, "engagement": 60, "brandVoice": 100},
    "feedback": "Strong structure.",
    "issues": [{"category": "engagement", "severity": "low", "description": "Intro is flat"}],
  }
  response = await async_client.post("/v1/articles/job-1/evals", json=payload, headers={"X-Actor-Id": "editor-2"})
  assert response.status_code == 201
  body = response.json()
  assert body["eval_type"] == "human"
  assert body["overall_score"] == 80
  assert body["passed"] is True
  assert body["rated_by"] == "editor-2"
  assert body["issues"][0]["description"] == "Intro is flat"

  listed = await async_client.get("/v1/articles/job-1/evals")
  assert [item["eval_id"] for item in listed.json()] == [body["eval_id"]]

  invalid = await async_client.post("/v1/articles/job-1/evals", json={"dimension_scores": {"readability": 101, "seo": 1, "accuracy": 1, "engagement": 1, "brand_voice": 1}})
  assert invalid.status_code == 422


@pytest.mark.anyio
async def test_promote_to_golden(async_client, jobs_repo, steps_repo, golden_repo) -> None:
  await jobs_repo.create_job(make_job(status="completed"))
  await steps_repo.create_step(StepRecord(step_id="s1", job_id="job-1", agent_type=AgentType.WRITER, iteration=1, sequence=1, status="completed", created_at=now_iso(), output={"content": "# Patio"}))
  response = await async_client.post("/v1/articles/job-1/golden", json={"title": "Patio guide", "tags": ["patio"]})
  assert response.status_code == 201
  body = response.json()
  assert [(item["agent_type"], item["tags"]) for item in body] == [("writer", ["patio"])]
  assert "output_example" not in body[0]
  assert len(golden_repo.records) == 1


@pytest.mark.anyio
async def test_promote_pending_job_conflicts(async_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job())
  response = await async_client.post("/v1/articles/job-1/golden", json={"title": "Patio guide"})
  assert response.status_code == 409

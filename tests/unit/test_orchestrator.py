from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import InMemoryEvalsRepository, InMemoryJobsRepository, InMemoryPersonasRepository, ScriptedProvider, draft_json, make_job, make_persona, research_json, review_json, seo_json

from copydesk.ai.agents import build_default_registry
from copydesk.ai.orchestrator import OrchestratorHooks, PipelineOrchestrator
from copydesk.config import get_settings
from copydesk.core.errors import ConflictError, NotFoundError
from copydesk.jobs.models import AgentType, JobStatus
from copydesk.services.jobs import JobQueueService


def _queue(jobs_repo, steps_repo) -> JobQueueService:
  return JobQueueService(jobs_repo=jobs_repo, steps_repo=steps_repo, evals_repo=InMemoryEvalsRepository(), settings=get_settings())


def _orchestrator(jobs_repo, steps_repo, personas_repo, provider, hooks: OrchestratorHooks | None = None) -> PipelineOrchestrator:
  return PipelineOrchestrator(queue=_queue(jobs_repo, steps_repo), jobs_repo=jobs_repo, steps_repo=steps_repo, personas_repo=personas_repo, registry=build_default_registry(provider), hooks=hooks)


@pytest.mark.anyio
async def test_single_iteration_pass_runs_four_steps(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job())
  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(90)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert result.success
  assert result.status == "completed"
  assert result.iterations == 1
  steps = await steps_repo.list_steps("job-1")
  assert [(step.agent_type, step.iteration, step.sequence, step.status) for step in steps] == [
    (AgentType.RESEARCH, 1, 1, "completed"),
    (AgentType.WRITER, 1, 2, "completed"),
    (AgentType.SEO, 1, 3, "completed"),
    (AgentType.QA, 1, 4, "completed"),
  ]
  assert all(step.logs for step in steps)

  job = jobs_repo.records["job-1"]
  assert job.status == "completed"
  assert job.progress_percent == 100
  assert job.current_agent is None
  assert job.completed_at is not None
  assert job.total_tokens_used == sum(step.total_tokens for step in steps) == 600
  assert job.estimated_cost_usd == pytest.approx(sum(step.estimated_cost_usd for step in steps))
  assert result.total_tokens == 600

  final = job.final_output
  assert final["passed"] is True
  assert final["iterations"] == 1
  assert final["final_article"]["status"] == "draft"
  assert final["final_article"]["focus_keyword"] == "concrete patio"
  assert final["final_article"]["meta_title"] == "How to Pour a Concrete Patio"


@pytest.mark.anyio
async def test_failed_review_triggers_revision_with_feedback(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job())
  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(50, feedback="Tighten the intro."), draft_json(), seo_json(), review_json(90)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert result.status == "completed"
  assert result.iterations == 2
  steps = await steps_repo.list_steps("job-1")
  assert len(steps) == 7
  assert [step.iteration for step in steps] == [1, 1, 1, 1, 2, 2, 2]
  assert [step.sequence for step in steps] == list(range(1, 8))
  assert "## REVISION REQUEST (iteration 2)" in provider.prompts[4]
  assert "Tighten the intro." in provider.prompts[4]
  assert steps[4].input["qa_feedback"] == "Tighten the intro."
  job = jobs_repo.records["job-1"]
  assert job.current_iteration == 2
  assert job.final_output["passed"] is True


@pytest.mark.anyio
async def test_completes_best_effort_when_iterations_run_out(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job(max_iterations=2))
  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(50), draft_json(), seo_json(), review_json(50)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert result.status == "completed"
  assert result.iterations == 2
  assert provider.responses == []
  job = jobs_repo.records["job-1"]
  assert job.current_iteration == job.max_iterations == 2
  assert job.final_output["passed"] is False
  assert job.final_output["qa"]["passed"] is False
  assert len(await steps_repo.list_steps("job-1")) == 7


@pytest.mark.anyio
async def test_skipped_seo_falls_back_to_article_metadata(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job(settings={"skipAgents": ["seo"], "targetWordCount": 900}))
  provider = ScriptedProvider([research_json(), draft_json(), review_json(90)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert result.status == "completed"
  steps = await steps_repo.list_steps("job-1")
  assert [step.agent_type for step in steps] == [AgentType.RESEARCH, AgentType.WRITER, AgentType.QA]
  assert steps[1].input["target_word_count"] == 900
  final = jobs_repo.records["job-1"].final_output
  assert final["seo"] is None
  assert final["final_article"]["meta_description"] == final["article"]["excerpt"]
  assert final["final_article"]["schema_markup"] == {}


@pytest.mark.anyio
async def test_persona_override_selects_model(jobs_repo, steps_repo, personas_repo) -> None:
  await personas_repo.create_persona(make_persona(AgentType.WRITER, persona_id="persona-fast-writer", model="gpt-4o", is_default=False))
  await jobs_repo.create_job(make_job(settings={"personaOverrides": {"writer": "persona-fast-writer", "seo": "persona-missing"}}))
  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(90)])
  await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")
  assert [call["model"] for call in provider.calls] == ["claude-sonnet-4-5", "gpt-4o", "claude-sonnet-4-5", "claude-sonnet-4-5"]


@pytest.mark.anyio
async def test_missing_persona_fails_before_any_step(jobs_repo, steps_repo) -> None:
  personas_repo = InMemoryPersonasRepository([make_persona(agent_type) for agent_type in AgentType if agent_type is not AgentType.QA])
  await jobs_repo.create_job(make_job())
  provider = ScriptedProvider()
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert result.status == "failed"
  assert result.error == "No persona configured for agent: qa"
  assert provider.calls == []
  assert steps_repo.records == {}
  assert jobs_repo.records["job-1"].last_error == "No persona configured for agent: qa"


@pytest.mark.anyio
async def test_invalid_stored_settings_fail_the_job(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job(settings={"skipAgents": ["writer"]}))
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, ScriptedProvider()).execute("job-1")
  assert result.status == "failed"
  assert result.error.startswith("Invalid job settings")


@pytest.mark.anyio
async def test_agent_failure_marks_step_and_job_failed(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job())
  provider = ScriptedProvider([research_json(), "not json", "still not json", "never json"])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert result.status == "failed"
  assert not result.success
  steps = await steps_repo.list_steps("job-1")
  assert [(step.agent_type, step.status) for step in steps] == [(AgentType.RESEARCH, "completed"), (AgentType.WRITER, "failed")]
  assert "Failed to generate valid JSON" in steps[1].error
  assert steps[1].output is None
  job = jobs_repo.records["job-1"]
  assert job.status == "failed"
  assert job.current_agent is None
  assert "Failed to generate valid JSON" in job.last_error
  assert job.final_output is None


@pytest.mark.anyio
async def test_cancellation_stops_at_next_step_boundary(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job())
  started: list[AgentType] = []

  async def on_start(agent_type: AgentType, iteration: int) -> None:
    started.append(agent_type)

  async def on_complete(agent_type: AgentType, iteration: int, result) -> None:
    if agent_type is AgentType.WRITER:
      jobs_repo.records["job-1"] = replace(jobs_repo.records["job-1"], status="cancelled")

  provider = ScriptedProvider([research_json(), draft_json()])
  hooks = OrchestratorHooks(on_agent_start=on_start, on_agent_complete=on_complete)
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider, hooks).execute("job-1")

  assert result.status == "cancelled"
  assert started == [AgentType.RESEARCH, AgentType.WRITER]
  assert len(await steps_repo.list_steps("job-1")) == 2
  assert jobs_repo.records["job-1"].status == "cancelled"
  assert jobs_repo.records["job-1"].final_output is None


@pytest.mark.anyio
async def test_progress_hook_receives_agent_messages(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job())
  messages: list[tuple[AgentType, str]] = []

  async def on_progress(agent_type: AgentType, message: str) -> None:
    messages.append((agent_type, message))

  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(90)])
  await _orchestrator(jobs_repo, steps_repo, personas_repo, provider, OrchestratorHooks(on_progress=on_progress)).execute("job-1")
  assert (AgentType.WRITER, "Writing article") in messages
  assert (AgentType.QA, "Checking quality (iteration 1)") in messages


@pytest.mark.anyio
async def test_execute_rejects_missing_and_terminal_jobs(jobs_repo, steps_repo, personas_repo) -> None:
  orchestrator = _orchestrator(jobs_repo, steps_repo, personas_repo, ScriptedProvider())
  with pytest.raises(NotFoundError):
    await orchestrator.execute("missing")
  await jobs_repo.create_job(make_job(status="completed"))
  with pytest.raises(ConflictError, match="Cannot execute job in status completed"):
    await orchestrator.execute("job-1")


@pytest.mark.anyio
async def test_execute_resumes_claimed_job(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job(status="processing"))
  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(90)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")
  assert result.status == "completed"


class _CompletionWriteFails(InMemoryJobsRepository):
  async def transition_status(self, job_id: str, *, from_statuses, to_status: JobStatus, **fields):
    if to_status == "completed":
      raise RuntimeError("db connection reset")
    return await super().transition_status(job_id, from_statuses=from_statuses, to_status=to_status, **fields)


@pytest.mark.anyio
async def test_failed_completion_write_fails_the_job(steps_repo, personas_repo) -> None:
  jobs_repo = _CompletionWriteFails()
  await jobs_repo.create_job(make_job())
  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(90)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider).execute("job-1")

  assert not result.success
  assert result.status == "failed"
  assert result.error == "db connection reset"
  job = jobs_repo.records["job-1"]
  assert job.status == "failed"
  assert job.last_error == "db connection reset"
  assert job.final_output is None
  assert job.current_agent is None


@pytest.mark.anyio
async def test_cancel_after_failed_review_freezes_the_job(jobs_repo, steps_repo, personas_repo) -> None:
  await jobs_repo.create_job(make_job(max_iterations=3))
  queue = _queue(jobs_repo, steps_repo)
  frozen = []

  async def on_complete(agent_type: AgentType, iteration: int, result) -> None:
    if agent_type is AgentType.QA:
      frozen.append(await queue.cancel_job("job-1"))

  provider = ScriptedProvider([research_json(), draft_json(), seo_json(), review_json(50)])
  result = await _orchestrator(jobs_repo, steps_repo, personas_repo, provider, OrchestratorHooks(on_agent_complete=on_complete)).execute("job-1")

  assert result.status == "cancelled"
  assert not result.success
  assert provider.responses == []
  job = jobs_repo.records["job-1"]
  assert job == frozen[0]
  assert job.status == "cancelled"
  assert job.current_iteration == 1
  assert len(await steps_repo.list_steps("job-1")) == 4

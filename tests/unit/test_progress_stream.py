from __future__ import annotations

import json
from dataclasses import replace

import pytest
from conftest import make_job

from copydesk.jobs.models import AgentType, StepRecord
from copydesk.jobs.stream import ProgressStreamAdapter, StreamEvent, format_sse
from copydesk.utils.ids import now_iso


def _step(step_id: str, status: str, agent_type: AgentType = AgentType.RESEARCH, sequence: int = 1) -> StepRecord:
  return StepRecord(step_id=step_id, job_id="job-1", agent_type=agent_type, iteration=1, sequence=sequence, status=status, created_at=now_iso())


def test_format_sse_uses_compact_json() -> None:
  encoded = format_sse(StreamEvent("progress", {"type": "progress", "progressPercent": 40}))
  assert encoded == 'event: progress\ndata: {"type":"progress","progressPercent":40}\n\n'


@pytest.mark.anyio
async def test_stream_reports_steps_progress_and_terminal_status(jobs_repo, steps_repo) -> None:
  await jobs_repo.create_job(make_job(status="processing", current_agent=AgentType.RESEARCH))
  await steps_repo.create_step(_step("s1", "running"))
  polls = 0

  async def advance(_: float) -> None:
    nonlocal polls
    polls += 1
    if polls == 1:
      await steps_repo.update_step("s1", status="completed")
      await steps_repo.create_step(_step("s2", "pending", AgentType.WRITER, 2))
      await jobs_repo.update_job("job-1", current_agent=AgentType.WRITER, progress_percent=10)
    elif polls == 2:
      await steps_repo.update_step("s2", status="running")
    else:
      await steps_repo.update_step("s2", status="completed")
      await jobs_repo.update_job("job-1", status="completed", progress_percent=100)

  adapter = ProgressStreamAdapter(jobs_repo=jobs_repo, steps_repo=steps_repo, sleep=advance)
  events = [event async for event in adapter.events("job-1")]

  assert [event.event for event in events] == ["step:start", "progress", "step:complete", "progress", "step:start", "progress", "step:complete", "completed"]
  assert events[0].data["stepId"] == "s1"
  assert events[0].data["agentType"] == "research"
  assert events[3].data["currentAgent"] == "writer"
  assert events[3].data["progressPercent"] == 10
  assert events[-1].data["type"] == "completed"
  assert events[-1].data["progressPercent"] == 100
  assert events[-1].data["maxIterations"] == 3


@pytest.mark.anyio
async def test_stream_reports_finished_steps_seen_for_the_first_time(jobs_repo, steps_repo) -> None:
  await jobs_repo.create_job(make_job(status="failed"))
  await steps_repo.create_step(_step("s1", "completed"))
  await steps_repo.create_step(_step("s2", "failed", AgentType.WRITER, 2))
  await steps_repo.create_step(_step("s3", "pending", AgentType.SEO, 3))
  adapter = ProgressStreamAdapter(jobs_repo=jobs_repo, steps_repo=steps_repo)
  events = [event async for event in adapter.events("job-1")]
  assert [(event.event, event.data.get("stepId")) for event in events] == [("step:complete", "s1"), ("step:complete", "s2"), ("failed", None)]


@pytest.mark.anyio
async def test_stream_for_unknown_job_yields_single_error(jobs_repo, steps_repo) -> None:
  adapter = ProgressStreamAdapter(jobs_repo=jobs_repo, steps_repo=steps_repo)
  events = [event async for event in adapter.events("missing")]
  assert events == [StreamEvent("error", {"type": "error", "message": "Job not found"})]


@pytest.mark.anyio
async def test_stream_stops_with_error_when_polling_fails(jobs_repo, steps_repo) -> None:
  await jobs_repo.create_job(make_job(status="processing"))

  async def broken(job_id: str):
    raise RuntimeError("connection lost")

  steps_repo.list_steps = broken
  adapter = ProgressStreamAdapter(jobs_repo=jobs_repo, steps_repo=steps_repo)
  events = [event async for event in adapter.events("job-1")]
  assert [event.data["message"] for event in events] == ["Poll error"]
  assert json.loads(format_sse(events[0]).split("data: ", 1)[1]) == {"type": "error", "message": "Poll error"}


@pytest.mark.anyio
async def test_cancelled_job_ends_stream(jobs_repo, steps_repo) -> None:
  await jobs_repo.create_job(replace(make_job(status="cancelled"), progress_percent=40))
  adapter = ProgressStreamAdapter(jobs_repo=jobs_repo, steps_repo=steps_repo)
  events = [event async for event in adapter.events("job-1")]
  assert [event.event for event in events] == ["cancelled"]
  assert events[0].data["status"] == "cancelled"

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import StreamingResponse

from copydesk.ai.orchestrator import PipelineOrchestrator
from copydesk.api.deps import get_actor_id, get_job_queue, get_orchestrator, get_stream_adapter
from copydesk.api.models import ArticleJobDetailResponse, ArticleJobListResponse, ArticleJobResponse, CreateArticleJobRequest, ExecuteJobResponse
from copydesk.core.errors import ConflictError, CopydeskError
from copydesk.jobs.models import JobStatus
from copydesk.jobs.stream import ProgressStreamAdapter, format_sse
from copydesk.services.jobs import JobQueueService

router = APIRouter()
logger = logging.getLogger("copydesk.api.routes.jobs")


@router.post("", response_model=ArticleJobResponse, status_code=status.HTTP_201_CREATED)
async def create_article_job(  # noqa: B008
  request: CreateArticleJobRequest,
  queue: JobQueueService = Depends(get_job_queue),  # noqa: B008
  actor_id: str | None = Depends(get_actor_id),  # noqa: B008
) -> ArticleJobResponse:
  """Enqueue a keyword for article generation."""
  job = await queue.create_job(request.keyword, settings=request.settings, priority=request.priority, created_by=actor_id)
  return ArticleJobResponse.from_record(job)


@router.get("", response_model=ArticleJobListResponse)
async def list_article_jobs(  # noqa: B008
  status_filter: JobStatus | None = Query(default=None, alias="status"),  # noqa: B008
  limit: int = Query(default=20, ge=1, le=100),  # noqa: B008
  offset: int = Query(default=0, ge=0),  # noqa: B008
  created_by: str | None = Query(default=None, alias="createdBy"),  # noqa: B008
  queue: JobQueueService = Depends(get_job_queue),  # noqa: B008
) -> ArticleJobListResponse:
  """List jobs, newest first."""
  jobs, total = await queue.list_jobs(status=status_filter, limit=limit, offset=offset, created_by=created_by)
  return ArticleJobListResponse(items=[ArticleJobResponse.from_record(job) for job in jobs], total=total, limit=limit, offset=offset)


@router.get("/{job_id}", response_model=ArticleJobDetailResponse)
async def get_article_job(job_id: str, queue: JobQueueService = Depends(get_job_queue)) -> ArticleJobDetailResponse:  # noqa: B008
  """Fetch a job with its steps and evaluations."""
  detail = await queue.get_job_detail(job_id)
  return ArticleJobDetailResponse.from_detail(detail)


@router.post("/{job_id}/cancel", response_model=ArticleJobResponse)
async def cancel_article_job(job_id: str, queue: JobQueueService = Depends(get_job_queue)) -> ArticleJobResponse:  # noqa: B008
  """Cancel a pending or processing job; the running pipeline stops at its next step boundary."""
  job = await queue.cancel_job(job_id)
  return ArticleJobResponse.from_record(job)


async def _execute_in_background(orchestrator: PipelineOrchestrator, job_id: str) -> None:
  try:
    result = await orchestrator.execute(job_id)
  except CopydeskError as exc:
    logger.warning("Background execution skipped for job %s: %s", job_id, exc)
    return
  logger.info("Background execution finished job_id=%s status=%s", job_id, result.status)


@router.post("/{job_id}/execute", response_model=ExecuteJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def execute_article_job(  # noqa: B008
  job_id: str,
  background_tasks: BackgroundTasks,
  queue: JobQueueService = Depends(get_job_queue),  # noqa: B008
  orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> ExecuteJobResponse:
  """Run the pipeline for a pending job in this process instead of waiting for the worker."""
  job = await queue.get_job(job_id)
  if job.status != "pending":
    raise ConflictError(f"Cannot execute job in status {job.status}")
  background_tasks.add_task(_execute_in_background, orchestrator, job_id)
  return ExecuteJobResponse(job_id=job_id)


@router.get("/{job_id}/stream")
async def stream_article_job(job_id: str, adapter: ProgressStreamAdapter = Depends(get_stream_adapter)) -> StreamingResponse:  # noqa: B008
  """Server-sent progress events until the job reaches a terminal state."""

  async def _encode() -> AsyncIterator[str]:
    async for event in adapter.events(job_id):
      yield format_sse(event)

  return StreamingResponse(_encode(), media_type="text/event-stream", headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"})

import logging

from fastapi import APIRouter, Depends, status

from copydesk.api.deps import get_actor_id, get_eval_service
from copydesk.api.models import EvaluationResponse, GoldenExampleResponse, HumanEvalRequest, PromoteGoldenRequest
from copydesk.services.evals import EvalService

router = APIRouter()
logger = logging.getLogger("copydesk.api.routes.evals")


@router.get("/{job_id}/evals", response_model=list[EvaluationResponse])
async def list_job_evals(job_id: str, evals: EvalService = Depends(get_eval_service)) -> list[EvaluationResponse]:  # noqa: B008
  records = await evals.list_evals(job_id)
  return [EvaluationResponse.from_record(record) for record in records]


@router.post("/{job_id}/evals", response_model=EvaluationResponse, status_code=status.HTTP_201_CREATED)
async def submit_human_eval(  # noqa: B008
  job_id: str,
  request: HumanEvalRequest,
  evals: EvalService = Depends(get_eval_service),  # noqa: B008
  actor_id: str | None = Depends(get_actor_id),  # noqa: B008
) -> EvaluationResponse:
  """Record a human rating against the job's current iteration."""
  record = await evals.record_human_eval(
    job_id,
    dimension_scores=request.dimension_scores,
    feedback=request.feedback,
    issues=[issue.model_dump(mode="json", exclude_none=True) for issue in request.issues],
    rated_by=actor_id,
  )
  logger.info("Human eval recorded job_id=%s overall=%d passed=%s", job_id, record.overall_score, record.passed)
  return EvaluationResponse.from_record(record)


@router.post("/{job_id}/golden", response_model=list[GoldenExampleResponse], status_code=status.HTTP_201_CREATED)
async def promote_job_to_golden(  # noqa: B008
  job_id: str,
  request: PromoteGoldenRequest,
  evals: EvalService = Depends(get_eval_service),  # noqa: B008
  actor_id: str | None = Depends(get_actor_id),  # noqa: B008
) -> list[GoldenExampleResponse]:
  """Keep every completed step of a finished job as a reference example."""
  examples = await evals.promote_to_golden(job_id, title=request.title, description=request.description, tags=request.tags, created_by=actor_id)
  return [GoldenExampleResponse.from_record(example) for example in examples]

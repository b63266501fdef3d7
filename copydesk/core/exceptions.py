import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from copydesk.config import get_settings
from copydesk.core.errors import ConflictError, CopydeskError, InvalidStateError, NotFoundError, OrchestrationError

# Handlers log through uvicorn's error logger so failures land next to access logs.
logger = logging.getLogger("uvicorn.error")

_INTERNAL_ERROR = "Internal Server Error"


def _json_safe(value: Any) -> Any:
  """Reduce arbitrary values (exceptions in validation ctx included) to JSON primitives."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    return f"{type(value).__name__}: {value}" if str(value) else type(value).__name__
  return str(value)


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _respond(request: Request, status_code: int, detail: Any) -> JSONResponse:
  content: dict[str, Any] = {"detail": detail}
  request_id = _request_id(request)
  if request_id:
    content["requestId"] = request_id
  return JSONResponse(status_code=status_code, content=content)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop echoed request input (keywords, editor context) from validation errors."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key != "input"}
    ctx = entry.get("ctx")
    if isinstance(ctx, dict):
      entry["ctx"] = {key: value for key, value in ctx.items() if key != "input"}
    sanitized.append(_json_safe(entry))
  return sanitized


def _domain_status(exc: CopydeskError) -> int:
  if isinstance(exc, NotFoundError):
    return status.HTTP_404_NOT_FOUND
  if isinstance(exc, ConflictError | InvalidStateError):
    return status.HTTP_409_CONFLICT
  return status.HTTP_400_BAD_REQUEST


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", _request_id(request), request.url.path, type(exc).__name__, exc_info=True)
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, _INTERNAL_ERROR)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s %s %s errors=%s", _request_id(request), request.method, request.url.path, errors)
  return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through; hide 5xx details behind a generic message."""
  if exc.status_code >= 500:
    logger.error("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, _request_id(request), request.url.path, exc.detail)
    return _respond(request, exc.status_code, _INTERNAL_ERROR)
  if get_settings().log_http_4xx:
    logger.warning("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, _request_id(request), request.url.path, exc.detail)
  return _respond(request, exc.status_code, exc.detail)


async def domain_exception_handler(request: Request, exc: CopydeskError) -> JSONResponse:
  """Job and eval state errors are client-correctable; their messages name ids and statuses only."""
  status_code = _domain_status(exc)
  logger.info("%s request_id=%s path=%s status=%s: %s", type(exc).__name__, _request_id(request), request.url.path, status_code, exc)
  return _respond(request, status_code, str(exc))


async def orchestration_exception_handler(request: Request, exc: OrchestrationError) -> JSONResponse:
  # Step logs can hold prompts and model output; they stay in the server log.
  logger.error("Orchestration failure request_id=%s path=%s logs=%d", _request_id(request), request.url.path, len(exc.logs), exc_info=True)
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, _INTERNAL_ERROR)

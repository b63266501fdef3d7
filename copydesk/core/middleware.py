import logging
import time
import uuid
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("copydesk.core.middleware")

REQUEST_ID_HEADER = "x-request-id"


def _request_target(scope: Scope) -> str:
  path = scope.get("path", "")
  query = scope.get("query_string", b"")
  return f"{path}?{query.decode('latin-1')}" if query else path


class RequestLoggingMiddleware:
  """Log one line per request start and finish, tagged with a request id and the caller's actor id.

  Bodies are never read, so streamed responses (SSE progress) pass through untouched.
  """

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = Headers(scope=scope)
    # Reuse an upstream proxy's id when present.
    request_id = headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    actor_id = headers.get("x-actor-id") or "-"
    method = scope.get("method", "UNKNOWN")
    target = _request_target(scope)

    started = time.perf_counter()
    logger.info("Request started request_id=%s actor=%s %s %s", request_id, actor_id, method, target)
    status_code: int | None = None

    async def send_with_request_id(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        MutableHeaders(scope=message).setdefault(REQUEST_ID_HEADER, request_id)
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      log: Any = logger.warning if status_code is None or status_code >= 500 else logger.info
      log("Request finished request_id=%s %s %s status=%s duration_ms=%.1f", request_id, method, target, status_code, elapsed_ms)

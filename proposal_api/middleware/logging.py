from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER_NAME = "proposal_copilot.access"
REQUEST_ID_HEADER = "x-request-id"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON access log line per request, tagged with the company when known."""

    def __init__(self, app, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger if logger is not None else logging.getLogger(ACCESS_LOGGER_NAME)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            payload = self._payload(request, request_id, start, status=500)
            payload["event"] = "http_request_error"
            self._log(payload, level=logging.ERROR)
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        self._log(self._payload(request, request_id, start, status=response.status_code))
        return response

    def _payload(self, request: Request, request_id: str, start: float, status: int) -> dict[str, object]:
        payload: dict[str, object] = {
            "event": "http_request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }
        company_id = getattr(request.state, "company_id", None) or request.query_params.get("companyId")
        if company_id:
            payload["company_id"] = str(company_id)
        return payload

    def _log(self, payload: dict[str, object], level: int = logging.INFO) -> None:
        self.logger.log(level, json.dumps(payload, separators=(",", ":")))

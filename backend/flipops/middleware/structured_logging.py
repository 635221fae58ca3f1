# backend/flipops/middleware/structured_logging.py
from __future__ import annotations

import json
import logging
import re
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("flipops.request")

# path params are not resolved yet when middleware runs
DEAL_PATH_RE = re.compile(r"/deals/(?P<deal_id>[^/]+)/gates/?$")


def deal_id_for(request: Request) -> Optional[str]:
    if request.query_params.get("dealId"):
        return request.query_params.get("dealId")
    m = DEAL_PATH_RE.search(request.url.path)
    return m.group("deal_id") if m else None


def _json_log(payload: dict) -> None:
    # one JSON line per request
    log.info(json.dumps(payload, default=str))


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits one structured log line per request with:
      request_id, user_id, deal_id, method, path, status_code, latency_ms

    Added before RequestIDMiddleware, so it runs inside it and
    request.state.request_id is already set.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.time()

        # Header-level identity is enough for the access line; the real
        # principal is resolved inside the handlers.
        user_id = request.headers.get("X-User-Id")
        deal_id = deal_id_for(request)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - t0) * 1000)
            request_id: Optional[str] = getattr(request.state, "request_id", None)

            _json_log(
                {
                    "event": "http_request",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "query": str(request.url.query) if request.url.query else "",
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                    "user_id": user_id,
                    "deal_id": deal_id,
                }
            )

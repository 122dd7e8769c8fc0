"""
PicStash Backend — Request Logging Middleware
===============================================

What:  One access log line per HTTP request, with status and duration.
Why:   Uploads can be slow (large files, chunked transfers, image re-encoding);
       duration per request is the first thing to look at.
How:   Times the downstream call and logs on the "picstash.access" logger.

What we log vs what we DON'T log:
    ✅ Log: method, path, status, duration, client IP, request ID, Content-Range
    ❌ Don't log: file contents, query strings (file names may be personal)
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from picstash.middleware.request_id import request_id_var

logger = logging.getLogger("picstash.access")

# Paths polled by probes; logging them drowns the upload traffic
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status and duration for each request.

    Level follows the status: 5xx → ERROR, 4xx → WARNING, everything else
    → INFO. Chunked uploads also log their Content-Range so the sequence of
    chunks for one file can be followed.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")
        content_range = request.headers.get("content-range")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s%s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            f" range={content_range}" if content_range else "",
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response

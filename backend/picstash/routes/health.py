"""
PicStash Backend — Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
Why:   The handler is only useful while the upload directory is configured
       and writable; a full disk or a read-only mount should pull the
       instance out of rotation.
How:   Checks configuration and directory permissions, returns status.

Status levels:
    - healthy:   upload directory configured and writable (HTTP 200)
    - unhealthy: not configured, missing or read-only (HTTP 503)
"""

import logging
import os
import time
from pathlib import Path

import aiofiles.os
from fastapi import APIRouter, Depends, Response

from picstash import __version__
from picstash.exceptions import ConfigurationError
from picstash.schemas.upload import HealthResponse
from picstash.services.upload_service import UploadService, get_upload_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Reports whether the upload directory can accept new files.",
)
async def health_check(
    response: Response,
    service: UploadService = Depends(get_upload_service),
) -> HealthResponse:
    """Healthy only when the upload directory exists and accepts writes."""
    writable = False
    upload_dir = ""
    try:
        service.check_configuration()
        root = Path(service.settings.upload_dir).resolve()
        upload_dir = str(root)
        if await aiofiles.os.path.isdir(root):
            writable = await aiofiles.os.access(root, os.W_OK)
    except ConfigurationError as e:
        logger.warning("Health check: %s", e.message)

    if not writable:
        response.status_code = 503
        logger.warning("Health check: upload directory %r is not writable", upload_dir)

    return HealthResponse(
        status="healthy" if writable else "unhealthy",
        version=__version__,
        upload_dir=upload_dir,
        writable=writable,
        uptime_seconds=round(time.time() - _start_time, 2),
    )

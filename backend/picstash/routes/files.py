"""
PicStash Backend — Upload Handler Route
=========================================

What:  The single endpoint the browser upload widget talks to: /api/files.
Why:   The widget drives everything through one URL and the HTTP method.
How:   Dispatches on the method, extracts headers and parameters, delegates to
       UploadService and hands the result to the serializer.

Method Dispatch:
    HEAD, OPTIONS      → headers only (cache, CORS, content negotiation)
    GET                → ?download=1&file=x  download a file
                         ?file=x             one record
                         (nothing)           list every file
    POST, PUT, PATCH   → upload (or delete, when `_method=DELETE` is posted
                         and the delete type is POST)
    DELETE             → ?file=x  remove a file, answers true / false
    anything else      → 405

Parameters (`file`, `download`, `redirect`, `_method`) are read from the query
string first and then from the posted form.

Headers consumed on upload:
    Content-Disposition  → file name override (raw, non-multipart uploads need it)
    Content-Description  → MIME type override
    Content-Range        → `bytes start-end/total` for chunked uploads
"""

import io
import logging
import re
from typing import Optional, Union
from urllib.parse import unquote

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import FormData, Headers, QueryParams, UploadFile
from starlette.responses import Response

from picstash.exceptions import MethodNotAllowedError
from picstash.schemas.upload import ContentRange, ErrorResponse
from picstash.services.serializer import download_response, headers_response, json_response
from picstash.services.upload_service import (
    UploadService,
    get_upload_service,
    requested_name,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Files"])

HANDLED_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]
FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*(?:[\w-]+'[\w-]*')?([^;]+)", re.IGNORECASE)
_FILENAME_QUOTED_RE = re.compile(r'filename\s*=\s*"([^"]*)"', re.IGNORECASE)
_FILENAME_BARE_RE = re.compile(r"filename\s*=\s*([^;]+)", re.IGNORECASE)


def disposition_filename(header: Optional[str]) -> Optional[str]:
    """
    File name from a Content-Disposition header.

    `attachment; filename="my%20photo.jpg"` → "my photo.jpg"
    The browser widget URI-encodes the name, so the value is percent-decoded.
    """
    if not header:
        return None
    for pattern in (_FILENAME_STAR_RE, _FILENAME_QUOTED_RE, _FILENAME_BARE_RE):
        match = pattern.search(header)
        if match:
            value = unquote(match.group(1).strip().strip('"'))
            return value or None
    return None


def get_param(
    name: str, query: QueryParams, form: Optional[FormData] = None
) -> Optional[str]:
    value = query.get(name)
    if value is None and form is not None:
        field = form.get(name)
        if isinstance(field, str):
            value = field
    return value


@router.api_route(
    "/files",
    methods=HANDLED_METHODS,
    responses={
        200: {"description": "Array of file records, or true/false for deletes"},
        302: {"description": "Redirect carrying the JSON result (redirect parameter)"},
        403: {"description": "Download disabled or file invalid", "model": ErrorResponse},
        404: {"description": "Requested file not found", "model": ErrorResponse},
        405: {"description": "Method not allowed or no files posted"},
        500: {"description": "Upload directory not configured", "model": ErrorResponse},
    },
    summary="jQuery-File-Upload compatible upload handler",
)
async def handle_files(
    request: Request,
    service: UploadService = Depends(get_upload_service),
) -> Response:
    """
    Resolve the request by HTTP method.

    The configuration check runs first so a missing upload directory fails
    every method the same way (500), before any file is touched.
    """
    service.check_configuration()

    method = request.method.upper()
    if method not in service.settings.allowed_methods_list:
        raise MethodNotAllowedError(method=method)

    if method in ("HEAD", "OPTIONS"):
        return headers_response(request, service.settings)
    if method == "GET":
        return await resolve_get(request, service)
    if method in ("POST", "PUT", "PATCH"):
        return await resolve_post(request, service)
    if method == "DELETE":
        return await resolve_delete(request, service, request.query_params)

    raise MethodNotAllowedError(method=method)


async def resolve_get(request: Request, service: UploadService) -> Response:
    query = request.query_params
    name = requested_name(query.get("file"))

    if query.get("download") is not None:
        info = await service.resolve_download(name)
        return download_response(info)

    if name is not None:
        records = [(await service.describe(name)).to_wire()]
    else:
        records = [record.to_wire() for record in await service.list_files()]

    return json_response(request, records, redirect=query.get("redirect"))


async def resolve_delete(
    request: Request,
    service: UploadService,
    query: QueryParams,
    form: Optional[FormData] = None,
) -> Response:
    name = requested_name(get_param("file", query, form))
    deleted = await service.delete(name)
    return json_response(request, deleted, redirect=get_param("redirect", query, form))


async def resolve_post(request: Request, service: UploadService) -> Response:
    """
    Upload every posted file and answer with one record per file.

    A request without multipart parts is still an upload when it carries a
    Content-Disposition file name: the raw body is the file (the widget's
    non-multipart mode for PUT/PATCH).
    """
    query = request.query_params
    form = await request.form()

    if (
        service.settings.delete_type != "DELETE"
        and get_param("_method", query, form) == "DELETE"
    ):
        return await resolve_delete(request, service, query, form)

    content_range = ContentRange.parse(request.headers.get("content-range"))
    header_name = disposition_filename(request.headers.get("content-disposition"))
    header_type = request.headers.get("content-description")

    parts = [value for _, value in form.multi_items() if isinstance(value, UploadFile)]
    if not parts:
        raw = await _raw_body_part(request, header_name)
        if raw is None:
            logger.warning("%s request without any posted file", request.method)
            raise MethodNotAllowedError(method=request.method, message="No files were posted")
        parts = [raw]

    single = len(parts) == 1
    records = []
    try:
        for part in parts:
            file_name = header_name or part.filename or ""
            file_type = header_type or part.content_type or (
                request.headers.get("content-type", "") if single else ""
            )
            if content_range is not None:
                declared_size = content_range.total
            else:
                declared_size = _declared_part_size(part, request, single)

            outcome = await service.upload(
                part, file_name, file_type, declared_size, content_range
            )
            records.append(outcome.record.to_wire())
    finally:
        for part in parts:
            await part.close()

    return json_response(
        request,
        records,
        redirect=get_param("redirect", query, form),
        content_range=content_range,
    )


async def _raw_body_part(request: Request, file_name: Optional[str]) -> Union[UploadFile, None]:
    if not file_name:
        return None
    # Form bodies were already consumed by request.form()
    if request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPES):
        return None
    body = await request.body()
    if not body:
        return None
    content_type = request.headers.get("content-type", "application/octet-stream")
    return UploadFile(
        file=io.BytesIO(body),
        size=len(body),
        filename=file_name,
        headers=Headers({"content-type": content_type}),
    )


def _declared_part_size(part: UploadFile, request: Request, single: bool) -> int:
    if part.size:
        return part.size
    if single:
        try:
            return int(request.headers.get("content-length", "0"))
        except ValueError:
            return 0
    return 0

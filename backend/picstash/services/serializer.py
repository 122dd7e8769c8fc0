"""
PicStash Backend — Response Serializer
========================================

What:  Builds the HTTP responses the browser upload widget understands.
Why:   The widget is picky: iframe-transport uploads need text/plain, chunked
       uploads read a Range header to resume, and old browsers post the form to a
       redirect URL that receives the JSON in its query string.
How:   Plain functions returning Starlette responses; the route decides which one.

Response kinds:
    json_response()      → JSON array of FileRecords, or a bare true/false
    redirect mode        → 302 to the `redirect` template with `%s` replaced by the
                           URL-encoded JSON; no body is written after the redirect
    headers_response()   → HEAD / OPTIONS, headers only
    download_response()  → the file itself, inline for images, attachment otherwise
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi.responses import FileResponse, JSONResponse
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from picstash.config import Settings
from picstash.schemas.upload import ContentRange
from picstash.services.naming import strip_escapes
from picstash.services.upload_service import DownloadInfo

NO_CACHE_HEADERS = {
    "Pragma": "no-cache",
    "Cache-Control": "no-store, no-cache, must-revalidate",
}


def negotiated_content_type(request: Request) -> str:
    """application/json when the client accepts it; text/plain for iframe transports."""
    if "application/json" in request.headers.get("accept", ""):
        return "application/json"
    return "text/plain"


def common_headers() -> Dict[str, str]:
    headers = dict(NO_CACHE_HEADERS)
    headers["Vary"] = "Accept"
    # Prevent Internet Explorer from MIME-sniffing the content-type
    headers["X-Content-Type-Options"] = "nosniff"
    return headers


def json_response(
    request: Request,
    payload: Any,
    redirect: Optional[str] = None,
    content_range: Optional[ContentRange] = None,
) -> Response:
    """
    Serialize a list of wire records (or a boolean) for the client.

    With a Content-Range request, the size of the first record is echoed as
    `Range: 0-<size-1>` so the widget knows how many bytes the server holds.
    """
    if redirect:
        serialized = json.dumps(payload, separators=(",", ":"))
        location = strip_escapes(redirect).replace("%s", quote(serialized, safe=""))
        return RedirectResponse(location, status_code=302, headers=dict(NO_CACHE_HEADERS))

    headers = common_headers()
    if content_range is not None and isinstance(payload, list) and payload:
        size = payload[0].get("size", 0)
        if size > 0:
            headers["Range"] = f"0-{size - 1}"

    return JSONResponse(
        content=payload,
        headers=headers,
        media_type=negotiated_content_type(request),
    )


def headers_response(request: Request, settings: Settings) -> Response:
    """HEAD / OPTIONS: headers only, including the CORS answer when configured."""
    headers = common_headers()
    headers["Content-Disposition"] = 'inline; filename="files.json"'
    if settings.access_control_allow_origin:
        headers["Access-Control-Allow-Origin"] = settings.access_control_allow_origin
        headers["Access-Control-Allow-Credentials"] = str(
            settings.access_control_allow_credentials
        ).lower()
        headers["Access-Control-Allow-Methods"] = ", ".join(settings.allowed_methods_list)
        headers["Access-Control-Allow-Headers"] = ", ".join(settings.allowed_headers_list)
    return Response(status_code=200, headers=headers, media_type=negotiated_content_type(request))


def download_response(info: DownloadInfo) -> FileResponse:
    """
    Stream a stored file.

    Inline types (images) are shown by the browser; everything else is forced
    to download as application/octet-stream. FileResponse adds Content-Length
    and Last-Modified from the file's stat.
    """
    headers = {"X-Content-Type-Options": "nosniff"}
    if info.inline:
        return FileResponse(
            path=str(info.path),
            media_type=info.media_type,
            filename=info.name,
            content_disposition_type="inline",
            headers=headers,
        )
    headers["Content-Description"] = "File Transfer"
    headers["Content-Transfer-Encoding"] = "binary"
    return FileResponse(
        path=str(info.path),
        media_type="application/octet-stream",
        filename=info.name,
        content_disposition_type="attachment",
        headers=headers,
    )

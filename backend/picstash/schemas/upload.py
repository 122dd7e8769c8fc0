"""
PicStash Backend — Pydantic Request/Response Schemas
======================================================

What:  Pydantic models defining the wire contract with the browser upload widget.
Why:   The widget reads a fixed set of per-file fields; keeping them in one model
       guarantees every code path (list, upload, single file) emits the same shape.
How:   Routes serialise FileRecord lists with `exclude_none=True`, so optional
       fields (width, height, error) disappear instead of being sent as null.

Wire format (one record per file):
    {
        "name": "photo.jpg",
        "size": 48213,
        "url": "/uploads/photo.jpg",
        "delete_url": "/api/files?file=photo.jpg&_method=DELETE",
        "delete_type": "POST",
        "delete_with_credentials": false,
        "width": 100,
        "height": 75
    }
"""

import re
from typing import Optional

from pydantic import BaseModel, Field

from picstash.exceptions import ValidationError

# Content-Range: bytes 0-524287/2000000
_CONTENT_RANGE_RE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+)\s*$", re.IGNORECASE)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class FileRecord(BaseModel):
    """
    What:  Transport record describing one stored (or rejected) file.
    Who:   Returned in arrays by GET (list / single file) and by uploads.

    Why width/height are optional:
        They are the size the client should display the file at (scaled into
        the client box), so they only exist for decodable images without errors.
    """
    name: str = Field(description="File name in the upload directory")
    size: int = Field(description="File size in bytes")
    url: Optional[str] = Field(default=None, description="Public or download URL of the file")
    delete_url: Optional[str] = Field(default=None, description="URL the client calls to delete the file")
    delete_type: Optional[str] = Field(default=None, description="HTTP method for delete_url: DELETE or POST")
    delete_with_credentials: bool = Field(
        default=False,
        description="Whether the delete request should be sent with credentials",
    )
    width: Optional[int] = Field(default=None, description="Display width for the client")
    height: Optional[int] = Field(default=None, description="Display height for the client")
    error: Optional[str] = Field(default=None, description="Per-file error; absent on success")

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for request-level failures.
    Note:  Per-file validation failures use FileRecord.error instead.
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing upload directory status."""
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    upload_dir: str = Field(description="Resolved upload directory")
    writable: bool = Field(description="Whether the upload directory accepts writes")
    uptime_seconds: float = Field(description="Seconds since service started")


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ContentRange(BaseModel):
    """
    Byte range of one chunk of a chunked upload.

    `total` is the size of the complete file; it replaces the part size as the
    declared size for validation and completion checks.
    """
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    total: int = Field(ge=0)

    @classmethod
    def parse(cls, header: Optional[str]) -> Optional["ContentRange"]:
        """
        Parse a `Content-Range: bytes <start>-<end>/<total>` header.

        Returns None when the header is absent; raises ValidationError when it
        is present but malformed.
        """
        if header is None:
            return None
        match = _CONTENT_RANGE_RE.match(header)
        if not match:
            raise ValidationError(
                message="The given content range could not be parsed.",
                field="Content-Range",
                context={"header": header},
            )
        start, end, total = (int(group) for group in match.groups())
        if end < start:
            raise ValidationError(
                message="The given content range ends before it starts.",
                field="Content-Range",
                context={"header": header},
            )
        return cls(start=start, end=end, total=total)

    @property
    def length(self) -> int:
        """Bytes carried by this request."""
        return self.end - self.start + 1

    @property
    def is_continuation(self) -> bool:
        return self.start > 0

    @property
    def covers_whole_file(self) -> bool:
        return self.start == 0 and self.end + 1 >= self.total

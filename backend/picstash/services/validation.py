"""
PicStash Backend — Upload Validator
=====================================

What:  Decides whether an uploaded file may be stored.
Why:   The browser widget expects a per-file error message, so every rule here
       produces a human-readable reason instead of an HTTP status.
How:   Checks run in a fixed order and the first failure raises ValidationError
       (short-circuit, no aggregated results):

    1. request size     → bytes in this request vs max_request_size
    2. file name        → accepted_files_pattern
    3. maximum size     → file_max_size
    4. minimum size     → file_min_size
    5. file count       → max_number_of_files (skipped for chunk continuations)
    6. is an image      → Pillow can decode the payload (image_files_only)
    7. dimensions       → image_min/max_width/height, when any is configured

Chunked uploads:
    A single chunk is not a decodable image, so checks 6–7 only run when the
    request carries the whole file. For chunked uploads the service calls
    validate_image() on the assembled file once the last chunk has landed.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Optional

from picstash.config import Settings, settings as default_settings
from picstash.exceptions import ValidationError
from picstash.services.image_processor import ImageInfo, ImageProcessor
from picstash.services.storage import FileStore

logger = logging.getLogger(__name__)


def format_bytes(size: int) -> str:
    """1536 → '1.5 KB'; used in size limit messages."""
    value = float(size)
    for unit in ("bytes", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} bytes" if unit == "bytes" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


@dataclass
class UploadCandidate:
    """
    What the validator sees of one posted file.

    Attributes:
        name:          Formatted (sanitized) file name
        file_type:     Declared MIME type
        size:          Declared size; the Content-Range total for chunked uploads
        stream:        Seekable payload when it is the whole file, else None
        continuation:  True when this chunk appends to an existing partial file
        request_size:  Bytes carried by this request; a chunk's own length, else size
    """
    name: str
    file_type: str
    size: int
    stream: Optional[BinaryIO] = None
    continuation: bool = False
    request_size: Optional[int] = None


class Validator(ABC):
    """Pluggable upload validation strategy."""

    @abstractmethod
    async def validate(self, candidate: UploadCandidate) -> None:
        """Raise ValidationError with a client-facing message on the first failed rule."""

    @abstractmethod
    def validate_image(self, info: Optional[ImageInfo]) -> None:
        """Image and dimension rules, for a payload probed separately."""


class UploadValidator(Validator):
    """Default validator implementing the rules configured in Settings."""

    def __init__(
        self,
        store: FileStore,
        processor: ImageProcessor,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.store = store
        self.processor = processor
        self.accepted_files = re.compile(self.settings.accepted_files_pattern, re.IGNORECASE)

    async def validate(self, candidate: UploadCandidate) -> None:
        s = self.settings

        request_size = candidate.size if candidate.request_size is None else candidate.request_size
        if s.max_request_size > 0 and request_size > s.max_request_size:
            raise ValidationError(
                message="File exceeds the maximum allowed request size",
                field="file",
                context={"request_size": request_size, "max_request_size": s.max_request_size},
            )

        if not self.accepted_files.search(candidate.name):
            raise ValidationError(
                message="File type not allowed",
                field="file",
                context={"name": candidate.name},
            )

        if s.file_max_size > 0 and candidate.size > s.file_max_size:
            raise ValidationError(
                message=f"File is too big (maximum {format_bytes(s.file_max_size)})",
                field="file",
                context={"size": candidate.size, "file_max_size": s.file_max_size},
            )

        if s.file_min_size > 0 and candidate.size < s.file_min_size:
            raise ValidationError(
                message=f"File is too small (minimum {format_bytes(s.file_min_size)})",
                field="file",
                context={"size": candidate.size, "file_min_size": s.file_min_size},
            )

        if s.max_number_of_files > -1 and not candidate.continuation:
            count = await self.store.count_files()
            if count >= s.max_number_of_files:
                raise ValidationError(
                    message=f"Maximum number of files exceeded ({s.max_number_of_files})",
                    field="file",
                    context={"count": count, "max_number_of_files": s.max_number_of_files},
                )

        if candidate.stream is not None:
            info = await asyncio.to_thread(self.processor.probe, candidate.stream)
            self.validate_image(info)

    def validate_image(self, info: Optional[ImageInfo]) -> None:
        s = self.settings

        if info is None:
            if s.image_files_only:
                raise ValidationError(message="File is not a valid image", field="file")
            return

        if not s.dimension_bounds_configured:
            return

        if s.image_min_width > -1 and info.width < s.image_min_width:
            raise ValidationError(
                message=f"Image requires a minimum width of {s.image_min_width}px",
                field="file",
                context={"width": info.width},
            )
        if s.image_min_height > -1 and info.height < s.image_min_height:
            raise ValidationError(
                message=f"Image requires a minimum height of {s.image_min_height}px",
                field="file",
                context={"height": info.height},
            )
        if s.image_max_width > -1 and info.width > s.image_max_width:
            raise ValidationError(
                message=f"Image exceeds maximum width of {s.image_max_width}px",
                field="file",
                context={"width": info.width},
            )
        if s.image_max_height > -1 and info.height > s.image_max_height:
            raise ValidationError(
                message=f"Image exceeds maximum height of {s.image_max_height}px",
                field="file",
                context={"height": info.height},
            )

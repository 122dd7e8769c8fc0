"""
PicStash Backend — Upload Service (Business Logic Orchestrator)
================================================================

What:  Coordinates the upload workflow and the list / describe / delete /
       download operations of the handler.
Why:   Keeps the route a thin HTTP adapter; everything here can be tested by
       calling methods directly with an UploadFile and a temp directory.
How:   Composes four injected strategies:

    ┌──────────┐   ┌───────────┐   ┌──────────┐   ┌───────────────┐   ┌──────────┐
    │  Namer   │──▶│ Validator │──▶│  Store   │──▶│ ImageProcessor│──▶│  Record  │
    │ (format) │   │ (rules)   │   │ (write)  │   │ (rotate/size) │   │  (JSON)  │
    └──────────┘   └───────────┘   └──────────┘   └───────────────┘   └──────────┘

Upload workflow for one posted file:
    1. Format the name (sanitize, add missing image extension)
    2. Decide the write mode: append when the request continues a partial file
    3. Validate; a failure becomes the record's `error`, nothing is written
    4. Write (exclusive create under a free name, or append)
    5. If the file on disk now has the declared size:
         - chunked uploads: validate the assembled image
         - JPEG: normalize EXIF orientation
         - shrink into the resize box
       else, for a non-chunked upload that came up short: discard it
    6. Build the transport record
"""

import asyncio
import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, quote, urlencode

from starlette.datastructures import UploadFile

from picstash.config import Settings, settings as default_settings
from picstash.exceptions import DownloadForbiddenError, NotFoundError, ValidationError
from picstash.schemas.upload import ContentRange, FileRecord
from picstash.services.image_processor import ImageProcessor, ProcessingResult
from picstash.services.naming import FileNamer
from picstash.services.storage import FileStore, LocalFileStore
from picstash.services.validation import UploadCandidate, UploadValidator, Validator

logger = logging.getLogger(__name__)

ABORTED_UPLOAD_ERROR = "File upload aborted"

_IMAGE_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
}


@dataclass
class UploadOutcome:
    """Record sent to the client plus what post-processing did to the file."""
    record: FileRecord
    processing: List[ProcessingResult] = field(default_factory=list)


@dataclass
class DownloadInfo:
    path: Path
    name: str
    inline: bool
    media_type: str


def requested_name(raw: Optional[str]) -> Optional[str]:
    """Base name of a `file` query parameter; None when absent."""
    if raw is None:
        return None
    return os.path.basename(raw.replace("\\", "/"))


def resolve_mime_type(name: str) -> Optional[str]:
    extension = os.path.splitext(name)[1].lstrip(".").lower()
    if extension in _IMAGE_MIME_TYPES:
        return _IMAGE_MIME_TYPES[extension]
    return mimetypes.guess_type(name)[0]


def build_url(base_url: str, params: Dict[str, str]) -> str:
    """
    Append query parameters to a URL that may already carry a query string.

    "/api/files?album=7" + {"file": "a.jpg"} → "/api/files?file=a.jpg&album=7"
    """
    if not params:
        return base_url
    base, _, existing = base_url.partition("?")
    pairs = list(params.items()) + parse_qsl(existing, keep_blank_values=True)
    return f"{base}?{urlencode(pairs)}"


class UploadService:
    """
    Orchestrates uploads and file queries for one upload directory.

    All collaborators are optional constructor arguments; the defaults are
    built from the given settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[FileStore] = None,
        namer: Optional[FileNamer] = None,
        processor: Optional[ImageProcessor] = None,
        validator: Optional[Validator] = None,
    ):
        self.settings = settings or default_settings
        self.store = store or LocalFileStore(self.settings.upload_dir)
        self.namer = namer or FileNamer(self.settings.generate_unique_name)
        self.processor = processor or ImageProcessor(self.settings)
        self.validator = validator or UploadValidator(self.store, self.processor, self.settings)

    def check_configuration(self) -> None:
        """Raises ConfigurationError when the upload directory is not configured."""
        self.settings.validate_required()

    # ── Upload ────────────────────────────────────────────────────────────

    async def upload(
        self,
        upload: UploadFile,
        file_name: str,
        file_type: str,
        declared_size: int,
        content_range: Optional[ContentRange] = None,
    ) -> UploadOutcome:
        """
        Validate, store and post-process one posted file.

        Args:
            upload:         The posted part (or the raw body wrapped as one)
            file_name:      Client file name (Content-Disposition wins over the part name)
            file_type:      Declared MIME type (Content-Description wins over the part type)
            declared_size:  Content-Range total, else the part size
            content_range:  Parsed Content-Range header for chunked uploads

        Returns:
            UploadOutcome whose record carries `error` when the file was
            rejected or discarded. Storage failures raise FileStorageError.
        """
        name = self.namer.format(file_name, file_type)
        whole_payload = content_range is None or content_range.covers_whole_file

        continuation = False
        if content_range is not None and content_range.is_continuation:
            continuation = (
                await self.store.exists(name)
                and content_range.total > await self.store.size(name)
            )

        candidate = UploadCandidate(
            name=name,
            file_type=file_type,
            size=declared_size,
            stream=upload.file if whole_payload else None,
            continuation=continuation,
            request_size=content_range.length if content_range is not None else declared_size,
        )
        try:
            await self.validator.validate(candidate)
        except ValidationError as e:
            logger.info("Rejected upload %s: %s", name, e.message)
            return UploadOutcome(await self.build_record(name, declared_size, error=e.message))

        await upload.seek(0)
        if continuation:
            await self.store.append(name, upload)
        else:
            name, _ = await self.store.create_exclusive(self.namer.candidates(name), upload)

        stored_size = await self.store.size(name)
        processing: List[ProcessingResult] = []

        if stored_size == declared_size:
            if not whole_payload:
                error = await self._validate_assembled(name)
                if error:
                    return UploadOutcome(await self.build_record(name, declared_size, error=error))
            processing = await self._post_process(name, file_type)
            stored_size = await self.store.size(name)
        elif self.settings.discard_aborted_uploads and content_range is None:
            logger.warning(
                "Discarding aborted upload %s (%d of %d bytes)", name, stored_size, declared_size
            )
            await self.store.remove_quietly(name)
            return UploadOutcome(
                await self.build_record(name, declared_size, error=ABORTED_UPLOAD_ERROR)
            )

        record = await self.build_record(name, stored_size)
        return UploadOutcome(record, processing)

    async def _validate_assembled(self, name: str) -> Optional[str]:
        """Image rules for a file completed by its last chunk; rejected files are removed."""
        info = await asyncio.to_thread(self.processor.probe_path, self.store.path_for(name))
        try:
            self.validator.validate_image(info)
        except ValidationError as e:
            logger.info("Rejected assembled upload %s: %s", name, e.message)
            await self.store.remove_quietly(name)
            return e.message
        return None

    async def _post_process(self, name: str, file_type: str) -> List[ProcessingResult]:
        path = self.store.path_for(name)
        if await asyncio.to_thread(self.processor.probe_path, path) is None:
            return []

        results = []
        jpeg = await asyncio.to_thread(self.processor.is_jpeg, file_type, path)
        if jpeg:
            results.append(await asyncio.to_thread(self.processor.normalize_orientation, path))
        results.append(await asyncio.to_thread(self.processor.resize, path, jpeg))
        return results

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_files(self) -> List[FileRecord]:
        """One record per visible file in the upload directory."""
        records = []
        for name in await self.store.list_files():
            records.append(await self.build_record(name, await self.store.size(name)))
        return records

    async def describe(self, name: str) -> FileRecord:
        if not name or not await self.store.exists(name):
            raise NotFoundError(resource="file", resource_id=name)
        return await self.build_record(name, await self.store.size(name))

    async def delete(self, name: Optional[str]) -> bool:
        """Delete a stored file; False when there was nothing to delete."""
        if name is None or not name.strip() or name == ".":
            raise ValidationError(message="The given file name is invalid.", field="file")
        deleted = await self.store.delete(name)
        if not deleted:
            logger.info("Delete requested for missing file %s", name)
        return deleted

    async def resolve_download(self, name: Optional[str]) -> DownloadInfo:
        """
        Locate a file for download.

        Raises DownloadForbiddenError when downloading is disabled or the file
        is not a stored file (403, matching the widget's expectations).
        """
        if not self.settings.allow_downloading:
            raise DownloadForbiddenError(message="File downloading is disabled")
        if not name:
            raise DownloadForbiddenError(message="No file requested")
        try:
            exists = await self.store.exists(name)
        except ValidationError:
            exists = False
        if not exists:
            raise DownloadForbiddenError(context={"name": name})

        is_inline = re.search(self.settings.inline_file_types_pattern, name, re.IGNORECASE) is not None
        media_type = resolve_mime_type(name) if is_inline else None
        return DownloadInfo(
            path=self.store.path_for(name),
            name=name,
            inline=is_inline and media_type is not None,
            media_type=media_type or "application/octet-stream",
        )

    # ── Transport records ─────────────────────────────────────────────────

    def file_url(self, name: str) -> str:
        if self.settings.allow_downloading:
            return build_url(self.settings.handler_url, {"file": name, "download": "1"})
        return f"{self.settings.upload_url.rstrip('/')}/{quote(name)}"

    def delete_url(self, name: str) -> str:
        params = {"file": name}
        if self.settings.delete_type != "DELETE":
            params["_method"] = "DELETE"
        return build_url(self.settings.handler_url, params)

    async def build_record(
        self, name: str, size: int, error: Optional[str] = None
    ) -> FileRecord:
        record = FileRecord(
            name=name,
            size=size,
            url=self.file_url(name),
            delete_url=self.delete_url(name),
            delete_type=self.settings.delete_type,
            delete_with_credentials=self.settings.access_control_allow_credentials,
            error=error,
        )
        if error is None and await self.store.exists(name):
            dims = await asyncio.to_thread(self.processor.display_size, self.store.path_for(name))
            if dims is not None:
                record.width, record.height = dims
        return record


# ── Singleton Instance ────────────────────────────────────────────────────
upload_service = UploadService()


def get_upload_service() -> UploadService:
    """FastAPI dependency; tests override it with a service on a temp directory."""
    return upload_service

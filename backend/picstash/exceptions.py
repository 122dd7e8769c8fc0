"""
PicStash Backend — Custom Exception Hierarchy
===============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes. Global handlers (registered in main.py) turn them into
       structured JSON error responses.
How:   Each exception class carries a message and optional context dict.

Exception Hierarchy:
    PicStashError (base)
    ├── ValidationError          → 400 Bad Request, or a per-file `error` string
    ├── NotFoundError            → 404 Not Found
    ├── DownloadForbiddenError   → 403 Forbidden
    ├── MethodNotAllowedError    → 405 Method Not Allowed (empty body)
    ├── ConfigurationError       → 500 Internal Server Error
    ├── FileStorageError         → 500 Internal Server Error
    └── ImageProcessingError     → never sent; wrapped in a ProcessingResult

Per-file errors:
    Inside the upload pipeline a ValidationError does NOT become an HTTP error.
    The upload "succeeds" at the transport level and the message is placed in
    the `error` field of that file's record, which is what the browser widget
    expects.
"""

from typing import Any, Dict, Optional


class PicStashError(Exception):
    """
    Base exception for all PicStash application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for 5xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PicStashError):
    """
    Raised when client input fails validation.

    When:    File type mismatch, size or dimension bounds, malformed Content-Range,
             invalid file name on delete.
    HTTP:    400 Bad Request (outside the upload pipeline)
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(PicStashError):
    """
    Raised when a requested file does not exist in the upload directory.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "file",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class DownloadForbiddenError(PicStashError):
    """
    Raised when a download is refused.

    When:    Downloading is disabled in settings, no file name was given,
             or the named file does not exist.
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "Downloading this file is not allowed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MethodNotAllowedError(PicStashError):
    """
    Raised for HTTP methods the handler does not serve, and for upload
    requests that carry no files.

    HTTP:    405 Method Not Allowed, with an empty body
    """

    def __init__(
        self,
        method: str = "",
        message: str = "Method not allowed",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if method:
            ctx["method"] = method
        super().__init__(message=message, context=ctx)
        self.method = method


class ConfigurationError(PicStashError):
    """
    Raised when required configuration is missing.

    When:    UPLOAD_DIR or UPLOAD_URL is empty.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "The server is not configured correctly",
        setting: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if setting:
            ctx["setting"] = setting
        super().__init__(message=message, context=ctx)
        self.setting = setting


class FileStorageError(PicStashError):
    """
    Raised when file system operations fail.

    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ImageProcessingError(PicStashError):
    """
    Raised by the image post-processor when decoding, rotating or re-encoding fails.

    The upload service never lets it escape: the stored file is left intact
    and the failure is reported through a ProcessingResult instead.
    """

    def __init__(
        self,
        message: str = "Image processing failed",
        action: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if action:
            ctx["action"] = action
        super().__init__(message=message, context=ctx)
        self.action = action

"""
PicStash Backend — Image Post-Processor
=========================================

What:  Everything that needs to decode pixels: probing uploads, normalizing
       JPEG EXIF orientation, shrinking oversized images and computing the
       display size reported to the client.
Why:   Phone cameras store photos sideways plus an orientation tag; browsers
       showing the thumbnail and most consumers of the file expect upright
       pixels. Oversized originals waste disk and bandwidth.
How:   Pillow. All methods are synchronous (CPU-bound decoding); UploadService
       runs them through asyncio.to_thread so the event loop is never blocked.

Failure signalling:
    normalize_orientation() and resize() never raise. A decoder or encoder
    failure leaves the stored file untouched and comes back as a
    ProcessingResult with `error` set, so callers (and tests) can see exactly
    which step failed instead of it being silently swallowed.

Atomic replace:
    Processed pixels are written to a hidden sibling (".<name>.tmp") and moved
    over the original with os.replace(), so a crash mid-encode never leaves a
    truncated image behind.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from PIL import Image

from picstash.config import Settings, settings as default_settings
from picstash.exceptions import ImageProcessingError

logger = logging.getLogger(__name__)

# EXIF tag 0x0112: Orientation
ORIENTATION_TAG = 0x0112

# Orientation code → transpose that makes the pixels upright
#   3: stored upside down          → rotate 180°
#   6: stored rotated 90° CCW      → rotate 90° clockwise
#   8: stored rotated 90° CW       → rotate 90° counter-clockwise
ORIENTATION_TRANSPOSE = {
    3: Image.Transpose.ROTATE_180,
    6: Image.Transpose.ROTATE_270,
    8: Image.Transpose.ROTATE_90,
}

JPEG_TYPES = {"image/jpeg", "image/jpg", "image/pjpeg"}
GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

# Errors Pillow raises for undecodable or hostile input
# (UnidentifiedImageError is an OSError)
_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass
class ImageInfo:
    format: Optional[str]
    width: int
    height: int


@dataclass
class ProcessingResult:
    """Outcome of one post-processing step ("rotate" or "resize")."""
    action: str
    applied: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def scale_dimensions(
    width: int, height: int, max_width: int, max_height: int
) -> Tuple[int, int]:
    """
    Fit (width, height) into a (max_width, max_height) box, preserving aspect ratio.

    The box side that the image overshoots relatively more is the constraining
    one: an image wider (in aspect) than the box is limited by its width,
    otherwise by its height. Images already inside the box are unchanged.
    A bound <= 0 means that side is unlimited.

    Examples (box 1000×1000):
        2000×1000 → 1000×500
        1000×4000 → 250×1000
        800×600   → 800×600
    """
    if width <= 0 or height <= 0:
        return width, height

    aspect = width / height
    bounded_w = max_width > 0
    bounded_h = max_height > 0

    if bounded_w and bounded_h:
        max_aspect = max_width / max_height
        if aspect > max_aspect and width > max_width:
            return max_width, max(1, int(max_width / aspect))
        if aspect <= max_aspect and height > max_height:
            return max(1, int(max_height * aspect)), max_height
        return width, height

    if bounded_w and width > max_width:
        return max_width, max(1, int(max_width / aspect))
    if bounded_h and height > max_height:
        return max(1, int(max_height * aspect)), max_height
    return width, height


class ImageProcessor:
    """Pillow-backed probing and post-processing of stored images."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    # ── Probing ───────────────────────────────────────────────────────────

    def probe(self, stream: BinaryIO) -> Optional[ImageInfo]:
        """
        Identify an image from a seekable binary stream.

        Returns None when the bytes are not a decodable image. The stream
        position is restored so the caller can still save it.
        """
        position = stream.tell()
        try:
            with Image.open(stream) as img:
                info = ImageInfo(format=img.format, width=img.width, height=img.height)
                img.verify()
            return info
        except _DECODE_ERRORS:
            return None
        finally:
            stream.seek(position)

    def probe_path(self, path: Path) -> Optional[ImageInfo]:
        try:
            with open(path, "rb") as f:
                return self.probe(f)
        except OSError:
            return None

    def is_jpeg(self, file_type: Optional[str], path: Path) -> bool:
        """JPEG by declared type; generic or missing types fall back to sniffing."""
        declared = (file_type or "").split(";")[0].strip().lower()
        if declared in JPEG_TYPES:
            return True
        if declared in GENERIC_TYPES:
            info = self.probe_path(path)
            return info is not None and info.format == "JPEG"
        return False

    def display_size(self, path: Path) -> Optional[Tuple[int, int]]:
        """Size the client should show the image at, or None for non-images."""
        if self.settings.client_max_width < 0 and self.settings.client_max_height < 0:
            return None
        info = self.probe_path(path)
        if info is None:
            return None
        return scale_dimensions(
            info.width,
            info.height,
            self.settings.client_max_width,
            self.settings.client_max_height,
        )

    # ── Post-processing ───────────────────────────────────────────────────

    def normalize_orientation(self, path: Path) -> ProcessingResult:
        """
        Rotate a JPEG so its pixels are upright and reset the EXIF tag to 1.

        Missing tag or orientation 1 is a no-op. Mirrored orientations
        (2, 4, 5, 7) are reported as unsupported and left alone.
        """
        try:
            with Image.open(path) as img:
                exif = img.getexif()
                orientation = exif.get(ORIENTATION_TAG)
                if orientation in (None, 1):
                    return ProcessingResult("rotate")

                method = ORIENTATION_TRANSPOSE.get(orientation)
                if method is None:
                    logger.info("Skipping unsupported EXIF orientation %s for %s", orientation, path.name)
                    return ProcessingResult(
                        "rotate", error=f"Unsupported EXIF orientation ({orientation})"
                    )

                exif[ORIENTATION_TAG] = 1
                rotated = img.transpose(method)
                self._save_replacing(
                    path,
                    rotated,
                    "JPEG",
                    quality=self.settings.jpeg_quality,
                    exif=exif.tobytes(),
                    icc_profile=img.info.get("icc_profile"),
                )
        except (ImageProcessingError, *_DECODE_ERRORS) as e:
            return self._failed("rotate", path, e)

        logger.info("Normalized EXIF orientation %s for %s", orientation, path.name)
        return ProcessingResult("rotate", applied=True)

    def resize(self, path: Path, jpeg: bool) -> ProcessingResult:
        """
        Shrink a stored image into the resize box when it exceeds it.

        High-quality path (JPEG + high_quality_jpeg): LANCZOS resampling and a
        JPEG re-encode at jpeg_quality. Basic path: bilinear resampling, saved
        in the image's own format.
        """
        if not self.settings.resize_configured:
            return ProcessingResult("resize")

        max_w = self.settings.resize_max_width
        max_h = self.settings.resize_max_height
        try:
            with Image.open(path) as img:
                new_size = scale_dimensions(img.width, img.height, max_w, max_h)
                if new_size == img.size:
                    return ProcessingResult("resize")

                if jpeg and self.settings.high_quality_jpeg:
                    resized = img.resize(new_size, Image.Resampling.LANCZOS)
                    if resized.mode not in ("RGB", "L", "CMYK"):
                        resized = resized.convert("RGB")
                    options = {"quality": self.settings.jpeg_quality}
                    if "exif" in img.info:
                        options["exif"] = img.info["exif"]
                    self._save_replacing(path, resized, "JPEG", **options)
                else:
                    resized = img.resize(new_size, Image.Resampling.BILINEAR)
                    self._save_replacing(path, resized, img.format or "PNG")
                original_size = img.size
        except (ImageProcessingError, *_DECODE_ERRORS) as e:
            return self._failed("resize", path, e)

        logger.info(
            "Resized %s from %dx%d to %dx%d",
            path.name, original_size[0], original_size[1], new_size[0], new_size[1],
        )
        return ProcessingResult("resize", applied=True)

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _save_replacing(path: Path, image: Image.Image, image_format: str, **options) -> None:
        """Encode to a hidden temp sibling, then swap it over the original."""
        temp_path = path.with_name(f".{path.name}.tmp")
        options = {k: v for k, v in options.items() if v is not None}
        try:
            image.save(temp_path, format=image_format, **options)
            os.replace(temp_path, path)
        except _DECODE_ERRORS as e:
            try:
                os.remove(temp_path)
            except FileNotFoundError:
                pass
            raise ImageProcessingError(
                message=f"Could not write processed image: {e}",
                context={"path": str(path), "format": image_format},
            ) from e

    @staticmethod
    def _failed(action: str, path: Path, error: Exception) -> ProcessingResult:
        message = error.message if isinstance(error, ImageProcessingError) else str(error)
        logger.warning("Image %s failed for %s: %s", action, path.name, message)
        return ProcessingResult(action, error=message)

"""
PicStash Backend — Upload Validator Unit Tests
================================================

What:  Tests for each validation rule and for the order they run in.
Why:   The message of the FIRST failing rule is what the user sees next to
       the file, so order is part of the contract.
"""

import io

import pytest

from picstash.exceptions import ValidationError
from picstash.services.image_processor import ImageInfo, ImageProcessor
from picstash.services.storage import LocalFileStore
from picstash.services.validation import UploadCandidate, UploadValidator, format_bytes


@pytest.fixture
def make_validator(upload_dir, make_settings):
    def _make(**overrides) -> UploadValidator:
        settings = make_settings(**overrides)
        return UploadValidator(LocalFileStore(str(upload_dir)), ImageProcessor(settings), settings)
    return _make


def _candidate(data: bytes, name="photo.jpg", **kwargs) -> UploadCandidate:
    return UploadCandidate(
        name=name,
        file_type="image/jpeg",
        size=kwargs.pop("size", len(data)),
        stream=io.BytesIO(data),
        **kwargs,
    )


class TestFormatBytes:

    def test_units(self):
        assert format_bytes(500) == "500 bytes"
        assert format_bytes(1536) == "1.5 KB"
        assert format_bytes(5 * 1024 * 1024) == "5.0 MB"


class TestUploadValidator:

    @pytest.mark.asyncio
    async def test_valid_image_passes(self, make_validator, make_image):
        await make_validator().validate(_candidate(make_image(50, 50)))

    @pytest.mark.asyncio
    async def test_request_size(self, make_validator, make_image):
        with pytest.raises(ValidationError, match="maximum allowed request size"):
            await make_validator(max_request_size=10).validate(_candidate(make_image(50, 50)))

    @pytest.mark.asyncio
    async def test_request_size_measures_the_chunk(self, make_validator):
        """A chunk under the request limit passes even when the whole file is larger."""
        validator = make_validator(max_request_size=2000)
        await validator.validate(UploadCandidate(
            name="photo.jpg", file_type="image/jpeg", size=3000, request_size=1000,
        ))
        with pytest.raises(ValidationError, match="maximum allowed request size"):
            await validator.validate(UploadCandidate(
                name="photo.jpg", file_type="image/jpeg", size=3000, request_size=2500,
            ))

    @pytest.mark.asyncio
    async def test_file_type_not_allowed(self, make_validator, make_image):
        validator = make_validator(accepted_files_pattern=r"\.(gif|png)$")
        with pytest.raises(ValidationError, match="File type not allowed"):
            await validator.validate(_candidate(make_image(50, 50)))

    @pytest.mark.asyncio
    async def test_accepted_pattern_case_insensitive(self, make_validator, make_image):
        validator = make_validator(accepted_files_pattern=r"\.jpe?g$")
        await validator.validate(_candidate(make_image(50, 50), name="PHOTO.JPG"))

    @pytest.mark.asyncio
    async def test_too_big(self, make_validator, make_image):
        with pytest.raises(ValidationError, match=r"File is too big \(maximum 100 bytes\)"):
            await make_validator(file_max_size=100).validate(_candidate(make_image(50, 50)))

    @pytest.mark.asyncio
    async def test_too_small(self, make_validator):
        with pytest.raises(ValidationError, match="File is too small"):
            await make_validator().validate(_candidate(b"", name="empty.txt"))

    @pytest.mark.asyncio
    async def test_max_number_of_files(self, make_validator, make_image, upload_dir):
        (upload_dir / "existing.jpg").write_bytes(make_image(10, 10))
        validator = make_validator(max_number_of_files=1)
        with pytest.raises(ValidationError, match=r"Maximum number of files exceeded \(1\)"):
            await validator.validate(_candidate(make_image(50, 50)))

    @pytest.mark.asyncio
    async def test_max_number_of_files_skipped_for_continuation(
        self, make_validator, make_image, upload_dir
    ):
        """Appending a chunk to an existing file does not add a file."""
        (upload_dir / "photo.jpg").write_bytes(b"partial")
        validator = make_validator(max_number_of_files=1)
        await validator.validate(
            UploadCandidate(name="photo.jpg", file_type="image/jpeg", size=1000, continuation=True)
        )

    @pytest.mark.asyncio
    async def test_not_an_image(self, make_validator):
        with pytest.raises(ValidationError, match="File is not a valid image"):
            await make_validator().validate(_candidate(b"plain text", name="notes.txt"))

    @pytest.mark.asyncio
    async def test_any_file_when_images_not_required(self, make_validator):
        await make_validator(image_files_only=False).validate(
            _candidate(b"plain text", name="notes.txt")
        )

    @pytest.mark.asyncio
    async def test_chunk_skips_image_check(self, make_validator):
        """Without a stream (a partial chunk) only the cheap checks run."""
        await make_validator().validate(
            UploadCandidate(name="photo.jpg", file_type="image/jpeg", size=5000, stream=None)
        )

    @pytest.mark.asyncio
    async def test_first_failure_wins(self, make_validator):
        """Type is checked before size, so the type message is reported."""
        validator = make_validator(accepted_files_pattern=r"\.png$", file_max_size=1)
        with pytest.raises(ValidationError, match="File type not allowed"):
            await validator.validate(_candidate(b"0123456789", name="a.txt"))

    @pytest.mark.asyncio
    async def test_stream_position_restored(self, make_validator, make_image):
        candidate = _candidate(make_image(50, 50))
        await make_validator().validate(candidate)
        assert candidate.stream.tell() == 0


class TestImageDimensions:
    """Tests for validate_image() bounds."""

    @pytest.mark.parametrize(
        "bounds, message",
        [
            ({"image_min_width": 300}, "minimum width of 300px"),
            ({"image_min_height": 300}, "minimum height of 300px"),
            ({"image_max_width": 100}, "maximum width of 100px"),
            ({"image_max_height": 50}, "maximum height of 50px"),
        ],
    )
    def test_bounds(self, make_validator, bounds, message):
        with pytest.raises(ValidationError, match=message):
            make_validator(**bounds).validate_image(ImageInfo("JPEG", 200, 100))

    def test_within_bounds(self, make_validator):
        validator = make_validator(
            image_min_width=100, image_min_height=50, image_max_width=200, image_max_height=100
        )
        validator.validate_image(ImageInfo("JPEG", 200, 100))

    def test_unbounded_max_accepts_anything(self, make_validator):
        """-1 means no limit, not a limit of -1 pixels."""
        make_validator(image_min_width=1).validate_image(ImageInfo("PNG", 10000, 10000))

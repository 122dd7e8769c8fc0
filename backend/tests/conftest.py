"""
PicStash Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Every test works on its own temporary upload directory with real
       images generated by Pillow, so nothing is mocked below the HTTP layer.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── upload_dir:    Temporary upload directory
    ├── make_settings: Settings factory bound to upload_dir
    ├── make_service:  UploadService factory (settings overrides as kwargs)
    ├── make_image:    JPEG/PNG bytes of a given size, optional EXIF orientation
    ├── make_upload:   Starlette UploadFile wrapping bytes
    ├── client_for:    HTTPX AsyncClient whose upload service is overridden
    └── test_client:   client_for() with a default service
"""

import io
import os
import tempfile
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image
from starlette.datastructures import Headers, UploadFile


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="picstash_test_")
os.environ["UPLOAD_URL"] = "/uploads"
os.environ["LOG_LEVEL"] = "WARNING"

from picstash.config import Settings  # noqa: E402
from picstash.services.upload_service import UploadService, get_upload_service  # noqa: E402

ORIENTATION_TAG = 0x0112


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def upload_dir(tmp_path):
    """A fresh upload directory for each test."""
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


@pytest.fixture
def make_settings(upload_dir):
    """
    Settings factory.

    Usage:
        settings = make_settings(file_max_size=1024, allow_downloading=True)
    """
    def _make(**overrides) -> Settings:
        values = {"upload_dir": str(upload_dir), "upload_url": "/uploads"}
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def make_service(make_settings):
    def _make(**overrides) -> UploadService:
        return UploadService(settings=make_settings(**overrides))
    return _make


@pytest.fixture
def make_image():
    """
    Encoded image bytes.

    What:    A solid-colour image of the requested size.
    Why:     Validation and post-processing decode real pixels; fake magic
             bytes would not survive Pillow.
    Usage:
        data = make_image(200, 100)                      # JPEG
        data = make_image(200, 100, orientation=6)       # sideways JPEG
        data = make_image(64, 64, image_format="PNG")
    """
    def _make(width, height, image_format="JPEG", orientation=None, color=(200, 30, 30)) -> bytes:
        img = Image.new("RGB", (width, height), color)
        buffer = io.BytesIO()
        options = {}
        if orientation is not None:
            exif = Image.Exif()
            exif[ORIENTATION_TAG] = orientation
            options["exif"] = exif.tobytes()
        img.save(buffer, format=image_format, **options)
        return buffer.getvalue()
    return _make


@pytest.fixture
def make_upload():
    """Starlette UploadFile around in-memory bytes, as the multipart parser builds it."""
    def _make(data: bytes, filename="photo.jpg", content_type="image/jpeg") -> UploadFile:
        return UploadFile(
            file=io.BytesIO(data),
            size=len(data),
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )
    return _make


@pytest.fixture
def client_for():
    """
    Provides HTTPX AsyncClients talking to the app with a given UploadService.

    Usage:
        async with client_for(make_service(allow_downloading=True)) as client:
            response = await client.get("/api/files")
    """
    from picstash.main import app

    @asynccontextmanager
    async def _client(service: UploadService):
        app.dependency_overrides[get_upload_service] = lambda: service
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            app.dependency_overrides.clear()

    return _client


@pytest_asyncio.fixture
async def test_client(client_for, make_service):
    async with client_for(make_service()) as client:
        yield client

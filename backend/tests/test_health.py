"""
PicStash Backend — Health Endpoint Tests
==========================================
"""

import pytest

from picstash import __version__


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client, upload_dir):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["writable"] is True
        assert body["version"] == __version__
        assert body["upload_dir"] == str(upload_dir.resolve())
        assert body["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_missing_directory_unhealthy(self, client_for, make_service, tmp_path):
        async with client_for(make_service(upload_dir=str(tmp_path / "missing"))) as client:
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["writable"] is False

    @pytest.mark.asyncio
    async def test_unconfigured_unhealthy(self, client_for, make_service):
        async with client_for(make_service(upload_dir="")) as client:
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["upload_dir"] == ""

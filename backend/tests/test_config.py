"""
PicStash Backend — Settings Tests
===================================
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from picstash.config import Settings
from picstash.exceptions import ConfigurationError


class TestSettings:

    def test_defaults(self, make_settings):
        settings = make_settings()
        assert settings.delete_type == "POST"
        assert settings.file_min_size == 1
        assert settings.allowed_methods_list == [
            "DELETE", "GET", "HEAD", "POST", "PUT", "OPTIONS", "PATCH"
        ]
        assert "Content-Range" in settings.allowed_headers_list
        assert not settings.dimension_bounds_configured
        assert settings.resize_configured

    def test_values_normalised(self, make_settings):
        settings = make_settings(delete_type="delete", log_level="debug")
        assert settings.delete_type == "DELETE"
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [{"delete_type": "PUT"}, {"jpeg_quality": 101}, {"log_level": "loud"}, {"file_max_size": -2}],
    )
    def test_invalid_values_rejected(self, make_settings, overrides):
        with pytest.raises(PydanticValidationError):
            make_settings(**overrides)

    def test_environment_variables(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))
        monkeypatch.setenv("ALLOW_DOWNLOADING", "true")
        monkeypatch.setenv("IMAGE_MAX_WIDTH", "640")

        settings = Settings()

        assert settings.upload_dir == str(tmp_path)
        assert settings.allow_downloading is True
        assert settings.dimension_bounds_configured

    @pytest.mark.parametrize(
        "overrides, setting",
        [({"upload_dir": ""}, "UPLOAD_DIR"), ({"upload_url": " "}, "UPLOAD_URL")],
    )
    def test_validate_required(self, make_settings, overrides, setting):
        with pytest.raises(ConfigurationError) as exc_info:
            make_settings(**overrides).validate_required()
        assert exc_info.value.setting == setting

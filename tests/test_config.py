"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from twibbon.config import PACKAGE_DIR, Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.port == 8000
        assert settings.preview_size == 512
        assert settings.export_size == 2048
        assert settings.background == 'white'
        assert settings.redirect_status == 302
        assert settings.teams_file == PACKAGE_DIR / 'teams.json'
        assert settings.max_content_length == 10 * 1024 * 1024

    def test_from_env(self):
        settings = Settings.from_env({
            'PORT': '9000',
            'TWIBBON_EXPORT_SIZE': '512',
            'TWIBBON_BACKGROUND': 'Transparent',
            'TWIBBON_REDIRECT_STATUS': '301',
            'TWIBBON_FRAMES_DIR': '/srv/frames',
            'TWIBBON_MAX_UPLOAD_MB': '2',
        })
        assert settings.port == 9000
        assert settings.export_size == 512
        assert settings.background == 'transparent'
        assert settings.redirect_status == 301
        assert settings.frames_dir == Path('/srv/frames')
        assert settings.max_content_length == 2 * 1024 * 1024

    def test_empty_values_use_defaults(self):
        assert Settings.from_env({'PORT': ''}).port == 8000

    @pytest.mark.parametrize('env', [
        {'PORT': 'eighty'},
        {'TWIBBON_PREVIEW_SIZE': '0'},
        {'TWIBBON_BACKGROUND': 'checkerboard'},
        {'TWIBBON_REDIRECT_STATUS': '200'},
        {'TWIBBON_MAX_UPLOAD_MB': '-1'},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            Settings.from_env(env)

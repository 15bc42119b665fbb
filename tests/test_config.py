"""
Tests for INI configuration loading.
"""

from pathlib import Path

import pytest

from tempus.config import load_config
from tempus.models import DEFAULT_TOKEN_ENDPOINT
from tempus.models import ValidationError


def _write(tmp_path, text: str) -> Path:
    path = tmp_path / "tempus.conf"
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.conf")
        assert cfg.timezone == ""
        assert cfg.google.calendar_id == "primary"
        assert cfg.google.token_endpoint == DEFAULT_TOKEN_ENDPOINT

    def test_full_file(self, tmp_path):
        path = _write(
            tmp_path,
            "[tempus]\n"
            "timezone = Europe/Amsterdam\n"
            "calendar_name = Personal\n"
            f"output_dir = {tmp_path / 'out'}\n"
            "\n"
            "[google]\n"
            "client_id = abc\n"
            "client_secret = def\n"
            "calendar_id = team@example.com\n"
            "token_file = ~/tokens/google.json\n"
            "timeout = 12.5\n",
        )
        cfg = load_config(path)
        assert cfg.timezone == "Europe/Amsterdam"
        assert cfg.calendar_name == "Personal"
        assert cfg.output_dir == tmp_path / "out"
        assert cfg.google.client_id == "abc"
        assert cfg.google.client_secret == "def"
        assert cfg.google.calendar_id == "team@example.com"
        assert cfg.google.token_file == Path.home() / "tokens" / "google.json"
        assert cfg.google.timeout == 12.5

    def test_blank_values_keep_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "[google]\ncalendar_id =\n"))
        assert cfg.google.calendar_id == "primary"

    def test_bad_timeout(self, tmp_path):
        with pytest.raises(ValidationError, match="timeout"):
            load_config(_write(tmp_path, "[google]\ntimeout = soon\n"))

    def test_malformed_file(self, tmp_path):
        with pytest.raises(ValidationError, match="Invalid config file"):
            load_config(_write(tmp_path, "client_id = no section\n"))

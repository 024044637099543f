"""Tests for slotflow.lib.envparse module."""

import pytest

from slotflow.lib.envparse import load_env, parse_env


class TestParseEnv:
    """Tests for parse_env."""

    def test_simple_pairs(self):
        text = "API_BASE_URL=https://api.example.test/api\nRETRY_ATTEMPTS=5\n"
        assert parse_env(text) == {
            "API_BASE_URL": "https://api.example.test/api",
            "RETRY_ATTEMPTS": "5",
        }

    def test_comments_and_blank_lines_skipped(self):
        text = "# settings\n\nTIMEZONE=UTC\n   \n# trailing\n"
        assert parse_env(text) == {"TIMEZONE": "UTC"}

    def test_quotes_stripped(self):
        text = "TIMEZONE=\"Europe/Berlin\"\nACCEPT_MODE='accept_post'\n"
        assert parse_env(text) == {"TIMEZONE": "Europe/Berlin", "ACCEPT_MODE": "accept_post"}

    def test_export_prefix_allowed(self):
        assert parse_env("export API_TIMEOUT=30") == {"API_TIMEOUT": "30"}

    def test_value_may_contain_equals(self):
        assert parse_env("API_BASE_URL=https://x.test/?a=b") == {"API_BASE_URL": "https://x.test/?a=b"}

    def test_missing_equals_raises(self):
        with pytest.raises(ValueError, match="no '='"):
            parse_env("API_TIMEOUT 30")

    def test_lowercase_key_rejected(self):
        with pytest.raises(ValueError, match="Invalid key 'api_timeout'"):
            parse_env("api_timeout=30")

    @pytest.mark.parametrize("value", [
        "`whoami`",
        "$(whoami)",
        "${HOME}/api",
        "a && b",
        "a || b",
    ])
    def test_forbidden_patterns_rejected(self, value):
        with pytest.raises(ValueError, match="Forbidden pattern in value for API_BASE_URL"):
            parse_env(f"API_BASE_URL={value}")

    def test_error_names_source_and_line(self):
        with pytest.raises(ValueError, match="slotflow.env:2"):
            parse_env("TIMEZONE=UTC\nbroken", source="slotflow.env")


class TestLoadEnv:
    """Tests for load_env."""

    def test_reads_file(self, tmp_path):
        env_file = tmp_path / "slotflow.env"
        env_file.write_text("RETRY_DELAY=0.5\n")
        assert load_env(env_file) == {"RETRY_DELAY": "0.5"}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env(tmp_path / "missing.env")

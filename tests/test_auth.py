"""Tests for slotflow.api.auth module."""

from slotflow.api.auth import (
    TOKEN_ENV_VAR,
    EnvTokenProvider,
    StaticTokenProvider,
    authorization_header,
)


class TestProviders:
    def test_static_token(self):
        assert StaticTokenProvider("abc").get_token() == "abc"
        assert StaticTokenProvider(None).get_token() is None

    def test_env_token_read_on_each_call(self, monkeypatch):
        provider = EnvTokenProvider()
        monkeypatch.delenv(TOKEN_ENV_VAR, raising=False)
        assert provider.get_token() is None
        monkeypatch.setenv(TOKEN_ENV_VAR, "rotated")
        assert provider.get_token() == "rotated"

    def test_env_token_empty_is_none(self, monkeypatch):
        monkeypatch.setenv("CUSTOM_TOKEN", "")
        assert EnvTokenProvider("CUSTOM_TOKEN").get_token() is None


class TestAuthorizationHeader:
    def test_adds_bearer_prefix(self):
        assert authorization_header("abc") == "Bearer abc"

    def test_keeps_existing_prefix(self):
        assert authorization_header("Bearer abc") == "Bearer abc"

    def test_no_token(self):
        assert authorization_header(None) is None
        assert authorization_header("") is None

"""Bearer token providers.

slotflow never logs in or refreshes tokens itself; it only asks a
provider for the current token before each attempt.
"""

import os
from typing import Optional, Protocol

TOKEN_ENV_VAR = "SLOTFLOW_API_TOKEN"


class AuthProvider(Protocol):
    def get_token(self) -> Optional[str]: ...


class StaticTokenProvider:
    def __init__(self, token: Optional[str]):
        self._token = token

    def get_token(self) -> Optional[str]:
        return self._token


class EnvTokenProvider:
    """Reads the token from an environment variable on every call."""

    def __init__(self, var: str = TOKEN_ENV_VAR):
        self.var = var

    def get_token(self) -> Optional[str]:
        return os.environ.get(self.var) or None


def authorization_header(token: Optional[str]) -> Optional[str]:
    """Format a token as an Authorization header value."""
    if not token:
        return None
    if token.lower().startswith("bearer "):
        return token
    return f"Bearer {token}"

"""Suggestions API access for slotflow.

ResilientClient is the only place that talks HTTP. SuggestionsService
builds the generate/accept requests on top of it and returns domain
objects.

Error conventions:
- Every failure raises an APIError subclass; check .kind / .retryable
  rather than status codes.
- Malformed success bodies raise UnknownError.
"""

from slotflow.api.auth import (
    AuthProvider,
    EnvTokenProvider,
    StaticTokenProvider,
)
from slotflow.api.client import (
    HTTPResponse,
    ResilientClient,
)
from slotflow.api.errors import (
    APIError,
    AuthError,
    ErrorKind,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    UnknownError,
    ValidationError,
)
from slotflow.api.suggestions import SuggestionsService

__all__ = [
    "APIError",
    "AuthError",
    "AuthProvider",
    "EnvTokenProvider",
    "ErrorKind",
    "HTTPResponse",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "ResilientClient",
    "ServerError",
    "StaticTokenProvider",
    "SuggestionsService",
    "UnknownError",
    "ValidationError",
]

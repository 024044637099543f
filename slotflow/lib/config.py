"""
Configuration loaders for slotflow.

Builds an APIConfig from an environment profile, then layers
slotflow.env (KEY=value) and endpoints.yaml overrides on top.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import yaml

from slotflow.lib import envparse

logger = logging.getLogger(__name__)


ENV_FILE_NAME = "slotflow.env"
ENDPOINTS_FILE_NAME = "endpoints.yaml"
ENVIRONMENT_VAR = "SLOTFLOW_ENV"

ACCEPT_MODE_STATUS_PATCH = "status_patch"
ACCEPT_MODE_ACCEPT_POST = "accept_post"
VALID_ACCEPT_MODES = {ACCEPT_MODE_STATUS_PATCH, ACCEPT_MODE_ACCEPT_POST}

DEFAULT_ENDPOINTS = {
    "generate_suggestions": "/ai-suggestions/generate",
    "accept_suggestion": "/ai-suggestions",
    "suggestion_history": "/ai-suggestions/history",
    "analytics": "/ai-suggestions/analytics",
}

# AI generation is slow; timeouts are per physical attempt.
ENVIRONMENT_PROFILES = {
    "development": {"base_url": "http://localhost:3000/api", "timeout": 120.0},
    "staging": {"base_url": "https://staging-api.taskie.com/api", "timeout": 45.0},
    "production": {"base_url": "https://api.taskie.com/api", "timeout": 60.0},
}
DEFAULT_ENVIRONMENT = "development"


@dataclass(frozen=True)
class APIConfig:
    """Transport and workflow settings consumed by ResilientClient and the orchestrator."""
    base_url: str = ENVIRONMENT_PROFILES[DEFAULT_ENVIRONMENT]["base_url"]
    endpoints: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    timeout: float = 60.0  # seconds, per attempt
    retry_attempts: int = 3
    retry_delay: float = 1.0  # seconds, backoff base
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0  # seconds
    accept_mode: str = ACCEPT_MODE_STATUS_PATCH
    confirmation_delay: float = 3.0  # seconds before confirmation auto-advances
    timezone: str = "UTC"

    def endpoint_url(self, name: str) -> str:
        """Join base URL and a named endpoint path."""
        if name not in self.endpoints:
            raise KeyError(f"Unknown endpoint: {name}")
        return self.base_url.rstrip("/") + "/" + self.endpoints[name].lstrip("/")


def config_for_environment(environment: Optional[str] = None) -> APIConfig:
    """Return the profile defaults for an environment name.

    Falls back to development (with a warning) for unknown names.
    """
    env_name = environment or os.environ.get(ENVIRONMENT_VAR, DEFAULT_ENVIRONMENT)
    profile = ENVIRONMENT_PROFILES.get(env_name)
    if profile is None:
        logger.warning(f"Unknown environment '{env_name}', using '{DEFAULT_ENVIRONMENT}'")
        profile = ENVIRONMENT_PROFILES[DEFAULT_ENVIRONMENT]
    return APIConfig(base_url=profile["base_url"], timeout=profile["timeout"])


def _parse_number(env: dict, key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Invalid {key} '{raw}', using default {default}")
        return default


def _apply_env_overrides(config: APIConfig, env: dict[str, str]) -> APIConfig:
    accept_mode = env.get("ACCEPT_MODE", config.accept_mode)
    if accept_mode not in VALID_ACCEPT_MODES:
        logger.warning(
            f"Unknown ACCEPT_MODE '{accept_mode}', using '{config.accept_mode}'. "
            f"Valid modes: {', '.join(sorted(VALID_ACCEPT_MODES))}"
        )
        accept_mode = config.accept_mode

    return replace(
        config,
        base_url=env.get("API_BASE_URL", config.base_url),
        timeout=_parse_number(env, "API_TIMEOUT", config.timeout, float),
        retry_attempts=_parse_number(env, "RETRY_ATTEMPTS", config.retry_attempts, int),
        retry_delay=_parse_number(env, "RETRY_DELAY", config.retry_delay, float),
        confirmation_delay=_parse_number(env, "CONFIRMATION_DELAY", config.confirmation_delay, float),
        accept_mode=accept_mode,
        timezone=env.get("TIMEZONE", config.timezone),
    )


def _load_endpoint_overrides(path: Path) -> dict[str, str]:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return {}

    if not isinstance(data, dict) or not isinstance(data.get("endpoints"), dict):
        return {}

    overrides = {}
    for name, value in data["endpoints"].items():
        if name not in DEFAULT_ENDPOINTS:
            logger.warning(f"Ignoring unknown endpoint '{name}' in {path}")
            continue
        overrides[name] = str(value)
    return overrides


def load_api_config(config_dir: Optional[Path] = None, environment: Optional[str] = None) -> APIConfig:
    """Load APIConfig for an environment, applying overrides from config_dir.

    If config_dir is None or holds no override files, returns profile defaults.
    """
    config = config_for_environment(environment)
    if config_dir is None:
        return config

    env_path = config_dir / ENV_FILE_NAME
    if env_path.exists():
        config = _apply_env_overrides(config, envparse.load_env(env_path))

    endpoints_path = config_dir / ENDPOINTS_FILE_NAME
    if endpoints_path.exists():
        overrides = _load_endpoint_overrides(endpoints_path)
        if overrides:
            config = replace(config, endpoints={**config.endpoints, **overrides})

    return config


def validate_config(config: APIConfig) -> list[str]:
    """Return a list of configuration problems (empty when usable)."""
    errors = []
    if not config.base_url:
        errors.append("API base URL is not configured")
    if not config.endpoints.get("generate_suggestions"):
        errors.append("Generate suggestions endpoint is not configured")
    if not config.endpoints.get("accept_suggestion"):
        errors.append("Accept suggestion endpoint is not configured")
    if config.timeout <= 0:
        errors.append("API timeout must be greater than 0")
    if config.retry_attempts < 0:
        errors.append("Retry attempts must be non-negative")
    return errors

"""Shared lessonflow configuration utilities.

Centralises reading of ~/.lessonflow/configuration.json so that the CLI,
agents and tests share one implementation.

Example configuration.json:

    {
        "llm": {
            "provider": "openai",
            "model": "gpt-4o-mini",
            "api_key_env_var": "OPENAI_API_KEY",
            "max_tokens": 4096,
            "request_timeout": 120
        },
        "storage": {"backend": "sqlite"},
        "execution": {"max_steps": 100}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_STEPS = 100
DEFAULT_REQUEST_TIMEOUT = 120.0

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_lessonflow_home() -> Path:
    """Root directory for configuration and storage (LESSONFLOW_HOME overrides)."""
    return Path(os.environ.get("LESSONFLOW_HOME", Path.home() / ".lessonflow")).expanduser()


def get_config_file() -> Path:
    override = os.environ.get("LESSONFLOW_CONFIG_FILE")
    if override:
        return Path(override).expanduser()
    return get_lessonflow_home() / "configuration.json"


def get_lessonflow_config() -> dict[str, Any]:
    """Load configuration; a missing or unreadable file yields {}."""
    config_file = get_config_file()
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the preferred LiteLLM model string (e.g. 'openai/gpt-4o-mini')."""
    llm = get_lessonflow_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return llm.get("model") or DEFAULT_MODEL


def get_max_tokens() -> int:
    return get_lessonflow_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_request_timeout() -> float:
    return float(
        get_lessonflow_config().get("llm", {}).get("request_timeout", DEFAULT_REQUEST_TIMEOUT)
    )


def get_api_key() -> str | None:
    """Return the API key from the environment variable specified in configuration."""
    llm = get_lessonflow_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_api_base() -> str | None:
    return get_lessonflow_config().get("llm", {}).get("api_base")


def get_checkpoint_backend() -> str:
    return get_lessonflow_config().get("storage", {}).get("backend", "file")


def get_storage_path() -> Path:
    """Directory for checkpoint storage."""
    path = get_lessonflow_config().get("storage", {}).get("path")
    if path:
        return Path(path).expanduser()
    return get_lessonflow_home() / "storage"


def get_max_steps() -> int:
    return get_lessonflow_config().get("execution", {}).get("max_steps", DEFAULT_MAX_STEPS)


# ---------------------------------------------------------------------------
# RuntimeConfig – shared across agents
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Agent runtime configuration loaded from ~/.lessonflow/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = field(default_factory=get_api_base)
    request_timeout: float = field(default_factory=get_request_timeout)
    checkpoint_backend: str = field(default_factory=get_checkpoint_backend)
    storage_path: Path = field(default_factory=get_storage_path)
    max_steps: int = field(default_factory=get_max_steps)

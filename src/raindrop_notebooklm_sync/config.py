"""Resolve the runtime configuration.

Reads settings from CLI args, environment variables, .env files and the
YAML config files found by ``config_loader``.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    RAINDROP_TOKEN: Raindrop API access token (required)
    RAINDROP_COLLECTION_ID: Collection to sync (optional, default: 0 = all)
    NOTEBOOKLM_URL: Notebook API base URL (required)
    NOTEBOOKLM_NOTEBOOK_ID: Notebook to sync (required)
    NOTEBOOKLM_TOKEN: Notebook API bearer token (required)
    SYNC_STATE_FILE: Path of the sync state file (optional)
    SYNC_PROPAGATE_DELETES: Propagate deletions (optional, default: false)
"""

import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from .config_loader import load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .errors import ConfigError

logger = logging.getLogger(__name__)

# (section, key, env var)
_ENV_STRINGS = [
    ("raindrop", "token", "RAINDROP_TOKEN"),
    ("notebooklm", "url", "NOTEBOOKLM_URL"),
    ("notebooklm", "notebook_id", "NOTEBOOKLM_NOTEBOOK_ID"),
    ("notebooklm", "token", "NOTEBOOKLM_TOKEN"),
    ("sync", "state_file", "SYNC_STATE_FILE"),
]


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _check_url(name: str, url: str) -> None:
    if not url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid {name} '{url}': must start with http:// or https://"
        )
    if not urlparse(url).hostname:
        raise ConfigError(
            f"Invalid {name} '{url}': URL must include a hostname"
        )


def validate_config(config: UnifiedConfig) -> None:
    """Check that everything needed to reach both services is present.

    Raises:
        ConfigError: If a credential or endpoint is missing or malformed.
    """
    if not (config.raindrop.token or "").strip():
        raise ConfigError(
            "Raindrop token not found. Set RAINDROP_TOKEN environment "
            "variable or add 'raindrop.token' to config.yml."
        )
    _check_url("Raindrop base URL", config.raindrop.base_url)

    if not (config.notebooklm.url or "").strip():
        raise ConfigError(
            "NotebookLM URL not found. Set NOTEBOOKLM_URL environment "
            "variable or add 'notebooklm.url' to config.yml."
        )
    _check_url("NotebookLM URL", config.notebooklm.url.strip())

    if not (config.notebooklm.notebook_id or "").strip():
        raise ConfigError(
            "NotebookLM notebook id not found. Set NOTEBOOKLM_NOTEBOOK_ID "
            "environment variable or add 'notebooklm.notebook_id' to config.yml."
        )
    if not (config.notebooklm.token or "").strip():
        raise ConfigError(
            "NotebookLM token not found. Set NOTEBOOKLM_TOKEN environment "
            "variable or add 'notebooklm.token' to config.yml."
        )

    if config.sync.propagate_deletes:
        logger.warning(
            "Deletion propagation is enabled: items deleted on one side "
            "will be deleted on the other."
        )


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, dict[str, Any]] | None = None,
    validate: bool = True,
) -> UnifiedConfig:
    """Load configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        config_path: Explicit YAML config file (``--config``).
        overrides: CLI values as ``{section: {key: value}}``; ``None``
            values are ignored.
        validate: Run ``validate_config`` on the result.

    Returns:
        The resolved ``UnifiedConfig``.

    Raises:
        ConfigError: If the config cannot be loaded or is incomplete.
    """
    raw = load_hierarchical_config(config_path)
    merged: dict[str, dict[str, Any]] = {
        section: dict(values or {})
        for section, values in raw.items()
        if isinstance(values, dict)
    }

    for section, key, env_var in _ENV_STRINGS:
        value = os.getenv(env_var)
        if value:
            merged.setdefault(section, {})[key] = value.strip()

    collection_raw = os.getenv("RAINDROP_COLLECTION_ID")
    if collection_raw:
        try:
            merged.setdefault("raindrop", {})["collection_id"] = int(
                collection_raw
            )
        except ValueError:
            raise ConfigError(
                f"Invalid RAINDROP_COLLECTION_ID '{collection_raw}': must be an integer"
            ) from None

    propagate = _get_bool_env("SYNC_PROPAGATE_DELETES")
    if propagate is not None:
        merged.setdefault("sync", {})["propagate_deletes"] = propagate

    for section, values in (overrides or {}).items():
        for key, value in values.items():
            if value is not None:
                merged.setdefault(section, {})[key] = value

    try:
        config = build_config(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    if validate:
        validate_config(config)
    return config

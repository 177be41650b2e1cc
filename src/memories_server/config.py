"""Configuration loading for the memories server.

Layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable MEMORIES_SERVER_CONFIG
3. Fallback to "config.yaml"

Values may be overridden from environment variables with prefix
``MEMORIES_SERVER__`` (e.g., MEMORIES_SERVER__STORAGE__DATA_DIR=/tmp/mem).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger("memories.config")

ENV_PATH = "MEMORIES_SERVER_CONFIG"
ENV_PREFIX = "MEMORIES_SERVER__"

DEFAULTS: Dict[str, Any] = {
    "server": {"cors_origins": ["*"]},
    "storage": {"data_dir": "data"},
    "auth": {"tokens": {}},
    "upload": {
        "private_key": "",
        "public_key": "",
        "url_endpoint": "",
        "expire_seconds": 2400,
    },
    "logging": {"level": "INFO"},
}


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _env_overrides() -> Dict[str, Any]:
    """Collect MEMORIES_SERVER__SECTION__KEY=value pairs as a nested dict."""
    nested: Dict[str, Any] = {}
    for key in sorted(k for k in os.environ if k.startswith(ENV_PREFIX)):
        *sections, leaf = key[len(ENV_PREFIX):].lower().split("__")
        target = nested
        for name in sections:
            if not isinstance(target.get(name), dict):
                target[name] = {}
            target = target[name]
        target[leaf] = _coerce(os.environ[key])
    return nested


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    return _merge(cfg, _env_overrides())


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration merged over the built-in defaults.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``MEMORIES_SERVER_CONFIG`` is consulted. As a
        last resort ``config.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Configuration dictionary with environment overrides applied.
    """
    if path is None:
        path = os.environ.get(ENV_PATH, "config.yaml")

    cfg = copy.deepcopy(DEFAULTS)
    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(cfg)

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(cfg, loaded))

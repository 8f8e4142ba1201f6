"""
pos_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.

Architecture position:
    Configuration -- sits above ``pos_kernel`` and below ``pos_services``.
    Engines never import from ``pos_config``; services pass the values in.

Resolution order for the configuration file:
    1. the ``path`` argument,
    2. the ``POS_CONFIG_PATH`` environment variable,
    3. the packaged ``defaults.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- the named file does not exist.
    - ``ValueError`` -- invalid values.
    - ``yaml.YAMLError`` -- malformed YAML.

Every load emits a ``POS_CONFIG_TRACE`` log record with the source path
and checksum.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from pos_config.loader import load_config_file
from pos_config.schema import AgingBucketConfig, MatchingConfig, PosConfig

__all__ = [
    "AgingBucketConfig",
    "MatchingConfig",
    "PosConfig",
    "get_active_config",
    "reset_config_cache",
]

_logger = logging.getLogger("pos_kernel.config")

CONFIG_PATH_ENV = "POS_CONFIG_PATH"
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

_cache: dict[Path, PosConfig] = {}
_lock = threading.Lock()


def _resolve_path(path: Path | str | None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return _DEFAULT_CONFIG_PATH


def get_active_config(path: Path | str | None = None) -> PosConfig:
    """The ONLY public configuration entrypoint.

    Loaded configurations are cached per resolved path; call
    ``reset_config_cache()`` to force a reload.
    """
    resolved = _resolve_path(path).resolve()
    with _lock:
        cached = _cache.get(resolved)
        if cached is not None:
            return cached

        config = load_config_file(resolved)
        _cache[resolved] = config

    _logger.info(
        "POS_CONFIG_TRACE",
        extra={
            "trace_type": "POS_CONFIG_TRACE",
            "config_path": str(resolved),
            "checksum": config.checksum,
            "currency": config.currency,
            "schema_version": config.schema_version,
            "match_policy": config.matching.policy,
        },
    )
    return config


def reset_config_cache() -> None:
    """Forget cached configurations (tests, hot reload)."""
    with _lock:
        _cache.clear()

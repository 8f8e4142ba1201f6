"""
Configuration loader (``pos_config.loader``).

Loads a YAML file and parses it into ``pos_config.schema`` dataclasses.
Runtime callers go through ``pos_config.get_active_config()``; this module
is the parsing step behind it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pos_config.schema import AgingBucketConfig, MatchingConfig, PosConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file gives an empty dict."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def parse_matching(data: dict[str, Any]) -> MatchingConfig:
    defaults = MatchingConfig()
    return MatchingConfig(
        amount_tolerance=_decimal(
            data.get("amount_tolerance", defaults.amount_tolerance),
            "matching.amount_tolerance",
        ),
        time_window_seconds=_int(
            data.get("time_window_seconds", defaults.time_window_seconds),
            "matching.time_window_seconds",
        ),
        policy=str(data.get("policy", defaults.policy)).lower(),
    )


def parse_aging_buckets(items: list[dict[str, Any]]) -> tuple[AgingBucketConfig, ...]:
    buckets = []
    for item in items:
        max_days = item.get("max_days")
        buckets.append(
            AgingBucketConfig(
                name=str(item["name"]),
                min_days=_int(item["min_days"], "aging_buckets.min_days"),
                max_days=None if max_days is None else _int(max_days, "aging_buckets.max_days"),
            )
        )
    return tuple(buckets)


def parse_config(data: dict[str, Any]) -> PosConfig:
    """
    Parse a ``PosConfig`` from a dict.  Missing keys take the schema
    defaults; the checksum covers the raw data as loaded.
    """
    defaults = PosConfig()

    matching_raw = data.get("matching") or {}
    if not isinstance(matching_raw, dict):
        raise ValueError("matching must be a mapping")

    buckets_raw = data.get("aging_buckets")
    wallets_raw = data.get("wallets")

    return PosConfig(
        currency=str(data.get("currency", defaults.currency)),
        matching=parse_matching(matching_raw),
        aging_buckets=(
            parse_aging_buckets(buckets_raw)
            if buckets_raw is not None
            else defaults.aging_buckets
        ),
        wallets=(
            tuple(str(w) for w in wallets_raw)
            if wallets_raw is not None
            else defaults.wallets
        ),
        allocation_max_retries=_int(
            data.get("allocation_max_retries", defaults.allocation_max_retries),
            "allocation_max_retries",
        ),
        schema_version=_int(
            data.get("schema_version", defaults.schema_version), "schema_version"
        ),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> PosConfig:
    return parse_config(load_yaml_file(path))

"""
Configuration Loader (``market_config.loader``).

Responsibility
--------------
Loads YAML configuration documents and parses them into typed
``market_config.schema`` dataclass instances.  The single public entry
point for runtime config is ``market_config.get_active_config()``.

Invariants enforced
-------------------
* Money rates are parsed from their string form into ``Decimal``; YAML
  floats are rejected so that 0.1 never becomes 0.1000000000000000055.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError`` from the schema ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from market_config.schema import EngineConfig, InvoicingConfig, OrdersConfig
from market_engines.pricing import NegativeTotalPolicy, PricingConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a rate written as a quoted string or an int."""
    if isinstance(value, float):
        raise ValueError(f"{name} must be quoted (got float {value!r})")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a decimal: {value!r}") from exc


def parse_pricing(data: dict[str, Any]) -> PricingConfig:
    defaults = PricingConfig()
    return PricingConfig(
        admin_margin=parse_decimal(data.get("admin_margin", defaults.admin_margin), "admin_margin"),
        gst_rate=parse_decimal(data.get("gst_rate", defaults.gst_rate), "gst_rate"),
        currency=str(data.get("currency", defaults.currency)).upper(),
        negative_total_policy=NegativeTotalPolicy(
            data.get("negative_total_policy", defaults.negative_total_policy.value)
        ),
    )


def parse_invoicing(data: dict[str, Any]) -> InvoicingConfig:
    return InvoicingConfig(**data)


def parse_orders(data: dict[str, Any]) -> OrdersConfig:
    return OrdersConfig(**data)


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse a full configuration document.

    Missing sections fall back to schema defaults; unknown keys inside a
    section raise ``TypeError`` from the dataclass constructor.
    """
    return EngineConfig(
        config_id=data.get("config_id", "default"),
        version=int(data.get("version", 1)),
        pricing=parse_pricing(data.get("pricing") or {}),
        invoicing=parse_invoicing(data.get("invoicing") or {}),
        orders=parse_orders(data.get("orders") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

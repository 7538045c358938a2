"""
market_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned
    ``EngineConfig`` (or its ``pricing`` section) by injection and never
    read files or environment variables themselves.

Architecture position:
    Configuration -- sits above ``market_kernel`` and ``market_engines``
    and below ``market_modules``.  The kernel MUST NEVER import from
    ``market_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML document is missing.
    - ``ValueError`` -- a value fails schema validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``MARKET_CONFIG_TRACE`` log entry with the config id, version,
    checksum and rates in force.
"""

from __future__ import annotations

from pathlib import Path

from market_config.loader import load_yaml_file, parse_engine_config
from market_config.schema import EngineConfig, InvoicingConfig, OrdersConfig
from market_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "EngineConfig",
    "InvoicingConfig",
    "OrdersConfig",
    "get_active_config",
]


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Contract:
        Loads the YAML document at ``path`` (default: the packaged
        ``defaults.yaml``), validates it and returns a frozen
        ``EngineConfig``.

    Non-goals:
        - Does NOT cache; callers hold the returned value for the
          lifetime of a request or job.

    Raises:
        FileNotFoundError: If the document does not exist.
        ValueError: If validation fails.
    """
    source = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = parse_engine_config(load_yaml_file(source))

    _logger.info(
        "MARKET_CONFIG_TRACE",
        extra={
            "trace_type": "MARKET_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "admin_margin": config.pricing.admin_margin,
            "gst_rate": config.pricing.gst_rate,
            "currency": config.pricing.currency,
            "negative_total_policy": config.pricing.negative_total_policy.value,
        },
    )
    return config

"""
Configuration Schema (``market_config.schema``).

Frozen dataclasses for every configuration value the engine reads.  The
pricing section reuses the engine's own ``PricingConfig`` so the value the
loader builds is exactly the value injected into every pricing call.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from market_engines.pricing import PricingConfig


@dataclass(frozen=True)
class InvoicingConfig:
    """Invoice numbering and payment terms."""

    number_prefix: str = "INV"
    number_width: int = 5
    payment_terms_days: int = 30

    def __post_init__(self) -> None:
        if not self.number_prefix or not self.number_prefix.strip():
            raise ValueError("number_prefix cannot be empty")
        if self.number_width < 1:
            raise ValueError("number_width must be positive")
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")

    def format_number(self, value: int) -> str:
        """``INV-00001`` style document number."""
        return f"{self.number_prefix}-{value:0{self.number_width}d}"


@dataclass(frozen=True)
class OrdersConfig:
    """Purchase-order numbering."""

    po_prefix: str = "PO"
    po_width: int = 5

    def __post_init__(self) -> None:
        if not self.po_prefix or not self.po_prefix.strip():
            raise ValueError("po_prefix cannot be empty")
        if self.po_width < 1:
            raise ValueError("po_width must be positive")

    def format_po_number(self, value: int) -> str:
        return f"{self.po_prefix}-{value:0{self.po_width}d}"


@dataclass(frozen=True)
class EngineConfig:
    """
    The complete runtime configuration.

    Contract:
        Built only by ``market_config.get_active_config()`` (or directly in
        tests).  ``checksum`` identifies the source document.
    """

    config_id: str = "default"
    version: int = 1
    pricing: PricingConfig = field(default_factory=PricingConfig)
    invoicing: InvoicingConfig = field(default_factory=InvoicingConfig)
    orders: OrdersConfig = field(default_factory=OrdersConfig)
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.config_id:
            raise ValueError("config_id cannot be empty")
        if self.version < 1:
            raise ValueError("version must be >= 1")

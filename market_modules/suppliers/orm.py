"""
Supplier ORM Models (``market_modules.suppliers.orm``).

Responsibility
--------------
SQLAlchemy persistence for the supplier directory: suppliers, their
delivery zones and their product offers.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``market_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``market_kernel``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from market_kernel.db.base import TrackedBase, UUIDString


class SupplierModel(TrackedBase):
    """
    ORM model for suppliers.

    Suppliers are deactivated, never deleted; order items keep their
    ``supplier_id`` after deactivation.
    """

    __tablename__ = "suppliers"

    __table_args__ = (
        UniqueConstraint("name", name="uq_suppliers_name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    zones: Mapped[list["DeliveryZoneModel"]] = relationship(
        back_populates="supplier",
        cascade="all, delete-orphan",
    )
    offers: Mapped[list["SupplierOfferModel"]] = relationship(
        back_populates="supplier",
        cascade="all, delete-orphan",
    )

    def to_dto(self):
        from market_modules.suppliers.models import Supplier

        return Supplier(id=self.id, name=self.name, active=self.active)

    def __repr__(self) -> str:
        return f"<SupplierModel {self.name}>"


class DeliveryZoneModel(TrackedBase):
    """
    ORM model for supplier delivery zones.

    Guarantees:
        - radius_km is positive (ck_supplier_zones_radius_positive).
        - delivery_cost is non-negative.
    """

    __tablename__ = "supplier_delivery_zones"

    __table_args__ = (
        CheckConstraint("radius_km > 0", name="ck_supplier_zones_radius_positive"),
        CheckConstraint("delivery_cost >= 0", name="ck_supplier_zones_cost_non_negative"),
        Index("idx_supplier_zones_supplier_id", "supplier_id"),
    )

    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    long: Mapped[float] = mapped_column(Float, nullable=False)
    radius_km: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    supplier: Mapped[SupplierModel] = relationship(back_populates="zones")

    def to_dto(self):
        from market_modules.suppliers.models import DeliveryZone

        return DeliveryZone(
            id=self.id,
            supplier_id=self.supplier_id,
            address=self.address,
            lat=self.lat,
            long=self.long,
            radius_km=self.radius_km,
            delivery_cost=self.delivery_cost,
        )


class SupplierOfferModel(TrackedBase):
    """
    ORM model for supplier product offers.

    Guarantees:
        - unit_cost is non-negative (ck_supplier_offers_cost_non_negative).
    """

    __tablename__ = "supplier_offers"

    __table_args__ = (
        CheckConstraint("unit_cost >= 0", name="ck_supplier_offers_cost_non_negative"),
        Index("idx_supplier_offers_product", "product_id", "active"),
        Index("idx_supplier_offers_supplier_id", "supplier_id"),
    )

    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    supplier: Mapped[SupplierModel] = relationship(back_populates="offers")

    def to_dto(self):
        from market_modules.suppliers.models import SupplierOffer

        return SupplierOffer(
            id=self.id,
            supplier_id=self.supplier_id,
            product_id=self.product_id,
            unit_cost=self.unit_cost,
            active=self.active,
        )

    def __repr__(self) -> str:
        return f"<SupplierOfferModel {self.product_id} @ {self.unit_cost}>"

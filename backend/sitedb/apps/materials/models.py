from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MaterialTransactionType(str, enum.Enum):
    IN = "in"
    OUT = "out"
    RETURN = "return"
    WASTE = "waste"
    ADJUSTMENT = "adjustment"


class MaterialRequestPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MaterialRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ORDERED = "ordered"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class QualityStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ShipmentStatus(str, enum.Enum):
    PREPARING = "preparing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Material(Base):
    __tablename__ = "materials"
    __table_args__ = (
        UniqueConstraint("code", name="uq_materials_code"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    code = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    unit = Column(String(16), nullable=False, default="EA")
    specification = Column(String(255), nullable=True)
    category = Column(String(64), nullable=True, index=True)
    unit_price = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class MaterialInventory(Base):
    __tablename__ = "material_inventory"
    __table_args__ = (
        UniqueConstraint("site_id", "material_id", name="uq_material_inventory_site_material"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    current_stock = Column(Float, nullable=False, default=0.0)
    minimum_stock = Column(Float, nullable=False, default=0.0)
    maximum_stock = Column(Float, nullable=True)
    last_purchase_price = Column(Float, nullable=True)
    last_purchase_date = Column(Date, nullable=True)
    storage_location = Column(String(128), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    material = relationship("Material", lazy="joined")
    site = relationship("Site", lazy="joined")


class MaterialTransaction(Base):
    """Append-only stock movement ledger. Quantities are always positive."""

    __tablename__ = "material_transactions"
    __table_args__ = (
        Index("ix_material_transactions_site_date", "site_id", "transaction_date"),
        Index("ix_material_transactions_material", "material_id", "transaction_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False)
    transaction_type = Column(
        SAEnum(MaterialTransactionType, name="material_transaction_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    quantity = Column(Float, nullable=False)
    unit_price = Column(Float, nullable=True)
    reference_type = Column(String(64), nullable=True)
    reference_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    material = relationship("Material", lazy="joined")


class MaterialRequest(Base):
    __tablename__ = "material_requests"
    __table_args__ = (
        UniqueConstraint("request_number", name="uq_material_requests_number"),
        Index("ix_material_requests_site_status", "site_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    request_number = Column(String(32), nullable=False, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    requested_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    request_date = Column(Date, nullable=False)
    required_date = Column(Date, nullable=True)
    priority = Column(
        SAEnum(MaterialRequestPriority, name="material_request_priority_enum", native_enum=False),
        nullable=False,
        default=MaterialRequestPriority.NORMAL,
    )
    status = Column(
        SAEnum(MaterialRequestStatus, name="material_request_status_enum", native_enum=False),
        nullable=False,
        default=MaterialRequestStatus.PENDING,
        index=True,
    )
    approved_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "MaterialRequestItem",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    site = relationship("Site", lazy="joined")


class MaterialRequestItem(Base):
    __tablename__ = "material_request_items"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    request_id = Column(String(36), ForeignKey("material_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False)
    requested_quantity = Column(Float, nullable=False)
    approved_quantity = Column(Float, nullable=True)
    delivered_quantity = Column(Float, nullable=True)
    unit_price = Column(Float, nullable=True)
    total_price = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    request = relationship("MaterialRequest", back_populates="items")
    material = relationship("Material", lazy="joined")


class MaterialProduction(Base):
    __tablename__ = "material_productions"
    __table_args__ = (
        UniqueConstraint("production_number", name="uq_material_productions_number"),
        Index("ix_material_productions_site_date", "site_id", "production_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    production_number = Column(String(32), nullable=False, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False)
    produced_quantity = Column(Float, nullable=False)
    production_date = Column(Date, nullable=False)
    batch_number = Column(String(64), nullable=True)
    quality_status = Column(
        SAEnum(QualityStatus, name="material_quality_status_enum", native_enum=False),
        nullable=False,
        default=QualityStatus.PENDING,
        index=True,
    )
    quality_notes = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    material = relationship("Material", lazy="joined")
    site = relationship("Site", lazy="joined")


class MaterialShipment(Base):
    __tablename__ = "material_shipments"
    __table_args__ = (
        UniqueConstraint("shipment_number", name="uq_material_shipments_number"),
        Index("ix_material_shipments_site_status", "site_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    shipment_number = Column(String(32), nullable=False, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        SAEnum(ShipmentStatus, name="material_shipment_status_enum", native_enum=False),
        nullable=False,
        default=ShipmentStatus.PREPARING,
        index=True,
    )
    carrier = Column(String(64), nullable=False, default="other")
    tracking_number = Column(String(128), nullable=True)
    shipment_date = Column(Date, nullable=True)
    expected_delivery = Column(Date, nullable=True)
    actual_delivery = Column(Date, nullable=True)
    delivery_address = Column(String(512), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "MaterialShipmentItem",
        back_populates="shipment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    site = relationship("Site", lazy="joined")

    @property
    def total_value(self) -> float:
        return sum(item.total_price or 0.0 for item in self.items)


class MaterialShipmentItem(Base):
    __tablename__ = "material_shipment_items"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    shipment_id = Column(String(36), ForeignKey("material_shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Float, nullable=False)
    unit_price = Column(Float, nullable=True)
    total_price = Column(Float, nullable=True)

    shipment = relationship("MaterialShipment", back_populates="items")
    material = relationship("Material", lazy="joined")

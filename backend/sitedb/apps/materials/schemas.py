from __future__ import annotations

import math
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .models import (
    MaterialRequestPriority,
    MaterialRequestStatus,
    MaterialTransactionType,
    QualityStatus,
    ShipmentStatus,
)


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------


class MaterialBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    unit: str = "EA"
    specification: Optional[str] = None
    category: Optional[str] = None
    unit_price: Optional[float] = Field(None, ge=0)


class MaterialCreate(MaterialBase):
    pass


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    specification: Optional[str] = None
    category: Optional[str] = None
    unit_price: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None


class MaterialRead(MaterialBase):
    id: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class MaterialListResponse(BaseModel):
    items: List[MaterialRead]
    total: int
    pages: int


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


InventoryStatus = Literal["normal", "low", "out_of_stock"]


class InventoryRow(BaseModel):
    id: str
    site_id: str
    site_name: Optional[str] = None
    material_id: str
    material_code: Optional[str] = None
    material_name: Optional[str] = None
    unit: Optional[str] = None
    current_stock: float
    minimum_stock: float
    maximum_stock: Optional[float] = None
    storage_location: Optional[str] = None
    last_purchase_price: Optional[float] = None
    last_purchase_date: Optional[date] = None
    status: InventoryStatus


class InventoryListResponse(BaseModel):
    items: List[InventoryRow]
    total: int
    pages: int


class InventorySummary(BaseModel):
    total_materials: int
    tracked_sites: int
    out_of_stock_items: int
    low_stock_items: int
    total_stock_quantity: float


class InventoryAdjustment(BaseModel):
    site_id: str
    material_id: str
    current_stock: float = Field(..., ge=0)
    minimum_stock: Optional[float] = Field(None, ge=0)


class InventoryAdjustmentRequest(BaseModel):
    updates: List[InventoryAdjustment] = Field(..., min_length=1)


class TransactionCreate(BaseModel):
    site_id: str
    material_id: str
    transaction_type: MaterialTransactionType
    quantity: float = Field(..., gt=0)
    unit_price: Optional[float] = Field(None, ge=0)
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None


class TransactionRead(BaseModel):
    id: str
    site_id: str
    material_id: str
    transaction_type: MaterialTransactionType
    quantity: float
    unit_price: Optional[float] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    transaction_date: datetime
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class MaterialRequestItemCreate(BaseModel):
    material_id: str
    requested_quantity: float
    unit_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class MaterialRequestCreate(BaseModel):
    site_id: str
    required_date: Optional[date] = None
    priority: MaterialRequestPriority = MaterialRequestPriority.NORMAL
    notes: Optional[str] = None
    items: List[MaterialRequestItemCreate]
    idempotency_key: Optional[str] = None


class MaterialRequestItemRead(BaseModel):
    id: str
    material_id: str
    requested_quantity: float
    approved_quantity: Optional[float] = None
    delivered_quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class MaterialRequestRead(BaseModel):
    id: str
    request_number: str
    site_id: str
    requested_by: Optional[str] = None
    request_date: date
    required_date: Optional[date] = None
    priority: MaterialRequestPriority
    status: MaterialRequestStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    items: List[MaterialRequestItemRead] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True


class MaterialRequestListResponse(BaseModel):
    items: List[MaterialRequestRead]
    total: int
    pages: int


class MaterialRequestBulkAction(BaseModel):
    request_ids: List[str] = Field(..., min_length=1)
    action: Literal["approve", "reject"]
    comments: Optional[str] = None


class MaterialRequestProcess(BaseModel):
    action: Literal["approved", "rejected"]
    approved_quantity: Optional[float] = Field(None, gt=0)
    rejection_reason: Optional[str] = None


class MaterialRequestDelivery(BaseModel):
    # item id -> delivered quantity; omitted items default to the approved amount
    delivered_quantities: Optional[Dict[str, float]] = None

    @field_validator("delivered_quantities")
    @classmethod
    def check_non_negative(cls, value: Optional[Dict[str, float]]) -> Optional[Dict[str, float]]:
        for item_id, quantity in (value or {}).items():
            if math.isnan(quantity) or math.isinf(quantity) or quantity < 0:
                raise ValueError(f"Delivered quantity for {item_id} must be a non-negative number")
        return value


# ---------------------------------------------------------------------------
# NPC-1000
# ---------------------------------------------------------------------------


class Npc1000Summary(BaseModel):
    total_incoming: float
    total_used: float
    total_remaining: float
    efficiency: float
    low_stock_sites: int
    site_count: int


class Npc1000SiteRow(BaseModel):
    site_id: str
    site_name: Optional[str] = None
    work_date: date
    incoming: float
    used: float
    remaining: float
    status: Literal["critical", "low", "normal"]


class Npc1000SiteList(BaseModel):
    items: List[Npc1000SiteRow]
    total: int
    pages: int


# ---------------------------------------------------------------------------
# Productions
# ---------------------------------------------------------------------------


class ProductionCreate(BaseModel):
    site_id: str
    material_id: str
    produced_quantity: float = Field(..., gt=0)
    production_date: date
    batch_number: Optional[str] = None
    quality_notes: Optional[str] = None


class ProductionQualityUpdate(BaseModel):
    quality_status: QualityStatus
    quality_notes: Optional[str] = None


class ProductionRead(BaseModel):
    id: str
    production_number: str
    site_id: str
    material_id: str
    produced_quantity: float
    production_date: date
    batch_number: Optional[str] = None
    quality_status: QualityStatus
    quality_notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductionListResponse(BaseModel):
    items: List[ProductionRead]
    total: int
    pages: int


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------


class ShipmentItemCreate(BaseModel):
    material_id: str
    quantity: float = Field(..., gt=0)
    unit_price: Optional[float] = Field(None, ge=0)


class ShipmentCreate(BaseModel):
    site_id: str
    items: List[ShipmentItemCreate] = Field(..., min_length=1)
    carrier: Optional[str] = None
    expected_delivery: Optional[date] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None


class ShipmentStatusUpdate(BaseModel):
    status: ShipmentStatus
    tracking_number: Optional[str] = None


class ShipmentCarrierUpdate(BaseModel):
    carrier: Optional[str] = None


class ShipmentItemRead(BaseModel):
    id: str
    material_id: str
    quantity: float
    unit_price: Optional[float] = None
    total_price: Optional[float] = None

    class Config:
        from_attributes = True


class ShipmentRead(BaseModel):
    id: str
    shipment_number: str
    site_id: str
    status: ShipmentStatus
    carrier: str
    tracking_number: Optional[str] = None
    shipment_date: Optional[date] = None
    expected_delivery: Optional[date] = None
    actual_delivery: Optional[date] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    total_value: float = 0.0
    items: List[ShipmentItemRead] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True


class ShipmentListResponse(BaseModel):
    items: List[ShipmentRead]
    total: int
    pages: int


class ShipmentAnalytics(BaseModel):
    total_shipments: int
    by_status: dict
    by_carrier: dict
    total_shipped_value: float

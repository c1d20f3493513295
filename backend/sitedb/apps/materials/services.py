from __future__ import annotations

import csv
import io
import logging
import math
from collections import Counter
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sitedb.security import is_admin
from sitedb.apps.accounts import models as account_models
from sitedb.apps.accounts import services as account_services
from sitedb.apps.audit import services as audit_services
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.notifications import services as notification_services
from sitedb.apps.notifications.models import NotificationType
from sitedb.apps.security import services as security_services
from sitedb.apps.sites import models as site_models
from sitedb.apps.sites import services as site_services
from sitedb.utils.numbering import generate_business_number, generate_shipment_number

from . import models, schemas

logger = logging.getLogger(__name__)

ADJUSTMENT_NOTE = "관리자 재고 조정"
APPROVAL_SUFFIX = " (관리자 승인)"
REJECTION_SUFFIX = " (관리자 거부)"

NPC1000_LOW_THRESHOLD = 50
NPC1000_CRITICAL_THRESHOLD = 20

COURIER_ALIASES = {"택배", "courier"}
FREIGHT_ALIASES = {"화물", "freight", "cargo"}

STOCK_INCREASING = {models.MaterialTransactionType.IN, models.MaterialTransactionType.RETURN}
STOCK_DECREASING = {models.MaterialTransactionType.OUT, models.MaterialTransactionType.WASTE}

SHIPMENT_TRANSITIONS = {
    models.ShipmentStatus.PREPARING: {models.ShipmentStatus.SHIPPED, models.ShipmentStatus.CANCELLED},
    models.ShipmentStatus.SHIPPED: {models.ShipmentStatus.DELIVERED},
}

MAX_NUMBER_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _paginate(query, *, page: int, limit: int, order_by) -> dict:
    total = query.count()
    items = query.order_by(order_by).offset((page - 1) * limit).limit(limit).all()
    return {"items": items, "total": total, "pages": _pages(total, limit)}


def _unique_number(db: Session, column, prefix: str) -> str:
    for _ in range(MAX_NUMBER_ATTEMPTS):
        candidate = generate_business_number(prefix)
        if not db.query(column).filter(column == candidate).first():
            return candidate
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Could not allocate a unique reference number.",
    )


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------


def _normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def get_material(db: Session, material_id: str) -> models.Material:
    material = db.query(models.Material).filter(models.Material.id == material_id).first()
    if not material:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material not found.")
    return material


def list_materials(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    include_inactive: bool = False,
) -> dict:
    query = db.query(models.Material)
    if not include_inactive:
        query = query.filter(models.Material.is_active.is_(True))
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.Material.name).like(pattern),
                func.lower(models.Material.code).like(pattern),
                func.lower(models.Material.specification).like(pattern),
            )
        )
    return _paginate(query, page=page, limit=limit, order_by=models.Material.name.asc())


def create_material(
    db: Session,
    *,
    payload: schemas.MaterialCreate,
    actor_user_id: Optional[str],
) -> models.Material:
    code = _normalize_code(payload.code)
    if db.query(models.Material).filter(models.Material.code == code).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Material code already exists.")
    material = models.Material(**{**payload.model_dump(), "code": code})
    db.add(material)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material",
        entity_id=material.id,
        action="CREATE",
        details={"code": code, "name": material.name},
    )
    return material


def update_material(
    db: Session,
    *,
    material_id: str,
    payload: schemas.MaterialUpdate,
    actor_user_id: Optional[str],
) -> models.Material:
    material = get_material(db, material_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(material, field, value)
    db.add(material)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material",
        entity_id=material.id,
        action="UPDATE",
        details={key: str(value) for key, value in changes.items()},
    )
    return material


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


def inventory_status(current_stock: float, minimum_stock: float) -> str:
    if current_stock <= 0:
        return "out_of_stock"
    if current_stock < (minimum_stock or 0):
        return "low"
    return "normal"


def _get_or_create_inventory(db: Session, *, site_id: str, material_id: str) -> models.MaterialInventory:
    row = (
        db.query(models.MaterialInventory)
        .filter(
            models.MaterialInventory.site_id == site_id,
            models.MaterialInventory.material_id == material_id,
        )
        .first()
    )
    if row:
        return row
    row = models.MaterialInventory(
        site_id=site_id,
        material_id=material_id,
        current_stock=0.0,
        minimum_stock=0.0,
    )
    db.add(row)
    db.flush()
    return row


def _create_transaction(
    db: Session,
    *,
    site_id: str,
    material_id: str,
    transaction_type: models.MaterialTransactionType,
    quantity: float,
    actor_user_id: Optional[str],
    unit_price: Optional[float] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.MaterialTransaction:
    entry = models.MaterialTransaction(
        site_id=site_id,
        material_id=material_id,
        transaction_type=transaction_type,
        quantity=quantity,
        unit_price=unit_price,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        transaction_date=_utcnow(),
        created_by=actor_user_id,
    )
    db.add(entry)
    db.flush()
    return entry


def _apply_movement(
    db: Session,
    *,
    site_id: str,
    material_id: str,
    transaction_type: models.MaterialTransactionType,
    quantity: float,
    actor_user_id: Optional[str],
    unit_price: Optional[float] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.MaterialTransaction:
    if quantity <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must be positive.")

    inventory = _get_or_create_inventory(db, site_id=site_id, material_id=material_id)
    if transaction_type in STOCK_INCREASING:
        inventory.current_stock = (inventory.current_stock or 0.0) + quantity
    elif transaction_type in STOCK_DECREASING:
        remaining = (inventory.current_stock or 0.0) - quantity
        if remaining < 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Insufficient stock for this movement.",
            )
        inventory.current_stock = remaining
    else:
        inventory.current_stock = quantity

    if transaction_type == models.MaterialTransactionType.IN and unit_price is not None:
        inventory.last_purchase_price = unit_price
        inventory.last_purchase_date = date.today()
    db.add(inventory)

    return _create_transaction(
        db,
        site_id=site_id,
        material_id=material_id,
        transaction_type=transaction_type,
        quantity=quantity,
        actor_user_id=actor_user_id,
        unit_price=unit_price,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )


def record_transaction(
    db: Session,
    *,
    payload: schemas.TransactionCreate,
    actor_user_id: Optional[str],
) -> models.MaterialTransaction:
    site_services.get_site(db, payload.site_id)
    get_material(db, payload.material_id)
    entry = _apply_movement(
        db,
        site_id=payload.site_id,
        material_id=payload.material_id,
        transaction_type=payload.transaction_type,
        quantity=payload.quantity,
        actor_user_id=actor_user_id,
        unit_price=payload.unit_price,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        notes=payload.notes,
    )
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_transaction",
        entity_id=entry.id,
        action=payload.transaction_type.value.upper(),
        details={"site_id": payload.site_id, "material_id": payload.material_id, "quantity": payload.quantity},
    )
    return entry


def get_inventory_summary(db: Session) -> schemas.InventorySummary:
    rows = db.query(models.MaterialInventory).all()
    return schemas.InventorySummary(
        total_materials=len({r.material_id for r in rows}),
        tracked_sites=len({r.site_id for r in rows}),
        out_of_stock_items=sum(1 for r in rows if (r.current_stock or 0) <= 0),
        low_stock_items=sum(
            1 for r in rows if 0 < (r.current_stock or 0) < (r.minimum_stock or 0)
        ),
        total_stock_quantity=float(sum(r.current_stock or 0 for r in rows)),
    )


def _inventory_row(row: models.MaterialInventory) -> schemas.InventoryRow:
    return schemas.InventoryRow(
        id=row.id,
        site_id=row.site_id,
        site_name=row.site.name if row.site else None,
        material_id=row.material_id,
        material_code=row.material.code if row.material else None,
        material_name=row.material.name if row.material else None,
        unit=row.material.unit if row.material else None,
        current_stock=row.current_stock or 0.0,
        minimum_stock=row.minimum_stock or 0.0,
        maximum_stock=row.maximum_stock,
        storage_location=row.storage_location,
        last_purchase_price=row.last_purchase_price,
        last_purchase_date=row.last_purchase_date,
        status=inventory_status(row.current_stock or 0.0, row.minimum_stock or 0.0),
    )


def list_inventory(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    site_id: Optional[str] = None,
    status_filter: Optional[str] = None,
) -> dict:
    query = db.query(models.MaterialInventory).join(
        models.Material, models.Material.id == models.MaterialInventory.material_id
    )
    if site_id:
        query = query.filter(models.MaterialInventory.site_id == site_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.Material.name).like(pattern),
                func.lower(models.Material.code).like(pattern),
            )
        )

    # Status is derived, so filter after computing it.
    rows = [_inventory_row(r) for r in query.order_by(models.Material.name.asc()).all()]
    if status_filter:
        rows = [r for r in rows if r.status == status_filter]

    total = len(rows)
    start = (page - 1) * limit
    return {"items": rows[start : start + limit], "total": total, "pages": _pages(total, limit)}


def update_inventory(
    db: Session,
    *,
    updates: Iterable[schemas.InventoryAdjustment],
    actor_user_id: Optional[str],
) -> int:
    count = 0
    for update in updates:
        site_services.get_site(db, update.site_id)
        get_material(db, update.material_id)
        inventory = _get_or_create_inventory(db, site_id=update.site_id, material_id=update.material_id)
        previous = inventory.current_stock
        inventory.current_stock = update.current_stock
        if update.minimum_stock is not None:
            inventory.minimum_stock = update.minimum_stock
        db.add(inventory)
        _create_transaction(
            db,
            site_id=update.site_id,
            material_id=update.material_id,
            transaction_type=models.MaterialTransactionType.ADJUSTMENT,
            quantity=update.current_stock,
            actor_user_id=actor_user_id,
            notes=ADJUSTMENT_NOTE,
        )
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="material_inventory",
            entity_id=inventory.id,
            action="ADJUST",
            details={"from": previous, "to": update.current_stock},
        )
        count += 1
    db.flush()
    return count


def list_transactions(
    db: Session,
    *,
    site_id: Optional[str] = None,
    material_id: Optional[str] = None,
    transaction_type: Optional[models.MaterialTransactionType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[models.MaterialTransaction]:
    query = db.query(models.MaterialTransaction)
    if site_id:
        query = query.filter(models.MaterialTransaction.site_id == site_id)
    if material_id:
        query = query.filter(models.MaterialTransaction.material_id == material_id)
    if transaction_type:
        query = query.filter(models.MaterialTransaction.transaction_type == transaction_type)
    if start:
        query = query.filter(models.MaterialTransaction.transaction_date >= start)
    if end:
        query = query.filter(models.MaterialTransaction.transaction_date <= end)
    return (
        query.order_by(models.MaterialTransaction.transaction_date.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def export_inventory_csv(
    db: Session,
    *,
    user: account_models.User,
    ip_address: Optional[str] = None,
) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(
        ["site", "material_code", "material_name", "unit", "current_stock", "minimum_stock", "status"]
    )
    for row in list_inventory(db, page=1, limit=10**9)["items"]:
        writer.writerow(
            [
                row.site_name,
                row.material_code,
                row.material_name,
                row.unit,
                row.current_stock,
                row.minimum_stock,
                row.status,
            ]
        )
    # BOM so spreadsheet apps detect UTF-8 for Korean names.
    data = ("﻿" + buffer.getvalue()).encode("utf-8")
    security_services.record_data_export(
        db,
        user_id=user.id,
        export_type="material_inventory_csv",
        file_size_bytes=len(data),
        ip_address=ip_address,
    )
    return data


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def get_material_request(db: Session, request_id: str) -> models.MaterialRequest:
    request = db.query(models.MaterialRequest).filter(models.MaterialRequest.id == request_id).first()
    if not request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material request not found.")
    return request


def create_material_request(
    db: Session,
    *,
    payload: schemas.MaterialRequestCreate,
    user: account_models.User,
) -> models.MaterialRequest:
    if not payload.items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one item is required.")
    if any(item.requested_quantity <= 0 for item in payload.items):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Requested quantities must be positive.")

    site = site_services.get_site(db, payload.site_id)
    if not is_admin(user) and not site_services.is_assigned(db, user_id=user.id, site_id=site.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not assigned to this site.")

    idem = None
    if payload.idempotency_key:
        try:
            idem, created = account_services.register_idempotency_key(
                db,
                scope=f"material-request:{user.id}",
                key=payload.idempotency_key,
                payload=payload.model_dump(exclude={"idempotency_key"}),
            )
        except account_services.IdempotencyError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        if not created and idem.resource_id:
            return get_material_request(db, idem.resource_id)

    request = models.MaterialRequest(
        request_number=_unique_number(db, models.MaterialRequest.request_number, "MR"),
        site_id=site.id,
        requested_by=user.id,
        request_date=date.today(),
        required_date=payload.required_date,
        priority=payload.priority,
        status=models.MaterialRequestStatus.PENDING,
        notes=payload.notes,
    )
    for item in payload.items:
        material = get_material(db, item.material_id)
        unit_price = item.unit_price if item.unit_price is not None else material.unit_price
        request.items.append(
            models.MaterialRequestItem(
                material_id=material.id,
                requested_quantity=item.requested_quantity,
                unit_price=unit_price,
                total_price=(unit_price * item.requested_quantity) if unit_price is not None else None,
                notes=item.notes,
            )
        )
    db.add(request)
    db.flush()

    if idem is not None:
        idem.resource_id = request.id
        db.add(idem)

    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="material_request",
        entity_id=request.id,
        action="CREATE",
        details={"request_number": request.request_number, "items": len(request.items)},
    )

    recipients = set(site_services.get_site_manager_ids(db, site.id))
    recipients.update(u.id for u in account_services.list_admin_users(db))
    recipients.discard(user.id)
    notification_services.notify_users(
        db,
        user_ids=sorted(recipients),
        title="자재 요청 승인 대기",
        message=f"{site.name} 현장에서 자재 요청 {request.request_number}이(가) 등록되었습니다.",
        type=NotificationType.MATERIAL_APPROVAL,
        action_url=f"/materials/requests/{request.id}",
        created_by=user.id,
    )
    return request


def list_material_requests(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    status_filter: Optional[models.MaterialRequestStatus] = None,
    site_id: Optional[str] = None,
) -> dict:
    query = db.query(models.MaterialRequest)
    if search:
        query = query.filter(func.lower(models.MaterialRequest.request_number).like(f"%{search.strip().lower()}%"))
    if status_filter:
        query = query.filter(models.MaterialRequest.status == status_filter)
    if site_id:
        query = query.filter(models.MaterialRequest.site_id == site_id)
    return _paginate(query, page=page, limit=limit, order_by=models.MaterialRequest.created_at.desc())


def process_material_request_approvals(
    db: Session,
    *,
    request_ids: Iterable[str],
    action: str,
    comments: Optional[str],
    actor_user_id: str,
) -> int:
    """
    Bulk approve/reject. Only pending requests move; the count of changed
    requests is returned.
    """
    if action not in ("approve", "reject"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown action.")

    requests = (
        db.query(models.MaterialRequest)
        .filter(
            models.MaterialRequest.id.in_(list(request_ids)),
            models.MaterialRequest.status == models.MaterialRequestStatus.PENDING,
        )
        .all()
    )
    now = _utcnow()
    for request in requests:
        if action == "approve":
            request.status = models.MaterialRequestStatus.APPROVED
            request.approved_by = actor_user_id
            request.approved_at = now
            suffix = APPROVAL_SUFFIX
        else:
            request.status = models.MaterialRequestStatus.CANCELLED
            suffix = REJECTION_SUFFIX
        if comments:
            request.notes = comments + suffix
        db.add(request)

    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_request",
        entity_id=None,
        action="APPROVE" if action == "approve" else "REJECT",
        details={"request_ids": [r.id for r in requests], "comments": comments},
    )
    return len(requests)


def process_material_request(
    db: Session,
    *,
    request_id: str,
    payload: schemas.MaterialRequestProcess,
    actor_user_id: str,
) -> models.MaterialRequest:
    request = get_material_request(db, request_id)
    if request.status != models.MaterialRequestStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only pending requests can be processed.",
        )

    if payload.action == "approved":
        for item in request.items:
            item.approved_quantity = (
                payload.approved_quantity
                if payload.approved_quantity is not None
                else item.requested_quantity
            )
        request.status = models.MaterialRequestStatus.APPROVED
        request.approved_by = actor_user_id
        request.approved_at = _utcnow()
        title = "자재 요청 승인"
        message = f"자재 요청 {request.request_number}이(가) 승인되었습니다."
    else:
        if not (payload.rejection_reason or "").strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="rejection_reason is required when rejecting.",
            )
        request.status = models.MaterialRequestStatus.CANCELLED
        request.rejection_reason = payload.rejection_reason.strip()
        title = "자재 요청 반려"
        message = f"자재 요청 {request.request_number}이(가) 반려되었습니다: {request.rejection_reason}"

    db.add(request)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_request",
        entity_id=request.id,
        action="APPROVE" if payload.action == "approved" else "REJECT",
        details={"status": request.status.value},
    )
    if request.requested_by:
        notification_services.create_notification(
            db,
            user_id=request.requested_by,
            title=title,
            message=message,
            type=NotificationType.MATERIAL_APPROVAL,
            action_url=f"/materials/requests/{request.id}",
            created_by=actor_user_id,
        )
    return request


def mark_request_ordered(db: Session, *, request_id: str, actor_user_id: str) -> models.MaterialRequest:
    request = get_material_request(db, request_id)
    if request.status != models.MaterialRequestStatus.APPROVED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only approved requests can be ordered.")
    request.status = models.MaterialRequestStatus.ORDERED
    db.add(request)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_request",
        entity_id=request.id,
        action="ORDER",
    )
    return request


def _checked_delivery_quantities(
    request: models.MaterialRequest, delivered_quantities: Optional[Dict[str, Any]]
) -> Dict[str, float]:
    item_ids = {item.id for item in request.items}
    unknown = sorted(set(delivered_quantities or {}) - item_ids)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Items do not belong to this request: {', '.join(unknown)}",
        )

    checked: Dict[str, float] = {}
    for item_id, raw in (delivered_quantities or {}).items():
        try:
            quantity = float(raw)
        except (TypeError, ValueError):
            quantity = float("nan")
        if math.isnan(quantity) or math.isinf(quantity) or quantity < 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Delivered quantity for item {item_id} must be a non-negative number.",
            )
        checked[item_id] = quantity
    return checked


def mark_request_delivered(
    db: Session,
    *,
    request_id: str,
    delivered_quantities: Optional[Dict[str, float]] = None,
    actor_user_id: str,
) -> models.MaterialRequest:
    """
    Close the request and book the delivered quantities into site stock.
    Quantities default to the approved (or requested) amount per item.
    """
    request = get_material_request(db, request_id)
    if request.status not in (models.MaterialRequestStatus.APPROVED, models.MaterialRequestStatus.ORDERED):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only approved or ordered requests can be delivered.",
        )

    delivered_quantities = _checked_delivery_quantities(request, delivered_quantities)
    for item in request.items:
        quantity = delivered_quantities.get(item.id)
        if quantity is None:
            quantity = item.approved_quantity if item.approved_quantity is not None else item.requested_quantity
        item.delivered_quantity = quantity
        if quantity > 0:
            _apply_movement(
                db,
                site_id=request.site_id,
                material_id=item.material_id,
                transaction_type=models.MaterialTransactionType.IN,
                quantity=quantity,
                actor_user_id=actor_user_id,
                unit_price=item.unit_price,
                reference_type="material_request",
                reference_id=request.id,
            )

    request.status = models.MaterialRequestStatus.DELIVERED
    db.add(request)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_request",
        entity_id=request.id,
        action="DELIVER",
    )
    return request


# ---------------------------------------------------------------------------
# NPC-1000
# ---------------------------------------------------------------------------


def _latest_npc_reports(db: Session) -> List[report_models.DailyReport]:
    reports = (
        db.query(report_models.DailyReport)
        .filter(
            or_(
                report_models.DailyReport.npc1000_incoming.isnot(None),
                report_models.DailyReport.npc1000_used.isnot(None),
                report_models.DailyReport.npc1000_remaining.isnot(None),
            )
        )
        .order_by(
            report_models.DailyReport.work_date.desc(),
            report_models.DailyReport.created_at.desc(),
        )
        .all()
    )
    latest: Dict[str, report_models.DailyReport] = {}
    for report in reports:
        latest.setdefault(report.site_id, report)
    return list(latest.values())


def npc1000_status(remaining: float) -> str:
    if remaining < NPC1000_CRITICAL_THRESHOLD:
        return "critical"
    if remaining < NPC1000_LOW_THRESHOLD:
        return "low"
    return "normal"


def get_npc1000_summary(db: Session) -> schemas.Npc1000Summary:
    reports = _latest_npc_reports(db)
    incoming = sum(r.npc1000_incoming or 0.0 for r in reports)
    used = sum(r.npc1000_used or 0.0 for r in reports)
    remaining = sum(r.npc1000_remaining or 0.0 for r in reports)
    efficiency = round(used / incoming * 100, 2) if incoming > 0 else 0.0
    return schemas.Npc1000Summary(
        total_incoming=incoming,
        total_used=used,
        total_remaining=remaining,
        efficiency=efficiency,
        low_stock_sites=sum(1 for r in reports if (r.npc1000_remaining or 0.0) < NPC1000_LOW_THRESHOLD),
        site_count=len(reports),
    )


def get_npc1000_by_site(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
) -> dict:
    rows = []
    for report in _latest_npc_reports(db):
        site_name = report.site.name if report.site else None
        if search and search.strip().lower() not in (site_name or "").lower():
            continue
        remaining = report.npc1000_remaining or 0.0
        rows.append(
            schemas.Npc1000SiteRow(
                site_id=report.site_id,
                site_name=site_name,
                work_date=report.work_date,
                incoming=report.npc1000_incoming or 0.0,
                used=report.npc1000_used or 0.0,
                remaining=remaining,
                status=npc1000_status(remaining),
            )
        )
    rows.sort(key=lambda r: r.site_name or "")
    total = len(rows)
    start = (page - 1) * limit
    return {"items": rows[start : start + limit], "total": total, "pages": _pages(total, limit)}


# ---------------------------------------------------------------------------
# Productions
# ---------------------------------------------------------------------------


def list_productions(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    site_id: Optional[str] = None,
    quality_status: Optional[models.QualityStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict:
    query = db.query(models.MaterialProduction)
    if site_id:
        query = query.filter(models.MaterialProduction.site_id == site_id)
    if quality_status:
        query = query.filter(models.MaterialProduction.quality_status == quality_status)
    if date_from:
        query = query.filter(models.MaterialProduction.production_date >= date_from)
    if date_to:
        query = query.filter(models.MaterialProduction.production_date <= date_to)
    return _paginate(query, page=page, limit=limit, order_by=models.MaterialProduction.production_date.desc())


def create_production(
    db: Session,
    *,
    payload: schemas.ProductionCreate,
    actor_user_id: Optional[str],
) -> models.MaterialProduction:
    site_services.get_site(db, payload.site_id)
    get_material(db, payload.material_id)
    production = models.MaterialProduction(
        production_number=_unique_number(db, models.MaterialProduction.production_number, "PR"),
        site_id=payload.site_id,
        material_id=payload.material_id,
        produced_quantity=payload.produced_quantity,
        production_date=payload.production_date,
        batch_number=payload.batch_number,
        quality_notes=payload.quality_notes,
        quality_status=models.QualityStatus.PENDING,
        created_by=actor_user_id,
    )
    db.add(production)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_production",
        entity_id=production.id,
        action="CREATE",
        details={"production_number": production.production_number, "quantity": production.produced_quantity},
    )
    return production


def update_production_quality(
    db: Session,
    *,
    production_id: str,
    payload: schemas.ProductionQualityUpdate,
    actor_user_id: Optional[str],
) -> models.MaterialProduction:
    production = (
        db.query(models.MaterialProduction)
        .filter(models.MaterialProduction.id == production_id)
        .first()
    )
    if not production:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Production not found.")

    was_pending = production.quality_status == models.QualityStatus.PENDING
    production.quality_status = payload.quality_status
    if payload.quality_notes is not None:
        production.quality_notes = payload.quality_notes
    db.add(production)

    if was_pending and payload.quality_status == models.QualityStatus.APPROVED:
        _apply_movement(
            db,
            site_id=production.site_id,
            material_id=production.material_id,
            transaction_type=models.MaterialTransactionType.IN,
            quantity=production.produced_quantity,
            actor_user_id=actor_user_id,
            reference_type="material_production",
            reference_id=production.id,
        )

    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_production",
        entity_id=production.id,
        action="QUALITY_" + payload.quality_status.value.upper(),
    )
    return production


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------


def normalize_carrier(value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text:
        return "other"
    lowered = text.lower()
    if lowered in COURIER_ALIASES:
        return "courier"
    if lowered in FREIGHT_ALIASES:
        return "freight"
    return text


def get_shipment(db: Session, shipment_id: str) -> models.MaterialShipment:
    shipment = db.query(models.MaterialShipment).filter(models.MaterialShipment.id == shipment_id).first()
    if not shipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shipment not found.")
    return shipment


def list_shipments(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    status_filter: Optional[models.ShipmentStatus] = None,
    site_id: Optional[str] = None,
    search: Optional[str] = None,
) -> dict:
    query = db.query(models.MaterialShipment)
    if status_filter:
        query = query.filter(models.MaterialShipment.status == status_filter)
    if site_id:
        query = query.filter(models.MaterialShipment.site_id == site_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.MaterialShipment.shipment_number).like(pattern),
                func.lower(models.MaterialShipment.tracking_number).like(pattern),
            )
        )
    return _paginate(query, page=page, limit=limit, order_by=models.MaterialShipment.created_at.desc())


def create_shipment(
    db: Session,
    *,
    payload: schemas.ShipmentCreate,
    actor_user_id: Optional[str],
) -> models.MaterialShipment:
    site = site_services.get_site(db, payload.site_id)
    shipment = models.MaterialShipment(
        shipment_number=generate_shipment_number(),
        site_id=site.id,
        status=models.ShipmentStatus.PREPARING,
        carrier=normalize_carrier(payload.carrier),
        expected_delivery=payload.expected_delivery,
        delivery_address=payload.delivery_address or site.address,
        notes=payload.notes,
        created_by=actor_user_id,
    )
    for item in payload.items:
        material = get_material(db, item.material_id)
        unit_price = item.unit_price if item.unit_price is not None else (material.unit_price or 0.0)
        shipment.items.append(
            models.MaterialShipmentItem(
                material_id=material.id,
                quantity=item.quantity,
                unit_price=unit_price,
                total_price=item.quantity * unit_price,
            )
        )
    db.add(shipment)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_shipment",
        entity_id=shipment.id,
        action="CREATE",
        details={"shipment_number": shipment.shipment_number, "carrier": shipment.carrier},
    )
    return shipment


def update_shipment_status(
    db: Session,
    *,
    shipment_id: str,
    payload: schemas.ShipmentStatusUpdate,
    actor_user_id: Optional[str],
) -> models.MaterialShipment:
    shipment = get_shipment(db, shipment_id)
    allowed = SHIPMENT_TRANSITIONS.get(shipment.status, set())
    if payload.status not in allowed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot move shipment from {shipment.status.value} to {payload.status.value}.",
        )

    if payload.tracking_number:
        shipment.tracking_number = payload.tracking_number

    if payload.status == models.ShipmentStatus.SHIPPED:
        if shipment.shipment_date is None:
            shipment.shipment_date = date.today()
        for item in shipment.items:
            _apply_movement(
                db,
                site_id=shipment.site_id,
                material_id=item.material_id,
                transaction_type=models.MaterialTransactionType.OUT,
                quantity=item.quantity,
                actor_user_id=actor_user_id,
                reference_type="material_shipment",
                reference_id=shipment.id,
            )
    elif payload.status == models.ShipmentStatus.DELIVERED:
        shipment.actual_delivery = date.today()

    shipment.status = payload.status
    db.add(shipment)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_shipment",
        entity_id=shipment.id,
        action="STATUS_CHANGE",
        details={"status": payload.status.value},
    )
    return shipment


def update_shipment_delivery_method(
    db: Session,
    *,
    shipment_id: str,
    carrier: Optional[str],
    actor_user_id: Optional[str],
) -> models.MaterialShipment:
    shipment = get_shipment(db, shipment_id)
    shipment.carrier = normalize_carrier(carrier)
    db.add(shipment)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="material_shipment",
        entity_id=shipment.id,
        action="UPDATE",
        details={"carrier": shipment.carrier},
    )
    return shipment


def get_shipment_analytics(
    db: Session,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> schemas.ShipmentAnalytics:
    query = db.query(models.MaterialShipment)
    if date_from:
        query = query.filter(func.date(models.MaterialShipment.created_at) >= date_from)
    if date_to:
        query = query.filter(func.date(models.MaterialShipment.created_at) <= date_to)
    shipments = query.all()

    by_status = Counter(s.status.value for s in shipments)
    by_carrier = Counter(s.carrier for s in shipments)
    shipped_value = sum(
        s.total_value
        for s in shipments
        if s.status in (models.ShipmentStatus.SHIPPED, models.ShipmentStatus.DELIVERED)
    )
    return schemas.ShipmentAnalytics(
        total_shipments=len(shipments),
        by_status=dict(by_status),
        by_carrier=dict(by_carrier),
        total_shipped_value=float(shipped_value),
    )

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import get_current_active_user, require_admin, require_roles
from sitedb.apps.accounts.models import AccountRole, User

from . import models, schemas, services

router = APIRouter(prefix="/materials", tags=["materials"])

MATERIAL_WRITE_ROLES = (AccountRole.SITE_MANAGER, AccountRole.ADMIN)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------


@router.get("", response_model=schemas.MaterialListResponse)
def list_materials(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_materials(
        db, page=page, limit=limit, search=search, include_inactive=include_inactive
    )


@router.post("", response_model=schemas.MaterialRead, status_code=status.HTTP_201_CREATED)
def create_material(
    payload: schemas.MaterialCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    material = services.create_material(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(material)
    return material


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@router.get("/inventory", response_model=schemas.InventoryListResponse)
def list_inventory(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = None,
    site_id: Optional[str] = None,
    status: Optional[schemas.InventoryStatus] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_inventory(
        db, page=page, limit=limit, search=search, site_id=site_id, status_filter=status
    )


@router.get("/inventory/summary", response_model=schemas.InventorySummary)
def inventory_summary(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_inventory_summary(db)


@router.post("/inventory/adjust")
def adjust_inventory(
    payload: schemas.InventoryAdjustmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.update_inventory(db, updates=payload.updates, actor_user_id=current_user.id)
    db.commit()
    return {"updated": count}


@router.get("/inventory/export")
def export_inventory(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    data = services.export_inventory_csv(db, user=current_user, ip_address=_client_ip(request))
    db.commit()
    filename = f"inventory_{date.today().isoformat()}.csv"
    return Response(
        content=data,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/transactions", response_model=List[schemas.TransactionRead])
def list_transactions(
    site_id: Optional[str] = None,
    material_id: Optional[str] = None,
    transaction_type: Optional[models.MaterialTransactionType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_transactions(
        db,
        site_id=site_id,
        material_id=material_id,
        transaction_type=transaction_type,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )


@router.post(
    "/transactions",
    response_model=schemas.TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
def record_transaction(
    payload: schemas.TransactionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MATERIAL_WRITE_ROLES)),
):
    entry = services.record_transaction(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(entry)
    return entry


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@router.get("/requests", response_model=schemas.MaterialRequestListResponse)
def list_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = None,
    status: Optional[models.MaterialRequestStatus] = None,
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_material_requests(
        db, page=page, limit=limit, search=search, status_filter=status, site_id=site_id
    )


@router.post(
    "/requests",
    response_model=schemas.MaterialRequestRead,
    status_code=status.HTTP_201_CREATED,
)
def create_request(
    payload: schemas.MaterialRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    request = services.create_material_request(db, payload=payload, user=current_user)
    db.commit()
    db.refresh(request)
    return request


@router.post("/requests/approvals")
def bulk_process_requests(
    payload: schemas.MaterialRequestBulkAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.process_material_request_approvals(
        db,
        request_ids=payload.request_ids,
        action=payload.action,
        comments=payload.comments,
        actor_user_id=current_user.id,
    )
    db.commit()
    return {"updated": count}


@router.post("/requests/{request_id}/process", response_model=schemas.MaterialRequestRead)
def process_request(
    request_id: str,
    payload: schemas.MaterialRequestProcess,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MATERIAL_WRITE_ROLES)),
):
    request = services.process_material_request(
        db, request_id=request_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(request)
    return request


@router.post("/requests/{request_id}/order", response_model=schemas.MaterialRequestRead)
def order_request(
    request_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MATERIAL_WRITE_ROLES)),
):
    request = services.mark_request_ordered(db, request_id=request_id, actor_user_id=current_user.id)
    db.commit()
    db.refresh(request)
    return request


@router.post("/requests/{request_id}/deliver", response_model=schemas.MaterialRequestRead)
def deliver_request(
    request_id: str,
    payload: schemas.MaterialRequestDelivery,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MATERIAL_WRITE_ROLES)),
):
    request = services.mark_request_delivered(
        db,
        request_id=request_id,
        delivered_quantities=payload.delivered_quantities,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(request)
    return request


# ---------------------------------------------------------------------------
# NPC-1000
# ---------------------------------------------------------------------------


@router.get("/npc1000/summary", response_model=schemas.Npc1000Summary)
def npc1000_summary(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_npc1000_summary(db)


@router.get("/npc1000/sites", response_model=schemas.Npc1000SiteList)
def npc1000_by_site(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_npc1000_by_site(db, page=page, limit=limit, search=search)


# ---------------------------------------------------------------------------
# Productions
# ---------------------------------------------------------------------------


@router.get("/productions", response_model=schemas.ProductionListResponse)
def list_productions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    site_id: Optional[str] = None,
    quality_status: Optional[models.QualityStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_productions(
        db,
        page=page,
        limit=limit,
        site_id=site_id,
        quality_status=quality_status,
        date_from=date_from,
        date_to=date_to,
    )


@router.post(
    "/productions",
    response_model=schemas.ProductionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_production(
    payload: schemas.ProductionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MATERIAL_WRITE_ROLES)),
):
    production = services.create_production(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(production)
    return production


@router.put("/productions/{production_id}/quality", response_model=schemas.ProductionRead)
def update_production_quality(
    production_id: str,
    payload: schemas.ProductionQualityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MATERIAL_WRITE_ROLES)),
):
    production = services.update_production_quality(
        db, production_id=production_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(production)
    return production


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------


@router.get("/shipments", response_model=schemas.ShipmentListResponse)
def list_shipments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[models.ShipmentStatus] = None,
    site_id: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_shipments(
        db, page=page, limit=limit, status_filter=status, site_id=site_id, search=search
    )


@router.get("/shipments/analytics", response_model=schemas.ShipmentAnalytics)
def shipment_analytics(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.get_shipment_analytics(db, date_from=date_from, date_to=date_to)


@router.post(
    "/shipments",
    response_model=schemas.ShipmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_shipment(
    payload: schemas.ShipmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    shipment = services.create_shipment(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(shipment)
    return shipment


@router.put("/shipments/{shipment_id}/status", response_model=schemas.ShipmentRead)
def update_shipment_status(
    shipment_id: str,
    payload: schemas.ShipmentStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    shipment = services.update_shipment_status(
        db, shipment_id=shipment_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(shipment)
    return shipment


@router.put("/shipments/{shipment_id}/carrier", response_model=schemas.ShipmentRead)
def update_shipment_carrier(
    shipment_id: str,
    payload: schemas.ShipmentCarrierUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    shipment = services.update_shipment_delivery_method(
        db, shipment_id=shipment_id, carrier=payload.carrier, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(shipment)
    return shipment


@router.put("/{material_id}", response_model=schemas.MaterialRead)
def update_material(
    material_id: str,
    payload: schemas.MaterialUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    material = services.update_material(
        db, material_id=material_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(material)
    return material

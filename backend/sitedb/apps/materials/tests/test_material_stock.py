from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts.models import AccountRole
from sitedb.apps.audit import models as audit_models
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.materials import models, schemas, services
from sitedb.apps.security import models as security_models


def _material(db, code="npc-1000", unit_price=1000.0):
    material = services.create_material(
        db,
        payload=schemas.MaterialCreate(code=code, name="NPC-1000", unit="kg", unit_price=unit_price),
        actor_user_id=None,
    )
    db.commit()
    return material


def test_inventory_status_thresholds():
    assert services.inventory_status(0, 10) == "out_of_stock"
    assert services.inventory_status(-1, 0) == "out_of_stock"
    assert services.inventory_status(5, 10) == "low"
    assert services.inventory_status(10, 10) == "normal"


def test_material_code_is_upper_cased_and_unique(db_session):
    material = _material(db_session, code=" npc-1000 ")
    assert material.code == "NPC-1000"

    with pytest.raises(HTTPException) as exc:
        _material(db_session, code="NPC-1000")
    assert exc.value.status_code == 409


def test_transactions_move_stock_and_refuse_negative(db_session, make_site):
    site = make_site()
    material = _material(db_session)

    services.record_transaction(
        db_session,
        payload=schemas.TransactionCreate(
            site_id=site.id,
            material_id=material.id,
            transaction_type=models.MaterialTransactionType.IN,
            quantity=100,
            unit_price=1200,
        ),
        actor_user_id=None,
    )
    services.record_transaction(
        db_session,
        payload=schemas.TransactionCreate(
            site_id=site.id,
            material_id=material.id,
            transaction_type=models.MaterialTransactionType.OUT,
            quantity=30,
        ),
        actor_user_id=None,
    )
    db_session.commit()

    row = db_session.query(models.MaterialInventory).one()
    assert row.current_stock == 70
    assert row.last_purchase_price == 1200

    with pytest.raises(HTTPException) as exc:
        services.record_transaction(
            db_session,
            payload=schemas.TransactionCreate(
                site_id=site.id,
                material_id=material.id,
                transaction_type=models.MaterialTransactionType.WASTE,
                quantity=71,
            ),
            actor_user_id=None,
        )
    assert exc.value.status_code == 400


def test_bulk_adjustment_records_adjustment_transaction(db_session, make_site, make_user):
    admin = make_user(AccountRole.ADMIN)
    site = make_site()
    material = _material(db_session)

    count = services.update_inventory(
        db_session,
        updates=[
            schemas.InventoryAdjustment(
                site_id=site.id, material_id=material.id, current_stock=5, minimum_stock=10
            )
        ],
        actor_user_id=admin.id,
    )
    db_session.commit()

    assert count == 1
    txn = db_session.query(models.MaterialTransaction).one()
    assert txn.transaction_type == models.MaterialTransactionType.ADJUSTMENT
    assert txn.quantity == 5
    assert txn.notes == "관리자 재고 조정"

    summary = services.get_inventory_summary(db_session)
    assert summary.low_stock_items == 1
    assert summary.out_of_stock_items == 0

    low = services.list_inventory(db_session, status_filter="low")
    assert low["total"] == 1
    assert low["items"][0].material_code == "NPC-1000"
    assert services.list_inventory(db_session, status_filter="normal")["total"] == 0


def test_material_request_requires_assignment_and_notifies_managers(
    db_session, make_site, make_user, assign
):
    from sitedb.apps.notifications import models as notification_models
    from sitedb.apps.sites.models import SiteAssignmentRole

    site = make_site()
    worker = make_user(AccountRole.WORKER)
    manager = make_user(AccountRole.SITE_MANAGER)
    assign(site, manager, SiteAssignmentRole.SITE_MANAGER)
    material = _material(db_session)

    payload = schemas.MaterialRequestCreate(
        site_id=site.id,
        items=[schemas.MaterialRequestItemCreate(material_id=material.id, requested_quantity=10)],
    )
    with pytest.raises(HTTPException) as exc:
        services.create_material_request(db_session, payload=payload, user=worker)
    assert exc.value.status_code == 403

    assign(site, worker)
    request = services.create_material_request(db_session, payload=payload, user=worker)
    db_session.commit()

    assert request.request_number.startswith("MR-")
    assert request.status == models.MaterialRequestStatus.PENDING
    assert request.items[0].total_price == 10000.0

    notes = db_session.query(notification_models.Notification).all()
    assert [n.user_id for n in notes] == [manager.id]
    assert notes[0].type == notification_models.NotificationType.MATERIAL_APPROVAL


def test_material_request_idempotency_replays_existing(db_session, make_site, make_user):
    admin = make_user(AccountRole.ADMIN)
    site = make_site()
    material = _material(db_session)
    payload = schemas.MaterialRequestCreate(
        site_id=site.id,
        items=[schemas.MaterialRequestItemCreate(material_id=material.id, requested_quantity=3)],
        idempotency_key="retry-1",
    )

    first = services.create_material_request(db_session, payload=payload, user=admin)
    db_session.commit()
    second = services.create_material_request(db_session, payload=payload, user=admin)
    db_session.commit()

    assert first.id == second.id
    assert db_session.query(models.MaterialRequest).count() == 1

    changed = payload.model_copy(
        update={"items": [schemas.MaterialRequestItemCreate(material_id=material.id, requested_quantity=4)]}
    )
    with pytest.raises(HTTPException) as exc:
        services.create_material_request(db_session, payload=changed, user=admin)
    assert exc.value.status_code == 409


def test_bulk_approval_only_moves_pending_and_suffixes_comments(db_session, make_site, make_user):
    admin = make_user(AccountRole.ADMIN)
    site = make_site()
    material = _material(db_session)

    def _request():
        return services.create_material_request(
            db_session,
            payload=schemas.MaterialRequestCreate(
                site_id=site.id,
                items=[schemas.MaterialRequestItemCreate(material_id=material.id, requested_quantity=1)],
            ),
            user=admin,
        )

    approved_one, rejected_one = _request(), _request()
    db_session.commit()

    count = services.process_material_request_approvals(
        db_session,
        request_ids=[approved_one.id],
        action="approve",
        comments="긴급",
        actor_user_id=admin.id,
    )
    assert count == 1
    assert approved_one.status == models.MaterialRequestStatus.APPROVED
    assert approved_one.approved_by == admin.id
    assert approved_one.notes == "긴급 (관리자 승인)"

    count = services.process_material_request_approvals(
        db_session,
        request_ids=[approved_one.id, rejected_one.id],
        action="reject",
        comments="재고 충분",
        actor_user_id=admin.id,
    )
    assert count == 1
    assert rejected_one.status == models.MaterialRequestStatus.CANCELLED
    assert rejected_one.approved_by is None
    assert rejected_one.notes == "재고 충분 (관리자 거부)"


def test_request_lifecycle_books_delivered_stock(db_session, make_site, make_user):
    admin = make_user(AccountRole.ADMIN)
    site = make_site()
    material = _material(db_session)
    request = services.create_material_request(
        db_session,
        payload=schemas.MaterialRequestCreate(
            site_id=site.id,
            items=[schemas.MaterialRequestItemCreate(material_id=material.id, requested_quantity=20)],
        ),
        user=admin,
    )

    with pytest.raises(HTTPException) as exc:
        services.process_material_request(
            db_session,
            request_id=request.id,
            payload=schemas.MaterialRequestProcess(action="rejected"),
            actor_user_id=admin.id,
        )
    assert exc.value.status_code == 400

    services.process_material_request(
        db_session,
        request_id=request.id,
        payload=schemas.MaterialRequestProcess(action="approved", approved_quantity=15),
        actor_user_id=admin.id,
    )
    assert request.items[0].approved_quantity == 15

    services.mark_request_ordered(db_session, request_id=request.id, actor_user_id=admin.id)
    services.mark_request_delivered(db_session, request_id=request.id, actor_user_id=admin.id)
    db_session.commit()

    assert request.status == models.MaterialRequestStatus.DELIVERED
    inventory = db_session.query(models.MaterialInventory).one()
    assert inventory.current_stock == 15

    with pytest.raises(HTTPException) as exc:
        services.process_material_request(
            db_session,
            request_id=request.id,
            payload=schemas.MaterialRequestProcess(action="approved"),
            actor_user_id=admin.id,
        )
    assert exc.value.status_code == 409


def test_delivery_quantities_are_checked_per_item(db_session, make_site, make_user):
    admin = make_user(AccountRole.ADMIN)
    site = make_site()
    material = _material(db_session)
    request = services.create_material_request(
        db_session,
        payload=schemas.MaterialRequestCreate(
            site_id=site.id,
            items=[schemas.MaterialRequestItemCreate(material_id=material.id, requested_quantity=20)],
        ),
        user=admin,
    )
    services.process_material_request(
        db_session,
        request_id=request.id,
        payload=schemas.MaterialRequestProcess(action="approved"),
        actor_user_id=admin.id,
    )
    item_id = request.items[0].id

    for bad in ({item_id: -5}, {item_id: "many"}, {"not-an-item": 3}):
        with pytest.raises(HTTPException) as exc:
            services.mark_request_delivered(
                db_session, request_id=request.id, delivered_quantities=bad, actor_user_id=admin.id
            )
        assert exc.value.status_code == 400
    assert request.status == models.MaterialRequestStatus.APPROVED

    with pytest.raises(ValueError):
        schemas.MaterialRequestDelivery(delivered_quantities={item_id: -1})
    payload = schemas.MaterialRequestDelivery(delivered_quantities={item_id: "3"})

    services.mark_request_delivered(
        db_session,
        request_id=request.id,
        delivered_quantities=payload.delivered_quantities,
        actor_user_id=admin.id,
    )
    db_session.commit()

    assert request.items[0].delivered_quantity == 3
    assert db_session.query(models.MaterialInventory).one().current_stock == 3


def test_npc1000_summary_uses_latest_report_per_site(db_session, make_site, make_user):
    author = make_user(AccountRole.SITE_MANAGER)
    north, south = make_site("북부 현장"), make_site("남부 현장")

    def _report(site, day, incoming, used, remaining):
        db_session.add(
            report_models.DailyReport(
                site_id=site.id,
                work_date=day,
                created_by=author.id,
                npc1000_incoming=incoming,
                npc1000_used=used,
                npc1000_remaining=remaining,
            )
        )

    _report(north, date(2024, 3, 1), 999, 999, 999)
    _report(north, date(2024, 3, 2), 100, 40, 60)
    _report(south, date(2024, 3, 2), 100, 85, 15)
    db_session.commit()

    summary = services.get_npc1000_summary(db_session)
    assert summary.site_count == 2
    assert summary.total_incoming == 200
    assert summary.total_used == 125
    assert summary.efficiency == 62.5
    assert summary.low_stock_sites == 1

    by_site = {row.site_name: row for row in services.get_npc1000_by_site(db_session)["items"]}
    assert by_site["북부 현장"].status == "normal"
    assert by_site["남부 현장"].status == "critical"


def test_production_approval_adds_stock_once(db_session, make_site):
    site = make_site()
    material = _material(db_session)
    production = services.create_production(
        db_session,
        payload=schemas.ProductionCreate(
            site_id=site.id,
            material_id=material.id,
            produced_quantity=40,
            production_date=date(2024, 4, 1),
        ),
        actor_user_id=None,
    )
    assert production.production_number.startswith("PR-")

    services.update_production_quality(
        db_session,
        production_id=production.id,
        payload=schemas.ProductionQualityUpdate(quality_status=models.QualityStatus.APPROVED),
        actor_user_id=None,
    )
    services.update_production_quality(
        db_session,
        production_id=production.id,
        payload=schemas.ProductionQualityUpdate(quality_status=models.QualityStatus.APPROVED),
        actor_user_id=None,
    )
    db_session.commit()

    assert db_session.query(models.MaterialInventory).one().current_stock == 40


@pytest.mark.parametrize(
    "raw, expected",
    [("택배", "courier"), ("Courier", "courier"), ("화물", "freight"), ("cargo", "freight"),
     ("퀵서비스", "퀵서비스"), ("", "other"), (None, "other")],
)
def test_normalize_carrier(raw, expected):
    assert services.normalize_carrier(raw) == expected


def test_shipment_transitions_and_analytics(db_session, make_site):
    site = make_site()
    material = _material(db_session, unit_price=500.0)
    services.update_inventory(
        db_session,
        updates=[schemas.InventoryAdjustment(site_id=site.id, material_id=material.id, current_stock=50)],
        actor_user_id=None,
    )
    shipment = services.create_shipment(
        db_session,
        payload=schemas.ShipmentCreate(
            site_id=site.id,
            items=[schemas.ShipmentItemCreate(material_id=material.id, quantity=10)],
            carrier="택배",
        ),
        actor_user_id=None,
    )
    assert shipment.shipment_number.startswith("SH")
    assert shipment.carrier == "courier"
    assert shipment.items[0].total_price == 5000.0

    with pytest.raises(HTTPException) as exc:
        services.update_shipment_status(
            db_session,
            shipment_id=shipment.id,
            payload=schemas.ShipmentStatusUpdate(status=models.ShipmentStatus.DELIVERED),
            actor_user_id=None,
        )
    assert exc.value.status_code == 409

    services.update_shipment_status(
        db_session,
        shipment_id=shipment.id,
        payload=schemas.ShipmentStatusUpdate(status=models.ShipmentStatus.SHIPPED, tracking_number="T-1"),
        actor_user_id=None,
    )
    db_session.commit()
    assert shipment.shipment_date is not None
    assert db_session.query(models.MaterialInventory).one().current_stock == 40

    analytics = services.get_shipment_analytics(db_session)
    assert analytics.total_shipments == 1
    assert analytics.by_status == {"shipped": 1}
    assert analytics.by_carrier == {"courier": 1}
    assert analytics.total_shipped_value == 5000.0


def test_inventory_export_records_data_export(db_session, make_site, make_user):
    admin = make_user(AccountRole.ADMIN)
    site = make_site()
    material = _material(db_session)
    services.update_inventory(
        db_session,
        updates=[schemas.InventoryAdjustment(site_id=site.id, material_id=material.id, current_stock=3)],
        actor_user_id=admin.id,
    )

    data = services.export_inventory_csv(db_session, user=admin, ip_address="10.0.0.5")
    db_session.commit()

    text = data.decode("utf-8-sig")
    assert text.splitlines()[0].startswith("site,material_code")
    assert "NPC-1000" in text

    export = db_session.query(security_models.DataExport).one()
    assert export.file_size_bytes == len(data)
    assert (
        db_session.query(audit_models.ActivityLog)
        .filter(audit_models.ActivityLog.action == "EXPORT")
        .count()
        == 1
    )

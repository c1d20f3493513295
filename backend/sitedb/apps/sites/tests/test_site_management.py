from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts.models import AccountRole, Organization
from sitedb.apps.sites import models, router, schemas, services


def _create(db_session, **overrides):
    data = {
        "name": "강남 오피스텔 신축",
        "address": "서울특별시 강남구 역삼동 123",
        "start_date": date(2024, 3, 1),
    }
    data.update(overrides)
    site = services.create_site(db_session, payload=schemas.SiteCreate(**data))
    db_session.commit()
    return site


def test_end_date_cannot_precede_start_date(db_session):
    with pytest.raises(HTTPException) as exc:
        _create(db_session, end_date=date(2024, 2, 1))
    assert exc.value.status_code == 400

    site = _create(db_session, end_date=date(2024, 12, 31))
    with pytest.raises(HTTPException):
        services.update_site(
            db_session,
            site_id=site.id,
            payload=schemas.SiteUpdate(start_date=date(2025, 1, 1)),
        )


def test_list_sites_search_pagination_and_soft_delete(db_session):
    for n in range(3):
        _create(db_session, name=f"송도 물류센터 {n}", address="인천광역시 연수구")
    hidden = _create(db_session, name="송도 철거 현장", address="인천광역시 연수구")
    _create(db_session, name="해운대 리조트", address="부산광역시 해운대구")

    services.delete_sites(db_session, site_ids=[hidden.id])
    db_session.commit()

    page = services.list_sites(db_session, page=1, limit=2, search="인천")
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["items"]) == 2

    assert services.restore_sites(db_session, site_ids=[hidden.id]) == 1
    db_session.commit()
    assert services.list_sites(db_session, search="송도")["total"] == 4


def test_restricted_users_only_see_their_organization(db_session, make_user):
    org = Organization(name="협력사")
    db_session.add(org)
    db_session.commit()
    own = _create(db_session, name="협력사 현장", organization_id=org.id)
    _create(db_session, name="타사 현장")

    partner = make_user(AccountRole.CUSTOMER_MANAGER, organization_id=org.id)
    result = services.list_sites(db_session, user=partner)
    assert [s.id for s in result["items"]] == [own.id]

    admin = make_user(AccountRole.ADMIN)
    assert services.list_sites(db_session, user=admin)["total"] == 2


def test_bulk_status_update_skips_deleted_sites(db_session):
    a = _create(db_session)
    b = _create(db_session, name="두번째 현장")
    services.delete_sites(db_session, site_ids=[b.id])

    updated = services.update_site_status(
        db_session, site_ids=[a.id, b.id], status_value=models.SiteStatus.COMPLETED
    )
    assert updated == 1
    assert a.status == models.SiteStatus.COMPLETED


def test_assignment_lifecycle_reuses_existing_row(db_session, make_user):
    site = _create(db_session)
    worker = make_user(full_name="김철수")

    first = services.assign_user_to_site(db_session, site_id=site.id, user_id=worker.id)
    db_session.commit()
    assert services.user_site_ids(db_session, worker) == [site.id]

    removed = services.remove_user_from_site(db_session, site_id=site.id, user_id=worker.id)
    db_session.commit()
    assert removed.is_active is False
    assert removed.unassigned_date == date.today()
    assert services.user_site_ids(db_session, worker) == []

    again = services.assign_user_to_site(
        db_session, site_id=site.id, user_id=worker.id, role=models.SiteAssignmentRole.SUPERVISOR
    )
    db_session.commit()
    assert again.id == first.id
    assert again.is_active is True
    assert again.unassigned_date is None
    assert db_session.query(models.SiteAssignment).count() == 1

    services.update_site_assignment_role(
        db_session, site_id=site.id, user_id=worker.id, role=models.SiteAssignmentRole.SITE_MANAGER
    )
    assert services.get_site_manager_ids(db_session, site.id) == [worker.id]


def test_available_users_excludes_active_assignees(db_session, make_user):
    site = _create(db_session)
    assigned = make_user(full_name="배정됨")
    free = make_user(full_name="미배정")
    make_user(full_name="비활성", is_active=False)
    services.assign_user_to_site(db_session, site_id=site.id, user_id=assigned.id)
    db_session.commit()

    available = services.search_available_users(db_session, site_id=site.id)
    assert [u.id for u in available] == [free.id]


def test_purge_refuses_while_assignments_are_active(db_session, make_user):
    site = _create(db_session)
    worker = make_user()
    services.assign_user_to_site(db_session, site_id=site.id, user_id=worker.id)
    db_session.commit()

    with pytest.raises(HTTPException) as exc:
        services.purge_sites(db_session, site_ids=[site.id])
    assert exc.value.status_code == 409

    services.remove_user_from_site(db_session, site_id=site.id, user_id=worker.id)
    assert services.purge_sites(db_session, site_ids=[site.id]) == 1
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        services.get_site(db_session, site.id, include_deleted=True)
    assert exc.value.status_code == 404


def test_site_access_rules(db_session, make_user):
    site = _create(db_session)
    outsider = make_user()
    member = make_user()
    services.assign_user_to_site(db_session, site_id=site.id, user_id=member.id)
    db_session.commit()

    services.ensure_site_access(db_session, member, site)
    services.ensure_site_access(db_session, make_user(AccountRole.SYSTEM_ADMIN), site)
    with pytest.raises(HTTPException) as exc:
        services.ensure_site_access(db_session, outsider, site)
    assert exc.value.status_code == 403


def test_site_routes_are_registered():
    paths = {route.path for route in router.router.routes}
    assert "/sites/{site_id}/assignments" in paths
    assert "/sites/purge" in paths

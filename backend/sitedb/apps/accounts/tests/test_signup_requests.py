from __future__ import annotations

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts import models, router_admin, router_public, schemas, services
from sitedb.apps.notifications import models as notification_models
from sitedb.apps.sites.models import SiteAssignment
from sitedb.security import verify_password


def _request(db_session, email="newcrew@example.com", **overrides):
    data = {
        "full_name": "최민수",
        "company": "대한건설",
        "job_title": "철근공",
        "phone": "01012345678",
        "email": email,
    }
    data.update(overrides)
    signup = services.request_signup_approval(db_session, schemas.SignupRequestCreate(**data))
    db_session.commit()
    return signup


@pytest.fixture()
def company(db_session):
    org = models.Organization(name="대한건설")
    db_session.add(org)
    db_session.commit()
    return org


def test_signup_request_is_unique_per_email(db_session, make_user):
    signup = _request(db_session, email="NewCrew@Example.com")
    assert signup.email == "newcrew@example.com"
    assert signup.phone == "010-1234-5678"
    assert signup.status == models.SignupRequestStatus.PENDING

    with pytest.raises(HTTPException) as exc:
        _request(db_session, email="newcrew@example.com")
    assert exc.value.status_code == 409

    make_user(email="taken@example.com")
    with pytest.raises(HTTPException) as exc:
        _request(db_session, email="taken@example.com")
    assert exc.value.status_code == 409


def test_approval_creates_worker_with_sites(db_session, make_user, make_site, company):
    admin = make_user(models.AccountRole.ADMIN)
    site = make_site()
    signup = _request(db_session)

    for approval in (
        schemas.SignupApproval(site_ids=[site.id]),
        schemas.SignupApproval(organization_id=company.id),
    ):
        with pytest.raises(HTTPException) as exc:
            services.approve_signup_request(db_session, request_id=signup.id, data=approval, actor_user_id=admin.id)
        assert exc.value.status_code == 400

    signup, user, temporary = services.approve_signup_request(
        db_session,
        request_id=signup.id,
        data=schemas.SignupApproval(organization_id=company.id, site_ids=[site.id, site.id]),
        actor_user_id=admin.id,
    )
    db_session.commit()

    assert signup.status == models.SignupRequestStatus.APPROVED
    assert (signup.approved_by, signup.created_user_id) == (admin.id, user.id)
    assert user.role == models.AccountRole.WORKER
    assert user.organization_id == company.id
    assert user.must_change_password
    assert verify_password(temporary, user.hashed_password)
    assignments = db_session.query(SiteAssignment).filter(SiteAssignment.user_id == user.id).all()
    assert [a.site_id for a in assignments] == [site.id]

    with pytest.raises(HTTPException) as exc:
        services.approve_signup_request(
            db_session, request_id=signup.id, data=schemas.SignupApproval(), actor_user_id=admin.id
        )
    assert exc.value.status_code == 409


def test_office_staff_become_customer_managers(db_session, make_user):
    admin = make_user(models.AccountRole.ADMIN)
    signup = _request(db_session, job_type=models.SignupJobType.OFFICE)

    _, user, _ = services.approve_signup_request(
        db_session, request_id=signup.id, data=schemas.SignupApproval(), actor_user_id=admin.id
    )
    db_session.commit()
    assert user.role == models.AccountRole.CUSTOMER_MANAGER


def test_rejection_and_override(db_session, make_user, make_site, company):
    admin = make_user(models.AccountRole.ADMIN)
    site = make_site()
    signup = _request(db_session)

    services.reject_signup_request(db_session, request_id=signup.id, reason="서류 미비", actor_user_id=admin.id)
    db_session.commit()
    assert signup.status == models.SignupRequestStatus.REJECTED
    assert signup.rejection_reason == "서류 미비"

    with pytest.raises(HTTPException) as exc:
        services.reject_signup_request(db_session, request_id=signup.id, actor_user_id=admin.id)
    assert exc.value.status_code == 409

    approval = schemas.SignupApproval(organization_id=company.id, site_ids=[site.id])
    with pytest.raises(HTTPException) as exc:
        services.approve_signup_request(db_session, request_id=signup.id, data=approval, actor_user_id=admin.id)
    assert exc.value.status_code == 409

    approval.allow_override = True
    signup, _, _ = services.approve_signup_request(
        db_session, request_id=signup.id, data=approval, actor_user_id=admin.id
    )
    db_session.commit()
    assert signup.status == models.SignupRequestStatus.APPROVED
    assert (signup.rejected_by, signup.rejected_at, signup.rejection_reason) == (None, None, None)

    pending = services.list_signup_requests(db_session, status_filter=models.SignupRequestStatus.PENDING)
    assert pending == []


def test_approve_route_sends_welcome_mail(db_session, make_user):
    admin = make_user(models.AccountRole.ADMIN)
    signup = _request(db_session, job_type=models.SignupJobType.OFFICE)

    result = router_admin.approve_signup_request(
        signup.id, schemas.SignupApproval(), db=db_session, current_user=admin
    )

    assert result.request.status == models.SignupRequestStatus.APPROVED
    assert result.temporary_password
    logs = db_session.query(notification_models.EmailLog).all()
    assert [(log.recipient, log.template_key) for log in logs] == [("newcrew@example.com", "welcome")]


def test_signup_routes_are_registered():
    assert "/auth/signup-requests" in {route.path for route in router_public.router.routes}
    admin_paths = {route.path for route in router_admin.router.routes}
    assert "/accounts/admin/signup-requests/{request_id}/approve" in admin_paths
    assert "/accounts/admin/signup-requests/{request_id}/reject" in admin_paths

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("EMAIL_PROVIDER", "none")
os.environ.setdefault("ERROR_TRACKER", "none")

from sitedb.database import Base  # noqa: E402
from sitedb.apps.accounts import models as account_models  # noqa: E402
from sitedb.apps.attendance import models as attendance_models  # noqa: E402
from sitedb.apps.audit import models as audit_models  # noqa: E402
from sitedb.apps.daily_reports import models as report_models  # noqa: E402
from sitedb.apps.documents import models as document_models  # noqa: E402
from sitedb.apps.materials import models as material_models  # noqa: E402
from sitedb.apps.notifications import models as notification_models  # noqa: E402
from sitedb.apps.salary import models as salary_models  # noqa: E402
from sitedb.apps.security import models as security_models  # noqa: E402
from sitedb.apps.sites import models as site_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def make_user(db_session):
    counter = {"n": 0}

    def _make(
        role: account_models.AccountRole = account_models.AccountRole.WORKER,
        *,
        full_name: str | None = None,
        email: str | None = None,
        organization_id: str | None = None,
        is_active: bool = True,
    ) -> account_models.User:
        counter["n"] += 1
        n = counter["n"]
        user = account_models.User(
            email=email or f"user{n}@example.com",
            full_name=full_name or f"User {n}",
            role=role,
            hashed_password="hash",
            organization_id=organization_id,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_site(db_session):
    counter = {"n": 0}

    def _make(name: str | None = None, *, organization_id: str | None = None) -> site_models.Site:
        counter["n"] += 1
        site = site_models.Site(
            name=name or f"현장 {counter['n']}",
            address="서울특별시 강남구 테헤란로 1",
            start_date=date(2024, 1, 1),
            organization_id=organization_id,
        )
        db_session.add(site)
        db_session.commit()
        db_session.refresh(site)
        return site

    return _make


@pytest.fixture()
def assign(db_session):
    def _assign(
        site: site_models.Site,
        user: account_models.User,
        role: site_models.SiteAssignmentRole = site_models.SiteAssignmentRole.WORKER,
    ) -> site_models.SiteAssignment:
        row = site_models.SiteAssignment(
            site_id=site.id,
            user_id=user.id,
            role=role,
            assigned_date=date(2024, 1, 1),
            is_active=True,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _assign

# backend/sitedb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in sitedb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models            # organisations / users / idempotency
from .apps.sites import models as sites_models                  # sites + assignments
from .apps.materials import models as materials_models          # materials, stock, requests, shipments
from .apps.daily_reports import models as daily_reports_models  # daily reports + workers + photos
from .apps.attendance import models as attendance_models            # check-in/check-out records
from .apps.salary import models as salary_models                # pay settings, rules, records
from .apps.documents import models as documents_models          # document library + markup
from .apps.notifications import models as notifications_models  # in-app notifications + email log
from .apps.audit import models as audit_models                  # activity log
from .apps.security import models as security_models            # exports + IP blocks

__all__ = [
    "accounts_models",
    "sites_models",
    "materials_models",
    "daily_reports_models",
    "attendance_models",
    "salary_models",
    "documents_models",
    "notifications_models",
    "audit_models",
    "security_models",
]

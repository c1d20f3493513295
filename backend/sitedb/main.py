# backend/sitedb/main.py
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.accounts.router_public import router as accounts_public_router
from .apps.accounts.router_admin import router as accounts_admin_router
from .apps.attendance.router import router as attendance_router
from .apps.audit.router import router as audit_router
from .apps.daily_reports.router import router as daily_reports_router
from .apps.dashboard.router import router as dashboard_router
from .apps.documents.router import router as documents_router
from .apps.materials.router import router as materials_router
from .apps.notifications.router import router as notifications_router
from .apps.salary.router import router as salary_router
from .apps.security.router import router as security_router
from .apps.sites.router import router as sites_router
from .apps.validation.router import router as validation_router


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://localhost:5173",
    ]


app = FastAPI(title="SiteDB API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "SiteDB backend is running"}

@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}

app.include_router(accounts_public_router)
app.include_router(accounts_admin_router)
app.include_router(sites_router)
app.include_router(materials_router)
app.include_router(daily_reports_router)
app.include_router(attendance_router)
app.include_router(salary_router)
app.include_router(documents_router)
app.include_router(notifications_router)
app.include_router(audit_router)
app.include_router(security_router)
app.include_router(validation_router)
app.include_router(dashboard_router)

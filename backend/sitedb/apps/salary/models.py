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
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmploymentType(str, enum.Enum):
    REGULAR_EMPLOYEE = "regular_employee"
    FREELANCER = "freelancer"
    DAILY_WORKER = "daily_worker"


class TaxCalculationMethod(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class SalaryRuleType(str, enum.Enum):
    HOURLY_RATE = "hourly_rate"
    DAILY_RATE = "daily_rate"
    OVERTIME_MULTIPLIER = "overtime_multiplier"
    BONUS_CALCULATION = "bonus_calculation"


class SalaryRecordStatus(str, enum.Enum):
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


class TaxRate(Base):
    __tablename__ = "tax_rates"
    __table_args__ = (
        UniqueConstraint("employment_type", "tax_name", name="uq_tax_rates_type_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    employment_type = Column(
        SAEnum(EmploymentType, name="employment_type_enum", native_enum=False),
        nullable=False,
    )
    tax_name = Column(String(64), nullable=False)
    rate = Column(Float, nullable=False)
    calculation_method = Column(
        SAEnum(TaxCalculationMethod, name="tax_calculation_method_enum", native_enum=False),
        nullable=False,
        default=TaxCalculationMethod.PERCENTAGE,
    )
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class WorkerSalarySetting(Base):
    """Per-worker pay basis. Only one row per worker is active at a time."""

    __tablename__ = "worker_salary_settings"
    __table_args__ = (
        Index("ix_worker_salary_settings_worker_active", "worker_id", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    worker_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    employment_type = Column(
        SAEnum(EmploymentType, name="employment_type_enum", native_enum=False),
        nullable=False,
        default=EmploymentType.DAILY_WORKER,
    )
    daily_rate = Column(Float, nullable=False)
    custom_tax_rates = Column(JSON, nullable=True)
    bank_account_info = Column(JSON, nullable=True)
    effective_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    worker = relationship("User", foreign_keys=[worker_id], lazy="joined")


class SalaryRule(Base):
    __tablename__ = "salary_rules"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    rule_name = Column(String(128), nullable=False)
    rule_type = Column(
        SAEnum(SalaryRuleType, name="salary_rule_type_enum", native_enum=False),
        nullable=False,
    )
    base_amount = Column(Float, nullable=False, default=0.0)
    multiplier = Column(Float, nullable=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=True)
    role = Column(String(32), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class SalaryRecord(Base):
    """
    One pay line per worker and day. Hours are clock hours; labor_hours is
    the 공수 value they came from.
    """

    __tablename__ = "salary_records"
    __table_args__ = (
        Index("ix_salary_records_worker_date", "worker_id", "work_date"),
        Index("ix_salary_records_site_date", "site_id", "work_date"),
        Index("ix_salary_records_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    worker_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    work_date = Column(Date, nullable=False)
    employment_type = Column(
        SAEnum(EmploymentType, name="employment_type_enum", native_enum=False),
        nullable=True,
    )

    labor_hours = Column(Float, nullable=False, default=0.0)
    regular_hours = Column(Float, nullable=False, default=0.0)
    overtime_hours = Column(Float, nullable=False, default=0.0)

    base_pay = Column(Float, nullable=False, default=0.0)
    overtime_pay = Column(Float, nullable=False, default=0.0)
    bonus_pay = Column(Float, nullable=False, default=0.0)
    deductions = Column(Float, nullable=False, default=0.0)

    income_tax = Column(Float, nullable=True)
    resident_tax = Column(Float, nullable=True)
    national_pension = Column(Float, nullable=True)
    health_insurance = Column(Float, nullable=True)
    employment_insurance = Column(Float, nullable=True)
    long_term_care = Column(Float, nullable=True)
    tax_amount = Column(Float, nullable=False, default=0.0)
    tax_details = Column(JSON, nullable=True)

    total_pay = Column(Float, nullable=False, default=0.0)
    status = Column(
        SAEnum(SalaryRecordStatus, name="salary_record_status_enum", native_enum=False),
        nullable=False,
        default=SalaryRecordStatus.CALCULATED,
    )
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    worker = relationship("User", foreign_keys=[worker_id], lazy="joined")
    site = relationship("Site", lazy="joined")

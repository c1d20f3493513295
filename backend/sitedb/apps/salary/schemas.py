from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import EmploymentType, SalaryRecordStatus, SalaryRuleType, TaxCalculationMethod


class TaxRateRead(BaseModel):
    id: str
    employment_type: EmploymentType
    tax_name: str
    rate: float
    calculation_method: TaxCalculationMethod
    description: Optional[str] = None
    is_active: bool
    updated_at: datetime

    class Config:
        from_attributes = True


class TaxRateUpdate(BaseModel):
    employment_type: EmploymentType
    tax_name: str = Field(..., min_length=1, max_length=64)
    rate: float = Field(..., ge=0, le=100)
    calculation_method: TaxCalculationMethod = TaxCalculationMethod.PERCENTAGE
    description: Optional[str] = None
    is_active: bool = True


class WorkerSalarySettingCreate(BaseModel):
    worker_id: str
    employment_type: EmploymentType = EmploymentType.DAILY_WORKER
    daily_rate: float = Field(..., gt=0)
    custom_tax_rates: Optional[Dict[str, float]] = None
    bank_account_info: Optional[Dict[str, Any]] = None
    effective_date: date


class WorkerSalarySettingRead(BaseModel):
    id: str
    worker_id: str
    worker_name: Optional[str] = None
    employment_type: EmploymentType
    daily_rate: float
    custom_tax_rates: Optional[Dict[str, float]] = None
    bank_account_info: Optional[Dict[str, Any]] = None
    effective_date: date
    is_active: bool

    class Config:
        from_attributes = True


class SalaryRuleUpsert(BaseModel):
    id: Optional[str] = None
    rule_name: str = Field(..., min_length=1, max_length=128)
    rule_type: SalaryRuleType
    base_amount: float = Field(0.0, ge=0)
    multiplier: Optional[float] = Field(None, gt=0)
    site_id: Optional[str] = None
    role: Optional[str] = None
    is_active: bool = True


class SalaryRuleRead(BaseModel):
    id: str
    rule_name: str
    rule_type: SalaryRuleType
    base_amount: float
    multiplier: Optional[float] = None
    site_id: Optional[str] = None
    role: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class IdList(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class PersonalSalaryRequest(BaseModel):
    worker_id: str
    work_date: date
    labor_hours: float
    additional_deductions: float = Field(0.0, ge=0)


class DeductionBreakdown(BaseModel):
    income_tax: int
    resident_tax: int
    national_pension: int
    health_insurance: int
    employment_insurance: int
    long_term_care: int
    other_deductions: int


class PersonalSalaryCalculation(BaseModel):
    worker_id: str
    work_date: date
    employment_type: EmploymentType
    daily_rate: float
    labor_hours: float
    gross_pay: int
    base_pay: int
    deductions: DeductionBreakdown
    total_tax: int
    net_pay: int
    tax_details: Dict[str, Any]


class PersonalSalarySave(BaseModel):
    calculation: PersonalSalaryCalculation
    site_id: Optional[str] = None
    notes: Optional[str] = None


class SalaryRecordRead(BaseModel):
    id: str
    worker_id: str
    site_id: Optional[str] = None
    work_date: date
    employment_type: Optional[EmploymentType] = None
    labor_hours: float
    regular_hours: float
    overtime_hours: float
    base_pay: float
    overtime_pay: float
    bonus_pay: float
    deductions: float
    income_tax: Optional[float] = None
    resident_tax: Optional[float] = None
    national_pension: Optional[float] = None
    health_insurance: Optional[float] = None
    employment_insurance: Optional[float] = None
    long_term_care: Optional[float] = None
    tax_amount: float
    total_pay: float
    status: SalaryRecordStatus
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SalaryRecordListResponse(BaseModel):
    items: List[SalaryRecordRead]
    total: int
    pages: int


class MonthlySalarySummary(BaseModel):
    worker_id: str
    year: int
    month: int
    total_records: int
    total_labor_hours: float
    total_gross_pay: float
    total_tax: float
    total_net_pay: float
    employment_type: EmploymentType
    records: List[SalaryRecordRead]


class SalaryCalculationRequest(BaseModel):
    site_id: Optional[str] = None
    worker_id: Optional[str] = None
    date_from: date
    date_to: date


class SalaryCalculationResult(BaseModel):
    created: int


class SalaryBulkResult(BaseModel):
    updated: int


class SalaryStats(BaseModel):
    total_workers: int
    total_records: int
    pending_calculations: int
    approved_payments: int
    paid_records: int
    total_payroll: float
    average_daily_pay: float
    average_pay_per_worker: float
    overtime_percentage: float

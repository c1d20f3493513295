"""
Field and business-rule validators shared across apps.

Every validator returns a plain dict with at least `is_valid`; failures carry
an `error` message. Callers that need an HTTP error wrap the result with
`require_valid`.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import HTTPException, status

KST = timezone(timedelta(hours=9))

KOREAN_HOLIDAYS_2024 = {
    "2024-01-01": "신정",
    "2024-02-09": "설날 연휴",
    "2024-02-10": "설날",
    "2024-02-11": "설날 연휴",
    "2024-03-01": "삼일절",
    "2024-05-05": "어린이날",
    "2024-05-15": "부처님오신날",
    "2024-06-06": "현충일",
    "2024-08-15": "광복절",
    "2024-09-16": "추석 연휴",
    "2024-09-17": "추석",
    "2024-09-18": "추석 연휴",
    "2024-10-03": "개천절",
    "2024-10-09": "한글날",
    "2024-12-25": "크리스마스",
}

MOBILE_PATTERN = re.compile(r"^01[016789]\d{7,8}$")

CARRIERS = {
    "010": "SKT/KT/LGU+",
    "011": "SKT",
    "016": "KT",
    "017": "SKT",
    "018": "KT",
    "019": "LGU+",
}

BUSINESS_NUMBER_WEIGHTS = (1, 3, 7, 1, 3, 7, 1, 3, 5)

LABOR_HOURS_STEP = Decimal("0.25")
MAX_LABOR_HOURS = Decimal("2.0")
HOURS_PER_LABOR_UNIT = 8

LABOR_HOURS_DESCRIPTIONS = {
    Decimal("0.25"): "2시간 근무",
    Decimal("0.5"): "반일 근무 (4시간)",
    Decimal("0.75"): "6시간 근무",
    Decimal("1.0"): "정규 근무 (8시간)",
    Decimal("1.25"): "정규 + 연장 2시간 (10시간)",
    Decimal("1.5"): "연장 근무 포함 (12시간)",
    Decimal("1.75"): "정규 + 연장 6시간 (14시간)",
    Decimal("2.0"): "16시간 근무",
}

KOREAN_REGIONS = (
    "서울특별시",
    "부산광역시",
    "대구광역시",
    "인천광역시",
    "광주광역시",
    "대전광역시",
    "울산광역시",
    "세종특별자치시",
    "경기도",
    "강원도",
    "충청북도",
    "충청남도",
    "전라북도",
    "전라남도",
    "경상북도",
    "경상남도",
    "제주특별자치도",
)

KOREA_LATITUDE = (33.0, 38.6)
KOREA_LONGITUDE = (124.5, 131.9)

MAX_DOCUMENT_BYTES = 100 * 1024 * 1024

ALLOWED_DOCUMENT_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/zip",
)

KOREAN_TEXT = re.compile(r"[ㄱ-힝]")

PERMISSION_MATRIX: Dict[str, Dict[str, List[str]]] = {
    "worker": {
        "daily_report": ["create", "read", "update"],
        "attendance": ["create", "read"],
        "document": ["read", "upload"],
    },
    "site_manager": {
        "daily_report": ["create", "read", "update", "approve"],
        "attendance": ["create", "read", "update", "approve"],
        "document": ["create", "read", "update", "delete"],
        "worker": ["read", "assign"],
        "site": ["read", "update"],
    },
    "customer_manager": {
        "daily_report": ["read"],
        "document": ["read"],
        "site": ["read"],
    },
    "admin": {
        "daily_report": ["create", "read", "update", "delete", "approve"],
        "attendance": ["create", "read", "update", "delete", "approve"],
        "document": ["create", "read", "update", "delete"],
        "worker": ["create", "read", "update", "delete"],
        "site": ["create", "read", "update", "delete"],
        "user": ["create", "read", "update", "delete"],
    },
}


def require_valid(result: Mapping[str, Any], *, status_code: int = status.HTTP_400_BAD_REQUEST) -> Mapping[str, Any]:
    if not result.get("is_valid"):
        raise HTTPException(status_code=status_code, detail=result.get("error") or "Validation failed.")
    return result


# ---------------------------------------------------------------------------
# Contact / registration numbers
# ---------------------------------------------------------------------------


def validate_korean_phone_number(phone_number: str) -> dict:
    cleaned = re.sub(r"\D", "", phone_number or "")

    if not MOBILE_PATTERN.match(cleaned):
        return {"is_valid": False, "error": "Invalid Korean mobile phone number format"}

    if "0000" in cleaned:
        return {"is_valid": False, "error": "Invalid phone number pattern"}

    if len(cleaned) == 10:
        formatted = f"{cleaned[:3]}-{cleaned[3:6]}-{cleaned[6:]}"
    else:
        formatted = f"{cleaned[:3]}-{cleaned[3:7]}-{cleaned[7:]}"

    return {
        "is_valid": True,
        "formatted": formatted,
        "carrier": CARRIERS.get(cleaned[:3], "Unknown"),
    }


def validate_business_registration_number(number: str, check_checksum: bool = False) -> dict:
    cleaned = (number or "").replace("-", "").strip()
    if not re.fullmatch(r"\d{10}", cleaned):
        return {"is_valid": False, "error": "Business registration number must be 10 digits"}

    formatted = f"{cleaned[:3]}-{cleaned[3:5]}-{cleaned[5:]}"
    if not check_checksum:
        return {"is_valid": True, "formatted": formatted}

    digits = [int(ch) for ch in cleaned]
    total = sum(d * w for d, w in zip(digits[:9], BUSINESS_NUMBER_WEIGHTS))
    total += (digits[8] * 5) // 10
    check_digit = (10 - (total % 10)) % 10
    is_valid = check_digit == digits[9]

    result = {"is_valid": is_valid, "formatted": formatted, "checksum_valid": is_valid}
    if not is_valid:
        result["error"] = "Invalid checksum"
    return result


# ---------------------------------------------------------------------------
# Dates / work time
# ---------------------------------------------------------------------------


def validate_datetime_kst(value: str) -> dict:
    """
    Parse an ISO datetime and describe it in Korea Standard Time.

    Naive values are taken as UTC.
    """
    raw = (value or "").strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return {"is_valid": False, "error": "Invalid date format"}

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    kst_time = parsed.astimezone(KST)
    date_key = kst_time.date().isoformat()
    holiday_name = KOREAN_HOLIDAYS_2024.get(date_key)
    is_weekend = kst_time.weekday() >= 5
    is_holiday = holiday_name is not None

    return {
        "is_valid": True,
        "kst_datetime": kst_time.isoformat(timespec="milliseconds"),
        "utc_datetime": parsed.astimezone(timezone.utc).isoformat(timespec="milliseconds"),
        "is_working_hour": 8 <= kst_time.hour < 18,
        "is_holiday": is_holiday,
        "holiday_name": holiday_name,
        "is_weekend": is_weekend,
        "is_workday": not is_weekend and not is_holiday,
    }


def _as_decimal(value: Any) -> Optional[Decimal]:
    """Parse to Decimal; NaN and infinities count as unparseable."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return amount if amount.is_finite() else None


def validate_labor_hours(labor_hours: Any) -> dict:
    """
    Validate a 공수 (labor unit) value. 1.0 equals one 8 hour day.
    """
    amount = _as_decimal(labor_hours)
    if amount is None or amount <= 0:
        return {"is_valid": False, "error": "Labor hours must be positive"}

    if amount % LABOR_HOURS_STEP != 0:
        return {"is_valid": False, "error": "Labor hours must be in increments of 0.25 (2 hours)"}

    if amount > MAX_LABOR_HOURS:
        return {"is_valid": False, "error": "Labor hours cannot exceed 2.0 (16 hours) per day"}

    hours = float(amount * HOURS_PER_LABOR_UNIT)
    has_overtime = amount > Decimal("1.0")
    overtime_hours = float((amount - Decimal("1.0")) * HOURS_PER_LABOR_UNIT) if has_overtime else 0.0
    hours_label = int(hours) if hours.is_integer() else hours

    return {
        "is_valid": True,
        "labor_hours": float(amount),
        "hours": hours,
        "has_overtime": has_overtime,
        "overtime_hours": overtime_hours,
        "description": LABOR_HOURS_DESCRIPTIONS.get(amount, f"{hours_label}시간 근무"),
    }


def _clock_value(value: str) -> int:
    return int(value.replace(":", ""))


def validate_worker_schedule(schedule: Mapping[str, str], existing_schedules: Iterable[Mapping[str, str]]) -> dict:
    """
    A worker cannot be booked at two different sites with overlapping hours
    on the same date. Overlaps at the same site are allowed.
    """
    new_start = _clock_value(schedule["start_time"])
    new_end = _clock_value(schedule["end_time"])

    for existing in existing_schedules:
        if existing["worker_id"] != schedule["worker_id"]:
            continue
        if existing["date"] != schedule["date"]:
            continue
        if existing["site_id"] == schedule["site_id"]:
            continue
        if new_start < _clock_value(existing["end_time"]) and new_end > _clock_value(existing["start_time"]):
            return {
                "is_valid": False,
                "error": "Worker cannot be at multiple sites simultaneously",
                "conflict": dict(existing),
            }

    return {"is_valid": True}


# ---------------------------------------------------------------------------
# Sites / documents
# ---------------------------------------------------------------------------


def validate_site_location(
    address: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> dict:
    region = next((r for r in KOREAN_REGIONS if r in (address or "")), None)
    if region is None:
        return {"is_valid": False, "error": "Address must include a valid Korean region"}

    is_in_korea = True
    if latitude is not None and longitude is not None:
        is_in_korea = (
            KOREA_LATITUDE[0] <= latitude <= KOREA_LATITUDE[1]
            and KOREA_LONGITUDE[0] <= longitude <= KOREA_LONGITUDE[1]
        )

    result = {
        "is_valid": is_in_korea,
        "is_in_korea": is_in_korea,
        "region": region,
        "coordinates": {"latitude": latitude, "longitude": longitude},
    }
    if not is_in_korea:
        result["error"] = "Coordinates are outside Korea"
    return result


def validate_document_metadata(
    *,
    title: str,
    file_type: str,
    file_size: int,
    description: Optional[str] = None,
) -> dict:
    has_korean_text = bool(KOREAN_TEXT.search(title or "")) or bool(
        description and KOREAN_TEXT.search(description)
    )

    if file_size > MAX_DOCUMENT_BYTES:
        return {
            "is_valid": False,
            "error": "File size exceeds 100MB limit",
            "max_size_mb": MAX_DOCUMENT_BYTES // (1024 * 1024),
        }

    if file_type not in ALLOWED_DOCUMENT_TYPES:
        return {
            "is_valid": False,
            "error": "File type not allowed",
            "file_type_allowed": False,
            "allowed_types": list(ALLOWED_DOCUMENT_TYPES),
        }

    return {
        "is_valid": True,
        "has_korean_text": has_korean_text,
        "file_type_allowed": True,
        "file_size_mb": file_size / (1024 * 1024),
    }


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


def validate_user_permissions(
    *,
    role: str,
    resource: str,
    action: str,
    assigned_sites: Optional[Iterable[str]] = None,
    site_id: Optional[str] = None,
) -> dict:
    if role == "system_admin":
        return {"is_valid": True, "has_permission": True}

    role_permissions = PERMISSION_MATRIX.get(role)
    if role_permissions is None:
        return {"is_valid": False, "has_permission": False, "reason": "Invalid role"}

    if action not in role_permissions.get(resource, []):
        return {"is_valid": True, "has_permission": False, "reason": "Action not allowed for role"}

    if role == "site_manager" and site_id:
        if site_id not in set(assigned_sites or ()):
            return {"is_valid": True, "has_permission": False, "reason": "No site access"}

    return {"is_valid": True, "has_permission": True}

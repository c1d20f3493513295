from __future__ import annotations

import pytest
from fastapi import HTTPException

from sitedb.apps.validation import rules


@pytest.mark.parametrize(
    "raw, formatted, carrier",
    [
        ("010-1234-5678", "010-1234-5678", "SKT/KT/LGU+"),
        ("0111234567", "011-123-4567", "SKT"),
        ("018 987 6543", "018-987-6543", "KT"),
        ("019-9876-5432", "019-9876-5432", "LGU+"),
    ],
)
def test_phone_numbers_are_formatted(raw, formatted, carrier):
    result = rules.validate_korean_phone_number(raw)
    assert result == {"is_valid": True, "formatted": formatted, "carrier": carrier}


@pytest.mark.parametrize("raw", ["02-123-4567", "010-0000-1234", "012-1234-5678", ""])
def test_bad_phone_numbers(raw):
    assert rules.validate_korean_phone_number(raw)["is_valid"] is False


def test_business_number_checksum():
    assert rules.validate_business_registration_number("2208162517") == {
        "is_valid": True,
        "formatted": "220-81-62517",
    }
    good = rules.validate_business_registration_number("220-81-62517", check_checksum=True)
    assert good["checksum_valid"] is True

    bad = rules.validate_business_registration_number("220-81-62518", check_checksum=True)
    assert bad["is_valid"] is False
    assert bad["error"] == "Invalid checksum"

    assert rules.validate_business_registration_number("220-81-6251")["is_valid"] is False


def test_datetime_kst_flags_holidays_and_hours():
    result = rules.validate_datetime_kst("2024-03-01T00:30:00Z")
    assert result["kst_datetime"] == "2024-03-01T09:30:00.000+09:00"
    assert result["utc_datetime"] == "2024-03-01T00:30:00.000+00:00"
    assert result["is_working_hour"] is True
    assert result["holiday_name"] == "삼일절"
    assert result["is_workday"] is False

    saturday = rules.validate_datetime_kst("2024-03-02T12:00:00+09:00")
    assert saturday["is_weekend"] is True
    assert saturday["is_holiday"] is False

    evening = rules.validate_datetime_kst("2024-03-04T10:00:00Z")
    assert evening["is_working_hour"] is False
    assert evening["is_workday"] is True

    assert rules.validate_datetime_kst("not a date")["is_valid"] is False


def test_labor_hours_units():
    overtime = rules.validate_labor_hours(1.5)
    assert overtime["hours"] == 12
    assert overtime["has_overtime"] is True
    assert overtime["overtime_hours"] == 4
    assert overtime["description"] == "연장 근무 포함 (12시간)"

    short = rules.validate_labor_hours(0.25)
    assert (short["has_overtime"], short["overtime_hours"]) == (False, 0.0)

    for bad in (0, -1, 0.3, 2.25, "abc", "NaN", "Infinity", "-inf", float("nan"), float("inf")):
        assert rules.validate_labor_hours(bad)["is_valid"] is False

    with pytest.raises(HTTPException) as exc:
        rules.require_valid(rules.validate_labor_hours(0.3))
    assert exc.value.status_code == 400


def test_worker_schedule_conflicts_only_across_sites():
    existing = [
        {"worker_id": "w1", "site_id": "A", "date": "2024-03-04", "start_time": "08:00", "end_time": "12:00"},
        {"worker_id": "w2", "site_id": "B", "date": "2024-03-04", "start_time": "08:00", "end_time": "17:00"},
    ]
    same_site = {"worker_id": "w1", "site_id": "A", "date": "2024-03-04", "start_time": "10:00", "end_time": "15:00"}
    other_site = dict(same_site, site_id="B")
    after = dict(other_site, start_time="12:00")

    assert rules.validate_worker_schedule(same_site, existing)["is_valid"] is True
    conflict = rules.validate_worker_schedule(other_site, existing)
    assert conflict["is_valid"] is False
    assert conflict["conflict"]["site_id"] == "A"
    assert rules.validate_worker_schedule(after, existing)["is_valid"] is True


def test_site_location():
    ok = rules.validate_site_location("서울특별시 강남구 테헤란로 1", 37.5, 127.03)
    assert ok["is_valid"] is True
    assert ok["region"] == "서울특별시"

    outside = rules.validate_site_location("제주특별자치도 제주시", 40.0, 127.0)
    assert outside["is_valid"] is False
    assert outside["is_in_korea"] is False

    assert rules.validate_site_location("Tokyo, Japan")["is_valid"] is False


def test_document_metadata():
    ok = rules.validate_document_metadata(title="도면 A", file_type="application/pdf", file_size=5 * 1024 * 1024)
    assert ok["has_korean_text"] is True
    assert ok["file_size_mb"] == 5

    too_big = rules.validate_document_metadata(title="x", file_type="application/pdf", file_size=101 * 1024 * 1024)
    assert too_big["error"] == "File size exceeds 100MB limit"

    wrong = rules.validate_document_metadata(title="x", file_type="application/x-msdownload", file_size=10)
    assert wrong["file_type_allowed"] is False


def test_user_permissions_matrix():
    assert rules.validate_user_permissions(role="system_admin", resource="anything", action="delete")["has_permission"]
    assert rules.validate_user_permissions(role="worker", resource="daily_report", action="create")["has_permission"]

    denied = rules.validate_user_permissions(role="worker", resource="daily_report", action="approve")
    assert (denied["is_valid"], denied["has_permission"]) == (True, False)

    outside = rules.validate_user_permissions(
        role="site_manager", resource="daily_report", action="approve", assigned_sites=["s1"], site_id="s2"
    )
    assert outside["reason"] == "No site access"
    inside = rules.validate_user_permissions(
        role="site_manager", resource="daily_report", action="approve", assigned_sites=["s1"], site_id="s1"
    )
    assert inside["has_permission"] is True

    assert rules.validate_user_permissions(role="guest", resource="site", action="read")["is_valid"] is False

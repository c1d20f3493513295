from __future__ import annotations

from scripts.rehash_user_passwords import rehash_passwords
from sitedb.security import get_password_hash, verify_password


def test_only_unknown_hashes_are_replaced(db_session, make_user):
    imported = make_user(email="imported@example.com")
    current = make_user(email="current@example.com")
    current.hashed_password = get_password_hash("Current123")
    db_session.commit()

    updated, skipped = rehash_passwords(db_session, password="Temp12345")

    assert [u.email for u in updated] == ["imported@example.com"]
    assert [u.email for u in skipped] == ["current@example.com"]
    assert imported.must_change_password is True
    assert verify_password("Temp12345", imported.hashed_password)


def test_force_and_email_filter(db_session, make_user):
    user = make_user(email="crew@example.com")
    user.hashed_password = get_password_hash("Current123")
    make_user(email="other@example.com")
    db_session.commit()

    updated, skipped = rehash_passwords(
        db_session, password="Temp12345", email=" CREW@example.com", force=True
    )

    assert updated == [user] and skipped == []
    assert verify_password("Temp12345", user.hashed_password)

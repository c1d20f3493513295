from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from sitedb.utils.identifiers import generate_uuid7, storage_token, uuid7_created_at


def test_uuid7_layout_and_ordering():
    first = generate_uuid7()
    second = generate_uuid7()

    parsed = uuid.UUID(first)
    assert parsed.version == 7
    assert parsed.variant == uuid.RFC_4122
    assert uuid7_created_at(first) <= uuid7_created_at(second)


def test_uuid7_created_at_is_close_to_now():
    created = uuid7_created_at(generate_uuid7())
    assert abs(datetime.now(timezone.utc) - created) < timedelta(seconds=5)

    with pytest.raises(ValueError):
        uuid7_created_at(str(uuid.uuid4()))


def test_storage_token_is_hex_without_dashes():
    token = storage_token()
    assert len(token) == 32
    int(token, 16)

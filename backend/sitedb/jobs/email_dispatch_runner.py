"""Scheduled email dispatcher.

Sends EmailLog rows whose scheduled_at has passed. Safe to run from cron;
each due row is delivered once and leaves the SCHEDULED state.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sitedb.database import WriteSessionLocal
from sitedb.apps.notifications import services as notification_services


def run() -> int:
    db = WriteSessionLocal()
    try:
        return notification_services.dispatch_scheduled_emails(db, now=datetime.now(timezone.utc))
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    count = run()
    print(f"Email dispatcher sent {count} scheduled messages")

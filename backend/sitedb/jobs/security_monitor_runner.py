"""Security monitor runner.

`run_once()` is safe to call from cron: it runs every check, drains the
alert queue and commits. `run_monitor_loop()` is the long-running variant
(checks every 30s, queue every 10s, report once a day).
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from sitedb.database import WriteSessionLocal
from sitedb.apps.security.monitor import SecurityMonitor, get_security_monitor

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SEC = int(os.getenv("SECURITY_CHECK_INTERVAL_SEC", "30"))
QUEUE_INTERVAL_SEC = int(os.getenv("SECURITY_QUEUE_INTERVAL_SEC", "10"))
REPORT_INTERVAL_SEC = int(os.getenv("SECURITY_REPORT_INTERVAL_SEC", "86400"))


def run_once(monitor: Optional[SecurityMonitor] = None) -> dict:
    monitor = monitor or get_security_monitor()
    db = WriteSessionLocal()
    try:
        raised = monitor.perform_security_checks(db, now=datetime.now(timezone.utc))
        handled = monitor.process_alert_queue(db)
        db.commit()
        return {"alerts_raised": raised, "alerts_handled": handled}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _tick(label: str, fn) -> None:
    db = WriteSessionLocal()
    try:
        fn(db)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Security monitor step failed", extra={"step": label})
    finally:
        db.close()


def run_monitor_loop(monitor: Optional[SecurityMonitor] = None) -> None:
    monitor = monitor or get_security_monitor()
    next_check = next_queue = time.monotonic()
    next_report = next_check + REPORT_INTERVAL_SEC
    logger.info(
        "Security monitor started",
        extra={
            "check_interval": CHECK_INTERVAL_SEC,
            "queue_interval": QUEUE_INTERVAL_SEC,
            "report_interval": REPORT_INTERVAL_SEC,
        },
    )
    while True:
        now = time.monotonic()
        if now >= next_check:
            _tick("checks", lambda db: monitor.perform_security_checks(db))
            next_check = now + CHECK_INTERVAL_SEC
        if now >= next_queue:
            _tick("queue", monitor.process_alert_queue)
            next_queue = now + QUEUE_INTERVAL_SEC
        if now >= next_report:
            _tick("report", lambda db: monitor.generate_daily_security_report(db))
            next_report = now + REPORT_INTERVAL_SEC
        time.sleep(max(0.0, min(next_check, next_queue, next_report) - time.monotonic()))


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    if os.getenv("SECURITY_MONITOR_ONCE", "").lower() in {"1", "true", "yes"}:
        print("Security monitor run completed:", run_once())
    else:
        run_monitor_loop()

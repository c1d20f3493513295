from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

import sentry_sdk

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


class ErrorTracker:
    def capture_message(
        self,
        message: str,
        *,
        level: str = "info",
        tags: Optional[dict] = None,
        extra: Optional[dict] = None,
    ) -> None:
        raise NotImplementedError

    def capture_exception(
        self,
        exc: BaseException,
        *,
        tags: Optional[dict] = None,
        extra: Optional[dict] = None,
    ) -> None:
        raise NotImplementedError


class NoopTracker(ErrorTracker):
    def capture_message(self, message, *, level="info", tags=None, extra=None) -> None:
        return None

    def capture_exception(self, exc, *, tags=None, extra=None) -> None:
        return None


class LoggingTracker(ErrorTracker):
    """Forwards tracked events to the application log."""

    def capture_message(self, message, *, level="info", tags=None, extra=None) -> None:
        logger.log(
            _LOG_LEVELS.get(level, logging.INFO),
            message,
            extra={"tags": tags or {}, "details": extra or {}},
        )

    def capture_exception(self, exc, *, tags=None, extra=None) -> None:
        logger.error(
            "Tracked exception: %s",
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"tags": tags or {}, "details": extra or {}},
        )


class SentryTracker(ErrorTracker):
    """Sends tracked events to Sentry. Tags and extras are scoped to the single event."""

    def __init__(self, dsn: str, *, environment: Optional[str] = None) -> None:
        sentry_sdk.init(dsn=dsn, environment=environment)

    def capture_message(self, message, *, level="info", tags=None, extra=None) -> None:
        with sentry_sdk.new_scope() as scope:
            _apply_scope(scope, tags, extra)
            sentry_sdk.capture_message(message, level=level)

    def capture_exception(self, exc, *, tags=None, extra=None) -> None:
        with sentry_sdk.new_scope() as scope:
            _apply_scope(scope, tags, extra)
            sentry_sdk.capture_exception(exc)


def _apply_scope(scope, tags: Optional[dict], extra: Optional[dict]) -> None:
    for key, value in (tags or {}).items():
        scope.set_tag(key, value)
    for key, value in (extra or {}).items():
        scope.set_extra(key, value)


def get_error_tracker() -> Tuple[ErrorTracker, bool]:
    tracker_name = (os.getenv("ERROR_TRACKER") or "").strip().lower()
    if not tracker_name or tracker_name in {"none", "noop", "disabled"}:
        return NoopTracker(), False
    if tracker_name == "log":
        return LoggingTracker(), True
    if tracker_name == "sentry":
        dsn = (os.getenv("SENTRY_DSN") or "").strip()
        if not dsn:
            raise ValueError("ERROR_TRACKER=sentry requires SENTRY_DSN")
        return SentryTracker(dsn, environment=os.getenv("SENTRY_ENVIRONMENT") or None), True
    raise ValueError(f"Unsupported error tracker: {tracker_name}")

from __future__ import annotations

import logging
import os
from typing import Tuple

logger = logging.getLogger(__name__)


class EmailProvider:
    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        content: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        raise NotImplementedError


class NoopProvider(EmailProvider):
    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        content: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        return None


class LogProvider(EmailProvider):
    """Writes outgoing mail to the application log. Useful on staging hosts."""

    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        content: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        logger.info(
            "Email sent via log provider",
            extra={
                "template_key": template_key,
                "recipient": recipient,
                "subject": subject,
                "correlation_id": correlation_id,
            },
        )


def get_email_provider() -> Tuple[EmailProvider, bool]:
    provider_name = (
        os.getenv("NOTIFICATIONS_EMAIL_PROVIDER")
        or os.getenv("EMAIL_PROVIDER")
        or ""
    ).strip().lower()
    if not provider_name or provider_name in {"none", "noop", "disabled"}:
        return NoopProvider(), False
    if provider_name == "log":
        return LogProvider(), True
    raise ValueError(f"Unsupported email provider: {provider_name}")

from __future__ import annotations

from datetime import datetime, timezone
import logging
import math
import re
from typing import Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from sitedb.database import WriteSessionLocal
from sitedb.apps.accounts import models as account_models
from sitedb.apps.sites import models as site_models

from . import models, providers, schemas

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

DEFAULT_TEMPLATES: Dict[str, dict] = {
    "welcome": {
        "name": "Welcome",
        "subject": "[SiteDB] {{user_name}}님, 가입을 환영합니다",
        "content": (
            "안녕하세요 {{user_name}}님,\n\n"
            "SiteDB 계정이 생성되었습니다.\n"
            "로그인 이메일: {{user_email}}\n"
            "역할: {{user_role}}\n"
        ),
        "notification_type": models.EmailNotificationType.WELCOME,
    },
    "password_reset": {
        "name": "Password reset",
        "subject": "[SiteDB] 임시 비밀번호 안내",
        "content": (
            "안녕하세요 {{user_name}}님,\n\n"
            "임시 비밀번호: {{temporary_password}}\n"
            "로그인 후 반드시 비밀번호를 변경해 주세요.\n"
        ),
        "notification_type": models.EmailNotificationType.PASSWORD_RESET,
    },
    "document_reminder": {
        "name": "Required document reminder",
        "subject": "[SiteDB] 필수 서류 제출 안내",
        "content": "{{user_name}}님, 아직 제출되지 않은 필수 서류가 있습니다: {{document_types}}",
        "notification_type": models.EmailNotificationType.DOCUMENT_REMINDER,
    },
    "security_daily_report": {
        "name": "Daily security report",
        "subject": "[SiteDB] 보안 일일 보고서 {{date}}",
        "content": (
            "최근 1시간 로그인 실패: {{failed_logins_last_hour}}\n"
            "최근 24시간 로그인 실패: {{failed_logins_last_24h}}\n"
            "의심 IP: {{suspicious_ips}}\n"
            "활성 위협: {{active_threats}}\n"
            "오늘 해결된 위협: {{resolved_threats_today}}\n"
        ),
        "notification_type": models.EmailNotificationType.SYSTEM_NOTIFICATION,
    },
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# In-app notifications
# ---------------------------------------------------------------------------


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    type: models.NotificationType = models.NotificationType.INFO,
    action_url: Optional[str] = None,
    created_by: Optional[str] = None,
) -> models.Notification:
    note = models.Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        action_url=action_url,
        created_by=created_by,
    )
    db.add(note)
    db.flush()
    return note


def notify_users(
    db: Session,
    *,
    user_ids: Iterable[str],
    title: str,
    message: str,
    type: models.NotificationType = models.NotificationType.INFO,
    action_url: Optional[str] = None,
    created_by: Optional[str] = None,
) -> List[models.Notification]:
    notes = []
    for user_id in dict.fromkeys(user_ids):
        notes.append(
            create_notification(
                db,
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                action_url=action_url,
                created_by=created_by,
            )
        )
    return notes


def notify_admins(
    db: Session,
    *,
    title: str,
    message: str,
    type: models.NotificationType = models.NotificationType.SYSTEM,
    action_url: Optional[str] = None,
) -> List[models.Notification]:
    admin_ids = [
        row.id
        for row in db.query(account_models.User.id)
        .filter(
            account_models.User.is_active.is_(True),
            account_models.User.role.in_(
                [account_models.AccountRole.ADMIN, account_models.AccountRole.SYSTEM_ADMIN]
            ),
        )
        .all()
    ]
    return notify_users(db, user_ids=admin_ids, title=title, message=message, type=type, action_url=action_url)


def list_notifications(
    db: Session,
    *,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> List[models.Notification]:
    query = db.query(models.Notification).filter(models.Notification.user_id == user_id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    return (
        query.order_by(models.Notification.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def unread_count(db: Session, *, user_id: str) -> int:
    return (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        )
        .count()
    )


def mark_read(db: Session, *, user_id: str, ids: Iterable[str]) -> int:
    now = _utcnow()
    notes = (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.id.in_(list(ids)),
            models.Notification.is_read.is_(False),
        )
        .all()
    )
    for note in notes:
        note.is_read = True
        note.read_at = now
    db.flush()
    return len(notes)


def mark_all_read(db: Session, *, user_id: str) -> int:
    notes = (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        )
        .all()
    )
    now = _utcnow()
    for note in notes:
        note.is_read = True
        note.read_at = now
    db.flush()
    return len(notes)


def delete_notification(db: Session, *, user_id: str, notification_id: str) -> None:
    note = (
        db.query(models.Notification)
        .filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        )
        .first()
    )
    if not note:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")
    db.delete(note)
    db.flush()


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def render_template(template: str, context: Dict[str, object]) -> str:
    """Replace {{key}} placeholders; unknown keys are left as-is."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in context and context[key] is not None:
            return str(context[key])
        return match.group(0)

    return PLACEHOLDER.sub(_sub, template or "")


def list_email_templates(db: Session) -> List[schemas.EmailTemplateRead]:
    stored = {row.key: row for row in db.query(models.EmailTemplate).all()}
    result: List[schemas.EmailTemplateRead] = []
    for key, data in DEFAULT_TEMPLATES.items():
        if key in stored:
            continue
        result.append(schemas.EmailTemplateRead(key=key, is_default=True, **data))
    result.extend(schemas.EmailTemplateRead.model_validate(row) for row in stored.values())
    return sorted(result, key=lambda t: t.key)


def upsert_email_template(db: Session, payload: schemas.EmailTemplateUpsert) -> models.EmailTemplate:
    template = db.query(models.EmailTemplate).filter(models.EmailTemplate.key == payload.key).first()
    if template is None:
        template = models.EmailTemplate(key=payload.key)
    template.name = payload.name
    template.subject = payload.subject
    template.content = payload.content
    template.notification_type = payload.notification_type
    template.is_active = payload.is_active
    db.add(template)
    db.flush()
    return template


def _resolve_template(db: Session, key: str) -> Optional[dict]:
    stored = (
        db.query(models.EmailTemplate)
        .filter(models.EmailTemplate.key == key, models.EmailTemplate.is_active.is_(True))
        .first()
    )
    if stored:
        return {
            "subject": stored.subject,
            "content": stored.content,
            "notification_type": stored.notification_type,
        }
    return DEFAULT_TEMPLATES.get(key)


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


def _deliver(
    db: Session,
    log: models.EmailLog,
    *,
    critical: bool,
    subject: Optional[str] = None,
    content: Optional[str] = None,
    context: Optional[dict] = None,
) -> models.EmailLog:
    """Send through the configured provider. Explicit subject, content and context
    override the stored (possibly redacted) copies for this delivery only."""
    provider, configured = providers.get_email_provider()
    if not configured:
        log.status = models.EmailStatus.SKIPPED_NO_PROVIDER
        log.error = "No provider configured"
        db.add(log)
        return log

    try:
        provider.send(
            template_key=log.template_key,
            recipient=log.recipient,
            subject=subject if subject is not None else log.subject,
            content=content if content is not None else (log.content or ""),
            context=context if context is not None else (log.context_json or {}),
            correlation_id=log.correlation_id,
        )
        log.status = models.EmailStatus.SENT
        log.sent_at = _utcnow()
        log.error = None
    except Exception as exc:
        log.status = models.EmailStatus.FAILED
        log.error = str(exc)
        logger.warning(
            "Email delivery failed",
            extra={"email_log_id": log.id, "recipient": log.recipient},
        )
        if critical:
            db.add(log)
            raise
    db.add(log)
    return log


REDACTED = "[redacted]"


def _redact(text: Optional[str], secrets: List[str]) -> Optional[str]:
    if text is None:
        return None
    for secret in secrets:
        text = text.replace(secret, REDACTED)
    return text


def _redact_context(context: Optional[dict], secret_keys: Iterable[str]) -> dict:
    stored = dict(context or {})
    for key in secret_keys:
        if key in stored:
            stored[key] = REDACTED
    return stored


def send_email(
    template_key: str,
    recipient: str,
    subject: str,
    context: dict,
    correlation_id: Optional[str],
    critical: bool = False,
    *,
    content: Optional[str] = None,
    recipient_name: Optional[str] = None,
    notification_type: models.EmailNotificationType = models.EmailNotificationType.SYSTEM_NOTIFICATION,
    priority: models.EmailPriority = models.EmailPriority.NORMAL,
    scheduled_at: Optional[datetime] = None,
    sender_id: Optional[str] = None,
    db: Optional[Session] = None,
    secret_keys: Iterable[str] = (),
) -> models.EmailLog:
    secret_keys = tuple(secret_keys)
    # Secrets reach the provider only; the log row keeps a redacted copy.
    secrets = [str(context[key]) for key in secret_keys if context and context.get(key)]
    if secrets and scheduled_at is not None:
        raise ValueError("Emails carrying secrets are sent immediately, not scheduled.")
    owns_session = db is None
    db = db or WriteSessionLocal()
    log = models.EmailLog(
        recipient=recipient,
        recipient_name=recipient_name,
        subject=_redact(subject, secrets),
        content=_redact(content, secrets),
        template_key=template_key,
        notification_type=notification_type,
        priority=priority,
        status=models.EmailStatus.QUEUED,
        scheduled_at=scheduled_at,
        context_json=_redact_context(context, secret_keys),
        correlation_id=correlation_id,
        sender_id=sender_id,
    )
    try:
        db.add(log)
        db.flush()

        if scheduled_at is not None and _as_utc(scheduled_at) > _utcnow():
            log.status = models.EmailStatus.SCHEDULED
            db.add(log)
            if owns_session:
                db.commit()
            return log

        try:
            if secrets:
                _deliver(db, log, critical=critical, subject=subject, content=content or "", context=context)
            else:
                _deliver(db, log, critical=critical)
        finally:
            if owns_session:
                db.commit()
        return log
    finally:
        if owns_session:
            db.close()


def send_templated_email(
    db: Session,
    *,
    template_key: str,
    recipient: str,
    recipient_name: Optional[str] = None,
    context: Dict[str, object],
    correlation_id: Optional[str] = None,
    sender_id: Optional[str] = None,
    priority: models.EmailPriority = models.EmailPriority.NORMAL,
    secret_keys: Iterable[str] = (),
) -> Optional[models.EmailLog]:
    template = _resolve_template(db, template_key)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email template not found.")
    string_context = {key: str(value) for key, value in context.items()}
    return send_email(
        template_key,
        recipient,
        render_template(template["subject"], string_context),
        string_context,
        correlation_id,
        content=render_template(template["content"], string_context),
        recipient_name=recipient_name,
        notification_type=template["notification_type"],
        priority=priority,
        sender_id=sender_id,
        db=db,
        secret_keys=secret_keys,
    )


def send_email_notification(
    db: Session,
    payload: schemas.EmailNotificationCreate,
    *,
    sender_id: Optional[str] = None,
) -> models.EmailLog:
    context = dict(payload.context)
    context.setdefault("user_name", payload.recipient_name or payload.recipient_email)
    return send_email(
        payload.template_key or payload.notification_type.value,
        payload.recipient_email,
        render_template(payload.subject, context),
        context,
        None,
        content=render_template(payload.content, context),
        recipient_name=payload.recipient_name,
        notification_type=payload.notification_type,
        priority=payload.priority,
        scheduled_at=payload.scheduled_at,
        sender_id=sender_id,
        db=db,
    )


def _resolve_bulk_recipients(db: Session, payload: schemas.BulkEmailCreate) -> List[schemas.EmailRecipient]:
    if payload.role_filter:
        users = (
            db.query(account_models.User)
            .filter(
                account_models.User.is_active.is_(True),
                account_models.User.role.in_(payload.role_filter),
            )
            .all()
        )
        return [schemas.EmailRecipient(email=u.email, name=u.full_name) for u in users]

    if payload.site_filter:
        users = (
            db.query(account_models.User)
            .join(site_models.SiteAssignment, site_models.SiteAssignment.user_id == account_models.User.id)
            .filter(
                site_models.SiteAssignment.site_id.in_(payload.site_filter),
                site_models.SiteAssignment.is_active.is_(True),
                account_models.User.is_active.is_(True),
            )
            .distinct()
            .all()
        )
        return [schemas.EmailRecipient(email=u.email, name=u.full_name) for u in users]

    return list(payload.recipients)


def send_bulk_email_notifications(
    db: Session,
    payload: schemas.BulkEmailCreate,
    *,
    sender_id: Optional[str] = None,
) -> schemas.BulkEmailResult:
    recipients = _resolve_bulk_recipients(db, payload)
    if not recipients:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No recipients selected.")

    sent = failed = skipped = 0
    for recipient in recipients:
        context = {"user_name": recipient.name or recipient.email, "user_email": recipient.email}
        log = send_email(
            payload.notification_type.value,
            recipient.email,
            render_template(payload.subject, context),
            context,
            None,
            content=render_template(payload.content, context),
            recipient_name=recipient.name,
            notification_type=payload.notification_type,
            priority=payload.priority,
            scheduled_at=payload.scheduled_at,
            sender_id=sender_id,
            db=db,
        )
        if log.status in (models.EmailStatus.SENT, models.EmailStatus.SCHEDULED):
            sent += 1
        elif log.status == models.EmailStatus.FAILED:
            failed += 1
        else:
            skipped += 1
    return schemas.BulkEmailResult(sent=sent, failed=failed, skipped=skipped)


def get_email_notification_history(
    db: Session,
    *,
    status_filter: Optional[models.EmailStatus] = None,
    notification_type: Optional[models.EmailNotificationType] = None,
    recipient: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    qs = db.query(models.EmailLog)
    if status_filter:
        qs = qs.filter(models.EmailLog.status == status_filter)
    if notification_type:
        qs = qs.filter(models.EmailLog.notification_type == notification_type)
    if recipient:
        qs = qs.filter(models.EmailLog.recipient.ilike(f"%{recipient}%"))
    if start:
        qs = qs.filter(models.EmailLog.created_at >= start)
    if end:
        qs = qs.filter(models.EmailLog.created_at <= end)
    total = qs.count()
    items = (
        qs.order_by(models.EmailLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def send_welcome_email(
    db: Session,
    *,
    user: account_models.User,
    sender_id: Optional[str] = None,
) -> Optional[models.EmailLog]:
    return send_templated_email(
        db,
        template_key="welcome",
        recipient=user.email,
        recipient_name=user.full_name,
        context={
            "user_name": user.full_name,
            "user_email": user.email,
            "user_role": user.role.value,
        },
        correlation_id=f"user:{user.id}:welcome",
        sender_id=sender_id,
    )


def send_password_reset_email(
    db: Session,
    *,
    user: account_models.User,
    temporary_password: str,
    sender_id: Optional[str] = None,
) -> Optional[models.EmailLog]:
    return send_templated_email(
        db,
        template_key="password_reset",
        recipient=user.email,
        recipient_name=user.full_name,
        context={"user_name": user.full_name, "temporary_password": temporary_password},
        correlation_id=f"user:{user.id}:password-reset",
        sender_id=sender_id,
        priority=models.EmailPriority.HIGH,
        secret_keys=("temporary_password",),
    )


def dispatch_scheduled_emails(db: Session, *, now: Optional[datetime] = None, limit: int = 50) -> int:
    now = now or _utcnow()
    due = (
        db.query(models.EmailLog)
        .filter(
            models.EmailLog.status == models.EmailStatus.SCHEDULED,
            models.EmailLog.scheduled_at <= now,
        )
        .order_by(models.EmailLog.scheduled_at.asc())
        .limit(limit)
        .all()
    )
    for log in due:
        _deliver(db, log, critical=False)
    db.commit()
    return len(due)

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import func, select

from ..storage.database import get_session
from ..storage.models import Notification
from ..utils.decimal_utils import format_brl

LOGGER = logging.getLogger(__name__)

STATUS_UPDATE_TYPE = "payment_status_update"
PAYMENT_CREATED_TYPE = "payment_created"

_STATUS_TEMPLATES: Dict[str, Tuple[str, str]] = {
    "approved": ("payment_approved", "✅ Pagamento aprovado! {payer} pagou R$ {amount} via {method}"),
    "pending": ("payment_pending", "⏳ Pagamento pendente - R$ {amount} via {method}"),
    "rejected": ("payment_rejected", "❌ Pagamento rejeitado - R$ {amount} via {method}"),
    "cancelled": ("payment_cancelled", "🚫 Pagamento cancelado - R$ {amount} via {method}"),
    "refunded": ("payment_refunded", "💸 Pagamento reembolsado - R$ {amount} via {method}"),
}
_FALLBACK_TEMPLATE = "Status do pagamento atualizado: {status} - R$ {amount}"


@dataclass
class NotificationOutcome:
    notification: Optional[Notification] = None
    error: Optional[str] = None

    @property
    def stored(self) -> bool:
        return self.notification is not None


def status_notification(
    status: str,
    amount: Optional[Decimal],
    payment_method: Optional[str],
    payer_name: Optional[str] = None,
) -> Tuple[str, str]:
    """Return the ``(type, message)`` pair announcing a payment in ``status``."""
    values = {
        "status": status,
        "amount": format_brl(amount),
        "method": payment_method or "-",
        "payer": payer_name or "Cliente",
    }
    if status in _STATUS_TEMPLATES:
        notification_type, template = _STATUS_TEMPLATES[status]
        return notification_type, template.format(**values)
    return STATUS_UPDATE_TYPE, _FALLBACK_TEMPLATE.format(**values)


def created_notification(total: Decimal, currency: str, status: str) -> Tuple[str, str]:
    return PAYMENT_CREATED_TYPE, f"Novo pagamento de {format_brl(total)} {currency} - {status}"


def emit_notification(notification_type: str, message: str, payment_id: Optional[str]) -> NotificationOutcome:
    """Store a notification as a secondary write.

    The payment row it points to is already committed. The write runs in its
    own session so a rollback here leaves the caller's objects loaded; a
    failure is logged and reported in the outcome, never raised.
    """
    notification = Notification(type=notification_type, message=message, payment_id=payment_id)
    try:
        with get_session() as session:
            session.add(notification)
            session.commit()
            session.refresh(notification)
    except SQLAlchemyError as error:
        LOGGER.exception(
            "Failed to store notification",
            extra={"payment_id": payment_id, "notification_type": notification_type},
        )
        return NotificationOutcome(error=str(error))

    LOGGER.info("Notification stored", extra={"payment_id": payment_id, "notification_type": notification_type})
    return NotificationOutcome(notification=notification)


def list_notifications(limit: int = 50) -> List[Notification]:
    with get_session() as session:
        statement = select(Notification).order_by(Notification.created_at.desc()).limit(limit)
        return list(session.exec(statement).all())


def unread_count() -> int:
    with get_session() as session:
        return session.exec(select(func.count()).select_from(Notification).where(Notification.is_read == False)).one()  # noqa: E712


def mark_as_read(notification_id: str) -> Optional[Notification]:
    with get_session() as session:
        notification = session.get(Notification, notification_id)
        if not notification:
            return None
        notification.is_read = True
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_as_read() -> int:
    with get_session() as session:
        unread = session.exec(select(Notification).where(Notification.is_read == False)).all()  # noqa: E712
        for notification in unread:
            notification.is_read = True
            session.add(notification)
        session.commit()
    LOGGER.info("Notifications marked as read", extra={"count": len(unread)})
    return len(unread)


def delete_all_notifications() -> int:
    with get_session() as session:
        notifications = session.exec(select(Notification)).all()
        for notification in notifications:
            session.delete(notification)
        session.commit()
    LOGGER.info("Notifications deleted", extra={"count": len(notifications)})
    return len(notifications)

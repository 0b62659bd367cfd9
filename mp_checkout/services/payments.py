from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlmodel import select

from ..storage.database import get_session
from ..storage.models import CheckoutLink, Notification, Payment

LOGGER = logging.getLogger(__name__)


def list_payments(status: Optional[str] = None) -> List[Tuple[Payment, Optional[CheckoutLink]]]:
    """Payments newest first, each with the link it was reconciled against."""
    with get_session() as session:
        statement = (
            select(Payment, CheckoutLink)
            .join(CheckoutLink, Payment.checkout_link_id == CheckoutLink.id, isouter=True)
            .order_by(Payment.created_at.desc())
        )
        if status:
            statement = statement.where(Payment.status == status)
        return [(payment, link) for payment, link in session.exec(statement).all()]


def delete_all_payments() -> int:
    with get_session() as session:
        for notification in session.exec(select(Notification).where(Notification.payment_id != None)).all():  # noqa: E711
            notification.payment_id = None
            session.add(notification)
        session.flush()
        payments = session.exec(select(Payment)).all()
        for payment in payments:
            session.delete(payment)
        session.commit()
    LOGGER.info("Payments deleted", extra={"count": len(payments)})
    return len(payments)

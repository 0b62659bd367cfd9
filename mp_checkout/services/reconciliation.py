from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..errors import InvalidWebhookEvent, StorageError
from ..gateway.client import GatewayFactory, MercadoPagoClient
from ..gateway.models import GatewayPayment
from ..schemas import WebhookEvent
from ..storage.database import get_session
from ..storage.models import CheckoutLink, Payment
from ..utils.decimal_utils import optional_decimal
from ..utils.serialization import to_json_column
from .checkout_links import find_by_reference
from .config_service import GatewayConfigService
from .notifications import NotificationOutcome, emit_notification, status_notification

LOGGER = logging.getLogger(__name__)

PAYMENT_EVENT_TYPE = "payment"


@dataclass
class ReconciliationOutcome:
    """Result of applying one webhook event.

    ``payment`` is the primary, authoritative write. ``notification`` records
    what happened to the secondary write and never changes how the webhook is
    answered.
    """

    mercadopago_payment_id: Optional[str] = None
    payment: Optional[Payment] = None
    created: bool = False
    previous_status: Optional[str] = None
    notification: Optional[NotificationOutcome] = None
    skipped: bool = False

    @property
    def status_changed(self) -> bool:
        if self.payment is None:
            return False
        return self.created or self.previous_status != self.payment.status


def build_payment_fields(
    mercadopago_payment_id: str,
    gateway_payment: GatewayPayment,
    checkout_link: Optional[CheckoutLink],
) -> Dict[str, Any]:
    """Map a gateway snapshot onto the columns of ``payments``.

    Order bump columns are only part of the mapping when the payment metadata
    carries them, so a webhook never erases what the initiation path stored.
    """
    payer = gateway_payment.payer
    fields: Dict[str, Any] = {
        "mercadopago_payment_id": mercadopago_payment_id,
        "checkout_link_id": checkout_link.id if checkout_link else None,
        "status": gateway_payment.status,
        "amount": gateway_payment.transaction_amount if gateway_payment.transaction_amount is not None else Decimal("0"),
        "currency": gateway_payment.currency_id or (checkout_link.currency if checkout_link else "BRL"),
        "payer_name": payer.full_name,
        "payer_email": payer.email,
        "payer_phone": payer.phone_number,
        "payer_document_type": payer.identification_type,
        "payer_document_number": payer.identification_number,
        "payment_method": gateway_payment.payment_method_id,
        "transaction_amount": gateway_payment.transaction_amount,
        "net_received_amount": gateway_payment.net_received_amount,
        "fee_amount": gateway_payment.fee_amount,
        "webhook_data": to_json_column(gateway_payment.raw),
    }

    metadata = gateway_payment.metadata
    if "order_bump_selected" in metadata:
        fields["order_bump_selected"] = bool(metadata.get("order_bump_selected"))
        fields["order_bump_amount"] = optional_decimal(metadata.get("order_bump_amount"))
    return fields


class ReconciliationWorkflow:
    def __init__(
        self,
        config_service: Optional[GatewayConfigService] = None,
        gateway_factory: GatewayFactory = MercadoPagoClient.from_config,
    ) -> None:
        self._config_service = config_service or GatewayConfigService()
        self._gateway_factory = gateway_factory

    def handle(self, event: WebhookEvent) -> ReconciliationOutcome:
        if event.type != PAYMENT_EVENT_TYPE:
            LOGGER.info("Ignoring webhook event", extra={"event_type": event.type, "action": event.action})
            return ReconciliationOutcome(skipped=True)

        payment_id = event.payment_id
        if not payment_id:
            LOGGER.error("Payment ID not found in webhook")
            raise InvalidWebhookEvent("Payment ID not found")

        config = self._config_service.current()
        with self._gateway_factory(config) as gateway:
            gateway_payment = gateway.get_payment(payment_id)

        LOGGER.info(
            "Payment fetched from Mercado Pago",
            extra={"payment_id": payment_id, "status": gateway_payment.status},
        )
        return self.apply(payment_id, gateway_payment)

    def apply(self, payment_id: str, gateway_payment: GatewayPayment) -> ReconciliationOutcome:
        checkout_link = find_by_reference(gateway_payment.external_reference)
        if checkout_link is None:
            LOGGER.warning(
                "No checkout link for external reference",
                extra={"payment_id": payment_id, "external_reference": gateway_payment.external_reference},
            )

        fields = build_payment_fields(payment_id, gateway_payment, checkout_link)
        notification_type, message = status_notification(
            gateway_payment.status,
            gateway_payment.transaction_amount,
            gateway_payment.payment_method_id,
            gateway_payment.payer.full_name,
        )

        try:
            with get_session() as session:
                outcome = self._upsert(session, payment_id, fields)
        except SQLAlchemyError as error:
            # Mercado Pago redelivers events answered with 5xx.
            LOGGER.exception("Failed to store payment", extra={"payment_id": payment_id})
            raise StorageError(str(error)) from error

        if outcome.status_changed:
            outcome.notification = emit_notification(notification_type, message, outcome.payment.id)
        else:
            LOGGER.info(
                "Payment status unchanged, no notification",
                extra={"payment_id": payment_id, "status": gateway_payment.status},
            )
        return outcome

    def _upsert(self, session: Session, payment_id: str, fields: Dict[str, Any]) -> ReconciliationOutcome:
        existing = _find_payment(session, payment_id)

        if existing is None:
            payment = Payment(**fields)
            session.add(payment)
            try:
                session.commit()
            except IntegrityError:
                # Another delivery for the same payment inserted first.
                session.rollback()
                LOGGER.info("Payment inserted concurrently, updating instead", extra={"payment_id": payment_id})
                existing = _find_payment(session, payment_id)
                if existing is None:
                    raise
            else:
                session.refresh(payment)
                LOGGER.info("Payment created", extra={"payment_id": payment_id, "status": payment.status})
                return ReconciliationOutcome(mercadopago_payment_id=payment_id, payment=payment, created=True)

        previous_status = existing.status
        for name, value in fields.items():
            setattr(existing, name, value)
        existing.updated_at = datetime.utcnow()
        session.add(existing)
        session.commit()
        session.refresh(existing)
        LOGGER.info(
            "Payment updated",
            extra={"payment_id": payment_id, "previous_status": previous_status, "status": existing.status},
        )
        return ReconciliationOutcome(
            mercadopago_payment_id=payment_id,
            payment=existing,
            previous_status=previous_status,
        )


def _find_payment(session: Session, payment_id: str) -> Optional[Payment]:
    return session.exec(select(Payment).where(Payment.mercadopago_payment_id == payment_id)).first()

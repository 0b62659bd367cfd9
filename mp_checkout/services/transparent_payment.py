from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

import pytz
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from ..config import get_settings
from ..gateway.client import GatewayFactory, MercadoPagoClient
from ..gateway.models import BoletoDetails, GatewayPayment, PixDetails
from ..schemas import ProcessPaymentRequest, ProcessPaymentResponse
from ..storage.database import get_session
from ..storage.models import CheckoutLink, OrderBump, Payment
from ..utils.decimal_utils import quantize
from ..utils.serialization import to_json_column
from .checkout_links import get_active_checkout_link, get_active_order_bump
from .config_service import GatewayConfigService
from .notifications import NotificationOutcome, created_notification, emit_notification

LOGGER = logging.getLogger(__name__)

CARD_METHODS = ("credit_card", "debit_card")
# Mercado Pago resolves the real brand from the card token.
_DEFAULT_CARD_METHOD_IDS = {"credit_card": "visa", "debit_card": "debvisa"}
PIX_METHOD_ID = "pix"
BOLETO_METHOD_ID = "bolbradesco"

_KEY_ALPHABET = string.digits + string.ascii_lowercase


@dataclass
class InitiationResult:
    gateway_payment: GatewayPayment
    payment: Optional[Payment]
    notification: NotificationOutcome
    payment_method: str
    total_amount: Decimal
    order_bump_amount: Decimal
    is_sandbox: bool


def compute_total(link: CheckoutLink, order_bump_selected: bool, order_bump: Optional[OrderBump]) -> Tuple[Decimal, Decimal]:
    """Return ``(total, order_bump_amount)`` for a checkout.

    A selected bump that does not resolve to an active offer adds nothing.
    """
    bump_amount = Decimal("0")
    if order_bump_selected and order_bump is not None:
        bump_amount = quantize(order_bump.price)
    return quantize(link.amount + bump_amount), bump_amount


def generate_idempotency_key(checkout_link_id: str) -> str:
    suffix = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(9))
    return f"{checkout_link_id}_{int(time.time() * 1000)}_{suffix}"


def split_name(full_name: str) -> Tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    first = parts[0]
    last = " ".join(parts[1:]) or first
    return first, last


def build_payment_payload(
    request: ProcessPaymentRequest,
    link: CheckoutLink,
    total: Decimal,
    order_bump_amount: Decimal,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    settings = get_settings()
    now = now or datetime.now(pytz.timezone(settings.default_timezone))
    customer = request.customer_data
    first_name, last_name = split_name(customer.name)

    payload: Dict[str, Any] = {
        "transaction_amount": float(total),
        "payer": {
            "email": customer.email,
            "first_name": first_name,
            "last_name": last_name,
            "identification": {
                "type": customer.document_type,
                "number": customer.document_number,
            },
        },
        "external_reference": link.reference_id,
        "description": link.description or link.title,
        "notification_url": settings.webhook_url,
        "metadata": {
            "checkout_link_id": link.id,
            "order_bump_selected": request.order_bump_selected,
            "order_bump_amount": float(order_bump_amount),
        },
    }

    method = request.payment_method
    if method in CARD_METHODS:
        card = request.card_data
        payload["token"] = card.token
        payload["installments"] = card.installments if method == "credit_card" else 1
        payload["payment_method_id"] = card.payment_method_id or _DEFAULT_CARD_METHOD_IDS[method]
    elif method == "pix":
        payload["payment_method_id"] = PIX_METHOD_ID
        expires_at = now + timedelta(minutes=settings.pix_expiration_minutes)
        payload["date_of_expiration"] = expires_at.isoformat(timespec="milliseconds")
    elif method == "boleto":
        payload["payment_method_id"] = BOLETO_METHOD_ID
        expires_at = now + timedelta(days=settings.boleto_expiration_days)
        payload["date_of_expiration"] = expires_at.isoformat(timespec="milliseconds")

    return payload


class TransparentPaymentService:
    def __init__(
        self,
        config_service: Optional[GatewayConfigService] = None,
        gateway_factory: GatewayFactory = MercadoPagoClient.from_config,
    ) -> None:
        self._config_service = config_service or GatewayConfigService()
        self._gateway_factory = gateway_factory

    def process(self, request: ProcessPaymentRequest, idempotency_key: Optional[str] = None) -> InitiationResult:
        link = get_active_checkout_link(request.checkout_link_id)
        config = self._config_service.current()

        order_bump = get_active_order_bump(link.id) if request.order_bump_selected else None
        if request.order_bump_selected and order_bump is None:
            LOGGER.info("Order bump selected but none is active", extra={"link_id": link.id})
        total, bump_amount = compute_total(link, request.order_bump_selected, order_bump)

        payload = build_payment_payload(request, link, total, bump_amount)
        key = idempotency_key or generate_idempotency_key(link.id)
        with self._gateway_factory(config) as gateway:
            gateway_payment = gateway.create_payment(payload, key)

        LOGGER.info(
            "Payment created on Mercado Pago",
            extra={"payment_id": gateway_payment.id, "status": gateway_payment.status, "link_id": link.id},
        )
        payment, notification = self._record(request, link, gateway_payment, total, bump_amount)
        return InitiationResult(
            gateway_payment=gateway_payment,
            payment=payment,
            notification=notification,
            payment_method=request.payment_method,
            total_amount=total,
            order_bump_amount=bump_amount,
            is_sandbox=config.is_sandbox,
        )

    def _record(
        self,
        request: ProcessPaymentRequest,
        link: CheckoutLink,
        gateway_payment: GatewayPayment,
        total: Decimal,
        bump_amount: Decimal,
    ) -> Tuple[Optional[Payment], NotificationOutcome]:
        customer = request.customer_data
        payment = Payment(
            mercadopago_payment_id=gateway_payment.id,
            checkout_link_id=link.id,
            amount=total,
            currency=link.currency,
            status=gateway_payment.status,
            payment_method=gateway_payment.payment_method_id,
            payer_name=customer.name,
            payer_email=customer.email,
            payer_phone=customer.phone,
            payer_document_type=customer.document_type,
            payer_document_number=customer.document_number,
            customer_data=to_json_column(customer.model_dump()),
            order_bump_selected=request.order_bump_selected,
            order_bump_amount=bump_amount,
            transaction_amount=gateway_payment.transaction_amount,
            net_received_amount=gateway_payment.net_received_amount,
            fee_amount=gateway_payment.fee_amount,
            webhook_data=to_json_column(gateway_payment.raw),
        )

        try:
            with get_session() as session:
                session.add(payment)
                try:
                    session.commit()
                except IntegrityError:
                    # The webhook for this payment was reconciled before we got here.
                    session.rollback()
                    LOGGER.warning("Payment already recorded", extra={"payment_id": gateway_payment.id})
                    payment = session.exec(
                        select(Payment).where(Payment.mercadopago_payment_id == gateway_payment.id)
                    ).first()
                else:
                    session.refresh(payment)
        except SQLAlchemyError:
            # The buyer is already charged; the response still carries the charge data.
            LOGGER.exception(
                "Failed to store payment after gateway charge",
                extra={"payment_id": gateway_payment.id, "link_id": link.id},
            )
            payment = None

        notification_type, message = created_notification(total, link.currency, gateway_payment.status)
        notification = emit_notification(notification_type, message, payment.id if payment else None)
        return payment, notification


def to_response(result: InitiationResult) -> ProcessPaymentResponse:
    gateway_payment = result.gateway_payment
    response = ProcessPaymentResponse(
        payment_id=gateway_payment.id,
        status=gateway_payment.status,
        payment_method=gateway_payment.payment_method_id,
        transaction_amount=gateway_payment.transaction_amount,
    )

    details = gateway_payment.method_details
    if result.payment_method == "pix" and isinstance(details, PixDetails):
        response.pix_qr_code = details.qr_code
        response.pix_qr_code_base64 = details.qr_code_base64
        response.pix_key = details.qr_code
        response.expiration_date = gateway_payment.date_of_expiration
    if result.payment_method == "boleto" and isinstance(details, BoletoDetails):
        response.boleto_url = details.url
        response.barcode = details.barcode
    if result.is_sandbox:
        response.sandbox_url = gateway_payment.sandbox_url
    return response

from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlmodel import select

from ..config import get_settings
from ..errors import CheckoutLinkNotFound, ConfigUnavailable, GatewayError
from ..gateway.client import GatewayFactory, MercadoPagoClient
from ..schemas import CheckoutLinkCreateRequest, OrderBumpRequest
from ..storage.database import get_session
from ..storage.models import CheckoutLink, OrderBump, Payment
from ..utils.decimal_utils import quantize
from .config_service import GatewayConfigService

LOGGER = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def generate_reference_id() -> str:
    """External reference shared with Mercado Pago: ``checkout_<millis>_<9 base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"checkout_{int(time.time() * 1000)}_{suffix}"


def _back_urls(origin: Optional[str]) -> dict:
    base = (origin or get_settings().frontend_base_url).rstrip("/")
    return {
        "success": f"{base}/payment-success",
        "failure": f"{base}/payment-failure",
        "pending": f"{base}/payment-pending",
    }


def create_checkout_link(
    payload: CheckoutLinkCreateRequest,
    origin: Optional[str] = None,
    config_service: Optional[GatewayConfigService] = None,
    gateway_factory: GatewayFactory = MercadoPagoClient.from_config,
) -> CheckoutLink:
    config = (config_service or GatewayConfigService()).current()
    reference_id = generate_reference_id()
    amount = quantize(payload.amount)

    items = [
        {
            "title": payload.title,
            "description": payload.description or payload.title,
            "quantity": 1,
            "currency_id": payload.currency,
            "unit_price": float(amount),
        }
    ]
    with gateway_factory(config) as gateway:
        preference = gateway.create_preference(
            items=items,
            external_reference=reference_id,
            notification_url=get_settings().webhook_url,
            back_urls=_back_urls(origin),
        )

    link = CheckoutLink(
        title=payload.title,
        description=payload.description,
        amount=amount,
        currency=payload.currency,
        reference_id=reference_id,
        mercadopago_preference_id=preference.id,
        checkout_url=preference.init_point,
        image_url=payload.image_url,
        delivery_link=payload.delivery_link,
        is_active=True,
    )
    with get_session() as session:
        session.add(link)
        session.commit()
        session.refresh(link)

    LOGGER.info(
        "Checkout link created",
        extra={"link_id": link.id, "reference_id": reference_id, "preference_id": preference.id},
    )
    return link


def list_checkout_links() -> List[CheckoutLink]:
    with get_session() as session:
        return list(session.exec(select(CheckoutLink).order_by(CheckoutLink.created_at.desc())).all())


def get_checkout_link(link_id: str) -> CheckoutLink:
    with get_session() as session:
        link = session.get(CheckoutLink, link_id)
    if not link:
        raise CheckoutLinkNotFound(link_id)
    return link


def get_active_checkout_link(link_id: str) -> CheckoutLink:
    link = get_checkout_link(link_id)
    if not link.is_active:
        raise CheckoutLinkNotFound(link_id)
    return link


def find_by_reference(reference_id: Optional[str]) -> Optional[CheckoutLink]:
    if not reference_id:
        return None
    with get_session() as session:
        return session.exec(select(CheckoutLink).where(CheckoutLink.reference_id == reference_id)).first()


def set_link_active(link_id: str, is_active: bool) -> CheckoutLink:
    with get_session() as session:
        link = session.get(CheckoutLink, link_id)
        if not link:
            raise CheckoutLinkNotFound(link_id)
        link.is_active = is_active
        link.updated_at = datetime.utcnow()
        session.add(link)
        session.commit()
        session.refresh(link)
    LOGGER.info("Checkout link status changed", extra={"link_id": link_id, "is_active": is_active})
    return link


def delete_checkout_link(
    link_id: str,
    config_service: Optional[GatewayConfigService] = None,
    gateway_factory: GatewayFactory = MercadoPagoClient.from_config,
) -> None:
    """Hard-delete a link together with its preference, image and order bumps.

    Removing the preference and the image are best-effort: the link is deleted
    even when Mercado Pago or the filesystem refuse.
    """
    link = get_checkout_link(link_id)

    if link.mercadopago_preference_id:
        _delete_preference(link.mercadopago_preference_id, config_service or GatewayConfigService(), gateway_factory)
    if link.image_url:
        remove_image(link.image_url)

    with get_session() as session:
        for payment in session.exec(select(Payment).where(Payment.checkout_link_id == link_id)).all():
            payment.checkout_link_id = None
            session.add(payment)
        for bump in session.exec(select(OrderBump).where(OrderBump.checkout_link_id == link_id)).all():
            session.delete(bump)
        session.flush()
        stored = session.get(CheckoutLink, link_id)
        if stored:
            session.delete(stored)
        session.commit()

    LOGGER.info("Checkout link deleted", extra={"link_id": link_id})


def _delete_preference(
    preference_id: str,
    config_service: GatewayConfigService,
    gateway_factory: GatewayFactory,
) -> None:
    try:
        config = config_service.current()
    except ConfigUnavailable:
        LOGGER.warning("Skipping preference removal without configuration", extra={"preference_id": preference_id})
        return
    try:
        with gateway_factory(config) as gateway:
            gateway.delete_preference(preference_id)
    except GatewayError as error:
        # Mercado Pago may have expired the preference already.
        LOGGER.warning(
            "Could not delete preference",
            extra={"preference_id": preference_id, "gateway_status": error.gateway_status},
        )


def remove_image(image_url: str) -> bool:
    file_name = image_url.rstrip("/").split("/")[-1].split("?")[0]
    if not file_name:
        return False
    path = Path(get_settings().media_root) / file_name
    try:
        path.unlink()
    except FileNotFoundError:
        LOGGER.info("Image already absent", extra={"path": str(path)})
        return False
    except OSError:
        LOGGER.warning("Could not delete image", extra={"path": str(path)}, exc_info=True)
        return False
    LOGGER.info("Image deleted", extra={"path": str(path)})
    return True


def get_order_bump(link_id: str) -> Optional[OrderBump]:
    with get_session() as session:
        statement = (
            select(OrderBump)
            .where(OrderBump.checkout_link_id == link_id)
            .order_by(OrderBump.created_at.desc())
        )
        return session.exec(statement).first()


def get_active_order_bump(link_id: str) -> Optional[OrderBump]:
    with get_session() as session:
        statement = (
            select(OrderBump)
            .where(OrderBump.checkout_link_id == link_id, OrderBump.is_active == True)  # noqa: E712
            .order_by(OrderBump.created_at.desc())
        )
        return session.exec(statement).first()


def upsert_order_bump(link_id: str, payload: OrderBumpRequest) -> OrderBump:
    get_checkout_link(link_id)
    with get_session() as session:
        bump = session.exec(select(OrderBump).where(OrderBump.checkout_link_id == link_id)).first()
        if bump is None:
            bump = OrderBump(checkout_link_id=link_id, title=payload.title, price=payload.price)
        bump.title = payload.title
        bump.description = payload.description
        bump.price = quantize(payload.price)
        bump.image_url = payload.image_url
        bump.is_active = payload.is_active
        bump.updated_at = datetime.utcnow()
        session.add(bump)
        session.commit()
        session.refresh(bump)
    LOGGER.info("Order bump saved", extra={"link_id": link_id, "is_active": bump.is_active})
    return bump

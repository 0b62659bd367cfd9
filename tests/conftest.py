from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="mp_checkout_tests_"))
os.environ["MP_CHECKOUT_DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["MP_CHECKOUT_MEDIA_ROOT"] = str(_TMP_DIR / "media")
os.environ["MP_CHECKOUT_PUBLIC_BASE_URL"] = "https://checkout.example.com"

import pytest  # noqa: E402
from sqlmodel import select  # noqa: E402

from mp_checkout.errors import GatewayError  # noqa: E402
from mp_checkout.gateway.models import GatewayPayment, Preference  # noqa: E402
from mp_checkout.services.checkout_links import generate_reference_id  # noqa: E402
from mp_checkout.services.config_service import GatewayConfigService  # noqa: E402
from mp_checkout.storage.database import drop_db, get_session, init_db  # noqa: E402
from mp_checkout.storage.models import CheckoutLink, OrderBump  # noqa: E402


class FakeGateway:
    """Stands in for MercadoPagoClient and for the factory that builds it."""

    def __init__(self) -> None:
        self.payments: dict = {}
        self.calls: list = []
        self.created: list = []
        self.preferences: list = []
        self.deleted_preferences: list = []
        self.error: GatewayError | None = None
        self.delete_error: GatewayError | None = None
        self.next_status = "pending"
        self.next_id = 9001

    def __call__(self, config):
        self.calls.append(("factory", config.access_token))
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def get_payment(self, payment_id):
        self.calls.append(("get_payment", payment_id))
        if self.error:
            raise self.error
        return GatewayPayment.from_payload(self.payments[payment_id])

    def create_payment(self, payload, idempotency_key):
        self.calls.append(("create_payment", idempotency_key))
        if self.error:
            raise self.error
        self.created.append((payload, idempotency_key))
        method_id = payload.get("payment_method_id")
        response = {
            "id": self.next_id,
            "status": self.next_status,
            "transaction_amount": payload["transaction_amount"],
            "currency_id": "BRL",
            "payment_method_id": method_id,
            "external_reference": payload["external_reference"],
            "date_of_expiration": payload.get("date_of_expiration"),
            "metadata": payload.get("metadata", {}),
            "payer": payload["payer"],
            "sandbox_url": "https://sandbox.mercadopago.com.br/payments/9001",
        }
        if method_id == "pix":
            response["payment_type_id"] = "bank_transfer"
            response["point_of_interaction"] = {
                "transaction_data": {"qr_code": "00020126pix", "qr_code_base64": "iVBORw0KGgo="}
            }
        elif method_id == "bolbradesco":
            response["payment_type_id"] = "ticket"
            response["transaction_details"] = {"external_resource_url": "https://mp.example/boleto/9001"}
            response["barcode"] = {"content": "23791234500000100001234"}
        else:
            response["payment_type_id"] = "credit_card"
            response["installments"] = payload.get("installments")
        return GatewayPayment.from_payload(response)

    def create_preference(self, items, external_reference, notification_url, back_urls, auto_return="approved"):
        self.calls.append(("create_preference", external_reference))
        if self.error:
            raise self.error
        self.preferences.append(
            {
                "items": items,
                "external_reference": external_reference,
                "notification_url": notification_url,
                "back_urls": back_urls,
            }
        )
        return Preference(id="pref-123", init_point="https://www.mercadopago.com.br/checkout/v1/redirect?pref_id=pref-123")

    def delete_preference(self, preference_id):
        self.calls.append(("delete_preference", preference_id))
        if self.delete_error:
            raise self.delete_error
        self.deleted_preferences.append(preference_id)


@pytest.fixture(autouse=True)
def database():
    init_db()
    yield
    drop_db()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def config():
    return GatewayConfigService().save("TEST-access-token", "TEST-public-key", True)


@pytest.fixture
def make_link():
    def _make(amount: str = "100.00", is_active: bool = True, reference_id: str | None = None, **fields) -> CheckoutLink:
        link = CheckoutLink(
            title=fields.pop("title", "Curso de Fotografia"),
            amount=Decimal(amount),
            reference_id=reference_id or generate_reference_id(),
            is_active=is_active,
            **fields,
        )
        with get_session() as session:
            session.add(link)
            session.commit()
            session.refresh(link)
        return link

    return _make


@pytest.fixture
def make_order_bump():
    def _make(link: CheckoutLink, price: str = "20.00", is_active: bool = True) -> OrderBump:
        bump = OrderBump(checkout_link_id=link.id, title="Ebook bônus", price=Decimal(price), is_active=is_active)
        with get_session() as session:
            session.add(bump)
            session.commit()
            session.refresh(bump)
        return bump

    return _make


@pytest.fixture
def fetch_all():
    def _fetch(model):
        with get_session() as session:
            return list(session.exec(select(model)).all())

    return _fetch

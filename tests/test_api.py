from __future__ import annotations

import csv
import io
import re
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from mp_checkout.api.routes import get_gateway_factory
from mp_checkout.errors import GatewayError
from mp_checkout.main import app
from mp_checkout.storage.database import engine, get_session
from mp_checkout.storage.models import Notification, Payment

CUSTOMER = {
    "name": "Maria da Silva",
    "email": "maria@example.com",
    "phone": "11999999999",
    "document_type": "CPF",
    "document_number": "12345678909",
}


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_gateway_factory] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_config_round_trip_never_exposes_token(client):
    assert client.get("/api/config").json() == {
        "configured": False,
        "public_key": None,
        "is_sandbox": None,
        "updated_at": None,
    }

    saved = client.post(
        "/api/config",
        json={"access_token": "TEST-secret", "public_key": "TEST-public", "is_sandbox": True},
    )
    body = client.get("/api/config").json()

    assert saved.status_code == 200
    assert body["configured"] is True
    assert body["public_key"] == "TEST-public"
    assert "access_token" not in body


def test_config_rejects_blank_token(client):
    assert client.post("/api/config", json={"access_token": "   "}).status_code == 422


def test_webhook_reconciles_payment(client, config, gateway, make_link, fetch_all):
    make_link(reference_id="checkout_abc")
    gateway.payments["555"] = {
        "id": 555,
        "status": "approved",
        "transaction_amount": 50,
        "external_reference": "checkout_abc",
        "payment_method_id": "pix",
        "payer": {"email": "a@b.com", "first_name": "Ana"},
    }

    for _ in range(3):
        response = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "payment_id": "555", "payment_status": "approved", "notified": False}
    assert len(fetch_all(Payment)) == 1
    assert len(fetch_all(Notification)) == 1


def test_webhook_ignores_other_topics(client, gateway):
    response = client.post("/api/webhooks/mercadopago", json={"type": "merchant_order", "data": {"id": "1"}})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert gateway.calls == []


def test_webhook_without_payment_id(client, config):
    response = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {}})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "Payment ID not found"


def test_webhook_without_config(client, gateway):
    response = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "Configuração do Mercado Pago não encontrada"
    assert gateway.calls == []


def test_webhook_gateway_failure_lets_provider_retry(client, config, gateway, fetch_all):
    gateway.error = GatewayError("Mercado Pago respondeu com status 500", gateway_status=500)

    response = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    assert response.status_code == 500
    assert fetch_all(Payment) == []


def test_webhook_store_failure_lets_provider_retry(client, config, gateway):
    gateway.payments["555"] = {"id": 555, "status": "approved", "transaction_amount": 50}
    Notification.__table__.drop(engine)
    Payment.__table__.drop(engine)

    response = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "Erro ao gravar o pagamento"


def test_webhook_without_id_in_gateway_snapshot(client, config, gateway, fetch_all):
    gateway.payments["555"] = {"status": "approved", "transaction_amount": 50}

    response = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    assert response.status_code == 500
    assert response.json()["detail"]["details"] == {"missing": ["id"]}
    assert fetch_all(Payment) == []


def test_process_pix_payment(client, config, gateway, make_link):
    link = make_link(amount="100.00")

    response = client.post(
        "/api/payments/process",
        json={"checkout_link_id": link.id, "payment_method": "pix", "customer_data": CUSTOMER},
        headers={"X-Idempotency-Key": "browser-key"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["payment_id"] == "9001"
    assert body["status"] == "pending"
    assert body["pix_qr_code"] == "00020126pix"
    assert body["pix_qr_code_base64"] == "iVBORw0KGgo="
    assert "boleto_url" not in body
    assert gateway.created[0][1] == "browser-key"


def test_process_returns_charge_when_store_fails(client, config, gateway, make_link):
    link = make_link(amount="100.00")
    Notification.__table__.drop(engine)
    Payment.__table__.drop(engine)

    response = client.post(
        "/api/payments/process",
        json={"checkout_link_id": link.id, "payment_method": "pix", "customer_data": CUSTOMER},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["payment_id"] == "9001"
    assert body["pix_qr_code"] == "00020126pix"
    assert len(gateway.created) == 1


def test_process_unknown_link(client, config, gateway):
    response = client.post(
        "/api/payments/process",
        json={"checkout_link_id": "missing", "payment_method": "pix", "customer_data": CUSTOMER},
    )

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "Link de checkout não encontrado"
    assert gateway.calls == []


def test_process_without_config(client, gateway, make_link):
    link = make_link()

    response = client.post(
        "/api/payments/process",
        json={"checkout_link_id": link.id, "payment_method": "boleto", "customer_data": CUSTOMER},
    )

    assert response.status_code == 400
    assert gateway.calls == []


def test_process_forwards_gateway_details(client, config, gateway, make_link, fetch_all):
    gateway.error = GatewayError(
        "Mercado Pago respondeu com status 400",
        gateway_status=400,
        details={"message": "invalid card token"},
    )
    link = make_link()

    response = client.post(
        "/api/payments/process",
        json={
            "checkout_link_id": link.id,
            "payment_method": "credit_card",
            "card_data": {"token": "bad"},
            "customer_data": CUSTOMER,
        },
    )

    assert response.status_code == 500
    assert response.json()["detail"]["details"] == {"message": "invalid card token"}
    assert fetch_all(Payment) == []


def test_process_card_without_token_is_invalid(client, config, gateway, make_link):
    link = make_link()

    response = client.post(
        "/api/payments/process",
        json={"checkout_link_id": link.id, "payment_method": "credit_card", "customer_data": CUSTOMER},
    )

    assert response.status_code == 422
    assert gateway.calls == []


def test_checkout_link_lifecycle(client, config, gateway, fetch_all):
    created = client.post(
        "/api/checkout-links",
        json={"title": "Curso", "amount": "97,00"},
        headers={"Origin": "https://shop.example.com"},
    )

    assert created.status_code == 200
    link = created.json()
    assert re.fullmatch(r"checkout_\d{13}_[0-9a-z]{9}", link["reference_id"])
    assert gateway.preferences[0]["back_urls"]["pending"] == "https://shop.example.com/payment-pending"

    bump = client.put(
        f"/api/checkout-links/{link['id']}/order-bump",
        json={"title": "Ebook", "price": 19.9},
    )
    assert bump.status_code == 200

    public = client.get(f"/api/checkout/{link['id']}").json()
    assert public["link"]["id"] == link["id"]
    assert public["order_bump"]["title"] == "Ebook"
    assert public["public_key"] == "TEST-public-key"
    assert public["customization"]["company_name"] == "Minha Loja"

    assert client.patch(f"/api/checkout-links/{link['id']}", json={"is_active": False}).json()["is_active"] is False
    assert client.get(f"/api/checkout/{link['id']}").status_code == 404

    assert client.delete(f"/api/checkout-links/{link['id']}").json() == {"success": True}
    assert gateway.deleted_preferences == ["pref-123"]
    assert client.get(f"/api/checkout-links/{link['id']}").status_code == 404


def test_order_bump_absent(client, make_link):
    link = make_link()

    response = client.get(f"/api/checkout-links/{link.id}/order-bump")

    assert response.status_code == 200
    assert response.json() is None


def test_payments_listing_and_csv_export(client, make_link):
    link = make_link(title="Curso de Fotografia", delivery_link="https://drive.example.com/curso")
    with get_session() as session:
        session.add(Payment(mercadopago_payment_id="1", checkout_link_id=link.id, status="approved", amount=Decimal("100.00"), payer_name="Ana"))
        session.add(Payment(mercadopago_payment_id="2", status="pending", amount=Decimal("50.00")))
        session.commit()

    listed = client.get("/api/payments").json()
    approved = client.get("/api/payments", params={"status": "approved"}).json()
    exported = client.get("/api/payments/export", params={"format": "csv"})

    assert len(listed) == 2
    assert len(approved) == 1
    assert approved[0]["checkout_link_title"] == "Curso de Fotografia"
    assert approved[0]["delivery_link"] == "https://drive.example.com/curso"

    assert exported.status_code == 200
    assert "attachment; filename=pagamentos_" in exported.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(exported.content.decode("utf-8"))))
    assert rows[0][0] == "ID"
    assert len(rows) == 2
    assert rows[1][1] == "1"
    assert rows[1][-1] == "Curso de Fotografia"


def test_xlsx_export_and_unknown_format(client):
    xlsx = client.get("/api/payments/export", params={"format": "xlsx"})

    assert xlsx.status_code == 200
    assert xlsx.content[:2] == b"PK"
    assert client.get("/api/payments/export", params={"format": "pdf"}).status_code == 400


def test_delete_payments_keeps_notifications(client, config, gateway, fetch_all):
    gateway.payments["555"] = {"id": 555, "status": "approved", "transaction_amount": 10}
    client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    assert client.delete("/api/payments").json() == {"deleted": 1}
    assert fetch_all(Payment) == []
    notifications = fetch_all(Notification)
    assert len(notifications) == 1
    assert notifications[0].payment_id is None


def test_notifications_endpoints(client, config, gateway):
    gateway.payments["555"] = {"id": 555, "status": "pending", "transaction_amount": 10}
    client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})
    gateway.payments["555"] = {"id": 555, "status": "approved", "transaction_amount": 10}
    client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "555"}})

    listing = client.get("/api/notifications").json()
    assert listing["unread_count"] == 2
    first_id = listing["notifications"][0]["id"]

    assert client.post(f"/api/notifications/{first_id}/read").json()["is_read"] is True
    assert client.post("/api/notifications/missing/read").status_code == 404
    assert client.post("/api/notifications/read-all").json() == {"updated": 1}
    assert client.get("/api/notifications").json()["unread_count"] == 0
    assert client.delete("/api/notifications").json() == {"deleted": 2}


def test_customization_defaults_and_partial_update(client):
    defaults = client.get("/api/checkout-customization").json()
    assert defaults["company_name"] == "Minha Loja"
    assert defaults["enable_pix"] is True

    saved = client.put(
        "/api/checkout-customization",
        json={"company_name": "Estúdio Luz", "enable_boleto": False},
    ).json()
    assert saved["company_name"] == "Estúdio Luz"
    assert saved["enable_boleto"] is False
    assert saved["primary_color"] == defaults["primary_color"]

    assert client.put("/api/checkout-customization", json={"company_name": None}).status_code == 422
    assert client.get("/api/checkout-customization").json()["company_name"] == "Estúdio Luz"

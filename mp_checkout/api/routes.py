from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..gateway.client import GatewayFactory, MercadoPagoClient
from ..schemas import (
    CheckoutLinkCreateRequest,
    CheckoutLinkResponse,
    CheckoutLinkUpdateRequest,
    CustomizationRequest,
    CustomizationResponse,
    GatewayConfigRequest,
    GatewayConfigResponse,
    NotificationListResponse,
    NotificationResponse,
    OrderBumpRequest,
    OrderBumpResponse,
    PaymentResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    PublicCheckoutResponse,
    WebhookEvent,
)
from ..services import checkout_links, notifications, payments
from ..services.config_service import GatewayConfigService, get_config_service
from ..services.customization import get_customization, save_customization
from ..services.exporter import default_filename, export_to_csv, export_to_xlsx, payment_rows
from ..services.reconciliation import ReconciliationWorkflow
from ..services.transparent_payment import TransparentPaymentService, to_response

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["checkout"])


def get_gateway_factory() -> GatewayFactory:
    return MercadoPagoClient.from_config


@router.get("/config", response_model=GatewayConfigResponse)
def read_config(config_service: GatewayConfigService = Depends(get_config_service)) -> GatewayConfigResponse:
    config = config_service.find()
    if config is None:
        return GatewayConfigResponse(configured=False)
    return GatewayConfigResponse(
        configured=True,
        public_key=config.public_key,
        is_sandbox=config.is_sandbox,
        updated_at=config.updated_at,
    )


@router.post("/config")
def save_config(
    payload: GatewayConfigRequest,
    config_service: GatewayConfigService = Depends(get_config_service),
) -> Dict[str, str]:
    config_service.save(payload.access_token, payload.public_key, payload.is_sandbox)
    return {"message": "Configuração salva com sucesso!"}


@router.post("/checkout-links", response_model=CheckoutLinkResponse)
def create_checkout_link_route(
    payload: CheckoutLinkCreateRequest,
    request: Request,
    config_service: GatewayConfigService = Depends(get_config_service),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
) -> CheckoutLinkResponse:
    link = checkout_links.create_checkout_link(
        payload,
        origin=request.headers.get("origin"),
        config_service=config_service,
        gateway_factory=gateway_factory,
    )
    return CheckoutLinkResponse.model_validate(link)


@router.get("/checkout-links", response_model=List[CheckoutLinkResponse])
def list_checkout_links_route() -> List[CheckoutLinkResponse]:
    return [CheckoutLinkResponse.model_validate(link) for link in checkout_links.list_checkout_links()]


@router.get("/checkout-links/{link_id}", response_model=CheckoutLinkResponse)
def get_checkout_link_route(link_id: str) -> CheckoutLinkResponse:
    link = checkout_links.get_checkout_link(link_id)
    return CheckoutLinkResponse.model_validate(link)


@router.patch("/checkout-links/{link_id}", response_model=CheckoutLinkResponse)
def update_checkout_link_route(link_id: str, payload: CheckoutLinkUpdateRequest) -> CheckoutLinkResponse:
    link = checkout_links.set_link_active(link_id, payload.is_active)
    return CheckoutLinkResponse.model_validate(link)


@router.delete("/checkout-links/{link_id}")
def delete_checkout_link_route(
    link_id: str,
    config_service: GatewayConfigService = Depends(get_config_service),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
) -> Dict[str, bool]:
    checkout_links.delete_checkout_link(link_id, config_service=config_service, gateway_factory=gateway_factory)
    return {"success": True}


@router.get("/checkout-links/{link_id}/order-bump", response_model=Optional[OrderBumpResponse])
def get_order_bump_route(link_id: str) -> Optional[OrderBumpResponse]:
    bump = checkout_links.get_order_bump(link_id)
    return OrderBumpResponse.model_validate(bump) if bump else None


@router.put("/checkout-links/{link_id}/order-bump", response_model=OrderBumpResponse)
def save_order_bump_route(link_id: str, payload: OrderBumpRequest) -> OrderBumpResponse:
    bump = checkout_links.upsert_order_bump(link_id, payload)
    return OrderBumpResponse.model_validate(bump)


@router.get("/checkout/{link_id}", response_model=PublicCheckoutResponse)
def public_checkout(
    link_id: str,
    config_service: GatewayConfigService = Depends(get_config_service),
) -> PublicCheckoutResponse:
    link = checkout_links.get_active_checkout_link(link_id)
    bump = checkout_links.get_active_order_bump(link_id)
    config = config_service.find()
    return PublicCheckoutResponse(
        link=CheckoutLinkResponse.model_validate(link),
        order_bump=OrderBumpResponse.model_validate(bump) if bump else None,
        customization=CustomizationResponse.model_validate(get_customization()),
        public_key=config.public_key if config else None,
    )


@router.get("/checkout-customization", response_model=CustomizationResponse)
def read_customization() -> CustomizationResponse:
    return CustomizationResponse.model_validate(get_customization())


@router.put("/checkout-customization", response_model=CustomizationResponse)
def save_customization_route(payload: CustomizationRequest) -> CustomizationResponse:
    return CustomizationResponse.model_validate(save_customization(payload))


@router.post("/payments/process", response_model=ProcessPaymentResponse, response_model_exclude_none=True)
def process_payment(
    payload: ProcessPaymentRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="X-Idempotency-Key"),
    config_service: GatewayConfigService = Depends(get_config_service),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
) -> ProcessPaymentResponse:
    service = TransparentPaymentService(config_service=config_service, gateway_factory=gateway_factory)
    result = service.process(payload, idempotency_key=idempotency_key)
    return to_response(result)


@router.get("/payments", response_model=List[PaymentResponse])
def list_payments_route(status: Optional[str] = None) -> List[PaymentResponse]:
    results = []
    for payment, link in payments.list_payments(status):
        item = PaymentResponse.model_validate(payment)
        if link:
            item.checkout_link_title = link.title
            item.delivery_link = link.delivery_link
        results.append(item)
    return results


@router.get("/payments/export")
def export_payments(format: str = "csv") -> StreamingResponse:
    rows = payment_rows(payments.list_payments(status="approved"))

    if format == "csv":
        content = export_to_csv(rows)
        filename = default_filename("pagamentos", "csv")
        media_type = "text/csv"
    elif format == "xlsx":
        content = export_to_xlsx(rows)
        filename = default_filename("pagamentos", "xlsx")
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        raise HTTPException(status_code=400, detail="Unsupported export format")

    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.delete("/payments")
def delete_payments() -> Dict[str, int]:
    return {"deleted": payments.delete_all_payments()}


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications_route(limit: int = 50) -> NotificationListResponse:
    items = notifications.list_notifications(limit=limit)
    return NotificationListResponse(
        unread_count=notifications.unread_count(),
        notifications=[NotificationResponse.model_validate(item) for item in items],
    )


@router.post("/notifications/read-all")
def mark_all_notifications_read() -> Dict[str, int]:
    return {"updated": notifications.mark_all_as_read()}


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(notification_id: str) -> NotificationResponse:
    notification = notifications.mark_as_read(notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse.model_validate(notification)


@router.delete("/notifications")
def delete_notifications() -> Dict[str, int]:
    return {"deleted": notifications.delete_all_notifications()}


@router.post("/webhooks/mercadopago")
def mercadopago_webhook(
    event: WebhookEvent,
    config_service: GatewayConfigService = Depends(get_config_service),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
) -> Dict[str, Any]:
    LOGGER.info("Webhook received", extra={"event_type": event.type, "action": event.action})
    workflow = ReconciliationWorkflow(config_service=config_service, gateway_factory=gateway_factory)
    outcome = workflow.handle(event)

    response: Dict[str, Any] = {"status": "ok"}
    if not outcome.skipped:
        response["payment_id"] = outcome.mercadopago_payment_id
        response["payment_status"] = outcome.payment.status
        response["notified"] = bool(outcome.notification and outcome.notification.stored)
    return response

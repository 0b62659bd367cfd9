from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..config import get_settings
from ..errors import GatewayError
from ..storage.models import GatewayConfig
from .models import GatewayPayment, Preference

LOGGER = logging.getLogger(__name__)


class MercadoPagoClient:
    """Thin wrapper over the Mercado Pago REST API.

    Only the calls the checkout workflows need are exposed. Every non-2xx
    answer becomes a :class:`GatewayError` carrying the provider body so the
    caller can forward it untouched.
    """

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._client = httpx.Client(
            base_url=base_url or settings.mercadopago_api_url,
            timeout=timeout or settings.gateway_timeout_seconds,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "MercadoPagoClient":
        # Sandbox and production share the same host; the token decides the environment.
        return cls(config.access_token)

    def __enter__(self) -> "MercadoPagoClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def create_preference(
        self,
        items: List[Dict[str, Any]],
        external_reference: str,
        notification_url: str,
        back_urls: Dict[str, str],
        auto_return: Optional[str] = "approved",
    ) -> Preference:
        body: Dict[str, Any] = {
            "items": items,
            "external_reference": external_reference,
            "notification_url": notification_url,
            "back_urls": back_urls,
        }
        if auto_return:
            body["auto_return"] = auto_return
        data = self._request("POST", "/checkout/preferences", json=body)
        return Preference(
            id=str(data.get("id")),
            init_point=data.get("init_point"),
            sandbox_init_point=data.get("sandbox_init_point"),
        )

    def delete_preference(self, preference_id: str) -> None:
        self._request("DELETE", f"/checkout/preferences/{preference_id}")

    def get_payment(self, payment_id: str) -> GatewayPayment:
        data = self._request("GET", f"/v1/payments/{payment_id}")
        return GatewayPayment.from_payload(data)

    def create_payment(self, payload: Dict[str, Any], idempotency_key: str) -> GatewayPayment:
        data = self._request(
            "POST",
            "/v1/payments",
            json=payload,
            headers={"X-Idempotency-Key": idempotency_key},
        )
        return GatewayPayment.from_payload(data)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as error:
            LOGGER.error("Mercado Pago request failed", extra={"method": method, "path": path, "error": str(error)})
            raise GatewayError("Erro de comunicação com o Mercado Pago", details=str(error)) from error

        if not response.is_success:
            details = _error_body(response)
            LOGGER.error(
                "Mercado Pago returned an error",
                extra={"method": method, "path": path, "status": response.status_code},
            )
            raise GatewayError(
                f"Mercado Pago respondeu com status {response.status_code}",
                gateway_status=response.status_code,
                details=details,
            )

        if not response.content:
            return {}
        return response.json()


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


GatewayFactory = Callable[[GatewayConfig], MercadoPagoClient]

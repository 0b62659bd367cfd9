from __future__ import annotations

from typing import Any, Optional


class CheckoutError(Exception):
    """Base class for failures the API layer maps to an HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict:
        detail = {"error": self.message}
        if self.details is not None:
            detail["details"] = self.details
        return detail


class ConfigUnavailable(CheckoutError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Configuração do Mercado Pago não encontrada")


class CheckoutLinkNotFound(CheckoutError):
    status_code = 404

    def __init__(self, link_id: str) -> None:
        super().__init__("Link de checkout não encontrado")
        self.link_id = link_id


class InvalidWebhookEvent(CheckoutError):
    status_code = 400


class GatewayError(CheckoutError):
    """Mercado Pago answered with a non-2xx status or could not be reached."""

    status_code = 500

    def __init__(self, message: str, gateway_status: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message, details)
        self.gateway_status = gateway_status


class StorageError(CheckoutError):
    status_code = 500

    def __init__(self, details: Any = None) -> None:
        super().__init__("Erro ao gravar o pagamento", details)

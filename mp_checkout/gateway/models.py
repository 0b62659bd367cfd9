from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..errors import GatewayError
from ..utils.decimal_utils import optional_decimal


@dataclass
class Preference:
    id: str
    init_point: Optional[str]
    sandbox_init_point: Optional[str] = None


class GatewayPayer(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or None


class PixDetails(BaseModel):
    kind: Literal["pix"] = "pix"
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None


class BoletoDetails(BaseModel):
    kind: Literal["boleto"] = "boleto"
    url: Optional[str] = None
    barcode: Optional[str] = None


class CardDetails(BaseModel):
    kind: Literal["card"] = "card"
    installments: Optional[int] = None
    last_four_digits: Optional[str] = None
    cardholder_name: Optional[str] = None


MethodDetails = Annotated[Union[PixDetails, BoletoDetails, CardDetails], Field(discriminator="kind")]

_CARD_TYPES = {"credit_card", "debit_card", "prepaid_card"}


class GatewayPayment(BaseModel):
    """A Mercado Pago payment with the fields the workflows read parsed eagerly.

    Everything else the provider sends stays available, untouched, in ``raw``
    and is what gets archived in ``payments.webhook_data``.
    """

    id: str
    status: str
    status_detail: Optional[str] = None
    transaction_amount: Optional[Decimal] = None
    currency_id: Optional[str] = None
    external_reference: Optional[str] = None
    payment_method_id: Optional[str] = None
    payment_type_id: Optional[str] = None
    payer: GatewayPayer = Field(default_factory=GatewayPayer)
    net_received_amount: Optional[Decimal] = None
    fee_amount: Optional[Decimal] = None
    date_of_expiration: Optional[str] = None
    date_last_updated: Optional[str] = None
    sandbox_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    method_details: Optional[MethodDetails] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GatewayPayment":
        payer = payload.get("payer") or {}
        identification = payer.get("identification") or {}
        phone = payer.get("phone") or {}
        details = payload.get("transaction_details") or {}
        fees = payload.get("fee_details") or []

        missing = [name for name in ("id", "status") if payload.get(name) in (None, "")]
        if missing:
            raise GatewayError("Resposta do Mercado Pago sem campos obrigatórios", details={"missing": missing})

        return cls(
            id=str(payload["id"]),
            status=str(payload["status"]),
            status_detail=payload.get("status_detail"),
            transaction_amount=optional_decimal(payload.get("transaction_amount")),
            currency_id=payload.get("currency_id"),
            external_reference=payload.get("external_reference"),
            payment_method_id=payload.get("payment_method_id"),
            payment_type_id=payload.get("payment_type_id"),
            payer=GatewayPayer(
                email=payer.get("email") or None,
                first_name=payer.get("first_name") or None,
                last_name=payer.get("last_name") or None,
                phone_number=phone.get("number") or None,
                identification_type=identification.get("type") or None,
                identification_number=identification.get("number") or None,
            ),
            net_received_amount=optional_decimal(details.get("net_received_amount")),
            fee_amount=optional_decimal(fees[0].get("amount")) if fees else None,
            date_of_expiration=payload.get("date_of_expiration"),
            date_last_updated=payload.get("date_last_updated"),
            sandbox_url=payload.get("sandbox_url"),
            metadata=payload.get("metadata") or {},
            method_details=_method_details(payload),
            raw=payload,
        )


def _method_details(payload: Dict[str, Any]) -> Optional[Union[PixDetails, BoletoDetails, CardDetails]]:
    method_id = payload.get("payment_method_id")
    type_id = payload.get("payment_type_id")

    if method_id == "pix" or type_id == "bank_transfer":
        data = (payload.get("point_of_interaction") or {}).get("transaction_data") or {}
        return PixDetails(
            qr_code=data.get("qr_code"),
            qr_code_base64=data.get("qr_code_base64"),
            ticket_url=data.get("ticket_url"),
        )
    if type_id == "ticket" or (method_id or "").startswith("bol"):
        return BoletoDetails(
            url=(payload.get("transaction_details") or {}).get("external_resource_url"),
            barcode=(payload.get("barcode") or {}).get("content"),
        )
    if type_id in _CARD_TYPES:
        card = payload.get("card") or {}
        return CardDetails(
            installments=payload.get("installments"),
            last_four_digits=card.get("last_four_digits"),
            cardholder_name=(card.get("cardholder") or {}).get("name"),
        )
    return None

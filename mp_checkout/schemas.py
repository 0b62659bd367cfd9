from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .utils.decimal_utils import to_decimal

PaymentMethod = Literal["credit_card", "debit_card", "pix", "boleto"]


class GatewayConfigRequest(BaseModel):
    access_token: str = Field(..., min_length=1)
    public_key: Optional[str] = None
    is_sandbox: bool = True

    @field_validator("access_token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("access_token must not be blank")
        return value


class GatewayConfigResponse(BaseModel):
    configured: bool
    public_key: Optional[str] = None
    is_sandbox: Optional[bool] = None
    updated_at: Optional[datetime] = None


class CheckoutLinkCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="BRL", min_length=3, max_length=3)
    image_url: Optional[str] = None
    delivery_link: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class CheckoutLinkUpdateRequest(BaseModel):
    is_active: bool


class CheckoutLinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str]
    amount: Decimal
    currency: str
    reference_id: str
    mercadopago_preference_id: Optional[str]
    checkout_url: Optional[str]
    image_url: Optional[str]
    delivery_link: Optional[str]
    is_active: bool
    created_at: datetime


class OrderBumpRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    image_url: Optional[str] = None
    is_active: bool = True

    @field_validator("price", mode="before")
    @classmethod
    def _validate_price(cls, value: Any) -> Decimal:
        return to_decimal(value)


class OrderBumpResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    checkout_link_id: Optional[str]
    title: str
    description: Optional[str]
    price: Decimal
    image_url: Optional[str]
    is_active: bool


_REQUIRED_CUSTOMIZATION = (
    "company_name",
    "checkout_title",
    "primary_color",
    "secondary_color",
    "background_color",
    "text_color",
    "success_message",
    "enable_credit_card",
    "enable_debit_card",
    "enable_pix",
    "enable_boleto",
    "enable_order_bump",
    "show_company_logo",
    "show_payment_methods",
    "show_security_badges",
)


class CustomizationRequest(BaseModel):
    """Partial update of the checkout appearance; unset fields keep their value."""

    company_name: Optional[str] = None
    checkout_title: Optional[str] = None
    checkout_description: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    accent_color: Optional[str] = None
    background_image_url: Optional[str] = None
    font_family: Optional[str] = None
    button_style: Optional[str] = None
    layout_style: Optional[str] = None
    custom_css: Optional[str] = None
    success_message: Optional[str] = None
    enable_credit_card: Optional[bool] = None
    enable_debit_card: Optional[bool] = None
    enable_pix: Optional[bool] = None
    enable_boleto: Optional[bool] = None
    enable_order_bump: Optional[bool] = None
    order_bump_title: Optional[str] = None
    order_bump_description: Optional[str] = None
    order_bump_price: Optional[Decimal] = None
    order_bump_image_url: Optional[str] = None
    show_company_logo: Optional[bool] = None
    show_payment_methods: Optional[bool] = None
    show_security_badges: Optional[bool] = None

    @field_validator(*_REQUIRED_CUSTOMIZATION, mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field cannot be null")
        return value

    @field_validator("order_bump_price", mode="before")
    @classmethod
    def _validate_price(cls, value: Any) -> Optional[Decimal]:
        if value is None or value == "":
            return None
        return to_decimal(value)


class CustomizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_name: str
    checkout_title: str
    checkout_description: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: str
    secondary_color: str
    background_color: str
    text_color: str
    accent_color: Optional[str] = None
    background_image_url: Optional[str] = None
    font_family: Optional[str] = None
    button_style: Optional[str] = None
    layout_style: Optional[str] = None
    custom_css: Optional[str] = None
    success_message: str
    enable_credit_card: bool
    enable_debit_card: bool
    enable_pix: bool
    enable_boleto: bool
    enable_order_bump: bool
    order_bump_title: Optional[str] = None
    order_bump_description: Optional[str] = None
    order_bump_price: Optional[Decimal] = None
    order_bump_image_url: Optional[str] = None
    show_company_logo: bool
    show_payment_methods: bool
    show_security_badges: bool


class PublicCheckoutResponse(BaseModel):
    link: CheckoutLinkResponse
    order_bump: Optional[OrderBumpResponse] = None
    customization: CustomizationResponse
    public_key: Optional[str] = None


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = None


class WebhookEvent(BaseModel):
    """Envelope Mercado Pago posts to the notification_url."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    action: Optional[str] = None
    data: Optional[WebhookData] = None

    @property
    def payment_id(self) -> Optional[str]:
        if self.data is None or self.data.id is None:
            return None
        value = str(self.data.id).strip()
        return value or None


class CardData(BaseModel):
    token: str = Field(..., min_length=1)
    installments: int = Field(default=1, ge=1)
    payment_method_id: Optional[str] = Field(
        default=None,
        description="Card brand resolved by the tokenization SDK, e.g. 'master'",
    )


class CustomerData(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str
    document_type: str
    document_number: str


class ProcessPaymentRequest(BaseModel):
    checkout_link_id: str
    payment_method: PaymentMethod
    card_data: Optional[CardData] = None
    customer_data: CustomerData
    order_bump_selected: bool = False

    @model_validator(mode="after")
    def _card_requires_token(self) -> "ProcessPaymentRequest":
        if self.payment_method in ("credit_card", "debit_card") and self.card_data is None:
            raise ValueError("card_data is required for card payments")
        return self


class ProcessPaymentResponse(BaseModel):
    payment_id: str
    status: str
    payment_method: Optional[str] = None
    transaction_amount: Optional[Decimal] = None
    pix_qr_code: Optional[str] = None
    pix_qr_code_base64: Optional[str] = None
    pix_key: Optional[str] = None
    expiration_date: Optional[str] = None
    boleto_url: Optional[str] = None
    barcode: Optional[str] = None
    sandbox_url: Optional[str] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mercadopago_payment_id: str
    checkout_link_id: Optional[str]
    status: str
    amount: Decimal
    currency: str
    payer_name: Optional[str]
    payer_email: Optional[str]
    payer_phone: Optional[str]
    payer_document_type: Optional[str]
    payer_document_number: Optional[str]
    payment_method: Optional[str]
    transaction_amount: Optional[Decimal]
    net_received_amount: Optional[Decimal]
    fee_amount: Optional[Decimal]
    order_bump_selected: Optional[bool]
    order_bump_amount: Optional[Decimal]
    created_at: datetime
    updated_at: datetime
    checkout_link_title: Optional[str] = None
    delivery_link: Optional[str] = None


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    message: str
    payment_id: Optional[str]
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    unread_count: int
    notifications: List[NotificationResponse]

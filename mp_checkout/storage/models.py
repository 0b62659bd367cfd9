from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid4())


class GatewayConfig(SQLModel, table=True):
    __tablename__ = "mercadopago_config"

    id: str = Field(default_factory=_new_id, primary_key=True)
    access_token: str
    public_key: Optional[str] = None
    is_sandbox: bool = Field(default=True)
    webhook_secret: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class CheckoutLink(SQLModel, table=True):
    __tablename__ = "checkout_links"

    id: str = Field(default_factory=_new_id, primary_key=True)
    title: str
    description: Optional[str] = None
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="BRL", max_length=3)
    reference_id: str = Field(unique=True, index=True)
    mercadopago_preference_id: Optional[str] = None
    checkout_url: Optional[str] = None
    image_url: Optional[str] = None
    delivery_link: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class OrderBump(SQLModel, table=True):
    __tablename__ = "order_bumps"

    id: str = Field(default_factory=_new_id, primary_key=True)
    checkout_link_id: Optional[str] = Field(default=None, foreign_key="checkout_links.id", index=True)
    title: str
    description: Optional[str] = None
    price: Decimal = Field(max_digits=12, decimal_places=2)
    image_url: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Payment(SQLModel, table=True):
    __tablename__ = "payments"
    __table_args__ = (UniqueConstraint("mercadopago_payment_id", name="uq_mercadopago_payment_id"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    mercadopago_payment_id: str = Field(index=True)
    checkout_link_id: Optional[str] = Field(default=None, foreign_key="checkout_links.id", index=True)
    status: str = Field(index=True)
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="BRL", max_length=3)
    payer_name: Optional[str] = None
    payer_email: Optional[str] = None
    payer_phone: Optional[str] = None
    payer_document_type: Optional[str] = None
    payer_document_number: Optional[str] = None
    payment_method: Optional[str] = None
    transaction_amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    net_received_amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    fee_amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    order_bump_selected: Optional[bool] = None
    order_bump_amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    customer_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    webhook_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=_new_id, primary_key=True)
    type: str = Field(index=True)
    message: str
    payment_id: Optional[str] = Field(default=None, foreign_key="payments.id", index=True)
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class CheckoutCustomization(SQLModel, table=True):
    __tablename__ = "checkout_customization"

    id: str = Field(default_factory=_new_id, primary_key=True)
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
    enable_credit_card: bool = Field(default=True)
    enable_debit_card: bool = Field(default=True)
    enable_pix: bool = Field(default=True)
    enable_boleto: bool = Field(default=True)
    enable_order_bump: bool = Field(default=False)
    order_bump_title: Optional[str] = None
    order_bump_description: Optional[str] = None
    order_bump_price: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    order_bump_image_url: Optional[str] = None
    show_company_logo: bool = Field(default=True)
    show_payment_methods: bool = Field(default=True)
    show_security_badges: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

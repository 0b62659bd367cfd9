from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class EnvironmentSettings(BaseSettings):
    """Application level configuration loaded from environment variables."""

    database_url: str = Field(
        default="sqlite:///" + str(Path(__file__).resolve().parent.parent / "mp_checkout.db"),
        description="SQLAlchemy connection string",
    )
    default_timezone: str = Field(default="America/Sao_Paulo")
    log_level: str = Field(default="INFO")
    environment: str = Field(default="dev")

    mercadopago_api_url: str = Field(default="https://api.mercadopago.com")
    gateway_timeout_seconds: float = Field(default=30.0, gt=0)
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Public URL of this service, used to build the webhook notification_url",
    )
    frontend_base_url: str = Field(
        default="http://localhost:5173",
        description="Fallback origin for preference back_urls",
    )
    media_root: str = Field(
        default=str(Path(__file__).resolve().parent.parent / "media" / "product-images"),
    )
    cors_allow_origins: str = Field(default="*", description="Comma separated list of origins allowed by CORS")
    pix_expiration_minutes: int = Field(default=30, gt=0)
    boleto_expiration_days: int = Field(default=3, gt=0)

    model_config = {
        "env_prefix": "MP_CHECKOUT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @property
    def webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/api/webhooks/mercadopago"


class DefaultCustomization(BaseModel):
    company_name: str
    checkout_title: str
    checkout_description: Optional[str] = None
    primary_color: str
    secondary_color: str
    background_color: str
    text_color: str
    accent_color: Optional[str] = None
    success_message: str
    enable_credit_card: bool = True
    enable_debit_card: bool = True
    enable_pix: bool = True
    enable_boleto: bool = True
    enable_order_bump: bool = False
    show_company_logo: bool = True
    show_payment_methods: bool = True
    show_security_badges: bool = True


@lru_cache()
def get_settings() -> EnvironmentSettings:
    return EnvironmentSettings()


def get_defaults_path() -> Path:
    return Path(__file__).resolve().parent.parent / "config" / "defaults.yaml"

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict

import yaml
from sqlmodel import select

from ..config import DefaultCustomization, get_defaults_path
from ..schemas import CustomizationRequest
from ..storage.database import get_session
from ..storage.models import CheckoutCustomization

LOGGER = logging.getLogger(__name__)

_FALLBACK = DefaultCustomization(
    company_name="Minha Loja",
    checkout_title="Finalizar compra",
    primary_color="#009ee3",
    secondary_color="#00a650",
    background_color="#ffffff",
    text_color="#333333",
    success_message="Pagamento realizado com sucesso!",
)


def load_default_customization() -> DefaultCustomization:
    path = get_defaults_path()
    if not path.exists():
        LOGGER.warning("Default customization file missing", extra={"path": str(path)})
        return _FALLBACK

    with path.open("r", encoding="utf-8") as file:
        payload = yaml.safe_load(file) or {}
    return DefaultCustomization(**payload)


def get_customization() -> CheckoutCustomization:
    """The saved customization, or an unsaved one built from the defaults."""
    with get_session() as session:
        stored = session.exec(select(CheckoutCustomization).order_by(CheckoutCustomization.created_at)).first()
    if stored:
        return stored
    return CheckoutCustomization(**load_default_customization().model_dump())


def save_customization(payload: CustomizationRequest) -> CheckoutCustomization:
    changes: Dict[str, Any] = payload.model_dump(exclude_unset=True)
    with get_session() as session:
        customization = session.exec(select(CheckoutCustomization).order_by(CheckoutCustomization.created_at)).first()
        if customization is None:
            values = {**load_default_customization().model_dump(), **changes}
            customization = CheckoutCustomization(**values)
        else:
            for name, value in changes.items():
                setattr(customization, name, value)
            customization.updated_at = datetime.utcnow()
        session.add(customization)
        session.commit()
        session.refresh(customization)
    LOGGER.info("Checkout customization saved", extra={"fields": sorted(changes)})
    return customization

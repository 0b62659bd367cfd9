from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import select

from ..errors import ConfigUnavailable
from ..storage.database import get_session
from ..storage.models import GatewayConfig

LOGGER = logging.getLogger(__name__)


class GatewayConfigService:
    """Access to the single "current" Mercado Pago configuration.

    Callers get a :class:`GatewayConfig` or a :class:`ConfigUnavailable` error;
    nothing downstream has to null-check a bare row lookup.
    """

    def find(self) -> Optional[GatewayConfig]:
        with get_session() as session:
            return session.exec(select(GatewayConfig).order_by(GatewayConfig.created_at)).first()

    def current(self) -> GatewayConfig:
        config = self.find()
        if config is None:
            LOGGER.warning("Mercado Pago configuration requested but none is saved")
            raise ConfigUnavailable()
        return config

    def save(self, access_token: str, public_key: Optional[str], is_sandbox: bool) -> GatewayConfig:
        with get_session() as session:
            config = session.exec(select(GatewayConfig).order_by(GatewayConfig.created_at)).first()
            if config is None:
                config = GatewayConfig(access_token=access_token)
                created = True
            else:
                created = False
            config.access_token = access_token
            config.public_key = public_key
            config.is_sandbox = is_sandbox
            config.webhook_secret = str(uuid4())
            config.updated_at = datetime.utcnow()
            session.add(config)
            session.commit()
            session.refresh(config)

        LOGGER.info("Mercado Pago configuration saved", extra={"first_save": created, "is_sandbox": is_sandbox})
        return config


def get_config_service() -> GatewayConfigService:
    return GatewayConfigService()

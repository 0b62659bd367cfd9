from __future__ import annotations

import logging
from datetime import datetime

import pytz
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router
from .config import get_settings
from .errors import CheckoutError
from .logger import configure_logging
from .storage.database import init_db

configure_logging()
settings = get_settings()
LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Mercado Pago Checkout", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    # The checkout page sends its own idempotency key when retrying.
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-idempotency-key"],
)

app.include_router(router)


@app.exception_handler(CheckoutError)
def checkout_error_handler(request: Request, error: CheckoutError) -> JSONResponse:
    level = logging.ERROR if error.status_code >= 500 else logging.WARNING
    LOGGER.log(
        level,
        "Request failed",
        extra={"path": request.url.path, "status_code": error.status_code, "reason": error.message},
    )
    return JSONResponse(status_code=error.status_code, content={"detail": error.to_detail()})


@app.on_event("startup")
def startup() -> None:
    init_db()
    LOGGER.info(
        "Checkout service started",
        extra={"environment": settings.environment, "webhook_url": settings.webhook_url},
    )


@app.get("/health")
def health_check() -> dict[str, str]:
    now = datetime.now(pytz.timezone(settings.default_timezone))
    return {"status": "ok", "environment": settings.environment, "timestamp": now.isoformat()}

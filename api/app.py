"""Application factory wiring services, middleware and routers."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import (
    IdentityMiddleware,
    IdentityResolver,
    RequestIDMiddleware,
    header_identity_resolver,
)
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_email_config
from core.audit import AuditLogger
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import InvoiceSent
from core.handlers.invoice_email_handler import handle_invoice_sent
from core.services.client_service import ClientService
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


def build_services(
    postgres: PostgresClient,
    event_bus: EventBus,
    config: BillingConfig | None = None,
) -> dict:
    """Construct the service graph the routers dispatch to."""
    audit = AuditLogger(postgres)
    client_service = ClientService(postgres, audit)
    return {
        "client": client_service,
        "invoice": InvoiceService(postgres, audit, event_bus, client_service, config),
        "payment": PaymentService(postgres, audit, event_bus, client_service),
    }


def create_app(
    services: dict,
    identity_resolver: IdentityResolver = header_identity_resolver,
) -> FastAPI:
    """FastAPI app with identity middleware, error handlers, and data/actions routes."""
    app = FastAPI(title="Invoicing")
    app.add_middleware(IdentityMiddleware, resolver=identity_resolver)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def create_default_app() -> FastAPI:
    """
    Production app: database and email settings from Vault.

    Run with `uvicorn --factory api.app:create_default_app`.
    """
    config = BillingConfig()
    postgres = PostgresClient(get_database_url())
    event_bus = EventBus()
    event_bus.subscribe(InvoiceSent, handle_invoice_sent(EmailGatewayClient(**get_email_config()), config))

    logger.info("Invoicing app initialized")
    return create_app(build_services(postgres, event_bus, config))

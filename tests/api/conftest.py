"""API test fixtures - TestClient over mocked services.

Routers, middleware and error mapping are real; services are Mocks with
the real service specs so a renamed method fails loudly.
"""

from unittest.mock import Mock

import pytest
from fastapi import Request
from starlette.testclient import TestClient

from api.app import create_app
from core.services.client_service import ClientService
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService
from factories import TEST_ORG_ID, TEST_USER_ID


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def services():
    return {
        "client": Mock(spec=ClientService),
        "invoice": Mock(spec=InvoiceService),
        "payment": Mock(spec=PaymentService),
    }


# =============================================================================
# IDENTITY FIXTURES
# =============================================================================


def _resolver(request: Request):
    """Authenticated when the test sends the fake session cookie."""
    if request.cookies.get("session_token") == "test-token":
        return TEST_USER_ID, TEST_ORG_ID
    return None


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """FastAPI app with identity middleware, error handlers, and data/actions routes."""
    return create_app(services, identity_resolver=_resolver)


@pytest.fixture
def client(app):
    """Authenticated test client."""
    c = TestClient(app, raise_server_exceptions=False)
    c.cookies.set("session_token", "test-token")
    return c


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no session cookie)."""
    return TestClient(app, raise_server_exceptions=False)

"""Shared test fixtures for the invoicing test suite."""

import pytest
from uuid import UUID
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

import psycopg2

from clients.vault_client import VaultError
from core.exceptions import PersistenceError
from utils.request_context import request_context, clear_request_context


# =============================================================================
# TEST IDENTITY CONSTANTS
# =============================================================================

# Primary test user and organization - use for single-tenant tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")
TEST_ORG_SLUG = "acme"

# Secondary tenant - use for RLS isolation tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_ORG_B_ID = UUID("00000000-0000-0000-0000-0000000000b2")
TEST_ORG_B_SLUG = "globex"

SCHEMA_PATH = Path(__file__).parent.parent / "schema" / "invoicing.sql"

# Anything that means "no database configured here"
_DB_UNAVAILABLE = (ValueError, KeyError, PermissionError, VaultError, PersistenceError, psycopg2.Error)


# =============================================================================
# REQUEST CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_request_context():
    """Ensure clean identity before and after each test."""
    clear_request_context()
    yield
    clear_request_context()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_org_id() -> UUID:
    """The primary test organization's ID."""
    return TEST_ORG_ID


@pytest.fixture
def as_test_user(test_user_id, test_org_id):
    """Act as the primary user inside the primary organization."""
    with request_context(test_user_id, test_org_id):
        yield test_user_id


@pytest.fixture
def as_test_user_b():
    """Act as the secondary user inside the secondary organization."""
    with request_context(TEST_USER_B_ID, TEST_ORG_B_ID):
        yield TEST_USER_B_ID


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db_admin():
    """Session-scoped admin PostgresClient (bypasses RLS, for setup/teardown).

    Skips every DB-backed test when no database is configured.
    """
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_admin_database_url

    try:
        client = PostgresClient(get_admin_database_url())
        client.execute(SCHEMA_PATH.read_text())
    except _DB_UNAVAILABLE as e:
        pytest.skip(f"Database not available: {e}")

    yield client
    client.close()


@pytest.fixture(scope="session")
def app_db(db_admin):
    """Session-scoped PostgresClient (application role, RLS enforced)."""
    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    try:
        client = PostgresClient(get_database_url())
    except _DB_UNAVAILABLE as e:
        pytest.skip(f"Database not available: {e}")

    yield client
    client.close()


@pytest.fixture
def db(app_db, db_admin):
    """Application PostgresClient over a freshly reset database.

    Both test organizations exist with their invoice counters at 1.
    """
    db_admin.execute("TRUNCATE audit_log, payments, invoice_items, invoices, clients, organizations CASCADE")
    db_admin.execute(
        """
        INSERT INTO organizations (id, name, slug, invoice_prefix, invoice_next_number)
        VALUES (%s, 'Acme Studio', %s, 'INV', 1), (%s, 'Globex', %s, 'GLX', 1)
        """,
        (TEST_ORG_ID, TEST_ORG_SLUG, TEST_ORG_B_ID, TEST_ORG_B_SLUG)
    )
    return app_db


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def event_bus():
    from core.event_bus import EventBus
    return EventBus()


@pytest.fixture
def audit(db):
    from core.audit import AuditLogger
    return AuditLogger(db)


@pytest.fixture
def client_service(db, audit):
    from core.services.client_service import ClientService
    return ClientService(db, audit)


@pytest.fixture
def invoice_service(db, audit, event_bus, client_service):
    from core.services.invoice_service import InvoiceService
    return InvoiceService(db, audit, event_bus, client_service)


@pytest.fixture
def payment_service(db, audit, event_bus, client_service):
    from core.services.payment_service import PaymentService
    return PaymentService(db, audit, event_bus, client_service)

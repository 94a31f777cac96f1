"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from httpx import AsyncClient, ASGITransport

from proposal_engine.main import app
from proposal_engine.models.base import Base
from proposal_engine.db.session import get_db
from proposal_engine.core.auth import create_access_token
from proposal_engine.core.deps import get_notification_service, get_signature_storage
from proposal_engine.services.notification_service import NotificationService
from proposal_engine.services.signature_storage import SignatureStorage
from proposal_engine.services.slack_service import SlackService

from tests.factories import TINY_PNG_DATA_URL, AccountFactory


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope gives each test a fresh database. The pysqlite
    driver does not emit BEGIN itself, which breaks SAVEPOINTs; the two
    listeners hand transaction control to SQLAlchemy so begin_nested()
    behaves as it does on PostgreSQL.
    """
    engine = create_async_engine(TEST_ASYNC_DATABASE_URL, echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def mock_slack() -> MagicMock:
    """
    Slack service double recording every message.

    WHY: Tests must never call a real webhook; assertions inspect
    send_message_safe.await_args_list instead.
    """
    slack = MagicMock(spec=SlackService)
    slack.send_message_safe = AsyncMock(return_value=True)
    return slack


@pytest.fixture
def notification_service(mock_slack) -> NotificationService:
    return NotificationService(slack_service=mock_slack, base_url="http://app.test")


@pytest.fixture
def signature_storage() -> SignatureStorage:
    """
    Real signature storage over a mocked S3 client.

    WHY: Image decoding and validation still run; only the upload is faked.
    """
    return SignatureStorage(s3_client=MagicMock(), bucket_name="proposal-signatures")


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    notification_service: NotificationService,
    signature_storage: SignatureStorage,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient with ASGITransport exercises the real routes,
    dependencies and exception handlers without running a server.
    """

    async def override_get_db():
        """
        Override database dependency with test session.

        WHY: Mirrors get_db so a failed request rolls back like it
        would in production.
        """
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notification_service
    app.dependency_overrides[get_signature_storage] = lambda: signature_storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_account(db_session: AsyncSession):
    """
    Create a test account.

    WHY: Every proposal belongs to an account; its business identity
    is snapshotted onto proposals.
    """
    return await AccountFactory.create(db_session)


@pytest_asyncio.fixture
async def other_account(db_session: AsyncSession):
    """A second account for cross-tenant isolation tests."""
    return await AccountFactory.create(db_session, name="Other Studio", email="hello@other.test")


def auth_headers_for(account, user_id: int = 1) -> dict:
    token = create_access_token({"user_id": user_id, "account_id": account.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers(test_account) -> dict:
    """Bearer headers for the owner of test_account."""
    return auth_headers_for(test_account)


@pytest.fixture
def other_owner_headers(other_account) -> dict:
    return auth_headers_for(other_account, user_id=2)


@pytest.fixture
def sample_proposal_data() -> dict:
    """
    Sample proposal payload.

    WHY: Centralizing test data ensures consistency across tests.
    """
    return {
        "title": "Website Automation",
        "client_first_name": "Ada",
        "client_last_name": "Lovelace",
        "client_email": "ada@example.com",
        "custom_sections": [
            {"title": "Scope", "body": "Build the lead capture workflow", "position": 0},
            {"title": "Timeline", "body": "Four weeks", "position": 1},
        ],
        "line_items": [
            {"description": "Build", "quantity": 1, "unit_price": 1000},
            {"description": "Hosting", "quantity": 1, "unit_price": 250, "pricing_type": "monthly"},
        ],
        "terms_content": "50% deposit required",
        "discount_type": "flat",
        "discount_value": 100,
        "tax_rate": 10,
    }


@pytest.fixture
def sign_payload() -> dict:
    return {
        "signer_name": "Ada Lovelace",
        "signer_email": "ada@example.com",
        "signature_image": TINY_PNG_DATA_URL,
        "accepted_terms": True,
    }

"""Shared fixtures: an in-memory database, a dispatcher over it, and an HTTP client against the app."""

from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from chathive.domains.ingestion.dependencies import get_webhook_dispatcher
from chathive.domains.ingestion.service import WebhookDispatcher
from chathive.main import app
from tests.fakes import FakeDatabase
from tests.payloads import APP_SECRET, PHONE_NUMBER_ID


@pytest.fixture(name="db")
def fixture_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture(name="org")
def fixture_org(db: FakeDatabase) -> SimpleNamespace:
    return db.add_organization(phone_number_id=PHONE_NUMBER_ID)


@pytest.fixture(name="dispatcher")
def fixture_dispatcher(db: FakeDatabase) -> WebhookDispatcher:
    return WebhookDispatcher(db.open_unit, app_secret=APP_SECRET, unit_timeout=1.0)


@pytest.fixture(name="async_client")
async def fixture_async_client(dispatcher: WebhookDispatcher) -> AsyncClient:
    """Async client against the main app with the webhook dispatcher backed by the fake database."""
    app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()

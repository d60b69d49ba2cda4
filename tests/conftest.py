"""
Pytest configuration for Serial Hub.

Provides fixtures for:
- Settings pointing at a per-test SQLite file
- An app whose serialization client loops back into the app itself
- A scripted external endpoint for delivery tests
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import AsyncGenerator, Callable, List

import httpx
import pytest
import pytest_asyncio

from serial_hub.db_models import SerialRecord
from serial_hub.main import create_app
from serial_hub.services.delivery import ExternalDelivery
from serial_hub.services.labels import encode_label
from serial_hub.settings import Settings


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        DATA_ROOT=tmp_path,
        DATABASE_URL=f"sqlite+aiosqlite:///{(tmp_path / 'serial_hub_test.db').as_posix()}",
        SERIALIZATION_URL="http://serials.test",
        EXTERNAL_API="http://external.test/api",
        LOG_TO_FILE=False,
    )


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedEndpoint:
    """
    MockTransport handler replaying a list of outcomes.

    Each outcome is a status code or an exception instance; the last one
    repeats once the script runs out.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [200]
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[idx]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"ok": outcome < 400})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def scripted_endpoint():
    """The ScriptedEndpoint class, for tests that build their own script."""
    return ScriptedEndpoint


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_delivery(sleep_recorder: SleepRecorder) -> Callable[..., ExternalDelivery]:
    def _make(endpoint: ScriptedEndpoint, **kwargs) -> ExternalDelivery:
        return ExternalDelivery(
            "http://external.test/api",
            transport=endpoint.transport,
            sleep=sleep_recorder,
            **kwargs,
        )
    return _make


@pytest_asyncio.fixture
async def app(test_settings: Settings):
    application = create_app(test_settings)
    # aggregation + labels talk to /serials of this same app
    application.state.serial_client.transport = httpx.ASGITransport(app=application)
    await application.state.db.create_all()
    yield application
    await application.state.status_updater.drain()
    await application.state.db.dispose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def db_session(app):
    async with app.state.db.session() as session:
        yield session


@pytest.fixture
def insert_serial(app):
    """Write a serial row directly, bypassing the allocator (legacy data)."""
    async def _insert(serial: str, status: str = "GENERATED") -> None:
        async with app.state.db.session() as session:
            session.add(SerialRecord(
                serial=serial,
                product_code="05012345678900",
                batch="LEGACY",
                manufacture_date=date(2024, 1, 1),
                expiry_date=date(2026, 1, 1),
                label_payload=encode_label(serial),
                status=status,
                created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            ))
    return _insert


ALLOCATE_BODY = {
    "productCode": "05012345678900",
    "batch": "B2025-01",
    "manufactureDate": "2025-01-10",
    "expiryDate": "2027-01-10",
}


@pytest.fixture
def allocate(client):
    async def _allocate(**overrides) -> httpx.Response:
        body = {**ALLOCATE_BODY, **overrides}
        return await client.post("/serials/generate", json=body)
    return _allocate

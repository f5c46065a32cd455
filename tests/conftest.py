"""
Shared fixtures: a fresh in-memory store per test and a recording notification channel
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATION_CHANNEL", "console")

import pytest
from fastapi.testclient import TestClient

from dispatch.database import Base, engine, SessionLocal
from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import Actor
from dispatch.schemas.user import UserRole
from dispatch.services.notification_service import NotificationDispatcher
from tests.factories import save_user


class RecordingChannel:
    """Notification channel that keeps every payload it is handed"""

    def __init__(self):
        self.sent = []

    def publish(self, payload):
        self.sent.append(payload)
        return True


@pytest.fixture(autouse=True)
def fresh_schema():
    """Every test starts from empty tables."""
    import dispatch.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return CollectionGateway(SessionLocal)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def dispatcher(channel):
    return NotificationDispatcher(channel)


@pytest.fixture
def actor():
    return Actor(id="admin-1", name="Dispatch Admin")


@pytest.fixture
async def driver(gateway):
    return await save_user(gateway, "D7", "Karim", UserRole.DRIVER)


@pytest.fixture
async def other_driver(gateway):
    return await save_user(gateway, "D2", "Salma", UserRole.DRIVER)


@pytest.fixture
async def merchant_user(gateway):
    return await save_user(gateway, "M1", "Corner Bakery", UserRole.MERCHANT)


@pytest.fixture
def client(gateway, dispatcher):
    """HTTP client sharing the test gateway and recording dispatcher"""
    from dispatch.api.deps import get_gateway, get_dispatcher
    from dispatch.main import app

    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()

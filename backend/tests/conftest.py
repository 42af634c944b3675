from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from storefront.api.deps import get_db
from storefront.core.security import ROLE_ADMIN, ROLE_CUSTOMER, create_access_token
from storefront.enums import NotificationKind
from storefront.main import app
from storefront.models import Coupon, Order, OrderStatusHistory
from storefront.services.notifications import get_notifier


class RecordingNotifier:
    """Collects notifications instead of sending e-mail."""

    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, str, dict[str, Any] | None]] = []

    def send(self, kind: NotificationKind, order: Order, extra: dict[str, Any] | None = None) -> bool:
        self.sent.append((kind, order.id, extra))
        return True

    def kinds(self) -> list[NotificationKind]:
        return [kind for kind, _, _ in self.sent]


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        session.exec(delete(OrderStatusHistory))
        session.exec(delete(Order))
        session.exec(delete(Coupon))
        session.commit()


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(engine, db, notifier) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_headers() -> Callable[..., dict[str, str]]:
    def _make(sub: str = "user-1", *, email: str | None = None, role: str = ROLE_CUSTOMER) -> dict[str, str]:
        token = create_access_token(sub, timedelta(minutes=10), email=email, role=role)
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def admin_headers(make_headers) -> dict[str, str]:
    return make_headers("admin-1", email="admin@example.com", role=ROLE_ADMIN)


@pytest.fixture
def customer_headers(make_headers) -> dict[str, str]:
    return make_headers("user-1", email="buyer@example.com")

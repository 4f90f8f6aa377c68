"""Pytest fixtures for testing"""

from decimal import Decimal
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from installment_engine.api.dependencies import get_notification_client
from installment_engine.api.main import create_app
from installment_engine.domain import lifecycle
from installment_engine.domain.events import DomainEvent
from installment_engine.domain.models import InstallmentRequest, LineItem, OfferItem, PaymentFrequency
from installment_engine.domain.policy import NegotiationPolicy, PolicyStore
from installment_engine.infrastructure.clients.notifications import NotificationClient
from installment_engine.infrastructure.database.models import Base
from installment_engine.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingNotificationClient(NotificationClient):
    """Captures events instead of posting them to the dispatcher"""

    def __init__(self):
        super().__init__(webhook_url="http://notifications.test/events")
        self.sent: List[DomainEvent] = []

    async def send_event(self, event: DomainEvent) -> None:
        self.sent.append(event)

    @property
    def event_names(self) -> List[str]:
        return [event.name for event in self.sent]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier() -> RecordingNotificationClient:
    return RecordingNotificationClient()


@pytest.fixture
def client(db: Session, notifier: RecordingNotificationClient) -> TestClient:
    """Create FastAPI test client with test database and captured notifications"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


@pytest.fixture
def policy() -> PolicyStore:
    """Default negotiation policy"""
    return PolicyStore(NegotiationPolicy())


@pytest.fixture
def line_items() -> List[LineItem]:
    """Three items totaling 3000 SAR"""
    return [
        LineItem(product_id="brake-pads", quantity_requested=2, unit_price_requested=Decimal("500")),
        LineItem(product_id="oil-filter", quantity_requested=10, unit_price_requested=Decimal("100")),
        LineItem(product_id="spark-plug", quantity_requested=4, unit_price_requested=Decimal("250")),
    ]


@pytest.fixture
def pending_request(line_items: List[LineItem], policy: PolicyStore) -> InstallmentRequest:
    """Request for 3000 SAR over 3 monthly installments, awaiting primary review"""
    return lifecycle.create_request("buyer-1", line_items, 3, PaymentFrequency.MONTHLY, policy).request


@pytest.fixture
def approve_items():
    """Builds offer items approving the first `count` request lines in full"""

    def build(request: InstallmentRequest, count: int) -> List[OfferItem]:
        return [
            OfferItem(
                request_item_id=item.id,
                quantity_approved=item.quantity_requested,
                unit_price_approved=item.unit_price_requested,
            )
            for item in request.line_items[:count]
        ]

    return build

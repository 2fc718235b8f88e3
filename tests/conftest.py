import os
from pathlib import Path

import pytest

# must be set before app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./.pytest-checkout.db")
os.environ.setdefault("CHECKOUT_LOCK_ENABLED", "false")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.api.deps import get_authorizer, get_lock_service  # noqa: E402
from app.data.database import Base, get_db, make_engine  # noqa: E402
import app.data.models  # noqa: E402,F401
from app.main import create_app  # noqa: E402
from app.services.payment_gateway import SimulatedGateway  # noqa: E402
from app.services.payment_service import PaymentAuthorizer  # noqa: E402
from factories import VALID_CARD, make_card  # noqa: E402


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))
        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/services/" in test_path:
            item.add_marker(pytest.mark.service)
        elif "/api/" in test_path:
            item.add_marker(pytest.mark.api)


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'checkout.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def gateway():
    return SimulatedGateway()


@pytest.fixture()
def authorizer(gateway):
    return PaymentAuthorizer(gateway, timeout=2.0)


@pytest.fixture()
def card():
    return make_card()


@pytest.fixture()
def client(session_factory, authorizer):
    app = create_app(lifespan=None)

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_authorizer] = lambda: authorizer
    app.dependency_overrides[get_lock_service] = lambda: None
    return TestClient(app)


@pytest.fixture()
def checkout_body():
    card = make_card()
    return {
        "shipping_address": "1 Main St, Springfield",
        "payment_method": "credit_card",
        "card_number": VALID_CARD,
        "expiry_month": card.expiry_month,
        "expiry_year": card.expiry_year,
        "cvv": "123",
        "cardholder_name": "Jane Doe",
    }

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

import plantasy.persistence.pg as pg
from plantasy.api.routes_razorpay import get_gateway_client
from plantasy.checkout.orchestrator import get_checkout_orchestrator
from plantasy.core.config import get_settings
from plantasy.core.security import issue_identity_token
from plantasy.demo import seed_demo_catalog
from plantasy.persistence.documents import DocumentStore
from plantasy.persistence.models import Base, DocumentModel

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "rzp_test_secret"


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.razorpay_mode = "fake"
    settings.razorpay_key_id = TEST_KEY_ID
    settings.razorpay_key_secret = TEST_KEY_SECRET
    settings.razorpay_probe_script = False
    settings.payment_proxy_mode = "inprocess"
    settings.delhivery_use_mock = True
    settings.delhivery_flat_charge = Decimal("50")
    settings.tax_rate = Decimal("0.05")
    settings.object_store_backend = "local"
    settings.object_store_dir = test_db_path.parent / "objects"

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_state(configure_test_engine):
    # Attempts and payment handles live in process memory; start each test fresh.
    get_checkout_orchestrator.cache_clear()
    get_gateway_client.cache_clear()
    with pg.session_scope() as s:
        s.execute(delete(DocumentModel))
    yield
    get_checkout_orchestrator.cache_clear()
    get_gateway_client.cache_clear()


@pytest.fixture()
def client(configure_test_engine):
    from plantasy.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def read_store():
    """Run a callable against a fresh, committed unit of work."""

    def _read(fn):
        with pg.session_scope() as s:
            return fn(DocumentStore(s))

    return _read


@pytest.fixture()
def catalog(configure_test_engine):
    with pg.session_scope() as s:
        return seed_demo_catalog(s)


@pytest.fixture()
def orchestrator(configure_test_engine):
    return get_checkout_orchestrator()


@pytest.fixture()
def customer_headers():
    token = issue_identity_token("user-001", email="asha@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def other_customer_headers():
    token = issue_identity_token("user-002", email="ravi@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers():
    settings = get_settings()
    return {
        "super_admin": {"X-API-Key": settings.super_admin_api_key},
        "editor": {"X-API-Key": settings.editor_api_key},
        "support": {"X-API-Key": settings.support_api_key},
    }


@pytest.fixture()
def address_payload():
    return {
        "firstName": "Asha",
        "lastName": "Menon",
        "phone": "9876543210",
        "addressLine1": "12 Palm Grove",
        "addressLine2": "",
        "city": "Kochi",
        "region": "Kerala",
        "zip": "682001",
        "country": "India",
    }

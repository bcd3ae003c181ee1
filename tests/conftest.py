import os

# Point the app at the test database before anything from gatesim is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import uuid
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from gatesim.main import app
from gatesim.db.base_class import Base
from gatesim.db.session import get_db
from gatesim.crud import crud_user
from gatesim.models.user import User as UserModel
from gatesim.schemas.catalog import CatalogOffer, PricingConfig
from gatesim.schemas.payment import Deeplink, Invoice
from gatesim.schemas.user import UserCreate
from gatesim.services.catalog_service import CatalogService, get_catalog_service
from gatesim.services.mobimatter import MobiMatterClient, ProvisioningError, get_mobimatter_client
from gatesim.services.qpay import PaymentGatewayError, get_qpay_client

TEST_SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.create_all(bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

DEFAULT_PRICING = PricingConfig(usd_to_mnt_rate=3450, margin_percent=25)

def make_offer(sku: str, countries: List[str], amount="5", unit="GB", validity="7", price=10.0,
               currency="USD", provider="eSIMGo", title: Optional[str] = None, **kwargs) -> CatalogOffer:
    return CatalogOffer(
        sku=sku,
        title=title or f"{'/'.join(countries)} {amount}{unit} {validity} Days",
        data_amount=amount,
        data_unit=unit,
        raw_validity=validity,
        countries=countries,
        provider=provider,
        original_price=price,
        original_currency=currency,
        **kwargs,
    )

# Sell prices at 3450 MNT/USD and 25% margin are noted per offer
TEST_OFFERS = [
    make_offer("jp-5gb-7d-a", ["JP"], price=13.0),                                         # 56,100
    make_offer("jp-5gb-7d-b", ["JP"], price=11.0, provider="RedteaGO"),                    # 47,500
    make_offer("kr-3gb-5d", ["KR"], amount="3", validity="5", price=4.0),                  # 15,900 (15% cap)
    make_offer("asia-10gb-30d", ["CN", "JP", "KR", "TH"], amount="10", validity="30",
               price=20.0, provider="Sparks"),                                             # 86,300
    make_offer("cn-unl-10d", ["CN"], amount="0", validity="240", price=16.0,
               provider="RedteaGO", is_unlimited=True),                                    # 69,000
    make_offer("jp-topup-1gb", ["JP"], amount="1", validity="7", price=3.0, is_top_up=True),  # 12,000
    make_offer("mn-2000mb-30d", ["MN"], amount="2000", unit="MB", validity="30",
               price=15000, currency="MNT", provider="Unitel"),                            # 18,800
]


class FakeQPayClient:
    """In-memory QPay: invoices are paid by adding their id to `paid`."""

    def __init__(self):
        self.paid = set()
        self.invoices = []
        self.checks = []
        self.fail_create = False
        self.fail_check = False

    def create_invoice(self, *, order_id: str, amount: int, description: str) -> Invoice:
        if self.fail_create:
            raise PaymentGatewayError("QPay is unavailable")
        invoice = Invoice(
            invoice_id=f"INV-{order_id}",
            order_id=order_id,
            qr_image="iVBORw0KGgo=",
            qr_text="0002010102121531279404962794049600022310027138152045734530349654031005802MN",
            short_url=f"https://s.qpay.mn/{order_id}",
            deeplinks=[Deeplink(name="Khan bank", description="Хаан банк", link="khanbank://q?qPay_QRcode=x")],
            amount_mnt=amount,
        )
        self.invoices.append(invoice)
        return invoice

    def check_payment(self, invoice_id: str):
        self.checks.append(invoice_id)
        if self.fail_check:
            raise PaymentGatewayError("QPay is unavailable")
        is_paid = invoice_id in self.paid
        return {"is_paid": is_paid, "paid_amount": 1 if is_paid else 0, "rows": []}


class FakeMobiMatterClient:
    def __init__(self):
        self.orders = []
        self.fail = False

    def create_order(self, sku: str):
        self.orders.append(sku)
        if self.fail:
            raise ProvisioningError("MobiMatter order failed: 500 - out of stock")
        return {
            "provider_order_id": f"MM-{len(self.orders)}",
            "iccid": "8988247000000000001",
            "lpa": "LPA:1$smdp.example.com$ABC-123",
            "qr_data": "LPA:1$smdp.example.com$ABC-123",
        }


@pytest.fixture(scope="session")
def test_engine():
    Base.metadata.create_all(bind=engine)
    yield engine

@pytest.fixture(scope="function")
def db_session(test_engine):
    """
    Provides a database session for each test function.
    Tables are dropped and recreated first so every test starts empty.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(scope="function")
def catalog_service() -> CatalogService:
    # Unconfigured client: the feed always fails and the test offers are served
    service = CatalogService(
        client=MobiMatterClient(api_key="", merchant_id=""),
        fallback_offers=TEST_OFFERS,
    )
    app.dependency_overrides[get_catalog_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_catalog_service, None)

@pytest.fixture(scope="function")
def fake_qpay() -> FakeQPayClient:
    client = FakeQPayClient()
    app.dependency_overrides[get_qpay_client] = lambda: client
    yield client
    app.dependency_overrides.pop(get_qpay_client, None)

@pytest.fixture(scope="function")
def fake_mobimatter() -> FakeMobiMatterClient:
    client = FakeMobiMatterClient()
    app.dependency_overrides[get_mobimatter_client] = lambda: client
    yield client
    app.dependency_overrides.pop(get_mobimatter_client, None)

@pytest.fixture(scope="function")
def client(db_session, catalog_service, fake_qpay, fake_mobimatter):
    with TestClient(app) as c:
        yield c

def create_user_and_get_token(db: Session, client: TestClient, is_superuser: bool = False):
    email = f"user_{'super_' if is_superuser else ''}{uuid.uuid4().hex[:6]}@example.com"
    password = "testpassword123"

    user = crud_user.create_user(
        db=db,
        obj_in=UserCreate(email=email, password=password, full_name="Test User"),
        is_superuser=is_superuser,
        role="admin" if is_superuser else "customer",
    )

    response = client.post("/api/v1/auth/login", data={"username": email, "password": password})
    if response.status_code != 200:
        raise Exception(f"Failed to log in user {email} during fixture setup. Status: {response.status_code}, Detail: {response.text}")

    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}, user

@pytest.fixture(scope="function")
def normal_user_token_headers(db_session: Session, client: TestClient):
    return create_user_and_get_token(db_session, client, is_superuser=False)

@pytest.fixture(scope="function")
def superuser_token_headers(db_session: Session, client: TestClient):
    return create_user_and_get_token(db_session, client, is_superuser=True)

@pytest.fixture(scope="function")
def test_normal_user(normal_user_token_headers: tuple) -> UserModel:
    return normal_user_token_headers[1]

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi.testclient import TestClient
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from jose import jwt
import os
import uuid

# The background scheduler must not start inside the test client
os.environ.setdefault("PAYOUT_SCHEDULER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

# Add project root to sys.path to allow imports from affiliate_ledger
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))


from affiliate_ledger.main import app
from affiliate_ledger.db.base import Base
from affiliate_ledger.db.session import get_db
from affiliate_ledger.core.click_tracker import record_click
from affiliate_ledger.core.clock import utcnow
from affiliate_ledger.core.config import ALGORITHM, SECRET_KEY
from affiliate_ledger.core.states import AffiliateStatus, CommissionType
from affiliate_ledger.crud import crud_affiliate
from affiliate_ledger.models.affiliate import Affiliate as AffiliateModel
from affiliate_ledger.schemas.affiliate import AffiliateCreateInternal

# Use a separate SQLite database for testing
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

# Fixed reference time for deterministic windows and holds
T0 = datetime(2024, 3, 1, 12, 0, 0)

STORE_ID = "store_1"
OWNER_ID = "owner_1"

@pytest.fixture(scope="session")
def test_engine():
    Base.metadata.create_all(bind=engine)
    yield engine

@pytest.fixture(scope="function")
def db_session(test_engine):
    """
    Provides a database session for each test function, dropping and
    recreating the tables first so every test starts from an empty ledger.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(scope="function")
def client():
    # The TestClient uses the app with the overridden get_db dependency
    with TestClient(app) as c:
        yield c

def create_access_token(
    user_id: str, stores: Optional[List[str]] = None, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Mint a bearer token in the shape the identity provider issues:
    "sub" is the opaque user id, "stores" the store ids the user owns.
    """
    expire = utcnow() + (expires_delta or timedelta(minutes=30))
    to_encode = {"sub": user_id, "stores": list(stores or []), "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def auth_headers(user_id: str, stores=()) -> dict:
    token = create_access_token(user_id, stores=list(stores))
    return {"Authorization": f"Bearer {token}"}

def create_affiliate(
    db: Session,
    *,
    affiliate_code: Optional[str] = None,
    store_id: str = STORE_ID,
    affiliate_user_id: Optional[str] = None,
    status: AffiliateStatus = AffiliateStatus.ACTIVE,
    commission_rate: Decimal = Decimal("20"),
    commission_type: CommissionType = CommissionType.PERCENTAGE,
    fixed_commission_amount: Optional[Decimal] = None,
    cookie_duration: int = 30,
) -> AffiliateModel:
    """Create an affiliate row directly, bypassing the application flow."""
    return crud_affiliate.create_affiliate(db, obj_in=AffiliateCreateInternal(
        affiliate_user_id=affiliate_user_id or f"user_{uuid.uuid4().hex[:8]}",
        store_id=store_id,
        creator_id=OWNER_ID,
        affiliate_code=(affiliate_code or uuid.uuid4().hex[:6]).upper(),
        commission_rate=commission_rate,
        commission_type=commission_type,
        fixed_commission_amount=fixed_commission_amount,
        cookie_duration=cookie_duration,
        status=status,
        applied_at=T0,
    ))

def click_token(db: Session, affiliate: AffiliateModel, now: datetime = T0, visitor_id: str = "visitor_1") -> str:
    tracked = record_click(
        db,
        affiliate_code=affiliate.affiliate_code,
        store_id=affiliate.store_id,
        landing_page="https://shop.example.com/courses/python",
        visitor_id=visitor_id,
        now=now,
    )
    assert tracked is not None
    return tracked.attribution_token

@pytest.fixture(scope="function")
def active_affiliate(db_session: Session) -> AffiliateModel:
    return create_affiliate(db_session, affiliate_code="ABC123", affiliate_user_id="affiliate_user_1")

@pytest.fixture(scope="function")
def owner_headers() -> dict:
    return auth_headers(OWNER_ID, stores=[STORE_ID])

@pytest.fixture(scope="function")
def affiliate_headers(active_affiliate: AffiliateModel) -> dict:
    return auth_headers(active_affiliate.affiliate_user_id)

def tracked_sale(client: TestClient, order_id: str, affiliate_code: str = "ABC123", order_amount: str = "100") -> dict:
    """Click through the affiliate link and buy, both via the tracking API."""
    click = client.post("/api/v1/track/click", json={
        "affiliate_code": affiliate_code,
        "store_id": STORE_ID,
        "landing_page": "https://shop.example.com/courses/python",
        "visitor_id": f"visitor_{order_id}",
    })
    assert click.json()["tracked"] is True
    conversion = client.post("/api/v1/track/conversion", headers=auth_headers(OWNER_ID, stores=[STORE_ID]), json={
        "order_id": order_id,
        "order_amount": order_amount,
        "store_id": STORE_ID,
        "attribution_tokens": [click.json()["attribution_token"]],
    })
    assert conversion.status_code == 200
    return conversion.json()

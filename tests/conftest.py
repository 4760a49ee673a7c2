import os
from typing import AsyncGenerator, Generator

# Use a shared in-memory SQLite database (StaticPool) before the app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("SECURITY_HEADERS_ENABLED", "true")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from fieldcrm import models  # noqa: F401
from fieldcrm import models_loyalty  # noqa: F401
from fieldcrm import models_messaging  # noqa: F401
from fieldcrm import models_opportunities  # noqa: F401
from fieldcrm import models_promotions  # noqa: F401
from fieldcrm import models_support  # noqa: F401
from fieldcrm.database import Base, SessionLocal, engine
from fieldcrm.domain.loyalty.tiers import seed_default_tiers
from fieldcrm.models import Customer, User


@pytest.fixture(name="db")
def db_fixture() -> Generator[Session, None, None]:
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_default_tiers(session)
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="staff_user")
def staff_user_fixture(db: Session) -> User:
    user = User(firebase_uid="staff-uid", full_name="Dana Dispatcher", email="dana@example.com", role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(name="customer")
def customer_fixture(db: Session) -> Customer:
    customer = Customer(
        full_name="Casey Customer",
        email="casey@example.com",
        phone_e164="+15125550100",
        zone="N",
        auth_uid="portal-uid",
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest_asyncio.fixture(name="client")
async def client_fixture(db: Session, staff_user: User, customer: Customer) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client with auth, rate limiting and the database overridden."""
    from fieldcrm.auth import get_current_user, get_portal_customer
    from fieldcrm.database import get_db
    from fieldcrm.main import app
    from fieldcrm.rate_limiter import portal_write_limit

    def get_db_override():
        yield db

    async def current_user_override():
        return staff_user

    async def portal_customer_override():
        return customer

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_current_user] = current_user_override
    app.dependency_overrides[get_portal_customer] = portal_customer_override
    app.dependency_overrides[portal_write_limit] = no_rate_limit

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as client:
        yield client

    app.dependency_overrides.clear()

import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from loyalty.main import app
from loyalty.core.database import get_db, Base
from loyalty.core.security import get_password_hash, create_access_token, ROLE_USER, ROLE_CAISSE, ROLE_ADMIN
from loyalty.database_model import (
    User,
    Admin,
    Shop,
    Caisse,
    Cashback,
    UserCashback,
    Setting,
    SettingSponsoring,
    SINGLETON_ID
)
from loyalty.services.setting_service import ProgramSettings

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

USER_PASSWORD = "secret1"
CAISSE_PASSWORD = "caisse1"
ADMIN_PASSWORD = "admin1234"


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Create a test database session."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession):
    """Create a test client sharing the test session."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def program_settings():
    """Program settings used by the service tests."""
    return ProgramSettings(
        cashback_amount=100.0,
        voucher_durate=30,
        godson_amount=500.0,
        godfather_amount=1000.0
    )


@pytest_asyncio.fixture
async def setting_rows(db_session: AsyncSession):
    """Singleton settings rows matching ``program_settings``."""
    db_session.add(Setting(id=SINGLETON_ID, cashback_amount=100.0, voucher_durate=30))
    db_session.add(SettingSponsoring(id=SINGLETON_ID, godson_amount=500.0, godfather_amount=1000.0))
    await db_session.commit()


async def create_user(
    db_session: AsyncSession,
    phone: str,
    sponsoring_code: str,
    balance: float = 0.0,
    threshold: float = 5000.0
) -> User:
    """Insert a card holder with ledger and threshold rows, as registration does."""
    user = User(
        phone=phone,
        barcode=str(uuid.uuid4()),
        sponsoring_code=sponsoring_code,
        hashed_password=get_password_hash(USER_PASSWORD),
        first_name="Test",
        last_name="User"
    )
    db_session.add(user)
    await db_session.flush()

    db_session.add(Cashback(user_id=user.id, amount=balance))
    db_session.add(UserCashback(user_id=user.id, amount=threshold))
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession):
    """Create a test card holder."""
    return await create_user(db_session, "060000001", "SPONSOR1")


@pytest_asyncio.fixture
async def test_shop(db_session: AsyncSession):
    shop = Shop(name="Magasin Test", address="Avenue de la Paix")
    db_session.add(shop)
    await db_session.commit()
    await db_session.refresh(shop)
    return shop


@pytest_asyncio.fixture
async def test_caisse(db_session: AsyncSession, test_shop: Shop):
    """Create a test cashier attached to ``test_shop``."""
    caisse = Caisse(
        shop_id=test_shop.id,
        first_name="Jeanne",
        last_name="Caisse",
        phone="070000001",
        email="caisse@test.com",
        hashed_password=get_password_hash(CAISSE_PASSWORD)
    )
    db_session.add(caisse)
    await db_session.commit()
    await db_session.refresh(caisse)
    return caisse


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession):
    admin = Admin(email="admin@test.com", hashed_password=get_password_hash(ADMIN_PASSWORD))
    db_session.add(admin)
    await db_session.commit()
    await db_session.refresh(admin)
    return admin


@pytest.fixture
def user_headers(test_user: User):
    """Authorization headers for the test card holder."""
    return {"Authorization": f"Bearer {create_access_token(test_user.id, ROLE_USER)}"}


@pytest.fixture
def caisse_headers(test_caisse: Caisse):
    """Authorization headers for the test cashier."""
    return {"Authorization": f"Bearer {create_access_token(test_caisse.id, ROLE_CAISSE)}"}


@pytest.fixture
def admin_headers(test_admin: Admin):
    """Authorization headers for the test administrator."""
    return {"Authorization": f"Bearer {create_access_token(test_admin.id, ROLE_ADMIN)}"}


@pytest.fixture
def sample_ticket_data():
    """Sample ticket payload, without caisse and user ids."""
    return {
        "payment_type": 1,
        "ticket_date": "2024-01-15",
        "ticket_number": "T-000123",
        "ticket_amount": 25000.0,
        "ticket_cashback": 250.0
    }


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Create extra card holders: ``await user_factory(phone, code, balance=...)``."""
    async def factory(phone: str, sponsoring_code: str, balance: float = 0.0, threshold: float = 5000.0) -> User:
        return await create_user(db_session, phone, sponsoring_code, balance=balance, threshold=threshold)
    return factory

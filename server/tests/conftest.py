"""Test configuration and fixtures."""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from allocation_engine.core.config import settings
from allocation_engine.core.database import Base, get_db
from allocation_engine.models import (
    AllocationRecord,
    AllocationType,
    InventoryPool,
    ProductVariant,
    RatePlan,
    Supplier,
)

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SERVICE_DATE = date(2025, 7, 1)
SEASON_START = date(2025, 1, 1)
SEASON_END = date(2025, 12, 31)


class Seeder:
    """Creates catalog, rate and capacity rows for one organization."""

    def __init__(self, session: AsyncSession, org_id: UUID):
        self.session = session
        self.org_id = org_id

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def supplier(self, name: str) -> Supplier:
        return await self._save(Supplier(id=uuid4(), org_id=self.org_id, name=name))

    async def variant(self, name: str = "Standard Double Room") -> ProductVariant:
        return await self._save(ProductVariant(id=uuid4(), org_id=self.org_id, name=name))

    async def master_rate(
        self,
        variant: ProductVariant,
        price: str,
        currency: str = "GBP",
        valid_from: date = SEASON_START,
        valid_to: date = SEASON_END,
        priority: int = 100,
        preferred: bool = True,
    ) -> RatePlan:
        return await self._save(RatePlan(
            id=uuid4(),
            org_id=self.org_id,
            product_variant_id=variant.id,
            supplier_id=None,
            name="Master rate",
            valid_from=valid_from,
            valid_to=valid_to,
            priority=priority,
            preferred=preferred,
            currency=currency,
            base_amount=Decimal(price),
        ))

    async def supplier_rate(
        self,
        variant: ProductVariant,
        supplier: Supplier,
        cost: str,
        priority: int = 100,
        auto_select: bool | None = None,
        currency: str = "GBP",
        valid_from: date = SEASON_START,
        valid_to: date = SEASON_END,
    ) -> RatePlan:
        return await self._save(RatePlan(
            id=uuid4(),
            org_id=self.org_id,
            product_variant_id=variant.id,
            supplier_id=supplier.id,
            name=f"{supplier.name} contract rate",
            valid_from=valid_from,
            valid_to=valid_to,
            priority=priority,
            preferred=False,
            currency=currency,
            base_amount=Decimal(cost),
            auto_select=auto_select,
        ))

    async def pool(self, quantity: int | None, name: str = "Shared block") -> InventoryPool:
        return await self._save(InventoryPool(
            id=uuid4(),
            org_id=self.org_id,
            name=name,
            quantity=quantity,
            booked=0,
            held=0,
        ))

    async def allocation(
        self,
        variant: ProductVariant,
        supplier: Supplier,
        quantity: int | None,
        unit_cost: str,
        service_date: date = SERVICE_DATE,
        booked: int = 0,
        held: int = 0,
        stop_sell: bool = False,
        blackout: bool = False,
        pool: InventoryPool | None = None,
        currency: str = "GBP",
    ) -> AllocationRecord:
        return await self._save(AllocationRecord(
            id=uuid4(),
            org_id=self.org_id,
            product_variant_id=variant.id,
            supplier_id=supplier.id,
            inventory_pool_id=pool.id if pool else None,
            service_date=service_date,
            allocation_type=AllocationType.COMMITTED if quantity is not None else AllocationType.FREESALE,
            quantity=quantity,
            booked=booked,
            held=held,
            unit_cost=Decimal(unit_cost),
            currency=currency,
            stop_sell=stop_sell,
            blackout=blackout,
        ))

    async def reload(self, model, obj_id: UUID):
        """Fetch a fresh copy of a row, bypassing the identity map."""
        return await self.session.get(model, obj_id, populate_existing=True)


def make_token(org_id: UUID, user_id: str = "user-1", secret: str | None = None) -> str:
    """Sign a bearer token the way the identity provider would."""
    return jwt.encode(
        {"sub": user_id, "org_id": str(org_id)},
        secret or settings.bearer_token_secret,
        algorithm="HS256",
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def org_id() -> UUID:
    """Organization the test acts as."""
    return uuid4()


@pytest.fixture
def seed(test_session, org_id) -> Seeder:
    """Seeder bound to the test session and organization."""
    return Seeder(test_session, org_id)


@pytest.fixture
def auth_headers(org_id) -> dict:
    """Bearer auth headers for the test organization."""
    return {"Authorization": f"Bearer {make_token(org_id)}"}


@pytest.fixture
def token_factory():
    """Build bearer tokens for arbitrary organizations and secrets."""
    return make_token


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create the application with the database dependency pointed at the test session."""
    from allocation_engine.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

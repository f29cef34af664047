import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db, transaction
from app.api.deps import get_password_hash, create_access_token
from app.models.inventory import InventoryItem
from app.models.user import User
from app.schemas.crew import CrewCreate
from app.schemas.inventory import InventoryItemCreate
from app.services import crew_inventory, inventory_service

from tests.factories import (
    CableItemFactory,
    CrewFactory,
    EquipmentItemFactory,
    InventoryItemFactory,
)

# Test database URL (in-memory SQLite shared through a single connection)
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(engine):
    """Session bound to a fresh in-memory database."""
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def test_user(test_db: AsyncSession):
    """Create an admin test user."""
    user = User(
        email="bodega@example.com",
        hashed_password=get_password_hash("testpassword123"),
        first_name="Test",
        last_name="Admin",
        is_active=True,
        is_admin=True,
    )
    test_db.add(user)
    await test_db.commit()
    return user


@pytest_asyncio.fixture
async def regular_user(test_db: AsyncSession):
    """Create a field user without admin rights."""
    user = User(
        email="tecnico@example.com",
        hashed_password=get_password_hash("testpassword123"),
        first_name="Test",
        last_name="Tecnico",
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(test_db: AsyncSession):
    """Create test client with overridden database."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, test_user: User):
    """Client carrying a bearer token for the admin user."""
    client.headers.update(auth_headers(test_user))
    return client


async def stock_of(db: AsyncSession, item_id: str) -> int:
    """Stored stock read straight from the row."""
    result = await db.execute(select(InventoryItem._current_stock).where(InventoryItem.id == item_id))
    return result.scalar_one()


@pytest_asyncio.fixture
async def material_item(test_db: AsyncSession):
    async with transaction(test_db):
        item = await inventory_service.create_item(test_db, InventoryItemCreate(**InventoryItemFactory()))
    return item


@pytest_asyncio.fixture
async def equipment_item(test_db: AsyncSession):
    async with transaction(test_db):
        item = await inventory_service.create_item(test_db, InventoryItemCreate(**EquipmentItemFactory()))
    return item


@pytest_asyncio.fixture
async def cable_item(test_db: AsyncSession):
    async with transaction(test_db):
        item = await inventory_service.create_item(test_db, InventoryItemCreate(**CableItemFactory()))
    return item


@pytest_asyncio.fixture
async def crew(test_db: AsyncSession):
    async with transaction(test_db):
        created = await crew_inventory.create_crew(test_db, CrewCreate(**CrewFactory()))
    return created

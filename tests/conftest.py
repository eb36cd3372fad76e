"""
Shared fixtures: a throwaway SQLite database per test, a fake redis, seeded
users / matatu / route, and an HTTP client bound to the app.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import matatupay.redis_client as redis_client_module
from matatupay.database import Base, get_db, get_session_factory
from matatupay.main import app
from matatupay.middleware.auth import Principal, token_for
from matatupay.models import FareRule, Matatu, Route, User
from matatupay.models.enums import FareType, Role


class FakeRedis:
    """Just enough of redis.asyncio.Redis for locks and the idempotency cache."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, nx=False, px=None, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def aclose(self):
        self.store = {}


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_client_module, "_redis_pool", fake)
    return fake


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'matatupay.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        # Let SQLAlchemy drive BEGIN so SAVEPOINTs behave.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role, phone_number=user.phone_number)


@pytest_asyncio.fixture
async def world(db):
    """
    owner (matatu KDA 123A, capacity 14), driver, a second driver, conductor,
    sacco admin, and route "CBD–Ngong" with normal=100 and rush_hour=150.
    """
    owner = User(name="Wanjiku Owner", phone_number="0711000001", role=Role.owner)
    driver = User(name="Otieno Driver", phone_number="0711000002", role=Role.driver)
    other_driver = User(name="Kamau Driver", phone_number="0711000003", role=Role.driver)
    conductor = User(name="Achieng Conductor", phone_number="0711000004", role=Role.conductor)
    sacco = User(name="Sacco Admin", phone_number="0711000005", role=Role.sacco)
    db.add_all([owner, driver, other_driver, conductor, sacco])
    await db.flush()

    matatu = Matatu(plate_number="KDA 123A", capacity=14, owner_id=owner.id)
    route = Route(name="CBD–Ngong", origin="CBD", destination="Ngong")
    route.fare_rules.append(FareRule(fare_type=FareType.normal, amount=Decimal("100.00")))
    route.fare_rules.append(FareRule(fare_type=FareType.rush_hour, amount=Decimal("150.00")))
    db.add_all([matatu, route])
    await db.commit()

    return SimpleNamespace(
        owner=owner,
        driver=driver,
        other_driver=other_driver,
        conductor=conductor,
        sacco=sacco,
        matatu=matatu,
        route=route,
        as_owner=principal_for(owner),
        as_driver=principal_for(driver),
        as_other_driver=principal_for(other_driver),
        as_conductor=principal_for(conductor),
        as_sacco=principal_for(sacco),
    )


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_for(user.id, user.role, user.phone_number)}"}

    return _headers

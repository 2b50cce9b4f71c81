# tests/conftest.py

import uuid
from collections.abc import AsyncGenerator, Callable

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.security import create_access_token
from app.core.tenancy import LabScope
from app.database import get_db
from app.main import app as main_app
from app.models import Base, Laboratory, SampleType
from app.models.enums import UserRole
from app.schemas.storage import BoxCreate
from app.services.storage import StorageService


# --- Database fixtures ---
# Each test gets its own SQLite file. pysqlite's implicit transaction handling
# is switched off and every transaction opens with BEGIN IMMEDIATE, so
# SAVEPOINTs work and concurrent writers queue instead of deadlocking.

@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}")

    @event.listens_for(test_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# --- Domain fixtures ---

@pytest_asyncio.fixture(scope="function")
async def test_lab(db_session: AsyncSession) -> Laboratory:
    lab = Laboratory(id=uuid.uuid4(), code="LAB-A", name="Central Blood Bank")
    db_session.add(lab)
    await db_session.commit()
    return lab


@pytest_asyncio.fixture(scope="function")
async def other_lab(db_session: AsyncSession) -> Laboratory:
    lab = Laboratory(id=uuid.uuid4(), code="LAB-B", name="Regional Blood Bank")
    db_session.add(lab)
    await db_session.commit()
    return lab


@pytest_asyncio.fixture(scope="function")
async def sample_type(db_session: AsyncSession) -> SampleType:
    st = SampleType(
        id=uuid.uuid4(),
        code="WB",
        name="Whole blood",
        storage_requirements="2-6 C",
        default_expiration_days=35,
    )
    db_session.add(st)
    await db_session.commit()
    return st


@pytest_asyncio.fixture(scope="function")
def scope_factory() -> Callable[..., LabScope]:
    def _make(laboratory: Laboratory | None, *, is_global_admin: bool = False) -> LabScope:
        return LabScope(
            actor_id=uuid.uuid4(),
            laboratory_id=laboratory.id if laboratory else None,
            is_global_admin=is_global_admin,
        )
    return _make


@pytest_asyncio.fixture(scope="function")
def lab_scope(test_lab: Laboratory, scope_factory) -> LabScope:
    return scope_factory(test_lab)


@pytest_asyncio.fixture(scope="function")
async def test_box(db_session: AsyncSession, lab_scope: LabScope):
    """An empty 9x9 box in the test laboratory."""
    box = await StorageService(db_session).create_box(
        BoxCreate(code="BOX-1", name="Freezer 1 / Box 1", rows=9, columns=9),
        lab_scope,
    )
    return box


# --- API client fixtures ---

@pytest_asyncio.fixture(scope="function")
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main_app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=main_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
def auth_headers() -> Callable[..., dict[str, str]]:
    """Bearer headers for a principal with the given laboratory and roles."""
    def _headers(
        laboratory: Laboratory | None,
        *roles: UserRole,
        is_global_admin: bool = False,
        target_lab: Laboratory | None = None,
    ) -> dict[str, str]:
        token = create_access_token(
            uuid.uuid4(),
            laboratory.id if laboratory else None,
            is_global_admin=is_global_admin,
            roles=[r.value for r in roles],
        )
        headers = {"Authorization": f"Bearer {token}"}
        if target_lab is not None:
            headers["X-Laboratory-ID"] = str(target_lab.id)
        return headers
    return _headers

"""Pytest configuration and fixtures."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.database import Base, get_db, get_session_factory
from src.core.deps import get_email_service
from src.core.security import create_access_token, get_password_hash
from src.main import app
from src.models.blog import Blog, BlogStatus
from src.models.user import User
from tests.factories import FakeEmailService, make_blog


# Test database URL - using SQLite for speed
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async test engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def mailer() -> FakeEmailService:
    return FakeEmailService()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    mailer: FakeEmailService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database, background session and mailer overridden."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    @asynccontextmanager
    async def shared_session():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: shared_session
    app.dependency_overrides[get_email_service] = lambda: mailer

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, email: str, is_superuser: bool) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash("testpassword123"),
        full_name="Blog Owner" if is_superuser else "Reader",
        is_active=True,
        is_superuser=is_superuser,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin@example.com", is_superuser=True)


@pytest_asyncio.fixture
async def regular_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "reader@example.com", is_superuser=False)


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    token = create_access_token(subject=str(admin_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def user_headers(regular_user: User) -> dict[str, str]:
    token = create_access_token(subject=str(regular_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def published_blog(db_session: AsyncSession, admin_user: User) -> Blog:
    return await make_blog(db_session, admin_user, "event-loops", categories=["javascript"])


@pytest_asyncio.fixture
async def draft_blog(db_session: AsyncSession, admin_user: User) -> Blog:
    return await make_blog(db_session, admin_user, "draft-post", status=BlogStatus.DRAFT)

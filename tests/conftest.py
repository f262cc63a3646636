"""
Test infrastructure for the Content API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after, giving
  each test a clean isolated state without needing transactions or truncation.
- The Redis revocation cache is disabled by setting cache._redis = None; the
  CacheManager treats that as "nothing is revoked", so tests exercise real
  service logic without any Redis infrastructure.
- The caller's identity is sent the way the auth gateway forwards it, as
  X-Principal-Id / X-Principal-Role headers (see ``principal_headers``).
"""
import itertools

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.cache import cache
from app.database import Base, get_db
from app.main import app
from app.middleware import install_query_counter
from app.models import Article, Category, User, articles_categories
from app.permissions import Principal, Role
from app.security import hash_password

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Register the per-request SQL query counter on the test engine.
install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def principal_headers(user_id: str, role: str = "user", session_id: str | None = None) -> dict:
    """Identity headers as the auth gateway would forward them."""
    headers = {"X-Principal-Id": user_id, "X-Principal-Role": role}
    if session_id:
        headers["X-Session-Id"] = session_id
    return headers


ADMIN_ID = "00000000-0000-4000-8000-000000000001"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call the services directly
    (e.g. seeding data, asserting lifecycle state).
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport.

    Redis is disabled by setting cache._redis = None so that tests are
    deterministic and do not depend on external infrastructure.
    """
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def admin() -> Principal:
    return Principal(id=ADMIN_ID, role=Role.ADMIN)


@pytest_asyncio.fixture
async def admin_headers() -> dict:
    """Headers for an admin whose user row exists, as every writer's must."""
    async with async_session_test() as session:
        session.add(User(
            id=ADMIN_ID,
            name="Admin",
            email="admin@example.com",
            password_hash=hash_password("secret123"),
            role="admin",
        ))
        await session.commit()
    return principal_headers(ADMIN_ID, "admin")


@pytest_asyncio.fixture
async def make_user(async_client: AsyncClient):
    """
    Factory that registers a user through the API and returns
    ``(user_dict, headers)`` for acting as that user.
    """
    counter = itertools.count(1)

    async def _make(name: str | None = None) -> tuple[dict, dict]:
        n = next(counter)
        resp = await async_client.post("/api/v1/users", json={
            "name": name or f"author{n}",
            "email": f"author{n}@example.com",
            "password": "secret123",
        })
        assert resp.status_code == 201, resp.text
        user = resp.json()["data"]
        return user, principal_headers(user["id"])

    return _make


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession):
    """
    Direct ORM seeding for service-level tests.  Each helper flushes so
    the generated ids are available immediately.
    """
    counter = itertools.count(1)

    class Seeder:
        async def user(self, name: str | None = None) -> User:
            n = next(counter)
            user = User(
                name=name or f"member{n}",
                email=f"member{n}@example.com",
                password_hash=hash_password("secret123"),
            )
            db_session.add(user)
            await db_session.flush()
            return user

        async def category(self, value: str, label: str | None = None) -> Category:
            category = Category(value=value, label=label or value.title())
            db_session.add(category)
            await db_session.flush()
            return category

        async def article(self, user: User, title: str = "Title", categories=()) -> Article:
            article = Article(title=title, content="Body text", user_id=user.id)
            db_session.add(article)
            await db_session.flush()
            if categories:
                await db_session.execute(
                    articles_categories.insert(),
                    [{"article_id": article.id, "category_id": c.id} for c in categories],
                )
            return article

    return Seeder()

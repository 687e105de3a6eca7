import os
import shutil
import tempfile
import warnings

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

_TEST_DIR = tempfile.mkdtemp(prefix="giftlist-tests-")

# Set environment variables BEFORE importing app modules
os.environ["ENVIRONMENT"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/app.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-32-chars-minimum!!"
os.environ["MEDIA_ROOT"] = os.path.join(_TEST_DIR, "uploads")
os.environ["ADMIN_EMAILS"] = "admin@example.com,second-admin@example.com"
os.environ["SMTP_HOST"] = ""

warnings.filterwarnings("ignore", category=DeprecationWarning)

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from giftlist.api.deps import ADMIN_COOKIE_NAME, get_session_factory
from giftlist.core.claim_metrics import claim_metrics
from giftlist.core.config import settings
from giftlist.core.rate_limit import limiter
from giftlist.core.security import create_admin_token
from giftlist.db.session import Base, build_engine, get_db
from giftlist.main import app
from giftlist.models import models as _models  # noqa: F401

ADMIN_EMAIL = "admin@example.com"


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TEST_DIR, ignore_errors=True)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_state():
    settings.rate_limit_enabled = False
    settings.abuse_guard_enabled = True
    limiter.reset()
    claim_metrics.reset()
    yield


@pytest.fixture(autouse=True)
def db_engine(tmp_path):
    db_path = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = build_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    yield engine
    engine.sync_engine.dispose()


@pytest.fixture(autouse=True)
def session_factory(db_engine):
    factory = async_sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: factory
    yield factory
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def admin_client():
    c = TestClient(app)
    c.cookies.set(ADMIN_COOKIE_NAME, create_admin_token(ADMIN_EMAIL))
    return c


@pytest.fixture
def visitor_client():
    """Factory for clients that carry an existing visitor id cookie."""

    def _make(visitor_id: str) -> TestClient:
        c = TestClient(app)
        c.cookies.set("visitor_id", visitor_id)
        return c

    return _make

import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from splitogram.core.dependencies import get_db, get_notifier, get_oracle
from splitogram.db.base import Base
from splitogram.db.session import make_engine, make_session_factory
from splitogram.main import app

@pytest.fixture
async def engine(tmp_path):
    # a file database so separate sessions get separate connections
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'splitogram.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)

@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session

@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_oracle] = lambda: None
    app.dependency_overrides[get_notifier] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

import asyncio
import os
import tempfile
from pathlib import Path

# settings are read at import time; point them at throwaway locations first
_TMP = Path(tempfile.mkdtemp(prefix="pos-inventory-tests-"))
os.environ["POS_DATA_ROOT"] = str(_TMP / "data")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_TMP / 'app.db').as_posix()}"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from pos_inventory.database import create_all, get_session, make_engine, make_session_factory


def _sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path.as_posix()}"


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = make_engine(_sqlite_url(tmp_path / "pos.db"))
    await create_all(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def client(tmp_path):
    """API client over a fresh SQLite file; each request commits or rolls back on its own."""
    from pos_inventory.main import app

    eng = make_engine(_sqlite_url(tmp_path / "api.db"))
    asyncio.run(create_all(eng))
    factory = make_session_factory(eng)

    async def _session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()
    asyncio.run(eng.dispose())

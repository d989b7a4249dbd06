"""Fixtures for API tests: the real app over the in-memory test database."""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from clinic_os.api.app import create_app
from clinic_os.api.dependencies import get_clock
from clinic_os.core.database import get_db
from tests.conftest import NOW


@pytest_asyncio.fixture
async def client(session_factory, seeded):
    """AsyncClient bound to the app with the test DB session and a fixed clock."""

    async def _override_get_db():
        async with session_factory() as sess:
            try:
                yield sess
                await sess.commit()
            except Exception:
                await sess.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

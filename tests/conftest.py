"""
Pytest configuration and fixtures for the credits service tests.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
concurrent-connection behaviour matches production, and the verifier and
pipeline collaborators are replaced by recording fakes.
"""
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from app.auth.session_token import create_session_token
from app.config import Settings
from app.database import Database
from app.main import create_app, install_services
from app.services.jobs import JobStore
from app.services.ledger import CreditLedger
from tests.utils.fakes import FakeVerifier, RecordingPipeline


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Test settings backed by a per-test SQLite file."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'credits.db'}",
        SESSION_SECRET_KEY="test-secret-key-for-testing",
        STRIPE_SECRET_KEY=None,
        STRIPE_WEBHOOK_SECRET="whsec_test_secret",
        CREDITS_PER_PURCHASE=5,
        PAYMENT_VERIFY_TIMEOUT=0.5,
        DEBUG=True,
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    """Opened database with tables created."""
    database = Database(settings.DATABASE_URL)
    database.open()
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def ledger(db: Database, settings: Settings) -> CreditLedger:
    return CreditLedger(db, default_count=settings.CREDITS_PER_PURCHASE)


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def pipeline() -> RecordingPipeline:
    return RecordingPipeline()


@pytest.fixture
def jobs() -> JobStore:
    return JobStore()


@pytest.fixture
def app(settings, db, verifier, pipeline, jobs):
    """Application with services wired to the test fakes."""
    application = create_app(settings)
    install_services(
        application,
        settings=settings,
        db=db,
        verifier=verifier,
        pipeline=pipeline,
        jobs=jobs,
    )
    return application


@pytest.fixture
async def test_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async client talking to the app in-process."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def auth_headers(settings):
    """Factory for Authorization headers of a given principal."""

    def _headers(principal: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_session_token(principal, settings)}"}

    return _headers


# ============================================
# Pytest Configuration
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "fast: Fast unit tests (no external services)"
    )
    config.addinivalue_line(
        "markers", "integration: HTTP-level tests against the ASGI app"
    )

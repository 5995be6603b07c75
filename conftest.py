"""Pytest configuration and shared fixtures."""

import os
import pytest

# Load env vars
from dotenv import load_dotenv
load_dotenv()


# =============================================================================
# SAFETY CHECK: Prevent tests from running against production database
# =============================================================================

ALLOWED_DB_HOSTS = {"localhost", "127.0.0.1", "host.docker.internal", "db", "postgres"}


def _enabled(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def pytest_configure(config):
    """Register custom markers and check database safety."""
    config.addinivalue_line("markers", "no_db: mark test to skip database setup")
    config.addinivalue_line("markers", "integration: mark test as integration test (needs local Postgres)")
    config.addinivalue_line("markers", "online: mark test as online test (hits external APIs)")

    if not _enabled("RUN_INTEGRATION"):
        return

    # Check database host
    db_host = os.getenv("LEADS_DB_HOST", "localhost")
    if os.getenv("DATABASE_URL"):
        from urllib.parse import urlparse
        db_host = urlparse(os.environ["DATABASE_URL"]).hostname or db_host

    if db_host not in ALLOWED_DB_HOSTS:
        pytest.exit(
            f"\n\n"
            f"{'=' * 60}\n"
            f"SAFETY CHECK FAILED: Cannot run tests against production DB!\n"
            f"{'=' * 60}\n"
            f"\n"
            f"Current database host: {db_host}\n"
            f"Allowed hosts: {', '.join(sorted(ALLOWED_DB_HOSTS))}\n"
            f"\n"
            f"To run tests, set LEADS_DB_HOST to 'localhost' in your .env\n"
            f"{'=' * 60}\n",
            returncode=1,
        )


def pytest_collection_modifyitems(config, items):
    """Skip integration/online tests unless RUN_INTEGRATION / RUN_ONLINE is set."""
    skip_integration = pytest.mark.skip(reason="set RUN_INTEGRATION=1 to run")
    skip_online = pytest.mark.skip(reason="set RUN_ONLINE=1 to run")
    for item in items:
        if "integration" in item.keywords and not _enabled("RUN_INTEGRATION"):
            item.add_marker(skip_integration)
        if "online" in item.keywords and not _enabled("RUN_ONLINE"):
            item.add_marker(skip_online)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="function", autouse=True)
async def setup_db(request):
    """Initialize database connection pool for integration tests.

    Everything else runs against in-memory stores and mocked transports.
    """
    if "integration" not in [marker.name for marker in request.node.iter_markers()]:
        yield
        return

    from db.client import init_db, close_db

    await init_db()
    yield
    await close_db()

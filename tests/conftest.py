"""
Pytest Configuration and Shared Test Fixtures

All fixtures defined here are automatically available to all test files.
"""

import pytest

from request_relay.core.config.settings import Settings
from request_relay.infrastructure.message_bus.redis_bus import default_bindings
from tests.test_fixtures import (
    FakeClock,
    InMemoryJobStore,
    InMemoryMessageBus,
    InMemoryRequestStore,
    RequestFactory,
)

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        TENANTS=["acme"],
        SCHEDULER_TICK_SECONDS=0.01,
        SCHEDULER_BATCH_SIZE=20,
        SCHEDULER_RECOVERY_CONCURRENCY=3,
        BUS_SHUTDOWN_TIMEOUT_SECONDS=1.0,
        BUS_ERROR_BACKOFF_SECONDS=0.01,
        LOG_FORMAT="console",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def factory():
    return RequestFactory


# ============================================================================
# In-Memory Infrastructure Fixtures
# ============================================================================


@pytest.fixture
async def bus(settings):
    """Connected in-memory bus with the production topic bindings."""
    in_memory = InMemoryMessageBus(default_bindings(settings))
    await in_memory.connect()
    yield in_memory
    await in_memory.close()


@pytest.fixture
def job_store(settings):
    return InMemoryJobStore(settings.scheduler.SCHEDULER_LOCK_LIFETIME_SECONDS)


@pytest.fixture
def request_store():
    return InMemoryRequestStore()

import pytest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, Mock

from fastapi.testclient import TestClient

import blockhaven.dependencies as deps_module
from blockhaven.core.rate_limiter import MemoryCounterStore, RateLimiter
from blockhaven.domain.audit import AuditLogger
from blockhaven.domain.auth import Identity, SessionResolver
from blockhaven.main import app
from blockhaven.settings import RatePolicy

TEST_SECRET = "test-session-secret-0123456789abcdef"


@pytest.fixture
def resolver():
    return SessionResolver(secret=TEST_SECRET, admin_usernames=["Steve", "alex"])


@pytest.fixture
def identity():
    return Identity(user_id="1001", username="steve")


@pytest.fixture
def session_token(resolver, identity):
    return resolver.issue_session(identity)


@pytest.fixture
def mock_sink():
    sink = Mock()
    sink.emit = AsyncMock()
    return sink


@pytest.fixture
def audit_logger(mock_sink):
    return AuditLogger(sink=mock_sink)


@pytest.fixture
def limiter():
    return RateLimiter(
        MemoryCounterStore(),
        policies={"/api/admin/rcon": RatePolicy(window_ms=60000, max_requests=2)},
        default_policy=RatePolicy(window_ms=60000, max_requests=60),
    )


@asynccontextmanager
async def mock_lifespan(app):
    yield


@pytest.fixture
def client(resolver, limiter, audit_logger):
    # Middleware reads the module-level singletons directly
    deps_module._session_resolver_instance = resolver
    deps_module._rate_limiter_instance = limiter
    deps_module._audit_logger_instance = audit_logger

    # Bypass lifespan entirely for tests to avoid startup gates
    original_lifespan = app.router.lifespan_context
    app.router.lifespan_context = mock_lifespan

    with TestClient(app) as c:
        yield c

    app.router.lifespan_context = original_lifespan
    app.dependency_overrides = {}
    deps_module._session_resolver_instance = None
    deps_module._rate_limiter_instance = None
    deps_module._audit_logger_instance = None

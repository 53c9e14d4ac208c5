"""API test fixtures: FastAPI TestClient with the database, Redis and
mailer dependencies replaced by mocks.

Route tests patch the service calls in each router's namespace; the mock
session only has to absorb ``add``/``flush``/``execute``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from consently.config import settings
from consently.deps import ALGORITHM, get_current_tenant, get_db, get_mailer, get_redis
from consently.main import app
from consently.models.tenant import Tenant, TenantPlan
from tests.factories import NOW


@pytest.fixture
def db():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def redis():
    client = AsyncMock()
    client.incr.return_value = 1
    client.ttl.return_value = 60
    return client


@pytest.fixture
def mailer():
    m = MagicMock()
    m.configured = True
    m.send = AsyncMock(return_value="msg_1")
    return m


@pytest.fixture
def tenant():
    return Tenant(id="tenant-1", email="owner@shop.example.com", plan=TenantPlan.MEDIUM, is_demo=False, is_trial=False, created_at=NOW)


@pytest.fixture
def client(db, redis, mailer):
    async def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_client(client, tenant):
    """Client whose requests resolve to ``tenant`` without a token."""
    app.dependency_overrides[get_current_tenant] = lambda: tenant
    return client


@pytest.fixture
def auth_headers():
    token = jwt.encode(
        {"sub": "tenant-1", "email": "owner@shop.example.com", "aud": settings.AUTH_JWT_AUDIENCE,
         "exp": datetime(2030, 1, 1, tzinfo=timezone.utc)},
        settings.AUTH_JWT_SECRET, algorithm=ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}

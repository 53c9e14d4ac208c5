"""Tests for the health check, tenant auth and error rendering."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from jose import jwt

from consently.config import settings
from consently.deps import ALGORITHM
from consently.models.tenant import Tenant
from tests.factories import result


def _token(**claims):
    payload = {"sub": "tenant-1", "aud": settings.AUTH_JWT_AUDIENCE,
               "exp": datetime(2030, 1, 1, tzinfo=timezone.utc), **claims}
    return {"Authorization": f"Bearer {jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=ALGORITHM)}"}


class TestHealth:
    def test_health(self, client):
        r = client.get("/api/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok", "version": "0.1.0"}


class TestAuth:
    def test_missing_token(self, client):
        r = client.get("/api/dpdpa/purposes")
        assert r.status_code == 401
        assert r.json()["code"] == "UNAUTHORIZED"
        assert r.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        r = client.get("/api/dpdpa/purposes", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401

    def test_wrong_audience(self, client):
        assert client.get("/api/dpdpa/purposes", headers=_token(aud="other")).status_code == 401

    def test_expired(self, client):
        headers = _token(exp=datetime(2020, 1, 1, tzinfo=timezone.utc))
        assert client.get("/api/dpdpa/purposes", headers=headers).status_code == 401

    def test_missing_subject(self, client):
        assert client.get("/api/dpdpa/purposes", headers=_token(sub="")).status_code == 401

    def test_first_request_creates_tenant(self, client, db, auth_headers):
        db.get.return_value = None
        db.execute.return_value = result(scalars=[])

        r = client.get("/api/dpdpa/purposes", headers=auth_headers)

        assert r.status_code == 200
        tenant = db.add.call_args.args[0]
        assert isinstance(tenant, Tenant)
        assert tenant.id == "tenant-1"
        assert tenant.email == "owner@shop.example.com"
        db.flush.assert_awaited_once()

    def test_existing_tenant(self, client, db, auth_headers, tenant):
        db.get.return_value = tenant
        db.execute.return_value = result(scalars=[])
        assert client.get("/api/dpdpa/purposes", headers=auth_headers).status_code == 200
        db.add.assert_not_called()


class TestErrors:
    @patch("consently.routers.privacy_centre.identity_bridge.check_consent", new_callable=AsyncMock)
    def test_unhandled_error_is_opaque(self, mock_check, client):
        mock_check.side_effect = RuntimeError("connection reset")
        r = client.get("/api/dpdpa/check-consent?widgetId=dpdpa_test&visitorId=CNST-AAAA-BBBB-CCCC")
        assert r.status_code == 500
        assert r.json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}

    def test_validation_details(self, client):
        r = client.get("/api/dpdpa/check-consent?widgetId=dpdpa_test")
        assert r.status_code == 400
        details = r.json()["details"]
        assert details[0]["loc"] == ["query", "visitorId"]

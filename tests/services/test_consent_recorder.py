"""Tests for the consent recorder."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from consently.exceptions import NotFoundError, QuotaExceededError, ValidationError
from consently.models.analytics import ConsentEvent
from consently.models.consent import CookieConsentLog, DpdpaConsentRecord, LegacyConsentRecord
from consently.models.tenant import Tenant, TenantPlan
from consently.models.widget import CookieWidgetConfig
from consently.services.consent_recorder import (
    ConsentSubmission,
    ResolvedWidget,
    enforce_quota,
    record_consent,
    resolve_widget,
    serialize_record,
    upsert_preferences,
)
from consently.services.quota import Entitlements, QuotaStatus
from consently.services.visitor import ClientContext, derive_visitor_token, hash_email
from tests.factories import NOW, make_record, make_widget

UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/122.0 Safari/537.36"


def _db():
    db = AsyncMock()
    db.add = MagicMock()
    return db


def _client():
    return ClientContext(ip_address="203.0.113.7", user_agent=UA, accept_language="en-IN,en;q=0.9")


def _added(db, model):
    return [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], model)]


def _cookie_widget():
    return CookieWidgetConfig(
        id=7, widget_id="cnsly_abc", user_id="tenant-1", domain="blog.example.com",
        categories=["necessary", "analytics"], theme={}, consent_duration=365, is_active=True,
    )


def _dpdpa_submission(**overrides):
    fields = {
        "widget_id": "dpdpa_test",
        "visitor_id": "CNST-AAAA-BBBB-CCCC",
        "status": "partial",
        "accepted_activities": ["act_newsletter"],
        "rejected_activities": ["act_checkout"],
    }
    fields.update(overrides)
    return ConsentSubmission(**fields)


@pytest.fixture
def patched_pipeline():
    """Widget resolution, quota and side effects replaced with mocks."""
    with patch("consently.services.consent_recorder.resolve_widget", new_callable=AsyncMock) as mock_resolve, \
         patch("consently.services.consent_recorder.enforce_quota", new_callable=AsyncMock) as mock_quota, \
         patch("consently.services.consent_recorder.linked_email_hash", new_callable=AsyncMock) as mock_linked, \
         patch("consently.services.consent_recorder.upsert_preferences", new_callable=AsyncMock) as mock_upsert, \
         patch("consently.tasks.aggregate_analytics.trigger_widget_aggregation") as mock_trigger:
        mock_resolve.return_value = ResolvedWidget(kind="dpdpa", config=make_widget())
        mock_linked.return_value = None
        yield {
            "resolve": mock_resolve,
            "quota": mock_quota,
            "linked": mock_linked,
            "upsert": mock_upsert,
            "trigger": mock_trigger,
        }


class TestValidation:
    @pytest.mark.asyncio
    async def test_invalid_status_writes_nothing(self, patched_pipeline):
        db = _db()
        with pytest.raises(ValidationError) as exc:
            await record_consent(db, _dpdpa_submission(status="maybe"), _client(), dpdpa_only=True)
        assert exc.value.code == "INVALID_STATUS"
        db.add.assert_not_called()
        patched_pipeline["resolve"].assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_visitor_id(self, patched_pipeline):
        db = _db()
        with pytest.raises(ValidationError):
            await record_consent(db, _dpdpa_submission(visitor_id=""), _client())
        db.add.assert_not_called()


class TestQuota:
    @pytest.mark.asyncio
    async def test_quota_exceeded_writes_nothing(self):
        db = _db()
        db.get = AsyncMock(return_value=Tenant(id="tenant-1", email="o@example.com", plan=TenantPlan.FREE,
                                               is_demo=False, is_trial=False))
        quota = QuotaStatus(allowed=False, used=5_000, limit=5_000, remaining=0)
        ent = Entitlements(plan=TenantPlan.FREE, consent_limit=5_000)

        with patch("consently.services.consent_recorder.resolve_widget", new_callable=AsyncMock) as mock_resolve, \
             patch("consently.services.consent_recorder.check_consent_quota", new_callable=AsyncMock) as mock_check, \
             patch("consently.tasks.aggregate_analytics.trigger_widget_aggregation") as mock_trigger:
            mock_resolve.return_value = ResolvedWidget(kind="dpdpa", config=make_widget())
            mock_check.return_value = (quota, ent)

            with pytest.raises(QuotaExceededError) as exc:
                await record_consent(db, _dpdpa_submission(), _client(), dpdpa_only=True)

        assert exc.value.status_code == 403
        assert exc.value.to_body()["used"] == 5_000
        assert exc.value.to_body()["plan"] == "free"
        db.add.assert_not_called()
        mock_trigger.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_tenant_is_not_blocking(self):
        db = _db()
        db.get = AsyncMock(return_value=None)
        with patch("consently.services.consent_recorder.check_consent_quota", new_callable=AsyncMock) as mock_check:
            await enforce_quota(db, ResolvedWidget(kind="dpdpa", config=make_widget()))
        mock_check.assert_not_called()


class TestResolveWidget:
    @pytest.mark.asyncio
    async def test_cookie_table_first(self):
        db = _db()
        found = MagicMock()
        found.scalar_one_or_none.return_value = _cookie_widget()
        db.execute = AsyncMock(return_value=found)

        resolved = await resolve_widget(db, "cnsly_abc")
        assert resolved.kind == "cookie"
        assert db.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_widget(self):
        db = _db()
        missing = MagicMock()
        missing.scalar_one_or_none.return_value = None
        db.execute = AsyncMock(return_value=missing)

        with pytest.raises(NotFoundError) as exc:
            await resolve_widget(db, "nope")
        assert exc.value.code == "INVALID_WIDGET"
        assert db.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_dpdpa_only_skips_cookie_table(self):
        db = _db()
        missing = MagicMock()
        missing.scalar_one_or_none.return_value = None
        db.execute = AsyncMock(return_value=missing)

        with pytest.raises(NotFoundError):
            await resolve_widget(db, "nope", dpdpa_only=True)
        assert db.execute.await_count == 1


class TestCookieRecording:
    @pytest.mark.asyncio
    async def test_dual_write(self, patched_pipeline):
        patched_pipeline["resolve"].return_value = ResolvedWidget(kind="cookie", config=_cookie_widget())
        db = _db()

        recorded = await record_consent(
            db,
            ConsentSubmission(widget_id="cnsly_abc", visitor_id="consent-123", status="accepted",
                              categories=["necessary", "analytics"]),
            _client(),
        )

        logs = _added(db, CookieConsentLog)
        legacy = _added(db, LegacyConsentRecord)
        assert len(logs) == 1 and len(legacy) == 1
        assert logs[0].visitor_token == derive_visitor_token("203.0.113.7", UA, "blog.example.com")
        assert logs[0].device_info == {"type": "Desktop", "browser": "Chrome", "os": "Windows"}
        assert logs[0].user_id == "tenant-1"
        assert legacy[0].status == "accepted"
        assert recorded.kind == "cookie"
        patched_pipeline["trigger"].assert_called_once_with("cnsly_abc")


class TestDpdpaRecording:
    @pytest.mark.asyncio
    async def test_writes_record_and_preferences(self, patched_pipeline):
        db = _db()
        recorded = await record_consent(db, _dpdpa_submission(), _client(), dpdpa_only=True)

        records = _added(db, DpdpaConsentRecord)
        assert len(records) == 1
        record = records[0]
        assert record.consent_status == "partial"
        assert record.consented_activities == ["act_newsletter"]
        assert record.rejected_activities == ["act_checkout"]
        assert record.consent_expires_at - record.consent_given_at == timedelta(days=365)
        assert record.language == "en-IN"
        assert record.revoked_at is None
        assert recorded.expires_at == record.consent_expires_at

        upsert = patched_pipeline["upsert"].await_args.kwargs
        assert upsert["accepted"] == ["act_newsletter"]
        assert upsert["rejected"] == ["act_checkout"]
        assert _added(db, ConsentEvent) == []
        patched_pipeline["trigger"].assert_called_once_with("dpdpa_test")

    @pytest.mark.asyncio
    async def test_identical_calls_produce_two_rows(self, patched_pipeline):
        db = _db()
        await record_consent(db, _dpdpa_submission(), _client(), dpdpa_only=True)
        await record_consent(db, _dpdpa_submission(), _client(), dpdpa_only=True)
        assert len(_added(db, DpdpaConsentRecord)) == 2

    @pytest.mark.asyncio
    async def test_submission_duration_overrides_widget(self, patched_pipeline):
        db = _db()
        await record_consent(db, _dpdpa_submission(consent_duration=30), _client(), dpdpa_only=True)
        record = _added(db, DpdpaConsentRecord)[0]
        assert record.consent_expires_at - record.consent_given_at == timedelta(days=30)

    @pytest.mark.asyncio
    async def test_rule_context_appends_consent_event(self, patched_pipeline):
        db = _db()
        ctx = {"rule_id": "pricing", "rule_name": "Pricing page", "url_pattern": "/pricing", "page_url": "/pricing"}
        await record_consent(db, _dpdpa_submission(rule_context=ctx), _client(), dpdpa_only=True)

        events = _added(db, ConsentEvent)
        assert len(events) == 1
        assert events[0].rule_id == "pricing"
        assert events[0].consent_status == "partial"
        assert _added(db, DpdpaConsentRecord)[0].consent_details["ruleContext"] == ctx

    @pytest.mark.asyncio
    async def test_revoked_sets_revoked_at(self, patched_pipeline):
        db = _db()
        await record_consent(db, _dpdpa_submission(status="revoked"), _client(), dpdpa_only=True)
        record = _added(db, DpdpaConsentRecord)[0]
        assert record.revoked_at == record.consent_given_at
        assert "revoked_at" in record.consent_details

    @pytest.mark.asyncio
    async def test_linked_email_hash_propagated(self, patched_pipeline):
        patched_pipeline["linked"].return_value = "linkedhash"
        db = _db()
        await record_consent(db, _dpdpa_submission(), _client(), dpdpa_only=True)
        assert _added(db, DpdpaConsentRecord)[0].visitor_email_hash == "linkedhash"
        assert patched_pipeline["upsert"].await_args.kwargs["email_hash"] == "linkedhash"

    @pytest.mark.asyncio
    async def test_explicit_email_hashed_on_record_only(self, patched_pipeline):
        db = _db()
        await record_consent(db, _dpdpa_submission(visitor_email="Jane@Example.com"), _client(), dpdpa_only=True)
        assert _added(db, DpdpaConsentRecord)[0].visitor_email_hash == hash_email("jane@example.com")
        # Unverified email never links preferences.
        assert patched_pipeline["upsert"].await_args.kwargs["email_hash"] is None

    @pytest.mark.asyncio
    async def test_explicit_email_keeps_verified_link(self, patched_pipeline):
        patched_pipeline["linked"].return_value = "verifiedhash"
        db = _db()
        await record_consent(db, _dpdpa_submission(visitor_email="other@example.com"), _client(), dpdpa_only=True)
        assert _added(db, DpdpaConsentRecord)[0].visitor_email_hash == hash_email("other@example.com")
        assert patched_pipeline["upsert"].await_args.kwargs["email_hash"] == "verifiedhash"


class TestUpsertPreferences:
    @staticmethod
    def _values(db, column):
        params = db.execute.await_args.args[0].compile(dialect=postgresql.dialect()).params
        return [params[k] for k in sorted(params) if k.startswith(column)]

    @pytest.mark.asyncio
    async def test_repeated_ids_collapse_to_one_row(self):
        db = _db()
        written = await upsert_preferences(
            db, visitor_id="v1", widget_id="dpdpa_test", accepted=["A1", "A1"], rejected=[],
            email_hash=None, now=NOW,
        )
        assert written == 1
        assert self._values(db, "activity_id") == ["A1"]

    @pytest.mark.asyncio
    async def test_accepted_wins_over_rejected(self):
        db = _db()
        written = await upsert_preferences(
            db, visitor_id="v1", widget_id="dpdpa_test", accepted=["A1"], rejected=["A1", "A2", "A2"],
            email_hash="h", now=NOW,
        )
        assert written == 2
        assert self._values(db, "activity_id") == ["A1", "A2"]
        assert self._values(db, "consent_status") == ["accepted", "rejected"]

    @pytest.mark.asyncio
    async def test_nothing_to_write(self):
        db = _db()
        assert await upsert_preferences(
            db, visitor_id="v1", widget_id="dpdpa_test", accepted=[], rejected=[], email_hash=None, now=NOW,
        ) == 0
        db.execute.assert_not_called()


class TestSerializeRecord:
    def test_never_exposes_email(self):
        record = make_record(id=5, visitor_email="jane@example.com", visitor_email_hash="h")
        data = serialize_record(record)
        assert "visitorEmail" not in data
        assert data["consentStatus"] == "accepted"
        assert data["id"] == 5

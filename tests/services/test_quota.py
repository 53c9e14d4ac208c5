"""Tests for plan entitlements and the monthly consent quota."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from consently.models.tenant import Tenant, TenantPlan
from consently.services.quota import (
    Entitlements,
    check_consent_quota,
    evaluate_quota,
    get_entitlements,
    month_start,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _tenant(plan=TenantPlan.FREE, is_demo=False, is_trial=False, trial_ends_at=None):
    return Tenant(
        id="tenant-1",
        email="owner@example.com",
        plan=plan,
        is_demo=is_demo,
        is_trial=is_trial,
        trial_ends_at=trial_ends_at,
    )


class TestEntitlements:
    @pytest.mark.parametrize("plan,limit", [
        (TenantPlan.FREE, 5_000),
        (TenantPlan.SMALL, 50_000),
        (TenantPlan.MEDIUM, 100_000),
        (TenantPlan.ENTERPRISE, None),
    ])
    def test_plan_limits(self, plan, limit):
        assert get_entitlements(_tenant(plan=plan), NOW).consent_limit == limit

    def test_demo_is_unlimited(self):
        ent = get_entitlements(_tenant(is_demo=True), NOW)
        assert ent.consent_limit is None
        assert ent.is_demo is True

    def test_active_trial_is_unlimited(self):
        ent = get_entitlements(_tenant(is_trial=True, trial_ends_at=NOW + timedelta(days=3)), NOW)
        assert ent.consent_limit is None
        assert ent.is_trial is True

    def test_expired_trial_falls_back_to_plan(self):
        ent = get_entitlements(_tenant(is_trial=True, trial_ends_at=NOW - timedelta(days=1)), NOW)
        assert ent.consent_limit == 5_000
        assert ent.is_trial is False


class TestEvaluateQuota:
    def test_below_limit_allowed(self):
        status = evaluate_quota(4_999, Entitlements(plan=TenantPlan.FREE, consent_limit=5_000))
        assert status.allowed is True
        assert status.remaining == 1

    def test_at_limit_refused(self):
        status = evaluate_quota(5_000, Entitlements(plan=TenantPlan.FREE, consent_limit=5_000))
        assert status.allowed is False
        assert status.remaining == 0

    def test_unlimited(self):
        status = evaluate_quota(10**9, Entitlements(plan=TenantPlan.ENTERPRISE, consent_limit=None))
        assert status.allowed is True
        assert status.limit is None


class TestMonthStart:
    def test_first_of_month_midnight(self):
        assert month_start(NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)


class TestCheckConsentQuota:
    @pytest.mark.asyncio
    async def test_unlimited_skips_counting(self):
        db = AsyncMock()
        with patch("consently.services.quota.count_monthly_consents") as mock_count:
            status, ent = await check_consent_quota(db, _tenant(plan=TenantPlan.ENTERPRISE))
        mock_count.assert_not_called()
        assert status.allowed is True

    @pytest.mark.asyncio
    async def test_counts_cookie_and_dpdpa(self):
        db = AsyncMock()
        cookie_result, dpdpa_result = MagicMock(), MagicMock()
        cookie_result.scalar.return_value = 3_000
        dpdpa_result.scalar.return_value = 2_000
        db.execute = AsyncMock(side_effect=[cookie_result, dpdpa_result])

        status, ent = await check_consent_quota(db, _tenant())
        assert db.execute.await_count == 2
        assert status.used == 5_000
        assert status.allowed is False
        assert ent.plan == TenantPlan.FREE

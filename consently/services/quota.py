"""Plan entitlements and monthly consent quota."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from consently.models.consent import CookieConsentLog, DpdpaConsentRecord
from consently.models.tenant import Tenant, TenantPlan
from consently.models.widget import DpdpaWidgetConfig

logger = structlog.get_logger()

# None = unlimited
PLAN_CONSENT_LIMITS: dict[TenantPlan, int | None] = {
    TenantPlan.FREE: 5_000,
    TenantPlan.SMALL: 50_000,
    TenantPlan.MEDIUM: 100_000,
    TenantPlan.ENTERPRISE: None,
}


@dataclass
class Entitlements:
    plan: TenantPlan
    consent_limit: int | None
    is_trial: bool = False
    is_demo: bool = False


@dataclass
class QuotaStatus:
    allowed: bool
    used: int
    limit: int | None
    remaining: int | None


def get_entitlements(tenant: Tenant, now: datetime | None = None) -> Entitlements:
    """Resolve what a tenant's plan allows right now.

    Demo accounts and tenants inside an active trial are unlimited.
    """
    now = now or datetime.now(timezone.utc)
    plan = TenantPlan(tenant.plan) if tenant.plan else TenantPlan.FREE

    if tenant.is_demo:
        return Entitlements(plan=TenantPlan.ENTERPRISE, consent_limit=None, is_demo=True)

    active_trial = bool(tenant.is_trial) and (tenant.trial_ends_at is None or tenant.trial_ends_at > now)
    if active_trial:
        return Entitlements(plan=plan, consent_limit=None, is_trial=True)

    return Entitlements(plan=plan, consent_limit=PLAN_CONSENT_LIMITS[plan])


def month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def evaluate_quota(used: int, entitlements: Entitlements) -> QuotaStatus:
    if entitlements.consent_limit is None:
        return QuotaStatus(allowed=True, used=used, limit=None, remaining=None)
    limit = entitlements.consent_limit
    return QuotaStatus(
        allowed=used < limit,
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
    )


async def count_monthly_consents(db: AsyncSession, tenant_id: str, since: datetime) -> int:
    """Consents recorded for a tenant since ``since`` across cookie and DPDPA widgets."""
    cookie_count = (await db.execute(
        select(func.count()).select_from(CookieConsentLog).where(
            CookieConsentLog.user_id == tenant_id,
            CookieConsentLog.created_at >= since,
        )
    )).scalar() or 0

    dpdpa_count = (await db.execute(
        select(func.count())
        .select_from(DpdpaConsentRecord)
        .join(DpdpaWidgetConfig, DpdpaWidgetConfig.widget_id == DpdpaConsentRecord.widget_id)
        .where(
            DpdpaWidgetConfig.user_id == tenant_id,
            DpdpaConsentRecord.created_at >= since,
        )
    )).scalar() or 0

    return cookie_count + dpdpa_count


async def check_consent_quota(db: AsyncSession, tenant: Tenant) -> tuple[QuotaStatus, Entitlements]:
    entitlements = get_entitlements(tenant)
    if entitlements.consent_limit is None:
        return evaluate_quota(0, entitlements), entitlements

    used = await count_monthly_consents(db, tenant.id, month_start())
    status = evaluate_quota(used, entitlements)
    if not status.allowed:
        logger.warning(
            "consent_quota_exhausted",
            tenant_id=tenant.id,
            used=used,
            limit=status.limit,
            plan=entitlements.plan.value,
        )
    return status, entitlements

"""Consent analytics.

Every report is a set of single-pass folds over rows fetched for a date
window; nothing is pre-aggregated. The fold functions are pure and take
model instances (or anything with the same attributes). The ``fetch_*``
coroutines load those rows for a tenant.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from consently.exceptions import InternalError, NotFoundError, ValidationError
from consently.models.activity import ActivityPurpose, ProcessingActivity
from consently.models.analytics import ConsentEvent, RuleMatchEvent
from consently.models.consent import DpdpaConsentRecord
from consently.models.otp import EmailVerificationEvent
from consently.models.widget import DpdpaWidgetConfig

logger = structlog.get_logger()

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}
RANGE_LABELS = {"7d": "Last 7 days", "30d": "Last 30 days", "90d": "Last 90 days", "all": "All time"}
PURPOSE_SORTS = ("consentRate", "totalRecords", "purposeName")
TIME_TO_CONSENT_WINDOW = timedelta(hours=1)


@dataclass
class DateWindow:
    start: datetime | None
    end: datetime
    label: str = "all"

    @property
    def explicit(self) -> bool:
        return self.start is not None

    def days(self) -> list[str]:
        """Every UTC day in the window, oldest first. Empty for 'all'."""
        if self.start is None:
            return []
        first, last = _utc(self.start).date(), _utc(self.end).date()
        return [(first + timedelta(days=i)).isoformat() for i in range((last - first).days + 1)]


def parse_range(value: str | None, now: datetime | None = None) -> DateWindow:
    now = now or datetime.now(timezone.utc)
    value = value or "30d"
    if value == "all":
        return DateWindow(start=None, end=now, label="all")
    if value not in RANGE_DAYS:
        raise ValidationError("Invalid range. Must be one of: 7d, 30d, 90d, all", code="INVALID_RANGE")
    return DateWindow(start=now - timedelta(days=RANGE_DAYS[value]), end=now, label=value)


def rate(part: int | float, whole: int | float) -> float:
    """Percentage, 0 when there is nothing to divide by."""
    if not whole:
        return 0.0
    return part / whole * 100


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def day_key(ts: datetime) -> str:
    return _utc(ts).date().isoformat()


def _series(buckets: dict[str, dict], window: DateWindow | None, zero: dict) -> list[dict]:
    # Dense over an explicit window, sparse otherwise.
    if window is not None and window.explicit:
        return [{"date": d, **buckets.get(d, dict(zero))} for d in window.days()]
    return [{"date": d, **buckets[d]} for d in sorted(buckets)]


def _status_counts(records: Iterable) -> Counter:
    return Counter(r.consent_status for r in records)


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


# --- Widget ---

def overview(records: list) -> dict:
    counts = _status_counts(records)
    total = len(records)
    return {
        "totalConsents": total,
        "acceptedCount": counts["accepted"],
        "rejectedCount": counts["rejected"],
        "partialCount": counts["partial"],
        "revokedCount": counts["revoked"],
        "acceptanceRate": rate(counts["accepted"], total),
        "uniqueVisitors": len({r.visitor_id for r in records}),
    }


def activity_counts(activities: list, records: list) -> dict[str, dict]:
    """Accept/reject tallies per activity id; unknown ids are ignored."""
    stats = {a.id: {"accepted": 0, "rejected": 0} for a in activities}
    for record in records:
        for activity_id in record.consented_activities or []:
            if activity_id in stats:
                stats[activity_id]["accepted"] += 1
        for activity_id in record.rejected_activities or []:
            if activity_id in stats:
                stats[activity_id]["rejected"] += 1
    return stats


def widget_stats(widget, activities: list, records: list, window: DateWindow | None = None) -> dict:
    """Overview, breakdowns, daily series and per-activity rates for one widget."""
    buckets: dict[str, dict] = defaultdict(lambda: {"accepted": 0, "rejected": 0, "partial": 0})
    for record in records:
        if record.consent_status in ("accepted", "rejected", "partial"):
            buckets[day_key(record.consent_given_at)][record.consent_status] += 1

    counts = activity_counts(activities, records)
    activity_stats = []
    for activity in activities:
        c = counts[activity.id]
        total = c["accepted"] + c["rejected"]
        activity_stats.append({
            "activityId": activity.id,
            "name": activity.activity_name,
            "industry": activity.industry,
            "accepted": c["accepted"],
            "rejected": c["rejected"],
            "total": total,
            "acceptanceRate": rate(c["accepted"], total),
        })

    recent = sorted(records, key=lambda r: r.consent_given_at, reverse=True)[:20]

    return {
        "widgetInfo": {
            "widgetId": widget.widget_id,
            "name": widget.name,
            "domain": widget.domain,
            "isActive": widget.is_active,
            "createdAt": _iso(getattr(widget, "created_at", None)),
        },
        "overview": overview(records),
        "breakdown": {
            "devices": dict(Counter(r.device_type or "Unknown" for r in records)),
            "browsers": dict(Counter(r.browser or "Unknown" for r in records)),
            "countries": dict(Counter(r.country or "Unknown" for r in records)),
            "languages": dict(Counter(r.language or "Unknown" for r in records)),
        },
        "timeSeries": _series(buckets, window, {"accepted": 0, "rejected": 0, "partial": 0}),
        "activities": activity_stats,
        "recent": [
            {
                "id": r.id,
                "visitorId": r.visitor_id,
                "consentStatus": r.consent_status,
                "acceptedActivities": r.consented_activities or [],
                "rejectedActivities": r.rejected_activities or [],
                "deviceType": r.device_type,
                "country": r.country,
                "consentedAt": _iso(r.consent_given_at),
            }
            for r in recent
        ],
    }


def dashboard_summary(widget, activities: list, records: list) -> dict:
    """Compact widget summary for the dashboard landing page."""
    ov = overview(records)
    counts = activity_counts(activities, records)
    names = {a.id: a.activity_name for a in activities}
    recent = sorted(records, key=lambda r: r.consent_given_at, reverse=True)[:20]
    return {
        "stats": {
            "total_consents": ov["totalConsents"],
            "accepted_count": ov["acceptedCount"],
            "rejected_count": ov["rejectedCount"],
            "partial_count": ov["partialCount"],
            "acceptance_rate": ov["acceptanceRate"],
            "unique_visitors": ov["uniqueVisitors"],
        },
        "activityStats": [
            {
                "activity_id": activity_id,
                "activity_name": names[activity_id],
                "acceptance_count": c["accepted"],
                "rejection_count": c["rejected"],
                "acceptance_rate": rate(c["accepted"], c["accepted"] + c["rejected"]),
            }
            for activity_id, c in counts.items()
        ],
        "recentConsents": [
            {
                "id": r.id,
                "consent_status": r.consent_status,
                "accepted_activities": r.consented_activities or [],
                "rejected_activities": r.rejected_activities or [],
                "device_type": r.device_type,
                "country": r.country,
                "consent_timestamp": _iso(r.consent_given_at),
            }
            for r in recent
        ],
    }


# --- Activity ---

def activity_stats(activity, widgets: list, records: list, window: DateWindow | None = None) -> dict:
    """How one activity fares across every widget that presents it."""
    accepted = rejected = 0
    by_country: dict[str, dict] = defaultdict(lambda: {"accepted": 0, "rejected": 0, "total": 0})
    by_device: dict[str, dict] = defaultdict(lambda: {"accepted": 0, "rejected": 0, "total": 0})
    by_widget = {
        w.widget_id: {
            "widgetId": w.widget_id,
            "widgetName": w.name,
            "domain": w.domain,
            "accepted": 0,
            "rejected": 0,
            "total": 0,
        }
        for w in widgets
    }
    buckets: dict[str, dict] = defaultdict(lambda: {"accepted": 0, "rejected": 0})

    for record in records:
        is_accepted = activity.id in (record.consented_activities or [])
        is_rejected = activity.id in (record.rejected_activities or [])
        if not (is_accepted or is_rejected):
            continue
        targets = [
            by_country[record.country or "Unknown"],
            by_device[record.device_type or "Unknown"],
        ]
        if record.widget_id in by_widget:
            targets.append(by_widget[record.widget_id])
        day = buckets[day_key(record.consent_given_at)]
        if is_accepted:
            accepted += 1
            day["accepted"] += 1
            for t in targets:
                t["accepted"] += 1
                t["total"] += 1
        if is_rejected:
            rejected += 1
            day["rejected"] += 1
            for t in targets:
                t["rejected"] += 1
                t["total"] += 1

    total = accepted + rejected
    return {
        "activityInfo": {
            "activityId": activity.id,
            "name": activity.activity_name,
            "industry": activity.industry,
            "legalBasis": activity.legal_basis,
            "retentionPeriod": activity.retention_period,
            "isActive": activity.is_active,
        },
        "overview": {
            "totalResponses": total,
            "acceptedCount": accepted,
            "rejectedCount": rejected,
            "acceptanceRate": rate(accepted, total),
            "widgetCount": len(widgets),
        },
        "breakdown": {
            "countries": [
                {"country": k, **v, "acceptanceRate": rate(v["accepted"], v["total"])}
                for k, v in by_country.items()
            ],
            "devices": [
                {"device": k, **v, "acceptanceRate": rate(v["accepted"], v["total"])}
                for k, v in by_device.items()
            ],
        },
        "timeSeries": _series(buckets, window, {"accepted": 0, "rejected": 0}),
        "widgets": [
            {**w, "acceptanceRate": rate(w["accepted"], w["total"])} for w in by_widget.values()
        ],
    }


# --- Purposes ---

def purpose_stats(activities: list, records: list, sort_by: str = "consentRate") -> dict:
    """Consent rate per (activity, purpose).

    A record's explicit ``activityPurposeConsents`` for an activity wins.
    Without it, a consented activity counts as consent to all of its
    purposes and a rejected one as a refusal of all of them.
    """
    if sort_by not in PURPOSE_SORTS:
        raise ValidationError(f"Invalid sortBy. Must be one of: {', '.join(PURPOSE_SORTS)}")

    stats: dict[tuple[str, str], dict] = {}
    for activity in activities:
        for ap in activity.activity_purposes or []:
            if ap.purpose is None:
                continue
            stats[(activity.id, ap.id)] = {
                "activityId": activity.id,
                "activityName": activity.activity_name,
                "purposeId": ap.id,
                "basePurposeId": ap.purpose_id,
                "purposeName": ap.purpose.purpose_name,
                "legalBasis": ap.legal_basis or activity.legal_basis,
                "industry": activity.industry,
                "totalRecords": 0,
                "consentedCount": 0,
                "consentRate": 0.0,
            }

    by_activity: dict[str, list[dict]] = defaultdict(list)
    for s in stats.values():
        by_activity[s["activityId"]].append(s)

    for record in records:
        explicit = (record.consent_details or {}).get("activityPurposeConsents") or {}
        consented = set(record.consented_activities or [])
        rejected = set(record.rejected_activities or [])

        for activity_id, purpose_ids in explicit.items():
            if not isinstance(purpose_ids, list):
                continue
            for s in by_activity.get(activity_id, []):
                if s["purposeId"] in purpose_ids or s["basePurposeId"] in purpose_ids:
                    s["totalRecords"] += 1
                    if activity_id in consented:
                        s["consentedCount"] += 1

        for activity_id in consented - set(explicit):
            for s in by_activity.get(activity_id, []):
                s["totalRecords"] += 1
                s["consentedCount"] += 1
        for activity_id in rejected - consented - set(explicit):
            for s in by_activity.get(activity_id, []):
                s["totalRecords"] += 1

    rows = list(stats.values())
    for s in rows:
        s["consentRate"] = rate(s["consentedCount"], s["totalRecords"])

    if sort_by == "consentRate":
        rows.sort(key=lambda s: -s["consentRate"])
    elif sort_by == "totalRecords":
        rows.sort(key=lambda s: -s["totalRecords"])
    else:
        rows.sort(key=lambda s: s["purposeName"])

    with_data = [s for s in rows if s["totalRecords"] > 0]
    avg = sum(s["consentRate"] for s in rows) / len(rows) if rows else 0.0

    breakdown = []
    for activity_id, purposes in by_activity.items():
        breakdown.append({
            "activityId": activity_id,
            "activityName": purposes[0]["activityName"],
            "purposeCount": len(purposes),
            "avgConsentRate": round(sum(p["consentRate"] for p in purposes) / len(purposes), 2),
            "purposes": [
                {
                    "purposeId": p["purposeId"],
                    "purposeName": p["purposeName"],
                    "consentRate": round(p["consentRate"], 2),
                    "totalRecords": p["totalRecords"],
                }
                for p in purposes
            ],
        })

    return {
        "data": rows,
        "summary": {
            "totalPurposes": len(rows),
            "totalRecords": sum(s["totalRecords"] for s in rows),
            "avgConsentRate": round(avg, 2),
            "topPurposes": sorted(with_data, key=lambda s: -s["consentRate"])[:5],
            "bottomPurposes": sorted(with_data, key=lambda s: s["consentRate"])[:5],
        },
        "activityBreakdown": breakdown,
    }


# --- Display rules ---

def average_time_to_consent(matches: list, consents: list) -> float | None:
    """Mean seconds from the nearest earlier match to each consent.

    Only matches at most one hour before the consent pair up. Both lists
    must belong to the same rule.
    """
    match_times = sorted(_utc(m.matched_at) for m in matches)
    deltas = []
    for consent in consents:
        at = _utc(consent.consented_at)
        nearest = None
        for t in match_times:
            if t > at:
                break
            nearest = t
        if nearest is not None and at - nearest <= TIME_TO_CONSENT_WINDOW:
            deltas.append((at - nearest).total_seconds())
    if not deltas:
        return None
    return sum(deltas) / len(deltas)


def rule_performance(widget_id: str, match_events: list, consent_events: list) -> dict:
    matches_by_rule: dict[str, list] = defaultdict(list)
    consents_by_rule: dict[str, list] = defaultdict(list)
    names: dict[str, str] = {}
    for m in match_events:
        matches_by_rule[m.rule_id].append(m)
        names.setdefault(m.rule_id, m.rule_name)
    for c in consent_events:
        if not c.rule_id:
            continue
        consents_by_rule[c.rule_id].append(c)
        names.setdefault(c.rule_id, c.rule_name or c.rule_id)

    performance = []
    for rule_id in sorted(set(matches_by_rule) | set(consents_by_rule)):
        consents = consents_by_rule[rule_id]
        counts = _status_counts(consents)
        total = len(consents)
        performance.append({
            "ruleId": rule_id,
            "ruleName": names.get(rule_id) or rule_id,
            "matchCount": len(matches_by_rule[rule_id]),
            "consentCount": total,
            "acceptanceRate": rate(counts["accepted"], total),
            "rejectionRate": rate(counts["rejected"], total),
            "partialRate": rate(counts["partial"], total),
            "averageTimeToConsent": average_time_to_consent(matches_by_rule[rule_id], consents),
        })

    trends: dict[str, dict] = defaultdict(lambda: {"matches": 0, "consents": 0, "accepted": 0})
    for m in match_events:
        trends[day_key(m.matched_at)]["matches"] += 1
    for c in consent_events:
        day = trends[day_key(c.consented_at)]
        day["consents"] += 1
        if c.consent_status == "accepted":
            day["accepted"] += 1

    all_counts = _status_counts(consent_events)
    return {
        "widgetId": widget_id,
        "totalMatches": len(match_events),
        "totalConsents": len(consent_events),
        "overallAcceptanceRate": rate(all_counts["accepted"], len(consent_events)),
        "rulePerformance": performance,
        "topRules": sorted(performance, key=lambda p: -p["consentCount"])[:5],
        "consentTrends": [
            {
                "date": d,
                "matches": trends[d]["matches"],
                "consents": trends[d]["consents"],
                "acceptanceRate": rate(trends[d]["accepted"], trends[d]["consents"]),
            }
            for d in sorted(trends)
        ],
    }


# --- Email verification ---

def email_verification_stats(events: list, widgets: list, window: DateWindow) -> dict:
    counts = Counter(e.event_type for e in events)
    sent, verified = counts["otp_sent"], counts["otp_verified"]

    durations = [
        (e.event_metadata or {}).get("time_to_verify_seconds")
        for e in events
        if e.event_type == "otp_verified"
    ]
    durations = [d for d in durations if d is not None]

    zero = {"otpSent": 0, "verified": 0, "failed": 0, "rateLimited": 0}
    field_for = {
        "otp_sent": "otpSent",
        "otp_verified": "verified",
        "otp_failed": "failed",
        "rate_limited": "rateLimited",
    }
    buckets: dict[str, dict] = defaultdict(lambda: dict(zero))
    names = {w.widget_id: w.name for w in widgets}
    by_widget: dict[str, dict] = {}
    for e in events:
        if e.event_type in field_for:
            buckets[day_key(e.created_at)][field_for[e.event_type]] += 1
        w = by_widget.setdefault(e.widget_id, {
            "widgetId": e.widget_id,
            "widgetName": names.get(e.widget_id) or e.widget_id,
            "otpSent": 0,
            "verified": 0,
        })
        if e.event_type == "otp_sent":
            w["otpSent"] += 1
        elif e.event_type == "otp_verified":
            w["verified"] += 1

    recent = sorted(events, key=lambda e: e.created_at, reverse=True)[:20]
    return {
        "overview": {
            "totalOtpSent": sent,
            "totalVerified": verified,
            "totalFailed": counts["otp_failed"],
            "totalRateLimited": counts["rate_limited"],
            "verificationRate": rate(verified, sent),
            "averageTimeToVerifySeconds": round(sum(durations) / len(durations)) if durations else 0,
        },
        "timeSeries": _series(buckets, window, zero),
        "byWidget": [
            {**w, "verificationRate": rate(w["verified"], w["otpSent"])} for w in by_widget.values()
        ],
        "recentEvents": [
            {
                "id": e.id,
                "eventType": e.event_type,
                "widgetId": e.widget_id,
                "visitorId": e.visitor_id,
                "createdAt": _iso(e.created_at),
                "metadata": e.event_metadata or {},
            }
            for e in recent
        ],
    }


# --- Compliance ---

def compliance_report(tenant, widget, activities: list, records: list, window: DateWindow) -> dict:
    counts = activity_counts(activities, records)
    activity_rows = []
    gaps = []
    for activity in activities:
        c = counts[activity.id]
        total = c["accepted"] + c["rejected"]
        activity_rows.append({
            "id": activity.id,
            "name": activity.activity_name,
            "legalBasis": activity.legal_basis,
            "retentionPeriod": activity.retention_period,
            "acceptanceRate": rate(c["accepted"], total),
            "totalResponses": total,
            "acceptedCount": c["accepted"],
            "rejectedCount": c["rejected"],
        })
        missing = [
            name for name, value in (
                ("legalBasis", activity.legal_basis),
                ("retentionPeriod", activity.retention_period),
            )
            if not value
        ]
        if missing:
            gaps.append({"activityId": activity.id, "name": activity.activity_name, "missing": missing})

    ordered = sorted(records, key=lambda r: r.consent_given_at, reverse=True)
    return {
        "reportMetadata": {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "generatedBy": tenant.email if tenant else "Unknown",
            "reportPeriod": RANGE_LABELS.get(window.label, window.label),
            "widgetName": widget.name,
            "widgetDomain": widget.domain,
        },
        "summary": overview(records),
        "activities": activity_rows,
        "complianceGaps": gaps,
        "recentConsents": [
            {
                "timestamp": _iso(r.consent_given_at),
                "status": r.consent_status,
                "deviceType": r.device_type or "unknown",
                "country": r.country or "unknown",
            }
            for r in ordered[:50]
        ],
        "rawData": {
            "consents": [
                {
                    "id": r.id,
                    "timestamp": _iso(r.consent_given_at),
                    "status": r.consent_status,
                    "acceptedActivities": r.consented_activities or [],
                    "rejectedActivities": r.rejected_activities or [],
                    "deviceType": r.device_type,
                    "browser": r.browser,
                    "country": r.country,
                }
                for r in ordered
            ],
        },
    }


# --- Fetching ---

async def fetch_tenant_widget(db: AsyncSession, widget_id: str, tenant_id: str) -> DpdpaWidgetConfig:
    widget = (await db.execute(
        select(DpdpaWidgetConfig).where(
            DpdpaWidgetConfig.widget_id == widget_id,
            DpdpaWidgetConfig.user_id == tenant_id,
        )
    )).scalar_one_or_none()
    if widget is None:
        raise NotFoundError("Widget not found or access denied")
    return widget


async def fetch_tenant_widgets(db: AsyncSession, tenant_id: str) -> list[DpdpaWidgetConfig]:
    return list((await db.execute(
        select(DpdpaWidgetConfig).where(DpdpaWidgetConfig.user_id == tenant_id)
    )).scalars().all())


async def fetch_records(
    db: AsyncSession,
    widget_ids: list[str],
    window: DateWindow | None = None,
    *,
    activity_id: str | None = None,
) -> list[DpdpaConsentRecord]:
    if not widget_ids:
        return []
    query = select(DpdpaConsentRecord).where(DpdpaConsentRecord.widget_id.in_(widget_ids))
    if window is not None and window.start is not None:
        query = query.where(DpdpaConsentRecord.consent_given_at >= window.start)
    if activity_id:
        query = query.where(or_(
            DpdpaConsentRecord.consented_activities.contains([activity_id]),
            DpdpaConsentRecord.rejected_activities.contains([activity_id]),
        ))
    try:
        return list((await db.execute(query)).scalars().all())
    except SQLAlchemyError as e:
        logger.error("analytics_records_fetch_failed", widgets=len(widget_ids), error=str(e))
        raise InternalError("Failed to fetch consent records") from e


async def fetch_activities(
    db: AsyncSession,
    tenant_id: str,
    activity_ids: list[str] | None = None,
    *,
    with_purposes: bool = False,
) -> list[ProcessingActivity]:
    """Tenant activities. A failed lookup degrades to an empty list."""
    query = select(ProcessingActivity).where(ProcessingActivity.user_id == tenant_id)
    if activity_ids is not None:
        if not activity_ids:
            return []
        query = query.where(ProcessingActivity.id.in_(activity_ids))
    if with_purposes:
        query = query.options(
            selectinload(ProcessingActivity.activity_purposes).selectinload(ActivityPurpose.purpose)
        )
    try:
        return list((await db.execute(query)).scalars().all())
    except SQLAlchemyError as e:
        logger.warning("analytics_activities_fetch_failed", tenant_id=tenant_id, error=str(e))
        return []


async def fetch_activity(db: AsyncSession, activity_id: str, tenant_id: str) -> ProcessingActivity:
    activity = (await db.execute(
        select(ProcessingActivity).where(
            ProcessingActivity.id == activity_id,
            ProcessingActivity.user_id == tenant_id,
        )
    )).scalar_one_or_none()
    if activity is None:
        raise NotFoundError("Activity not found or access denied")
    return activity


async def fetch_rule_events(
    db: AsyncSession, widget_id: str, window: DateWindow
) -> tuple[list[RuleMatchEvent], list[ConsentEvent]]:
    match_q = select(RuleMatchEvent).where(RuleMatchEvent.widget_id == widget_id)
    consent_q = select(ConsentEvent).where(ConsentEvent.widget_id == widget_id)
    if window.start is not None:
        match_q = match_q.where(RuleMatchEvent.matched_at >= window.start)
        consent_q = consent_q.where(ConsentEvent.consented_at >= window.start)
    try:
        matches = list((await db.execute(match_q)).scalars().all())
        consents = list((await db.execute(consent_q)).scalars().all())
    except SQLAlchemyError as e:
        logger.error("analytics_rule_events_fetch_failed", widget_id=widget_id, error=str(e))
        raise InternalError("Failed to fetch rule analytics") from e
    return matches, consents


async def fetch_verification_events(
    db: AsyncSession, widget_ids: list[str], since: datetime
) -> list[EmailVerificationEvent]:
    if not widget_ids:
        return []
    try:
        return list((await db.execute(
            select(EmailVerificationEvent).where(
                EmailVerificationEvent.widget_id.in_(widget_ids),
                EmailVerificationEvent.created_at >= since,
            )
        )).scalars().all())
    except SQLAlchemyError as e:
        logger.error("analytics_verification_fetch_failed", error=str(e))
        raise InternalError("Failed to fetch analytics data") from e


def window_for_days(days: int, now: datetime | None = None) -> DateWindow:
    """Window covering the last ``days`` calendar days, today included."""
    now = now or datetime.now(timezone.utc)
    if days < 1 or days > 365:
        raise ValidationError("days must be between 1 and 365")
    start_day: date = _utc(now).date() - timedelta(days=days - 1)
    start = datetime(start_day.year, start_day.month, start_day.day, tzinfo=timezone.utc)
    return DateWindow(start=start, end=now, label=f"{days}d")

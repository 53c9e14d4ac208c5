"""Celery task: roll up a widget's consents for one day.

Dispatched fire-and-forget after every recorded consent. The result is
logged; dashboards still fold raw rows on demand.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import structlog

from consently.celery_app import app

logger = structlog.get_logger()


@app.task(name="consently.tasks.aggregate_analytics.aggregate_widget_analytics")
def aggregate_widget_analytics(widget_id: str, day: str | None = None) -> dict:
    """Count one UTC day of consents for a widget.

    Args:
        widget_id: DPDPA or cookie widget id.
        day: ``YYYY-MM-DD``; today when omitted.
    """
    from sqlalchemy import select

    from consently.db.session import sync_session
    from consently.models.consent import CookieConsentLog, DpdpaConsentRecord
    from consently.services.analytics import overview

    start = (
        datetime.strptime(day, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        if day
        else datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    )
    end = start + timedelta(days=1)

    with sync_session() as session:
        records = session.execute(
            select(DpdpaConsentRecord).where(
                DpdpaConsentRecord.widget_id == widget_id,
                DpdpaConsentRecord.consent_given_at >= start,
                DpdpaConsentRecord.consent_given_at < end,
            )
        ).scalars().all()

        if records:
            summary = overview(list(records))
        else:
            logs = session.execute(
                select(CookieConsentLog).where(
                    CookieConsentLog.widget_id == widget_id,
                    CookieConsentLog.created_at >= start,
                    CookieConsentLog.created_at < end,
                )
            ).scalars().all()
            counts = Counter(log.status for log in logs)
            summary = {
                "totalConsents": len(logs),
                "acceptedCount": counts["accepted"],
                "rejectedCount": counts["rejected"],
                "partialCount": counts["partial"],
                "revokedCount": counts["revoked"],
                "uniqueVisitors": len({log.visitor_token for log in logs}),
            }

    logger.info("widget_analytics_aggregated", widget_id=widget_id, day=start.date().isoformat(), **summary)
    return summary


def trigger_widget_aggregation(widget_id: str) -> bool:
    """Queue aggregation for a widget. Never raises."""
    try:
        aggregate_widget_analytics.delay(widget_id)
        return True
    except Exception as e:
        logger.warning("celery_dispatch_failed", task="aggregate_widget_analytics", widget_id=widget_id, error=str(e))
        return False

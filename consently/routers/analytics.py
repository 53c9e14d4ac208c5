"""Analytics router: dashboard reports for the signed-in tenant.

Endpoints:
  GET /api/dpdpa/analytics                    dashboard summary for one widget
  GET /api/dpdpa/widget-stats/{widget_id}     widget report
  GET /api/dpdpa/activity-stats/{activity_id} activity report across widgets
  GET /api/dpdpa/analytics/purpose-level      consent rate per purpose
  GET /api/dpdpa/analytics/rules              display rule performance
  GET /api/analytics/email-verification       OTP funnel
  GET /api/dpdpa/compliance-report            audit report (json)
"""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Query

from consently.deps import DB, CurrentTenant
from consently.exceptions import ValidationError
from consently.services import analytics

logger = structlog.get_logger()

router = APIRouter()


@router.get("/dpdpa/analytics")
async def dashboard(
    db: DB,
    tenant: CurrentTenant,
    widget_id: str = Query(..., alias="widgetId"),
    period: str = Query("30d", alias="range"),
):
    window = analytics.parse_range(period)
    widget = await analytics.fetch_tenant_widget(db, widget_id, tenant.id)
    records = await analytics.fetch_records(db, [widget.widget_id], window)
    activities = await analytics.fetch_activities(db, tenant.id, widget.selected_activities or [])
    return analytics.dashboard_summary(widget, activities, records)


@router.get("/dpdpa/widget-stats/{widget_id}")
async def widget_stats(widget_id: str, db: DB, tenant: CurrentTenant, period: str = Query("30d", alias="range")):
    window = analytics.parse_range(period)
    widget = await analytics.fetch_tenant_widget(db, widget_id, tenant.id)
    records = await analytics.fetch_records(db, [widget.widget_id], window)
    activities = await analytics.fetch_activities(db, tenant.id, widget.selected_activities or [])

    logger.info("widget_stats_served", widget_id=widget_id, records=len(records), range=window.label)
    return analytics.widget_stats(widget, activities, records, window)


@router.get("/dpdpa/activity-stats/{activity_id}")
async def activity_stats(activity_id: str, db: DB, tenant: CurrentTenant, period: str = Query("30d", alias="range")):
    window = analytics.parse_range(period)
    activity = await analytics.fetch_activity(db, activity_id, tenant.id)
    widgets = [
        w for w in await analytics.fetch_tenant_widgets(db, tenant.id)
        if activity_id in (w.selected_activities or [])
    ]
    records = await analytics.fetch_records(
        db, [w.widget_id for w in widgets], window, activity_id=activity_id
    )
    return analytics.activity_stats(activity, widgets, records, window)


@router.get("/dpdpa/analytics/purpose-level")
async def purpose_level(
    db: DB,
    tenant: CurrentTenant,
    widget_id: str | None = Query(None, alias="widgetId"),
    activity_id: str | None = Query(None, alias="activityId"),
    period: str = Query("30d", alias="range"),
    sort_by: str = Query("consentRate", alias="sortBy"),
):
    window = analytics.parse_range(period)
    if widget_id:
        widgets = [await analytics.fetch_tenant_widget(db, widget_id, tenant.id)]
    else:
        widgets = await analytics.fetch_tenant_widgets(db, tenant.id)

    activity_ids = None
    if activity_id:
        await analytics.fetch_activity(db, activity_id, tenant.id)
        activity_ids = [activity_id]

    records = await analytics.fetch_records(
        db, [w.widget_id for w in widgets], window, activity_id=activity_id
    )
    activities = await analytics.fetch_activities(db, tenant.id, activity_ids, with_purposes=True)

    report = analytics.purpose_stats(activities, records, sort_by)
    report["filters"] = {
        "widgetId": widget_id,
        "activityId": activity_id,
        "range": window.label,
        "sortBy": sort_by,
    }
    return report


@router.get("/dpdpa/analytics/rules")
async def rule_analytics(
    db: DB,
    tenant: CurrentTenant,
    widget_id: str = Query(..., alias="widgetId"),
    period: str = Query("30d", alias="range"),
):
    window = analytics.parse_range(period)
    widget = await analytics.fetch_tenant_widget(db, widget_id, tenant.id)
    matches, consents = await analytics.fetch_rule_events(db, widget.widget_id, window)
    return analytics.rule_performance(widget.widget_id, matches, consents)


@router.get("/analytics/email-verification")
async def email_verification(
    db: DB,
    tenant: CurrentTenant,
    widget_id: str | None = Query(None, alias="widgetId"),
    days: int = 30,
):
    window = analytics.window_for_days(days)
    if widget_id:
        widgets = [await analytics.fetch_tenant_widget(db, widget_id, tenant.id)]
    else:
        widgets = await analytics.fetch_tenant_widgets(db, tenant.id)

    events = await analytics.fetch_verification_events(db, [w.widget_id for w in widgets], window.start)
    return analytics.email_verification_stats(events, widgets, window)


@router.get("/dpdpa/compliance-report")
async def compliance_report(
    db: DB,
    tenant: CurrentTenant,
    widget_id: str = Query(..., alias="widgetId"),
    period: str = Query("30d", alias="range"),
    export_format: Literal["json", "csv", "pdf"] = Query("json", alias="format"),
):
    if export_format != "json":
        raise ValidationError(
            f"{export_format.upper()} export is not available. Use format=json.",
            code="UNSUPPORTED_FORMAT",
        )

    window = analytics.parse_range(period)
    widget = await analytics.fetch_tenant_widget(db, widget_id, tenant.id)
    records = await analytics.fetch_records(db, [widget.widget_id], window)
    activities = await analytics.fetch_activities(db, tenant.id, widget.selected_activities or [])

    logger.info("compliance_report_generated", widget_id=widget_id, records=len(records))
    return analytics.compliance_report(tenant, widget, activities, records, window)

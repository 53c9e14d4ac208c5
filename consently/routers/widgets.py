"""Widgets router: DPDPA widget configuration and public delivery.

Endpoints:
  GET  /api/dpdpa/widget-config               list the tenant's widgets (auth)
  POST /api/dpdpa/widget-config               create a widget (auth)
  PUT  /api/dpdpa/widget-config/{widget_id}   replace a widget's settings (auth)
  GET  /api/dpdpa/widget-public/{widget_id}   config served to the embed script
  POST /api/dpdpa/analytics/rule-match        record a display-rule match
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from consently.config import settings
from consently.deps import DB, Client, CurrentTenant, rate_limit
from consently.exceptions import NotFoundError, ValidationError
from consently.models.activity import ProcessingActivity
from consently.models.analytics import RuleMatchEvent
from consently.models.widget import DpdpaWidgetConfig
from consently.routers.activities import activity_query, serialize_activity
from consently.schemas.widget import (
    RuleMatchEventCreate,
    WidgetConfigCreate,
    WidgetConfigResponse,
    WidgetConfigUpdate,
)
from consently.services import identity_bridge
from consently.services.rule_matcher import filter_activity_payloads, select_rule
from consently.services.visitor import detect_device_type

logger = structlog.get_logger()

router = APIRouter()

PUBLIC_RULE_FIELDS = (
    "id",
    "rule_name",
    "url_pattern",
    "url_match_type",
    "trigger_type",
    "trigger_delay",
    "element_selector",
    "scroll_threshold",
    "notice_content",
    "priority",
)


def _public_rule(rule: dict) -> dict:
    return {k: rule.get(k) for k in PUBLIC_RULE_FIELDS}


async def _check_activities(db, tenant_id: str, activity_ids: list[str]) -> None:
    if not activity_ids:
        return
    found = set((await db.execute(
        select(ProcessingActivity.id).where(
            ProcessingActivity.id.in_(activity_ids),
            ProcessingActivity.user_id == tenant_id,
        )
    )).scalars().all())
    missing = sorted(set(activity_ids) - found)
    if missing:
        raise ValidationError("Unknown activities", code="INVALID_ACTIVITY", details={"activities": missing})


async def _tenant_widget(db, widget_id: str, tenant_id: str) -> DpdpaWidgetConfig:
    widget = (await db.execute(
        select(DpdpaWidgetConfig).where(
            DpdpaWidgetConfig.widget_id == widget_id,
            DpdpaWidgetConfig.user_id == tenant_id,
        )
    )).scalar_one_or_none()
    if widget is None:
        raise NotFoundError("Widget not found")
    return widget


@router.get("/dpdpa/widget-config", response_model=list[WidgetConfigResponse])
async def list_widgets(db: DB, tenant: CurrentTenant):
    result = await db.execute(
        select(DpdpaWidgetConfig)
        .where(DpdpaWidgetConfig.user_id == tenant.id)
        .order_by(DpdpaWidgetConfig.created_at.desc())
    )
    return [WidgetConfigResponse.model_validate(w) for w in result.scalars().all()]


@router.post("/dpdpa/widget-config", response_model=WidgetConfigResponse, status_code=201)
async def create_widget(body: WidgetConfigCreate, db: DB, tenant: CurrentTenant):
    await _check_activities(db, tenant.id, body.selected_activities)

    now = datetime.now(timezone.utc)
    widget = DpdpaWidgetConfig(
        widget_id=f"dpdpa_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}",
        user_id=tenant.id,
        name=body.name,
        domain=body.domain,
        selected_activities=body.selected_activities,
        theme=body.theme,
        consent_duration=body.consent_duration,
        otp_expiration_minutes=body.otp_expiration_minutes,
        display_rules=[r.model_dump() for r in body.display_rules],
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(widget)
    await db.flush()

    logger.info("widget_created", tenant_id=tenant.id, widget_id=widget.widget_id, rules=len(body.display_rules))
    return WidgetConfigResponse.model_validate(widget)


@router.put("/dpdpa/widget-config/{widget_id}", response_model=WidgetConfigResponse)
async def update_widget(widget_id: str, body: WidgetConfigUpdate, db: DB, tenant: CurrentTenant):
    widget = await _tenant_widget(db, widget_id, tenant.id)
    await _check_activities(db, tenant.id, body.selected_activities)

    widget.name = body.name
    widget.domain = body.domain
    widget.selected_activities = body.selected_activities
    widget.theme = body.theme
    widget.consent_duration = body.consent_duration
    widget.otp_expiration_minutes = body.otp_expiration_minutes
    widget.display_rules = [r.model_dump() for r in body.display_rules]
    widget.is_active = body.is_active
    widget.updated_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("widget_updated", tenant_id=tenant.id, widget_id=widget_id, active=body.is_active)
    return WidgetConfigResponse.model_validate(widget)


@router.get("/dpdpa/widget-public/{widget_id}")
async def public_widget(
    widget_id: str,
    db: DB,
    current_url: str | None = Query(None, alias="currentUrl"),
):
    """Config for the embed script, narrowed to the rule matching ``currentUrl``."""
    widget = await identity_bridge.get_widget(db, widget_id, active_only=True)

    activities = []
    if widget.selected_activities:
        result = await db.execute(
            activity_query().where(
                ProcessingActivity.id.in_(widget.selected_activities),
                ProcessingActivity.user_id == widget.user_id,
                ProcessingActivity.is_active.is_(True),
            )
        )
        activities = [serialize_activity(a) for a in result.scalars().all()]

    rules = widget.display_rules or []
    selection = select_rule(
        rules,
        widget.selected_activities or [],
        current_url or "",
        fallback_to_widget_activities=settings.RULE_EMPTY_ACTIVITIES_FALLBACK,
    )

    return {
        "widgetId": widget.widget_id,
        "name": widget.name,
        "domain": widget.domain,
        "theme": widget.theme or {},
        "consentDuration": widget.consent_duration,
        "activities": filter_activity_payloads(activities, selection),
        "displayRules": [_public_rule(r) for r in rules if r.get("is_active") is True],
        "matchedRule": _public_rule(selection.rule) if selection.rule else None,
    }


@router.post(
    "/dpdpa/analytics/rule-match",
    dependencies=[Depends(rate_limit(
        "rule_match", settings.RATE_LIMIT_RULE_MATCH, settings.RATE_LIMIT_RULE_MATCH_WINDOW
    ))],
)
async def record_rule_match(body: RuleMatchEventCreate, db: DB, client: Client):
    await identity_bridge.get_widget(db, body.widget_id, active_only=True)

    user_agent = body.user_agent or client.user_agent
    db.add(RuleMatchEvent(
        widget_id=body.widget_id,
        visitor_id=body.visitor_id,
        rule_id=body.rule_id,
        rule_name=body.rule_name,
        url_pattern=body.url_pattern,
        page_url=body.page_url,
        trigger_type=body.trigger_type,
        user_agent=user_agent,
        device_type=body.device_type or detect_device_type(user_agent),
        country=body.country,
        language=body.language,
        matched_at=body.matched_at or datetime.now(timezone.utc),
    ))
    await db.flush()

    logger.debug("rule_match_recorded", widget_id=body.widget_id, rule_id=body.rule_id)
    return {"success": True}

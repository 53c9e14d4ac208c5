"""Activities router: processing activities and purposes (tenant scope).

Endpoints:
  GET    /api/dpdpa/activities          list activities with purposes
  POST   /api/dpdpa/activities          create an activity
  DELETE /api/dpdpa/activities/{id}     soft-disable an activity
  GET    /api/dpdpa/purposes            predefined + tenant purposes
  POST   /api/dpdpa/purposes            create a custom purpose
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter
from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from consently.deps import DB, CurrentTenant
from consently.exceptions import NotFoundError, ValidationError
from consently.models.activity import ActivityPurpose, DataCategory, ProcessingActivity, Purpose
from consently.schemas.widget import ActivityCreate, PurposeCreate

logger = structlog.get_logger()

router = APIRouter()


def _new_id() -> str:
    return str(uuid.uuid4())


def activity_query():
    """Activities with purposes and data categories eagerly loaded."""
    return select(ProcessingActivity).options(
        selectinload(ProcessingActivity.activity_purposes).selectinload(ActivityPurpose.purpose),
        selectinload(ProcessingActivity.activity_purposes).selectinload(ActivityPurpose.data_categories),
    )


def serialize_activity(activity: ProcessingActivity) -> dict:
    """Activity payload shared by the dashboard and the public widget."""
    return {
        "id": activity.id,
        "activity_name": activity.activity_name,
        "industry": activity.industry,
        "legal_basis": activity.legal_basis,
        "retention_period": activity.retention_period,
        "is_active": activity.is_active,
        "purposes": [
            {
                "id": ap.id,
                "purpose_id": ap.purpose_id,
                "purpose_name": ap.purpose.purpose_name if ap.purpose else None,
                "legal_basis": ap.legal_basis or activity.legal_basis,
                "description": ap.custom_description or (ap.purpose.description if ap.purpose else None),
                "data_categories": [
                    {
                        "id": dc.id,
                        "category_name": dc.category_name,
                        "data_fields": list(dc.data_fields or []),
                        "retention_period": dc.retention_period,
                    }
                    for dc in ap.data_categories
                ],
            }
            for ap in activity.activity_purposes
        ],
    }


def serialize_purpose(purpose: Purpose) -> dict:
    return {
        "id": purpose.id,
        "purpose_name": purpose.purpose_name,
        "description": purpose.description,
        "is_predefined": purpose.is_predefined,
    }


@router.get("/dpdpa/activities")
async def list_activities(db: DB, tenant: CurrentTenant, include_inactive: bool = False):
    query = activity_query().where(ProcessingActivity.user_id == tenant.id)
    if not include_inactive:
        query = query.where(ProcessingActivity.is_active.is_(True))
    result = await db.execute(query.order_by(ProcessingActivity.created_at.desc()))
    return {"data": [serialize_activity(a) for a in result.scalars().all()]}


@router.post("/dpdpa/activities", status_code=201)
async def create_activity(body: ActivityCreate, db: DB, tenant: CurrentTenant):
    """Create an activity with its purpose links and data categories."""
    purpose_ids = {p.purpose_id for p in body.purposes}
    if len(purpose_ids) != len(body.purposes):
        raise ValidationError("A purpose can only be linked once per activity", code="DUPLICATE_PURPOSE")

    if purpose_ids:
        found = set((await db.execute(
            select(Purpose.id).where(
                Purpose.id.in_(purpose_ids),
                or_(Purpose.is_predefined.is_(True), Purpose.user_id == tenant.id),
            )
        )).scalars().all())
        missing = sorted(purpose_ids - found)
        if missing:
            raise ValidationError("Unknown purposes", code="INVALID_PURPOSE", details={"purposes": missing})

    activity = ProcessingActivity(
        id=_new_id(),
        user_id=tenant.id,
        activity_name=body.activity_name,
        industry=body.industry,
        legal_basis=body.legal_basis,
        retention_period=body.retention_period,
        is_active=True,
    )
    db.add(activity)

    for link in body.purposes:
        ap_id = _new_id()
        db.add(ActivityPurpose(
            id=ap_id,
            activity_id=activity.id,
            purpose_id=link.purpose_id,
            legal_basis=link.legal_basis,
            custom_description=link.custom_description,
        ))
        for category in link.data_categories:
            db.add(DataCategory(
                id=_new_id(),
                activity_purpose_id=ap_id,
                category_name=category.category_name,
                data_fields=category.data_fields,
                retention_period=category.retention_period,
            ))
    await db.flush()

    logger.info("activity_created", tenant_id=tenant.id, activity_id=activity.id, purposes=len(body.purposes))
    result = await db.execute(
        activity_query()
        .where(ProcessingActivity.id == activity.id)
        .execution_options(populate_existing=True)
    )
    return {"data": serialize_activity(result.scalar_one())}


@router.delete("/dpdpa/activities/{activity_id}")
async def disable_activity(activity_id: str, db: DB, tenant: CurrentTenant):
    """Hide an activity from new widgets; recorded consents keep the id."""
    activity = (await db.execute(
        select(ProcessingActivity).where(
            ProcessingActivity.id == activity_id,
            ProcessingActivity.user_id == tenant.id,
        )
    )).scalar_one_or_none()
    if activity is None:
        raise NotFoundError("Activity not found")

    activity.is_active = False
    logger.info("activity_disabled", tenant_id=tenant.id, activity_id=activity_id)
    return {"success": True, "id": activity_id, "is_active": False}


@router.get("/dpdpa/purposes")
async def list_purposes(db: DB, tenant: CurrentTenant):
    result = await db.execute(
        select(Purpose)
        .where(or_(Purpose.is_predefined.is_(True), Purpose.user_id == tenant.id))
        .order_by(Purpose.is_predefined.desc(), Purpose.purpose_name)
    )
    return {"data": [serialize_purpose(p) for p in result.scalars().all()]}


@router.post("/dpdpa/purposes", status_code=201)
async def create_purpose(body: PurposeCreate, db: DB, tenant: CurrentTenant):
    purpose = Purpose(
        id=_new_id(),
        user_id=tenant.id,
        purpose_name=body.purpose_name,
        description=body.description,
        is_predefined=False,
    )
    db.add(purpose)
    await db.flush()
    logger.info("purpose_created", tenant_id=tenant.id, purpose_id=purpose.id)
    return {"data": serialize_purpose(purpose)}

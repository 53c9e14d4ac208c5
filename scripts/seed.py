"""Seed script: predefined purposes plus a demo tenant for development.

Usage: python scripts/seed.py
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select, text

from consently.db.session import sync_session
from consently.models.activity import ActivityPurpose, DataCategory, ProcessingActivity, Purpose
from consently.models.tenant import Tenant, TenantPlan
from consently.models.widget import DpdpaWidgetConfig

PREDEFINED_PURPOSES = [
    ("purpose_marketing", "Marketing", "Promotional communication and offers"),
    ("purpose_analytics", "Analytics", "Understanding how the site is used"),
    ("purpose_account", "Account management", "Creating and maintaining user accounts"),
    ("purpose_payments", "Payments", "Processing orders and refunds"),
    ("purpose_support", "Customer support", "Answering requests and complaints"),
]


def seed_purposes(db) -> None:
    existing = set(db.execute(select(Purpose.id).where(Purpose.is_predefined.is_(True))).scalars().all())
    for purpose_id, name, description in PREDEFINED_PURPOSES:
        if purpose_id in existing:
            continue
        db.add(Purpose(id=purpose_id, purpose_name=name, description=description, is_predefined=True))
        print(f"Created purpose: {name}")


def seed():
    with sync_session() as db:
        seed_purposes(db)
        db.flush()

        existing = db.execute(text("SELECT count(*) FROM dpdpa_widget_configs")).scalar()
        if existing > 0:
            db.commit()
            print(f"Database already has {existing} widget(s). Skipping demo tenant.")
            return

        tenant = Tenant(id="demo-tenant", email="demo@consently.in", plan=TenantPlan.FREE, is_demo=True)
        db.add(tenant)
        db.flush()
        print(f"Created tenant: {tenant.email}")

        newsletter = ProcessingActivity(
            id="act_newsletter",
            user_id=tenant.id,
            activity_name="Newsletter",
            industry="ecommerce",
            legal_basis="consent",
            retention_period="2 years",
        )
        checkout = ProcessingActivity(
            id="act_checkout",
            user_id=tenant.id,
            activity_name="Checkout",
            industry="ecommerce",
            legal_basis="contract",
            retention_period="7 years",
        )
        db.add_all([newsletter, checkout])
        db.flush()

        db.add_all([
            ActivityPurpose(id="ap_newsletter_marketing", activity_id=newsletter.id, purpose_id="purpose_marketing"),
            ActivityPurpose(id="ap_checkout_payments", activity_id=checkout.id, purpose_id="purpose_payments"),
        ])
        db.flush()
        db.add_all([
            DataCategory(
                id="dc_newsletter_contact",
                activity_purpose_id="ap_newsletter_marketing",
                category_name="Contact details",
                data_fields=["email", "name"],
            ),
            DataCategory(
                id="dc_checkout_billing",
                activity_purpose_id="ap_checkout_payments",
                category_name="Billing",
                data_fields=["address", "phone"],
                retention_period="7 years",
            ),
        ])
        print("Created activities: Newsletter, Checkout")

        widget = DpdpaWidgetConfig(
            widget_id="dpdpa_demo",
            user_id=tenant.id,
            name="Demo Store",
            domain="localhost",
            selected_activities=[newsletter.id, checkout.id],
            consent_duration=365,
            display_rules=[
                {
                    "id": "checkout_page",
                    "rule_name": "Checkout notice",
                    "url_pattern": "/checkout",
                    "url_match_type": "startsWith",
                    "trigger_type": "onPageLoad",
                    "activities": [checkout.id],
                    "activity_purposes": {},
                    "priority": 10,
                    "is_active": True,
                },
            ],
        )
        db.add(widget)
        db.commit()
        print(f"Created widget: {widget.widget_id}")


if __name__ == "__main__":
    seed()

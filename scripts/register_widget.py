"""Register a cookie-banner widget for an existing tenant.

Usage:
    python scripts/register_widget.py <tenant_email> <domain> [category1 category2 ...]

Example:
    python scripts/register_widget.py owner@example.com example.com necessary analytics marketing
"""

from __future__ import annotations

import secrets
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from consently.db.session import sync_session
from consently.models.tenant import Tenant
from consently.models.widget import CookieWidgetConfig

DEFAULT_CATEGORIES = ["necessary", "analytics", "marketing"]


def main():
    if len(sys.argv) < 3:
        print("Usage: python scripts/register_widget.py <tenant_email> <domain> [category1 category2 ...]")
        sys.exit(1)

    email = sys.argv[1].strip().lower()
    domain = sys.argv[2]
    categories = sys.argv[3:] or DEFAULT_CATEGORIES

    with sync_session() as db:
        tenant = db.execute(select(Tenant).where(Tenant.email == email)).scalar_one_or_none()
        if tenant is None:
            print(f"No tenant with email {email}. Sign in to the dashboard once first.")
            sys.exit(1)

        existing = db.execute(
            select(CookieWidgetConfig).where(
                CookieWidgetConfig.user_id == tenant.id,
                CookieWidgetConfig.domain == domain,
            )
        ).scalar_one_or_none()
        if existing:
            print(f"Widget already exists for {domain}: {existing.widget_id}")
            return

        widget = CookieWidgetConfig(
            widget_id=f"cnsly_{secrets.token_hex(8)}",
            user_id=tenant.id,
            domain=domain,
            categories=categories,
            consent_duration=365,
            is_active=True,
        )
        db.add(widget)
        db.commit()
        print(f"Created widget {widget.widget_id} for {domain} ({', '.join(categories)})")


if __name__ == "__main__":
    main()

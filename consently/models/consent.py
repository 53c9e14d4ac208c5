import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from consently.models.base import Base


class ConsentStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PARTIAL = "partial"
    REVOKED = "revoked"


class CookieConsentLog(Base):
    """Canonical cookie-banner consent row (the dashboard reads from here)."""

    __tablename__ = "consent_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    widget_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    consent_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    visitor_token: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    consent_type: Mapped[str] = mapped_column(String(20), default="cookie", nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    categories: Mapped[list[str]] = mapped_column(ARRAY(String(50)), default=list)
    device_info: Mapped[dict] = mapped_column(JSONB, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    language: Mapped[str] = mapped_column(String(20), default="en", nullable=False)
    consent_method: Mapped[str] = mapped_column(String(20), default="banner", nullable=False)
    widget_version: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )


class LegacyConsentRecord(Base):
    """Backward-compatible copy of every cookie consent (older dashboards)."""

    __tablename__ = "consent_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    consent_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    consent_type: Mapped[str] = mapped_column(String(20), default="cookie", nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    categories: Mapped[list[str]] = mapped_column(ARRAY(String(50)), default=list)
    device_type: Mapped[str | None] = mapped_column(String(20))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    language: Mapped[str] = mapped_column(String(20), default="en", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DpdpaConsentRecord(Base):
    """One consent decision on a DPDPA widget. Append-only."""

    __tablename__ = "dpdpa_consent_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    widget_id: Mapped[str] = mapped_column(
        ForeignKey("dpdpa_widget_configs.widget_id", ondelete="CASCADE"), nullable=False, index=True
    )
    visitor_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    visitor_token: Mapped[str | None] = mapped_column(String(64))
    visitor_email: Mapped[str | None] = mapped_column(String(320))
    visitor_email_hash: Mapped[str | None] = mapped_column(String(64), index=True)
    consent_status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    consented_activities: Mapped[list[str]] = mapped_column(ARRAY(String(64)), default=list)
    rejected_activities: Mapped[list[str]] = mapped_column(ARRAY(String(64)), default=list)
    # activityPurposeConsents, ruleContext, revoked_at
    consent_details: Mapped[dict] = mapped_column(JSONB, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    device_type: Mapped[str | None] = mapped_column(String(20))
    browser: Mapped[str | None] = mapped_column(String(50))
    os: Mapped[str | None] = mapped_column(String(50))
    country: Mapped[str | None] = mapped_column(String(100))
    language: Mapped[str | None] = mapped_column(String(20))
    referrer: Mapped[str | None] = mapped_column(Text)
    consent_given_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    consent_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    consent_version: Mapped[str] = mapped_column(String(10), default="1.0", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

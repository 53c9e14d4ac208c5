from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from consently.models.base import Base


class RuleMatchEvent(Base):
    """A display rule matched a page view. Never updated."""

    __tablename__ = "dpdpa_rule_match_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    widget_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    visitor_id: Mapped[str] = mapped_column(String(200), nullable=False)
    rule_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    rule_name: Mapped[str] = mapped_column(String(200), nullable=False)
    url_pattern: Mapped[str | None] = mapped_column(String(500))
    page_url: Mapped[str | None] = mapped_column(Text)
    trigger_type: Mapped[str] = mapped_column(String(20), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text)
    device_type: Mapped[str | None] = mapped_column(String(20))
    country: Mapped[str | None] = mapped_column(String(100))
    language: Mapped[str | None] = mapped_column(String(20))
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )


class ConsentEvent(Base):
    """A consent decision attributed to a display rule. Never updated."""

    __tablename__ = "dpdpa_consent_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    widget_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    visitor_id: Mapped[str] = mapped_column(String(200), nullable=False)
    rule_id: Mapped[str | None] = mapped_column(String(100), index=True)
    rule_name: Mapped[str | None] = mapped_column(String(200))
    consent_status: Mapped[str] = mapped_column(String(20), nullable=False)
    accepted_activities: Mapped[list[str]] = mapped_column(ARRAY(String(64)), default=list)
    rejected_activities: Mapped[list[str]] = mapped_column(ARRAY(String(64)), default=list)
    device_type: Mapped[str | None] = mapped_column(String(20))
    country: Mapped[str | None] = mapped_column(String(100))
    language: Mapped[str | None] = mapped_column(String(20))
    consented_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from consently.models.base import Base


class VisitorConsentPreference(Base):
    """Current per-activity state for one visitor on one widget."""

    __tablename__ = "visitor_consent_preferences"
    __table_args__ = (
        UniqueConstraint("visitor_id", "widget_id", "activity_id", name="uq_visitor_widget_activity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    visitor_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    widget_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    consent_status: Mapped[str] = mapped_column(String(20), nullable=False)
    visitor_email_hash: Mapped[str | None] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from consently.models.base import Base, TimestampMixin


class CookieWidgetConfig(Base, TimestampMixin):
    __tablename__ = "widget_configs"

    id: Mapped[int] = mapped_column(primary_key=True)
    widget_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    categories: Mapped[list[str]] = mapped_column(ARRAY(String(50)), default=list)
    theme: Mapped[dict] = mapped_column(JSONB, default=dict)
    consent_duration: Mapped[int] = mapped_column(Integer, default=365, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class DpdpaWidgetConfig(Base, TimestampMixin):
    __tablename__ = "dpdpa_widget_configs"

    id: Mapped[int] = mapped_column(primary_key=True)
    widget_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    selected_activities: Mapped[list[str]] = mapped_column(ARRAY(String(64)), default=list)
    theme: Mapped[dict] = mapped_column(JSONB, default=dict)
    consent_duration: Mapped[int] = mapped_column(Integer, default=365, nullable=False)
    otp_expiration_minutes: Mapped[int | None] = mapped_column(Integer)
    # Ordered list of display rule dicts (see consently.schemas.widget.DisplayRule)
    display_rules: Mapped[list[dict]] = mapped_column(JSONB, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

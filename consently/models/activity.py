from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from consently.models.base import Base, TimestampMixin


class ProcessingActivity(Base, TimestampMixin):
    __tablename__ = "processing_activities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_name: Mapped[str] = mapped_column(String(200), nullable=False)
    industry: Mapped[str] = mapped_column(String(50), default="other", nullable=False)
    legal_basis: Mapped[str | None] = mapped_column(String(50))
    retention_period: Mapped[str | None] = mapped_column(String(100))
    # Soft-disabled only; consent history keeps referring to the id.
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    activity_purposes = relationship(
        "ActivityPurpose", back_populates="activity", cascade="all, delete-orphan"
    )


class Purpose(Base, TimestampMixin):
    __tablename__ = "purposes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    purpose_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_predefined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class ActivityPurpose(Base, TimestampMixin):
    __tablename__ = "activity_purposes"
    __table_args__ = (
        UniqueConstraint("activity_id", "purpose_id", name="uq_activity_purpose"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    activity_id: Mapped[str] = mapped_column(
        ForeignKey("processing_activities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purpose_id: Mapped[str] = mapped_column(
        ForeignKey("purposes.id", ondelete="RESTRICT"), nullable=False
    )
    legal_basis: Mapped[str | None] = mapped_column(String(50))
    custom_description: Mapped[str | None] = mapped_column(Text)

    activity = relationship("ProcessingActivity", back_populates="activity_purposes")
    purpose = relationship("Purpose")
    data_categories = relationship(
        "DataCategory", back_populates="activity_purpose", cascade="all, delete-orphan"
    )


class DataCategory(Base):
    __tablename__ = "data_categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    activity_purpose_id: Mapped[str] = mapped_column(
        ForeignKey("activity_purposes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_name: Mapped[str] = mapped_column(String(200), nullable=False)
    data_fields: Mapped[list[str]] = mapped_column(ARRAY(String(100)), default=list)
    retention_period: Mapped[str | None] = mapped_column(String(100))

    activity_purpose = relationship("ActivityPurpose", back_populates="data_categories")

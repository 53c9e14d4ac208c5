"""Pydantic schemas for widget configuration and display rules."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

UrlMatchType = Literal["exact", "prefix", "startsWith", "contains", "regex"]
TriggerType = Literal["onPageLoad", "onClick", "onFormSubmit", "onScroll"]


class NoticeContent(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    message: str | None = Field(default=None, max_length=2000)
    html: str | None = Field(default=None, max_length=50000)


class DisplayRule(BaseModel):
    id: str = Field(min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9_-]+$")
    rule_name: str = Field(min_length=1, max_length=200)
    url_pattern: str = Field(min_length=1, max_length=500)
    url_match_type: UrlMatchType = "exact"
    trigger_type: TriggerType = "onPageLoad"
    trigger_delay: int | None = Field(default=None, ge=0, le=60000)
    element_selector: str | None = Field(default=None, max_length=500)
    scroll_threshold: int | None = Field(default=None, ge=0, le=100)
    activities: list[str] = Field(default_factory=list)
    activity_purposes: dict[str, list[str]] = Field(default_factory=dict)
    notice_content: NoticeContent | None = None
    priority: int = Field(default=0, ge=0, le=1000)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_regex(self) -> DisplayRule:
        if self.url_match_type == "regex":
            try:
                re.compile(self.url_pattern)
            except re.error as e:
                raise ValueError(f"url_pattern is not a valid regex: {e}") from e
        return self


class WidgetConfigCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    domain: str = Field(min_length=1, max_length=255)
    selected_activities: list[str] = Field(default_factory=list)
    theme: dict = Field(default_factory=dict)
    consent_duration: int = Field(default=365, ge=1, le=3650)
    otp_expiration_minutes: int | None = Field(default=None, ge=1, le=60)
    display_rules: list[DisplayRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def _rules_reference_selected(self) -> WidgetConfigCreate:
        selected = set(self.selected_activities)
        for rule in self.display_rules:
            unknown = [a for a in rule.activities if a not in selected]
            if unknown:
                raise ValueError(f"rule {rule.id} references unselected activities: {unknown}")
        ids = [r.id for r in self.display_rules]
        if len(ids) != len(set(ids)):
            raise ValueError("display rule ids must be unique")
        return self


class WidgetConfigUpdate(WidgetConfigCreate):
    is_active: bool = True


class WidgetConfigResponse(BaseModel):
    widget_id: str
    name: str
    domain: str
    selected_activities: list[str]
    theme: dict
    consent_duration: int
    otp_expiration_minutes: int | None = None
    display_rules: list[dict]
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class DataCategoryCreate(BaseModel):
    category_name: str = Field(min_length=1, max_length=200)
    data_fields: list[str] = Field(default_factory=list)
    retention_period: str | None = None


class ActivityPurposeCreate(BaseModel):
    purpose_id: str
    legal_basis: str | None = None
    custom_description: str | None = None
    data_categories: list[DataCategoryCreate] = Field(default_factory=list)


class ActivityCreate(BaseModel):
    activity_name: str = Field(min_length=1, max_length=200)
    industry: str = "other"
    legal_basis: str | None = None
    retention_period: str | None = None
    purposes: list[ActivityPurposeCreate] = Field(default_factory=list)


class PurposeCreate(BaseModel):
    purpose_name: str = Field(min_length=1, max_length=200)
    description: str | None = None


class RuleMatchEventCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    widget_id: str = Field(min_length=1)
    visitor_id: str = Field(min_length=1)
    rule_id: str = Field(min_length=1)
    rule_name: str = Field(min_length=1)
    url_pattern: str | None = None
    page_url: str | None = None
    matched_at: datetime | None = None
    trigger_type: TriggerType
    user_agent: str | None = None
    device_type: str | None = None
    country: str | None = None
    language: str | None = None

    @field_validator("widget_id", "visitor_id", "rule_id", "rule_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

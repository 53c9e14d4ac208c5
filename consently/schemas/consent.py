"""Pydantic schemas for consent recording and lookup endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter
from pydantic.alias_generators import to_camel

ConsentStatusLiteral = Literal["accepted", "rejected", "partial", "revoked"]

email_adapter = TypeAdapter(EmailStr)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CookieConsentCreate(_CamelModel):
    """Body sent by the cookie banner."""

    widget_id: str = Field(min_length=1)
    consent_id: str = Field(min_length=1)
    status: ConsentStatusLiteral
    categories: list[str] | None = None
    device_type: str | None = None
    user_agent: str | None = None
    language: str | None = None


class ConsentMetadata(_CamelModel):
    ip_address: str | None = None
    user_agent: str | None = None
    device_type: str | None = None
    browser: str | None = None
    os: str | None = None
    country: str | None = None
    language: str | None = None
    referrer: str | None = None


class RuleContext(_CamelModel):
    rule_id: str
    rule_name: str | None = None
    url_pattern: str | None = None
    page_url: str | None = None


class DpdpaConsentCreate(_CamelModel):
    """Body sent by the DPDPA widget."""

    widget_id: str = Field(min_length=1)
    visitor_id: str = Field(min_length=1)
    visitor_email: EmailStr | None = None
    consent_status: ConsentStatusLiteral
    accepted_activities: list[str] = Field(default_factory=list)
    rejected_activities: list[str] = Field(default_factory=list)
    activity_purpose_consents: dict[str, list[str]] = Field(default_factory=dict)
    rule_context: RuleContext | None = None
    metadata: ConsentMetadata | None = None
    consent_duration: int | None = Field(default=None, ge=1, le=3650)


class VerifyConsentIdRequest(_CamelModel):
    consent_id: str = Field(min_length=1, alias="consentID")
    widget_id: str = Field(min_length=1)


class RevokeByEmailRequest(_CamelModel):
    email: EmailStr
    widget_id: str = Field(min_length=1)
    action: Literal["revoke"] = "revoke"

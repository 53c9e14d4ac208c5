"""Pydantic schemas for the privacy-centre email verification flow."""

from __future__ import annotations

from pydantic import EmailStr, Field

from consently.schemas.consent import _CamelModel


class SendOtpRequest(_CamelModel):
    email: EmailStr
    visitor_id: str = Field(min_length=1)
    widget_id: str = Field(min_length=1)


class VerifyOtpRequest(SendOtpRequest):
    otp_code: str = Field(pattern=r"^\d{6}$")

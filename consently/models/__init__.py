from consently.models.activity import ActivityPurpose, DataCategory, ProcessingActivity, Purpose
from consently.models.analytics import ConsentEvent, RuleMatchEvent
from consently.models.base import Base
from consently.models.consent import (
    ConsentStatus,
    CookieConsentLog,
    DpdpaConsentRecord,
    LegacyConsentRecord,
)
from consently.models.otp import EmailVerificationEvent, EmailVerificationOTP, VerificationEventType
from consently.models.preference import VisitorConsentPreference
from consently.models.tenant import Tenant, TenantPlan
from consently.models.widget import CookieWidgetConfig, DpdpaWidgetConfig

__all__ = [
    "Base",
    "Tenant",
    "TenantPlan",
    "ProcessingActivity",
    "Purpose",
    "ActivityPurpose",
    "DataCategory",
    "CookieWidgetConfig",
    "DpdpaWidgetConfig",
    "ConsentStatus",
    "CookieConsentLog",
    "LegacyConsentRecord",
    "DpdpaConsentRecord",
    "VisitorConsentPreference",
    "EmailVerificationOTP",
    "EmailVerificationEvent",
    "VerificationEventType",
    "RuleMatchEvent",
    "ConsentEvent",
]

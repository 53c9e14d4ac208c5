"""Visitor identity helpers: hashing, fingerprinting, user-agent parsing."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

CONSENT_ID_RE = re.compile(r"^CNST-[A-Z2-9]{4}-[A-Z2-9]{4}-[A-Z2-9]{4}$")
LEGACY_VISITOR_ID_RE = re.compile(r"^vis_[a-zA-Z0-9]+$")

_TABLET_RE = re.compile(r"(tablet|ipad|playbook|silk)|(android(?!.*mobi))", re.IGNORECASE)
_MOBILE_RE = re.compile(r"mobile|iphone|ipod|blackberry|windows phone|android.*mobile", re.IGNORECASE)
_DESKTOP_RE = re.compile(r"windows|macintosh|linux", re.IGNORECASE)


@dataclass
class ClientContext:
    """What the transport knows about the caller."""

    ip_address: str = "unknown"
    user_agent: str = ""
    accept_language: str | None = None
    referrer: str | None = None


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def hash_email(email: str) -> str:
    """SHA-256 of the normalized address. Plain emails are never a lookup key."""
    return sha256_hex(email.strip().lower())


def derive_visitor_token(ip_address: str, user_agent: str, domain: str) -> str:
    """Pseudo-identifier for a network + browser + site combination.

    Visitors behind the same NAT with the same browser collide; that is
    accepted, the token only groups repeat visits.
    """
    return sha256_hex(f"{ip_address}-{(user_agent or '')[:50]}-{domain}".strip().lower())


def is_valid_visitor_id(visitor_id: str) -> bool:
    """``CNST-XXXX-XXXX-XXXX`` consent ids or legacy ``vis_*`` ids."""
    return bool(CONSENT_ID_RE.match(visitor_id) or LEGACY_VISITOR_ID_RE.match(visitor_id))


def detect_device_type(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown"
    if _TABLET_RE.search(user_agent):
        return "Tablet"
    if _MOBILE_RE.search(user_agent):
        return "Mobile"
    if _DESKTOP_RE.search(user_agent):
        return "Desktop"
    return "Unknown"


def extract_browser(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown"
    ua = user_agent.lower()
    if "edg/" in ua:
        return "Edge"
    if "opr/" in ua or "opera" in ua:
        return "Opera"
    if "chrome/" in ua:
        return "Chrome"
    if "firefox/" in ua:
        return "Firefox"
    if "safari/" in ua:
        return "Safari"
    return "Unknown"


def extract_os(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown"
    ua = user_agent.lower()
    if "android" in ua:
        return "Android"
    if "iphone" in ua or "ipad" in ua:
        return "iOS"
    if "windows" in ua:
        return "Windows"
    if "mac os" in ua:
        return "macOS"
    if "linux" in ua:
        return "Linux"
    return "Unknown"


def mask_email(email: str) -> str:
    """For logs: 'jo***@example.com'."""
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}" if domain else "***"

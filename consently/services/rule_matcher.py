"""Display rule matching: decides which activities a page view exposes.

A widget carries an ordered list of display rules (JSON dicts). For a page
URL the matcher keeps the active rules whose pattern matches, then picks the
one with the highest ``priority``. Equal priorities are broken by the
lowest rule id so the outcome never depends on array order.

Pure functions only: configuration is loaded by the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger()

MAX_PATTERN_LENGTH = 500


@dataclass
class RuleSelection:
    """Outcome of rule selection for one page view.

    ``rule`` is None when no rule matched and the widget defaults apply.
    ``purpose_filter`` maps activity id → allowed purpose ids; activities
    missing from it expose every purpose.
    """

    rule: dict | None
    activity_ids: list[str]
    purpose_filter: dict[str, list[str]] = field(default_factory=dict)
    used_fallback: bool = False

    @property
    def rule_id(self) -> str | None:
        return self.rule.get("id") if self.rule else None

    def allowed_purposes(self, activity_id: str) -> list[str] | None:
        """Purpose ids exposed for an activity, or None for 'all of them'."""
        return self.purpose_filter.get(activity_id)


def matches_url_pattern(url: str, rule: dict) -> bool:
    """Test a URL against a rule's pattern under its match type."""
    if not url:
        return False

    pattern = rule.get("url_pattern") or ""
    if not pattern:
        return True
    if len(pattern) > MAX_PATTERN_LENGTH:
        logger.warning("rule_pattern_too_long", rule_id=rule.get("id"))
        return False

    match_type = rule.get("url_match_type") or "exact"

    if match_type == "exact":
        return url == pattern
    if match_type in ("prefix", "startsWith"):
        return url.startswith(pattern)
    if match_type == "contains":
        return pattern in url
    if match_type == "regex":
        try:
            return re.search(pattern, url) is not None
        except re.error as e:
            logger.warning("rule_invalid_regex", rule_id=rule.get("id"), error=str(e))
            return False

    logger.warning("rule_unknown_match_type", rule_id=rule.get("id"), match_type=match_type)
    return False


def _priority(rule: dict) -> int:
    try:
        return int(rule.get("priority") or 0)
    except (TypeError, ValueError):
        logger.warning("rule_invalid_priority", rule_id=rule.get("id"), priority=rule.get("priority"))
        return 0


def _priority_key(rule: dict) -> tuple[int, str]:
    # Sort ascending: highest priority first, then lowest id.
    return (-_priority(rule), str(rule.get("id") or ""))


def matching_rules(rules: list[dict], current_url: str) -> list[dict]:
    """Active rules matching the URL, best candidate first."""
    matched = [
        r for r in rules or []
        if r.get("is_active") is True and matches_url_pattern(current_url, r)
    ]
    return sorted(matched, key=_priority_key)


def select_rule(
    display_rules: list[dict],
    selected_activities: list[str],
    current_url: str,
    *,
    fallback_to_widget_activities: bool = False,
) -> RuleSelection:
    """Pick the authoritative rule for a page and resolve its activity set.

    Args:
        display_rules: Widget's rules as stored.
        selected_activities: Widget's default activity ids.
        current_url: URL (or path) of the page view.
        fallback_to_widget_activities: When the winning rule lists no
            activities, expose the widget's whole selection instead of none.
    """
    candidates = matching_rules(display_rules, current_url)
    if not candidates:
        return RuleSelection(rule=None, activity_ids=list(selected_activities or []))

    rule = candidates[0]
    if len(candidates) > 1:
        logger.debug(
            "rule_matches_shadowed",
            selected=rule.get("id"),
            shadowed=[r.get("id") for r in candidates[1:]],
        )

    activity_ids = list(rule.get("activities") or [])
    used_fallback = False
    if not activity_ids:
        if fallback_to_widget_activities:
            activity_ids = list(selected_activities or [])
            used_fallback = True
            logger.info(
                "rule_empty_activities_fallback",
                rule_id=rule.get("id"),
                activities=len(activity_ids),
            )
        else:
            logger.warning("rule_empty_activities", rule_id=rule.get("id"))

    purpose_filter = {
        activity_id: list(purpose_ids)
        for activity_id, purpose_ids in (rule.get("activity_purposes") or {}).items()
        if activity_id in activity_ids
    }

    return RuleSelection(
        rule=rule,
        activity_ids=activity_ids,
        purpose_filter=purpose_filter,
        used_fallback=used_fallback,
    )


def filter_activity_payloads(activities: list[dict], selection: RuleSelection) -> list[dict]:
    """Restrict serialized activities (with ``purposes``) to a selection.

    Order follows ``selection.activity_ids``; unknown ids are skipped.
    """
    by_id = {a["id"]: a for a in activities}
    result = []
    for activity_id in selection.activity_ids:
        activity = by_id.get(activity_id)
        if activity is None:
            continue
        allowed = selection.allowed_purposes(activity_id)
        if allowed is not None:
            activity = {
                **activity,
                "purposes": [p for p in activity.get("purposes", []) if p["purpose_id"] in allowed],
            }
        result.append(activity)
    return result

"""
app/services/rule_matcher.py — Assignment rule variants and matching.

An AssignmentRule row is turned into one of the variants below; matching is
a dispatch over the variant type. Everything here is pure: no I/O, no
mutation of the lead or the rule.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from app.db.models import AssignmentRule as AssignmentRuleRow
from app.db.models import RuleType

logger = logging.getLogger(__name__)


# ── Variants ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _RuleBase:
    rule_id: int
    rule_name: str
    team_id: int
    team_name: Optional[str]
    priority: int


@dataclass(frozen=True)
class GeographyRule(_RuleBase):
    country_code: Optional[str] = None
    type: str = RuleType.GEOGRAPHY.value


@dataclass(frozen=True)
class ProgramInterestRule(_RuleBase):
    program_equals: Optional[str] = None
    type: str = RuleType.PROGRAM_INTEREST.value


@dataclass(frozen=True)
class LeadScoreRule(_RuleBase):
    min_lead_score: Optional[float] = None
    type: str = RuleType.LEAD_SCORE.value


@dataclass(frozen=True)
class LoadBalancingRule(_RuleBase):
    type: str = RuleType.LOAD_BALANCING.value


@dataclass(frozen=True)
class UnknownRule(_RuleBase):
    type: str = "unknown"


Rule = Union[GeographyRule, ProgramInterestRule, LeadScoreRule, LoadBalancingRule, UnknownRule]


def rule_from_row(row: AssignmentRuleRow) -> Rule:
    """Build the typed variant for a stored rule (team joined for its name)."""
    common = dict(
        rule_id=row.id,
        rule_name=row.rule_name,
        team_id=row.team_id,
        team_name=row.team.team_name if row.team is not None else None,
        priority=row.priority,
    )
    if row.type == RuleType.GEOGRAPHY.value:
        return GeographyRule(country_code=row.country_code, **common)
    if row.type == RuleType.PROGRAM_INTEREST.value:
        return ProgramInterestRule(program_equals=row.program_equals, **common)
    if row.type == RuleType.LEAD_SCORE.value:
        return LeadScoreRule(min_lead_score=row.min_lead_score, **common)
    if row.type == RuleType.LOAD_BALANCING.value:
        return LoadBalancingRule(**common)
    return UnknownRule(type=row.type or "unknown", **common)


# ── Predicates ───────────────────────────────────────────────────────────────

def _country_matches(lead_value: Optional[str], rule_value: Optional[str]) -> bool:
    if not rule_value or not lead_value:
        return False
    return lead_value.upper() == rule_value.upper()


def _program_matches(lead_value: Optional[str], rule_value: Optional[str]) -> bool:
    if not rule_value or not lead_value:
        return False
    lead_lower, rule_lower = lead_value.lower(), rule_value.lower()
    return rule_lower in lead_lower or lead_lower in rule_lower


def _score_matches(lead_value: Any, rule_value: Optional[float]) -> bool:
    if rule_value is None or lead_value is None:
        return False
    return float(lead_value) >= float(rule_value)


def matches(lead: Any, rule: Rule) -> bool:
    """True if the rule's condition holds for the lead."""
    if isinstance(rule, GeographyRule):
        return _country_matches(lead.country_code, rule.country_code)
    if isinstance(rule, ProgramInterestRule):
        return _program_matches(lead.program_interest, rule.program_equals)
    if isinstance(rule, LeadScoreRule):
        return _score_matches(lead.lead_score, rule.min_lead_score)
    if isinstance(rule, LoadBalancingRule):
        # catch-all; should carry the lowest precedence
        return True
    return False


def matched_conditions(lead: Any, rule: Rule) -> dict[str, dict]:
    """
    Audit record of the conditions a rule evaluated.

    Returns {condition: {"rule_value", "lead_value", "matched"}}; empty for
    rules without conditions (load balancing, unknown).
    """
    conditions: dict[str, dict] = {}
    if isinstance(rule, GeographyRule) and rule.country_code:
        conditions["country_code"] = {
            "rule_value": rule.country_code,
            "lead_value": lead.country_code,
            "matched": _country_matches(lead.country_code, rule.country_code),
        }
    elif isinstance(rule, ProgramInterestRule) and rule.program_equals:
        conditions["program_interest"] = {
            "rule_value": rule.program_equals,
            "lead_value": lead.program_interest,
            "matched": _program_matches(lead.program_interest, rule.program_equals),
        }
    elif isinstance(rule, LeadScoreRule) and rule.min_lead_score is not None:
        conditions["lead_score"] = {
            "rule_value": rule.min_lead_score,
            "lead_value": lead.lead_score,
            "matched": _score_matches(lead.lead_score, rule.min_lead_score),
        }
    return conditions


def find_matching_rule(lead: Any, rules: Sequence[Rule]) -> Optional[Rule]:
    """First rule in the given order that matches; order is the precedence contract."""
    for rule in rules:
        if matches(lead, rule):
            logger.debug("Lead %s matched rule %d (%s)", getattr(lead, "id", "?"), rule.rule_id, rule.type)
            return rule
        logger.debug("Lead %s skipped rule %d (%s)", getattr(lead, "id", "?"), rule.rule_id, rule.type)
    return None

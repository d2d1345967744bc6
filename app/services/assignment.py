"""
app/services/assignment.py — Rule-based lead assignment.

One assignment attempt runs:

  fetch active rules → first matching rule → eligible counselors of that
  rule's team → team strategy picks one → persist assignment + audit log

and ends either with a counselor bound to the lead or with NoMatchingRule /
NoAvailableCounselors. Reassignment is a separate, explicit override that
bypasses rule matching. Every (re)assignment appends exactly one
AssignmentLog row; earlier rows are never touched.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.db import repository
from app.db.models import Lead
from app.errors import (
    CounselorNotFound,
    LeadNotFound,
    LeadRoutingError,
    NoAvailableCounselors,
    NoMatchingRule,
    client_message,
)
from app.services.counselor_selector import select_counselor
from app.services.rule_matcher import Rule, find_matching_rule, matched_conditions, rule_from_row

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    lead_id: int
    counselor_id: int
    counselor_name: str
    team_id: int
    team_name: Optional[str]
    rule_name: str
    assigned_at: datetime

    def to_dict(self) -> dict:
        return {
            "lead_id": self.lead_id,
            "counselor_id": self.counselor_id,
            "counselor_name": self.counselor_name,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "rule_name": self.rule_name,
            "assigned_at": self.assigned_at,
        }


def get_active_rules(db: Session, org_id: int) -> list[Rule]:
    """Active rules for the org as typed variants, in precedence order."""
    return [rule_from_row(row) for row in repository.get_active_rules(db, org_id)]


def build_rule_snapshot(lead: Lead, rule: Rule, timestamp: datetime) -> dict:
    return {
        "rule_id": rule.rule_id,
        "rule_name": rule.rule_name,
        "type": rule.type,
        "priority": rule.priority,
        "matched_conditions": matched_conditions(lead, rule),
        "timestamp": timestamp.isoformat(),
    }


def assign_lead(
    db: Session,
    lead_id: int,
    org_id: int,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> AssignmentResult:
    """
    Route a lead to a counselor through the org's assignment rules.

    Args:
        db:      Active SQLAlchemy session (caller commits).
        lead_id: Lead to assign.
        org_id:  Organization whose rules apply.
        rng:     Random source for weighted teams.
        now:     Assignment timestamp (defaults to utcnow).

    Raises:
        LeadNotFound, NoMatchingRule, NoAvailableCounselors, PersistenceFailure
    """
    lead = repository.get_lead_by_id(db, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)

    rules = get_active_rules(db, org_id)
    rule = find_matching_rule(lead, rules)
    if rule is None:
        logger.warning("No matching rule for lead %d among %d active rules (org %s)", lead_id, len(rules), org_id)
        raise NoMatchingRule(lead_id, org_id)

    counselors = repository.get_eligible_counselors(db, rule.team_id, now=now)
    if not counselors:
        logger.warning("Rule %d matched lead %d but team %d has no available counselors", rule.rule_id, lead_id, rule.team_id)
        raise NoAvailableCounselors(rule.team_id)

    team = repository.get_team_strategy(db, rule.team_id)
    counselor = select_counselor(
        counselors,
        team.load_strategy,
        lambda pool_size: repository.increment_round_robin_offset(db, rule.team_id, pool_size),
        rng=rng,
    )

    assigned_at = now or repository.utcnow()
    snapshot = build_rule_snapshot(lead, rule, assigned_at)
    repository.write_assignment(
        db, lead_id, counselor.user_id, rule.team_id, rule.rule_id, snapshot, assigned_at=assigned_at,
    )
    repository.append_assignment_log(
        db, lead_id, counselor.user_id, rule.team_id, rule.rule_id, snapshot, assigned_at=assigned_at,
    )

    logger.info(
        "Lead %d → %s (team=%s, rule=%r, strategy=%s)",
        lead_id, counselor.full_name, rule.team_name, rule.rule_name, team.load_strategy,
    )
    return AssignmentResult(
        lead_id=lead_id,
        counselor_id=counselor.user_id,
        counselor_name=counselor.full_name,
        team_id=rule.team_id,
        team_name=rule.team_name,
        rule_name=rule.rule_name,
        assigned_at=assigned_at,
    )


def reassign_lead(
    db: Session,
    lead_id: int,
    new_counselor_id: int,
    reason: str,
    now: Optional[datetime] = None,
) -> Lead:
    """
    Manually move a lead to another counselor, bypassing rule matching.

    Raises:
        LeadNotFound, CounselorNotFound, PersistenceFailure
    """
    lead = repository.get_lead_by_id(db, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)

    counselor = repository.get_user_by_id(db, new_counselor_id)
    if counselor is None:
        raise CounselorNotFound(new_counselor_id)

    previous_team = repository.get_counselor_team(db, lead.assigned_counselor_id)
    assigned_at = now or repository.utcnow()
    snapshot = {
        "type": "reassignment",
        "reason": reason,
        "previous_counselor": lead.assigned_counselor_id,
        "previous_team": (
            {"team_id": previous_team.id, "team_name": previous_team.team_name}
            if previous_team is not None else None
        ),
        "timestamp": assigned_at.isoformat(),
    }

    updated = repository.write_assignment(
        db, lead_id, new_counselor_id, counselor.team_id, None, snapshot, assigned_at=assigned_at,
    )
    repository.append_assignment_log(
        db, lead_id, new_counselor_id, counselor.team_id, None, snapshot, assigned_at=assigned_at,
    )
    logger.info(
        "Lead %d reassigned %s → %d (%s)",
        lead_id, snapshot["previous_counselor"], new_counselor_id, reason,
    )
    return updated


def bulk_assign_leads(
    db: Session,
    lead_ids: Iterable[int],
    org_id: int,
    rng: Optional[random.Random] = None,
) -> dict:
    """
    Assign leads one by one, committing each success on its own.

    Never aborts: failures land in "errors" as {"lead_id", "error"}.

    Returns:
        {"assigned": [...], "errors": [...], "total", "successful", "failed"}
    """
    lead_ids = list(lead_ids)
    assigned: list[dict] = []
    errors: list[dict] = []

    for lead_id in lead_ids:
        try:
            result = assign_lead(db, lead_id, org_id, rng=rng)
            repository.commit(db)
            assigned.append(result.to_dict())
        except LeadRoutingError as exc:
            db.rollback()
            logger.error("Bulk assignment failed for lead %s: %s", lead_id, exc)
            errors.append({"lead_id": lead_id, "error": client_message(exc)})

    logger.info("Bulk assignment completed: %d/%d leads assigned", len(assigned), len(lead_ids))
    return {
        "assigned": assigned,
        "errors": errors,
        "total": len(lead_ids),
        "successful": len(assigned),
        "failed": len(errors),
    }

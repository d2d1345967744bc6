"""
app/services/lead_service.py — Business logic for the lead capture flow.

This is the "glue" layer that coordinates:
  - Persisting a captured lead and its education / experience / test records
  - Scoring it (best-effort)
  - Routing it to a counselor (best-effort)
  - Rescoring after profile edits that affect the score

Scoring and assignment are independent side effects of capture: either may
fail without failing the capture itself. Failures are logged for operators.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.db import repository
from app.db.models import Lead
from app.errors import LeadNotFound, LeadRoutingError, client_message
from app.services.assignment import AssignmentResult, assign_lead
from app.services.scoring import ScoringConfig
from app.services.scoring_engine import ScoreResult, calculate_lead_score

logger = logging.getLogger(__name__)

# Profile fields whose change invalidates the stored score
RESCORE_FIELDS = {
    "program_interest", "country_code", "phone", "phone_e164", "company",
    "website", "first_name", "last_name", "email", "city", "state",
    "last_contacted_at",
}


@dataclass
class CaptureOutcome:
    lead: Lead
    score: Optional[ScoreResult] = None
    assignment: Optional[AssignmentResult] = None
    errors: dict[str, str] = field(default_factory=dict)


def capture_lead(
    db: Session,
    fields: dict[str, Any],
    education: list[dict[str, Any]] | None = None,
    experience: list[dict[str, Any]] | None = None,
    test_scores: list[dict[str, Any]] | None = None,
    config: Optional[ScoringConfig] = None,
) -> CaptureOutcome:
    """
    Persist a new lead, then score and assign it.

    The lead itself is committed before the follow-up steps run, so a failing
    score or assignment can be rolled back without losing the capture.

    Args:
        db:          Active SQLAlchemy session.
        fields:      Lead column values (must include org_id).
        education:   Optional education record dicts.
        experience:  Optional experience record dicts.
        test_scores: Optional test score record dicts.
        config:      Scoring config override (defaults from settings).

    Returns:
        CaptureOutcome with the lead and whichever steps succeeded.
    """
    lead = repository.create_lead(
        db,
        {"source_raw": "web_form", **fields},
        education=education or [],
        experience=experience or [],
        test_scores=test_scores or [],
    )
    repository.commit(db)
    outcome = CaptureOutcome(lead=lead)

    if settings.auto_score_leads:
        try:
            outcome.score = calculate_lead_score(db, lead.id, config=config)
            repository.commit(db)
        except LeadRoutingError as exc:
            db.rollback()
            logger.error("Lead scoring failed for lead %d: %s", lead.id, exc)
            outcome.errors["scoring"] = client_message(exc)

    if settings.auto_assign_leads:
        try:
            outcome.assignment = assign_lead(db, lead.id, lead.org_id)
            repository.commit(db)
        except LeadRoutingError as exc:
            db.rollback()
            logger.error("Lead assignment failed for lead %d: %s", lead.id, exc)
            outcome.errors["assignment"] = client_message(exc)

    db.refresh(lead)
    logger.info(
        "✅ Captured lead %d (score=%s, counselor=%s)",
        lead.id, lead.lead_score, lead.assigned_counselor_id,
    )
    return outcome


def update_lead(
    db: Session,
    lead_id: int,
    fields: dict[str, Any],
    config: Optional[ScoringConfig] = None,
) -> tuple[Lead, bool]:
    """
    Apply a profile update, rescoring when a score-relevant field changed.

    The update is committed first; a failed rescore is rolled back and logged
    and the lead keeps its previous score.

    Returns:
        (lead, rescored)

    Raises:
        LeadNotFound: If the lead does not exist.
    """
    lead = repository.get_lead_by_id(db, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)

    changed = {name for name, value in fields.items() if getattr(lead, name) != value}
    repository.update_lead_fields(db, lead, fields)
    repository.commit(db)

    rescored = False
    if changed & RESCORE_FIELDS:
        try:
            calculate_lead_score(db, lead_id, config=config)
            repository.commit(db)
            rescored = True
            logger.info("Lead %d rescored after update of %s", lead_id, sorted(changed & RESCORE_FIELDS))
        except LeadRoutingError as exc:
            db.rollback()
            logger.error("Rescoring failed for lead %d, keeping previous score: %s", lead_id, exc)

    db.refresh(lead)
    return lead, rescored

"""
app/services/scoring_engine.py — Persisted lead scoring.

Loads a lead and its scoring inputs through the repository, runs the
scoring model (app/services/scoring.py) and writes every sub-score,
lead_score, hotness and last_scored_at back in one update. Re-running on
unchanged data yields the same result.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.db import repository
from app.db.models import Hotness
from app.errors import LeadNotFound, LeadRoutingError, client_message
from app.services.scoring import ScoringConfig, score_lead_data

logger = logging.getLogger(__name__)


@dataclass
class ScoreResult:
    lead_id: int
    total_score: int
    hotness: Hotness
    breakdown: dict

    def to_dict(self) -> dict:
        return {
            "lead_id": self.lead_id,
            "total_score": self.total_score,
            "hotness": self.hotness.value,
            "breakdown": self.breakdown,
        }


def calculate_lead_score(
    db: Session,
    lead_id: int,
    config: Optional[ScoringConfig] = None,
    now: Optional[datetime] = None,
) -> ScoreResult:
    """
    Score one lead and persist the result.

    Raises:
        LeadNotFound: If the lead does not exist.
        PersistenceFailure: If the store fails.
    """
    config = config or ScoringConfig.from_settings()

    lead = repository.get_lead_by_id(db, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)

    education = repository.get_education_by_lead(db, lead_id)
    experience = repository.get_experience_by_lead(db, lead_id)
    test_scores = repository.get_test_scores_by_lead(db, lead_id)

    breakdown, total, hotness = score_lead_data(
        lead, education, experience, test_scores, config, now=now,
    )
    repository.update_lead_scores(db, lead_id, breakdown.as_dict(), total, hotness, scored_at=now)

    logger.info("Lead %d scored %d (%s)", lead_id, total, hotness.value)
    return ScoreResult(
        lead_id=lead_id,
        total_score=total,
        hotness=hotness,
        breakdown={**breakdown.as_dict(), "lead_score": total, "hotness": hotness.value},
    )


def score_leads(
    db: Session,
    lead_ids: Iterable[int],
    config: Optional[ScoringConfig] = None,
) -> list[dict]:
    """
    Score several leads independently.

    Each lead is committed on its own; a failing lead yields
    {"lead_id": ..., "error": ...} in the results instead of aborting the batch.
    """
    config = config or ScoringConfig.from_settings()
    results: list[dict] = []

    for lead_id in lead_ids:
        try:
            result = calculate_lead_score(db, lead_id, config=config)
            repository.commit(db)
            results.append(result.to_dict())
        except LeadRoutingError as exc:
            db.rollback()
            logger.error("Error scoring lead %s: %s", lead_id, exc)
            results.append({"lead_id": lead_id, "error": client_message(exc)})

    scored = sum(1 for r in results if "error" not in r)
    logger.info("Batch scoring done: %d / %d leads scored.", scored, len(results))
    return results


def recalculate_all_scores(db: Session, config: Optional[ScoringConfig] = None) -> list[dict]:
    """Rescore every lead that has not been GDPR-deleted."""
    lead_ids = repository.get_scorable_lead_ids(db)
    logger.info("Recalculating scores for %d leads...", len(lead_ids))
    return score_leads(db, lead_ids, config=config)

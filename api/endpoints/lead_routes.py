"""
api/endpoints/lead_routes.py — Lead capture, lookup and scoring routes.

POST   /leads                  — Capture a lead (then best-effort score + assign)
GET    /leads                  — List leads (filterable by org / hotness)
GET    /leads/stats            — Lead counts by hotness
GET    /leads/{id}             — Get a single lead
PATCH  /leads/{id}             — Update profile fields (rescores when relevant)
POST   /leads/{id}/score       — Recalculate one lead's score
POST   /leads/score/batch      — Score a list of leads
POST   /leads/score/recalculate — Rescore every non-deleted lead
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.db.models import Hotness
from app.db import repository
from app.services.lead_service import capture_lead, update_lead
from app.services.scoring_engine import calculate_lead_score, recalculate_all_scores, score_leads
from api.schemas import (
    BatchScoreRequest,
    BatchScoreResult,
    LeadCaptureOut,
    LeadCreate,
    LeadOut,
    LeadUpdate,
    LeadUpdateOut,
    ScoreOut,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _batch_result(results: list[dict]) -> BatchScoreResult:
    failed = sum(1 for r in results if "error" in r)
    return BatchScoreResult(
        results=results,
        total=len(results),
        successful=len(results) - failed,
        failed=failed,
    )


@router.post("/", response_model=LeadCaptureOut, status_code=201, summary="Capture a lead")
def create_lead(payload: LeadCreate, db: Session = Depends(get_db)):
    """
    Persist a lead submitted through the web form.

    Scoring and assignment run afterwards; if either fails the lead is still
    created and the failure is reported under `errors`.
    """
    fields = payload.model_dump(exclude={"education", "experience", "test_scores"})
    outcome = capture_lead(
        db,
        fields,
        education=[e.model_dump() for e in payload.education],
        experience=[e.model_dump() for e in payload.experience],
        test_scores=[t.model_dump() for t in payload.test_scores],
    )
    return LeadCaptureOut(
        lead=LeadOut.model_validate(outcome.lead),
        scored=outcome.score is not None,
        assigned=outcome.assignment is not None,
        errors=outcome.errors,
    )


@router.get("/", response_model=list[LeadOut], summary="List leads")
def list_leads(
    org_id: Optional[int] = Query(default=None),
    hotness: Optional[Hotness] = Query(default=None, description="Filter by hotness tier."),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Return non-deleted leads, newest first."""
    return repository.list_leads(db, org_id=org_id, hotness=hotness, limit=limit)


@router.get("/stats", summary="Lead counts by hotness")
def lead_stats(org_id: Optional[int] = Query(default=None), db: Session = Depends(get_db)):
    """Return aggregate lead counts grouped by hotness."""
    counts = repository.count_leads_by_hotness(db, org_id=org_id)
    stats = {hotness.value: counts.get(hotness, 0) for hotness in Hotness}
    stats["total"] = sum(stats.values())
    return stats


@router.post("/score/batch", response_model=BatchScoreResult, summary="Score several leads")
def score_batch(payload: BatchScoreRequest, db: Session = Depends(get_db)):
    return _batch_result(score_leads(db, payload.lead_ids))


@router.post("/score/recalculate", response_model=BatchScoreResult, summary="Rescore all leads")
def score_all(db: Session = Depends(get_db)):
    """Admin operation: recompute scores for every lead that has not been GDPR-deleted."""
    return _batch_result(recalculate_all_scores(db))


@router.get("/{lead_id}", response_model=LeadOut, summary="Get lead by ID")
def get_lead(lead_id: int, db: Session = Depends(get_db)):
    lead = repository.get_lead_by_id(db, lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail=f"Lead {lead_id} not found.")
    return lead


@router.patch("/{lead_id}", response_model=LeadUpdateOut, summary="Update lead profile")
def patch_lead(lead_id: int, payload: LeadUpdate, db: Session = Depends(get_db)):
    """
    Update profile fields of a lead.
    The score is recalculated when a field that feeds it has changed.
    """
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update.")
    lead, rescored = update_lead(db, lead_id, fields)
    logger.info("Lead %d updated via API (rescored=%s).", lead_id, rescored)
    return LeadUpdateOut(lead=LeadOut.model_validate(lead), rescored=rescored)


@router.post("/{lead_id}/score", response_model=ScoreOut, summary="Recalculate lead score")
def score_lead(lead_id: int, db: Session = Depends(get_db)):
    return calculate_lead_score(db, lead_id).to_dict()

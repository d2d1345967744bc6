"""
api/endpoints/assignment_routes.py — Lead assignment routes.

GET  /assignment/rules                          — Active rules of an org, in precedence order
POST /assignment/leads/{id}                     — Assign a lead through the rules
PUT  /assignment/leads/{id}/reassign            — Manually reassign a lead
POST /assignment/bulk                           — Assign a list of leads
GET  /assignment/counselors/team/{team_id}      — Eligible counselors of a team
GET  /assignment/counselors/{id}/workload       — Workload of one counselor
GET  /assignment/stats                          — Per-team assignment statistics
GET  /assignment/logs/lead/{lead_id}            — Assignment history of a lead
GET  /assignment/teams/{team_id}/stats          — Per-counselor stats of a team
GET  /assignment/overview                       — Workload overview of an org
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.db import repository
from app.services import reporting
from app.services.assignment import assign_lead, bulk_assign_leads, get_active_rules, reassign_lead
from api.schemas import (
    AssignmentLogPage,
    AssignmentOut,
    AssignRequest,
    BulkAssignRequest,
    BulkAssignResult,
    CounselorOut,
    LeadOut,
    ReassignRequest,
    RuleOut,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/rules", response_model=list[RuleOut], summary="Active assignment rules")
def list_rules(org_id: int = Query(...), db: Session = Depends(get_db)):
    """Active rules of active, lead-receiving teams, ordered by priority then id."""
    return [
        RuleOut(
            rule_id=rule.rule_id,
            rule_name=rule.rule_name,
            type=rule.type,
            priority=rule.priority,
            team_id=rule.team_id,
            team_name=rule.team_name,
            country_code=getattr(rule, "country_code", None),
            program_equals=getattr(rule, "program_equals", None),
            min_lead_score=getattr(rule, "min_lead_score", None),
        )
        for rule in get_active_rules(db, org_id)
    ]


@router.post("/leads/{lead_id}", response_model=AssignmentOut, summary="Assign a lead")
def assign(lead_id: int, payload: AssignRequest, db: Session = Depends(get_db)):
    result = assign_lead(db, lead_id, payload.org_id)
    return result.to_dict()


@router.put("/leads/{lead_id}/reassign", response_model=LeadOut, summary="Reassign a lead")
def reassign(lead_id: int, payload: ReassignRequest, db: Session = Depends(get_db)):
    """Move a lead to a specific counselor, bypassing the assignment rules."""
    return reassign_lead(db, lead_id, payload.new_counselor_id, payload.reason)


@router.post("/bulk", response_model=BulkAssignResult, summary="Bulk assign leads")
def bulk_assign(payload: BulkAssignRequest, db: Session = Depends(get_db)):
    summary = bulk_assign_leads(db, payload.lead_ids, payload.org_id)
    return BulkAssignResult(
        **summary,
        message=(
            f"Bulk assignment completed: {summary['successful']}/{summary['total']} leads assigned"
        ),
    )


@router.get("/counselors/team/{team_id}", response_model=list[CounselorOut], summary="Eligible counselors")
def eligible_counselors(team_id: int, db: Session = Depends(get_db)):
    return repository.get_eligible_counselors(db, team_id)


@router.get("/counselors/{counselor_id}/workload", summary="Counselor workload")
def counselor_workload(
    counselor_id: int,
    days: int = Query(default=7, ge=1, le=365),
    db: Session = Depends(get_db),
):
    return reporting.get_counselor_workload(db, counselor_id, days=days)


@router.get("/stats", summary="Assignment statistics")
def assignment_stats(
    org_id: int = Query(...),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    db: Session = Depends(get_db),
):
    """Per-team statistics; the window defaults to the last 30 days."""
    end = end_date or repository.utcnow()
    start = start_date or end - timedelta(days=30)
    if start > end:
        raise HTTPException(status_code=400, detail="start_date must be before end_date.")
    return {
        "data": reporting.get_assignment_stats(db, org_id, start, end),
        "period": {"start_date": start, "end_date": end},
    }


@router.get("/logs/lead/{lead_id}", response_model=AssignmentLogPage, summary="Assignment history")
def assignment_logs(
    lead_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    history = reporting.get_assignment_history(db, lead_id, page=page, limit=limit)
    return AssignmentLogPage(
        **history,
        total_pages=math.ceil(history["total"] / limit),
    )


@router.get("/teams/{team_id}/stats", summary="Team counselor statistics")
def team_stats(
    team_id: int,
    days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
):
    return {
        "data": reporting.get_team_counselor_stats(db, team_id, days=days),
        "period_days": days,
    }


@router.get("/overview", summary="Workload overview")
def workload_overview(org_id: int = Query(...), db: Session = Depends(get_db)):
    return reporting.get_workload_overview(db, org_id)

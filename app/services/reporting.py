"""
app/services/reporting.py — Read-only assignment reporting.

Counts and date windows are pushed into repository aggregates; this module
only shapes the rows. Nothing here writes.
"""

import json
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.db import repository
from app.db.models import Lead, LeadStatus, UserStatus
from app.errors import CounselorNotFound, LeadNotFound, TeamNotFound

logger = logging.getLogger(__name__)


def _hours_between(assigned_at: Optional[datetime], responded_at: Optional[datetime]) -> Optional[float]:
    if assigned_at is None or responded_at is None:
        return None
    return (responded_at - assigned_at).total_seconds() / 3600


def _response_hours(lead: Lead) -> Optional[float]:
    return _hours_between(lead.assignment_date, lead.first_response_at)


def _average(values: Iterable[Optional[float]]) -> Optional[float]:
    values = [v for v in values if v is not None]
    return round(sum(values) / len(values), 2) if values else None


def _day_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day)


def get_counselor_workload(
    db: Session,
    counselor_id: int,
    days: int = 7,
    now: Optional[datetime] = None,
) -> dict:
    """Assigned-lead counts and average first-response time for one counselor."""
    if repository.get_user_by_id(db, counselor_id) is None:
        raise CounselorNotFound(counselor_id)

    now = now or repository.utcnow()
    period_start = now - timedelta(days=days)

    counts = repository.get_counselor_assignment_counts(db, counselor_id, _day_start(now), period_start)
    responses = repository.get_response_times(db, [counselor_id], period_start, exclude_disqualified=True)

    return {
        "counselor_id": counselor_id,
        "period_days": days,
        "total_assigned": counts["total"],
        "today_assigned": counts["today"],
        "period_assigned": counts["period"],
        "avg_response_hours": _average(_hours_between(assigned, responded) for _, assigned, responded in responses),
    }


def get_assignment_stats(
    db: Session,
    org_id: int,
    start: datetime,
    end: datetime,
) -> list[dict]:
    """Per-team assignment volume, response time and conversion within a window."""
    per_team: dict[int, dict] = {}
    for lead, team in repository.get_assigned_leads_in_window(db, org_id, start, end):
        bucket = per_team.setdefault(team.id, {
            "team_id": team.id,
            "team_name": team.team_name,
            "leads": [],
        })
        bucket["leads"].append(lead)

    stats = []
    for bucket in per_team.values():
        leads = bucket.pop("leads")
        converted = sum(1 for lead in leads if lead.status == LeadStatus.CONVERTED)
        stats.append({
            **bucket,
            "assigned_leads": len(leads),
            "active_counselors": len({lead.assigned_counselor_id for lead in leads}),
            "avg_response_hours": _average(_response_hours(lead) for lead in leads),
            "converted_leads": converted,
            "conversion_rate": round(converted / len(leads) * 100, 2),
        })

    stats.sort(key=lambda s: s["assigned_leads"], reverse=True)
    return stats


def get_team_counselor_stats(
    db: Session,
    team_id: int,
    days: int = 30,
    now: Optional[datetime] = None,
) -> list[dict]:
    """Per-counselor activity for one team over the last `days` days."""
    team = repository.get_team(db, team_id)
    if team is None:
        raise TeamNotFound(team_id)

    now = now or repository.utcnow()
    period_start = now - timedelta(days=days)

    counselors = [
        u for u in team.members
        if u.status == UserStatus.ACTIVE and u.can_receive_leads
    ]
    counselor_ids = [c.id for c in counselors]
    counts = repository.get_counselor_period_counts(db, counselor_ids, _day_start(now), period_start)
    response_hours = defaultdict(list)
    for counselor_id, assigned, responded in repository.get_response_times(db, counselor_ids, period_start):
        response_hours[counselor_id].append(_hours_between(assigned, responded))

    rows = []
    for counselor in counselors:
        row_counts = counts.get(counselor.id, {"today": 0, "period": 0, "converted": 0})
        rows.append({
            "user_id": counselor.id,
            "first_name": counselor.first_name,
            "last_name": counselor.last_name,
            "email": counselor.email,
            "capacity_daily": counselor.capacity_daily,
            "workload_weight": counselor.workload_weight,
            "today_assigned": row_counts["today"],
            "period_assigned": row_counts["period"],
            "period_converted": row_counts["converted"],
            "avg_response_hours": _average(response_hours[counselor.id]),
        })
    rows.sort(key=lambda r: r["period_assigned"], reverse=True)
    return rows


def get_workload_overview(db: Session, org_id: int, now: Optional[datetime] = None) -> list[dict]:
    """Capacity and recent volume for every active team of an org."""
    now = now or repository.utcnow()
    today_start = _day_start(now)
    week_start = today_start - timedelta(days=7)
    month_start = today_start - timedelta(days=30)

    teams = repository.get_active_teams_with_members(db, org_id)
    counts = repository.get_team_assignment_counts(db, org_id, today_start, week_start, month_start)

    overview = []
    for team in teams:
        team_counts = counts.get(team.id, {"today": 0, "week": 0, "month_converted": 0})
        overview.append({
            "team_id": team.id,
            "team_name": team.team_name,
            "total_counselors": len(team.members),
            "active_counselors": sum(1 for u in team.members if u.can_receive_leads),
            "total_capacity": sum(u.capacity_daily or 0 for u in team.members),
            "today_assigned": team_counts["today"],
            "week_assigned": team_counts["week"],
            "month_converted": team_counts["month_converted"],
        })
    overview.sort(key=lambda t: t["month_converted"], reverse=True)
    return overview

def get_assignment_history(db: Session, lead_id: int, page: int = 1, limit: int = 20) -> dict:
    """A page of a lead's assignment log, newest first, with snapshots decoded."""
    if repository.get_lead_by_id(db, lead_id) is None:
        raise LeadNotFound(lead_id)

    entries, total = repository.get_assignment_logs(db, lead_id, limit=limit, offset=(page - 1) * limit)
    return {
        "entries": [
            {
                "id": entry.id,
                "lead_id": entry.lead_id,
                "counselor_id": entry.counselor_id,
                "counselor_name": entry.counselor.full_name if entry.counselor else None,
                "counselor_email": entry.counselor.email if entry.counselor else None,
                "team_id": entry.team_id,
                "team_name": entry.team.team_name if entry.team else None,
                "rule_id": entry.rule_id,
                "rule_name": entry.rule.rule_name if entry.rule else None,
                "rule_snapshot": json.loads(entry.rule_snapshot),
                "assigned_at": entry.assigned_at,
            }
            for entry in entries
        ],
        "page": page,
        "limit": limit,
        "total": total,
    }

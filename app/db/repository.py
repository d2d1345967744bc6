"""
app/db/repository.py — All database read/write operations.

Business logic should never write raw SQL or ORM queries directly —
everything goes through this module. This keeps DB logic centralized
and easy to test/mock.

Every public function re-raises storage errors as PersistenceFailure so the
services above only ever deal with the app.errors taxonomy.
"""

import functools
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import and_, case, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.db.models import (
    AssignmentLog,
    AssignmentRule,
    FollowupStatus,
    Hotness,
    Lead,
    LeadEducation,
    LeadExperience,
    LeadStatus,
    LeadTestScore,
    Team,
    User,
    UserStatus,
)
from app.errors import PersistenceFailure, TeamNotFound

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _today_bounds(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    now = now or utcnow()
    start = datetime(now.year, now.month, now.day)
    return start, start + timedelta(days=1)


def _translate_db_errors(func_):
    @functools.wraps(func_)
    def wrapper(*args, **kwargs):
        try:
            return func_(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Repository call %s failed: %s", func_.__name__, exc)
            raise PersistenceFailure(f"{func_.__name__} failed: {exc}") from exc
    return wrapper


@_translate_db_errors
def commit(db: Session) -> None:
    """Commit the session's unit of work; a failed commit surfaces as PersistenceFailure."""
    db.commit()


# ── Row shapes ────────────────────────────────────────────────────────────────

@dataclass
class CounselorCandidate:
    """An eligible counselor together with today's derived lead count."""
    user_id: int
    first_name: str
    last_name: str
    email: str
    team_id: int
    capacity_daily: Optional[int]
    workload_weight: Optional[float]
    current_daily_load: int

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class TeamStrategy:
    load_strategy: Optional[str]
    round_robin_offset: int


# ── Lead ─────────────────────────────────────────────────────────────────────

@_translate_db_errors
def get_lead_by_id(db: Session, lead_id: int) -> Optional[Lead]:
    """Return the lead or None. GDPR-deleted leads are still returned."""
    return db.query(Lead).filter(Lead.id == lead_id).first()


@_translate_db_errors
def create_lead(
    db: Session,
    fields: dict[str, Any],
    education: Iterable[dict[str, Any]] = (),
    experience: Iterable[dict[str, Any]] = (),
    test_scores: Iterable[dict[str, Any]] = (),
) -> Lead:
    """Create and persist a new Lead together with its scoring input records."""
    lead = Lead(**fields)
    lead.education = [LeadEducation(**record) for record in education]
    lead.experiences = [LeadExperience(**record) for record in experience]
    lead.test_scores = [LeadTestScore(**record) for record in test_scores]
    db.add(lead)
    db.flush()
    logger.info(
        "Lead created: id=%d org=%s program=%r country=%s",
        lead.id, lead.org_id, lead.program_interest, lead.country_code,
    )
    return lead


@_translate_db_errors
def update_lead_fields(db: Session, lead: Lead, fields: dict[str, Any]) -> Lead:
    """Apply a partial profile update to a lead."""
    for name, value in fields.items():
        setattr(lead, name, value)
    lead.updated_at = utcnow()
    db.flush()
    return lead


@_translate_db_errors
def list_leads(
    db: Session,
    org_id: Optional[int] = None,
    hotness: Optional[Hotness] = None,
    limit: int = 50,
) -> list[Lead]:
    """Fetch non-deleted leads, newest first, optionally filtered."""
    query = db.query(Lead).filter(Lead.gdpr_deleted == False)  # noqa: E712
    if org_id is not None:
        query = query.filter(Lead.org_id == org_id)
    if hotness is not None:
        query = query.filter(Lead.hotness == hotness)
    return query.order_by(Lead.created_at.desc(), Lead.id.desc()).limit(limit).all()


@_translate_db_errors
def count_leads_by_hotness(db: Session, org_id: Optional[int] = None) -> dict[Hotness, int]:
    query = db.query(Lead.hotness, func.count(Lead.id)).filter(Lead.gdpr_deleted == False)  # noqa: E712
    if org_id is not None:
        query = query.filter(Lead.org_id == org_id)
    return {hotness: count for hotness, count in query.group_by(Lead.hotness).all()}


@_translate_db_errors
def get_scorable_lead_ids(db: Session) -> list[int]:
    """Ids of every lead that has not been GDPR-deleted."""
    rows = (
        db.query(Lead.id)
        .filter(Lead.gdpr_deleted == False)  # noqa: E712
        .order_by(Lead.id.asc())
        .all()
    )
    return [row.id for row in rows]


@_translate_db_errors
def get_unassigned_lead_ids(db: Session, org_id: int, limit: int = 500) -> list[int]:
    rows = (
        db.query(Lead.id)
        .filter(
            Lead.org_id == org_id,
            Lead.assigned_counselor_id.is_(None),
            Lead.gdpr_deleted == False,  # noqa: E712
        )
        .order_by(Lead.created_at.asc(), Lead.id.asc())
        .limit(limit)
        .all()
    )
    return [row.id for row in rows]


# ── Scoring inputs ────────────────────────────────────────────────────────────

@_translate_db_errors
def get_education_by_lead(db: Session, lead_id: int) -> list[LeadEducation]:
    """Education records, the one flagged highest first."""
    return (
        db.query(LeadEducation)
        .filter(LeadEducation.lead_id == lead_id)
        .order_by(LeadEducation.is_highest.desc(), LeadEducation.id.asc())
        .all()
    )


@_translate_db_errors
def get_experience_by_lead(db: Session, lead_id: int) -> list[LeadExperience]:
    """Experience records, most recent start first."""
    return (
        db.query(LeadExperience)
        .filter(LeadExperience.lead_id == lead_id)
        .order_by(LeadExperience.start_date.desc(), LeadExperience.id.asc())
        .all()
    )


@_translate_db_errors
def get_test_scores_by_lead(db: Session, lead_id: int) -> list[LeadTestScore]:
    """Test scores, best percentile first."""
    return (
        db.query(LeadTestScore)
        .filter(LeadTestScore.lead_id == lead_id)
        .order_by(LeadTestScore.percentile.desc(), LeadTestScore.id.asc())
        .all()
    )


@_translate_db_errors
def update_lead_scores(
    db: Session,
    lead_id: int,
    breakdown: dict[str, int],
    lead_score: int,
    hotness: Hotness,
    scored_at: Optional[datetime] = None,
) -> Optional[Lead]:
    """Overwrite all scoring columns of a lead in one statement."""
    scored_at = scored_at or utcnow()
    db.query(Lead).filter(Lead.id == lead_id).update(
        {
            "academic_score": breakdown.get("academic_score", 0),
            "experience_score": breakdown.get("experience_score", 0),
            "program_fit_score": breakdown.get("program_fit_score", 0),
            "engagement_score": breakdown.get("engagement_score", 0),
            "geography_score": breakdown.get("geography_score", 0),
            "data_quality_score": breakdown.get("data_quality_score", 0),
            "lead_score": lead_score,
            "hotness": hotness,
            "last_scored_at": scored_at,
            "updated_at": scored_at,
        }
    )
    logger.debug("Lead %d scores → %d (%s)", lead_id, lead_score, hotness.value)
    return db.query(Lead).filter(Lead.id == lead_id).first()


# ── Rules & teams ─────────────────────────────────────────────────────────────

@_translate_db_errors
def get_active_rules(db: Session, org_id: int) -> list[AssignmentRule]:
    """
    Active rules of the org's active, lead-receiving teams.

    Ordered by priority ascending, then rule id — callers rely on this order
    for first-match precedence.
    """
    return (
        db.query(AssignmentRule)
        .join(Team, AssignmentRule.team_id == Team.id)
        .options(joinedload(AssignmentRule.team))
        .filter(
            AssignmentRule.active == True,  # noqa: E712
            Team.is_active == True,  # noqa: E712
            Team.can_receive_leads == True,  # noqa: E712
            Team.org_id == org_id,
        )
        .order_by(AssignmentRule.priority.asc(), AssignmentRule.id.asc())
        .all()
    )


@_translate_db_errors
def get_team_strategy(db: Session, team_id: int) -> TeamStrategy:
    row = (
        db.query(Team.load_strategy, Team.round_robin_offset)
        .filter(Team.id == team_id)
        .first()
    )
    if row is None:
        raise TeamNotFound(team_id)
    return TeamStrategy(load_strategy=row.load_strategy, round_robin_offset=row.round_robin_offset)


@_translate_db_errors
def increment_round_robin_offset(db: Session, team_id: int, pool_size: int) -> int:
    """
    Atomically advance the team's round-robin counter and return the selected index.

    Runs as a single UPDATE ... RETURNING so concurrent assignments for the same
    team serialize on the row lock instead of racing a read-then-write.
    """
    if pool_size <= 0:
        raise ValueError("pool_size must be positive")
    stmt = (
        update(Team)
        .where(Team.id == team_id)
        .values(round_robin_offset=(Team.round_robin_offset % pool_size) + 1)
        .returning(Team.round_robin_offset)
    )
    new_offset = db.execute(stmt).scalar_one_or_none()
    if new_offset is None:
        raise TeamNotFound(team_id)
    return new_offset - 1


@_translate_db_errors
def get_team(db: Session, team_id: int) -> Optional[Team]:
    return db.query(Team).filter(Team.id == team_id).first()


# ── Counselors ────────────────────────────────────────────────────────────────

def _today_load_subquery(db: Session, now: Optional[datetime] = None):
    start, end = _today_bounds(now)
    return (
        db.query(
            Lead.assigned_counselor_id.label("counselor_id"),
            func.count(Lead.id).label("today_count"),
        )
        .filter(
            Lead.assignment_date >= start,
            Lead.assignment_date < end,
            Lead.status != LeadStatus.DISQUALIFIED,
        )
        .group_by(Lead.assigned_counselor_id)
        .subquery()
    )


@_translate_db_errors
def get_eligible_counselors(
    db: Session,
    team_id: int,
    now: Optional[datetime] = None,
) -> list[CounselorCandidate]:
    """
    Counselors of a team that can take another lead today.

    Eligible = active, can_receive_leads, team active, and either no daily
    capacity or today's assigned count below it. Ordered by name.
    """
    load = _today_load_subquery(db, now)
    current_load = func.coalesce(load.c.today_count, 0)

    rows = (
        db.query(User, current_load.label("current_daily_load"))
        .join(Team, User.team_id == Team.id)
        .outerjoin(load, load.c.counselor_id == User.id)
        .filter(
            User.team_id == team_id,
            User.status == UserStatus.ACTIVE,
            User.can_receive_leads == True,  # noqa: E712
            Team.is_active == True,  # noqa: E712
            or_(User.capacity_daily.is_(None), current_load < User.capacity_daily),
        )
        .order_by(User.first_name.asc(), User.last_name.asc(), User.id.asc())
        .all()
    )
    return [
        CounselorCandidate(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            team_id=user.team_id,
            capacity_daily=user.capacity_daily,
            workload_weight=user.workload_weight,
            current_daily_load=int(load_count),
        )
        for user, load_count in rows
    ]


@_translate_db_errors
def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


@_translate_db_errors
def get_counselor_team(db: Session, counselor_id: Optional[int]) -> Optional[Team]:
    """The team a counselor currently belongs to, or None."""
    if counselor_id is None:
        return None
    return (
        db.query(Team)
        .join(User, User.team_id == Team.id)
        .filter(User.id == counselor_id)
        .first()
    )


# ── Assignment ────────────────────────────────────────────────────────────────

@_translate_db_errors
def write_assignment(
    db: Session,
    lead_id: int,
    counselor_id: int,
    team_id: Optional[int],
    rule_id: Optional[int],
    rule_snapshot: dict[str, Any],
    assigned_at: Optional[datetime] = None,
) -> Optional[Lead]:
    """Overwrite the lead's current assignment fields."""
    assigned_at = assigned_at or utcnow()
    db.query(Lead).filter(Lead.id == lead_id).update(
        {
            "assigned_counselor_id": counselor_id,
            "assigned_team_id": team_id,
            "assignment_date": assigned_at,
            "assignment_rule": rule_snapshot,
            "followup_status": FollowupStatus.PENDING,
            "updated_at": assigned_at,
        }
    )
    logger.debug("Lead %d assigned to counselor %d (rule=%s)", lead_id, counselor_id, rule_id)
    return db.query(Lead).filter(Lead.id == lead_id).first()


@_translate_db_errors
def append_assignment_log(
    db: Session,
    lead_id: int,
    counselor_id: int,
    team_id: Optional[int],
    rule_id: Optional[int],
    snapshot: dict[str, Any],
    assigned_at: Optional[datetime] = None,
) -> AssignmentLog:
    """Append one immutable audit entry. Log rows are never updated or deleted."""
    entry = AssignmentLog(
        lead_id=lead_id,
        counselor_id=counselor_id,
        team_id=team_id,
        rule_id=rule_id,
        rule_snapshot=json.dumps(snapshot, default=str),
        assigned_at=assigned_at or utcnow(),
        followup_status=FollowupStatus.PENDING,
    )
    db.add(entry)
    db.flush()
    return entry


@_translate_db_errors
def get_assignment_logs(
    db: Session,
    lead_id: int,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[AssignmentLog], int]:
    """One page of a lead's assignment history (newest first) and the total count."""
    query = db.query(AssignmentLog).filter(AssignmentLog.lead_id == lead_id)
    total = query.count()
    entries = (
        query.options(
            joinedload(AssignmentLog.counselor),
            joinedload(AssignmentLog.team),
            joinedload(AssignmentLog.rule),
        )
        .order_by(AssignmentLog.assigned_at.desc(), AssignmentLog.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return entries, total


# ── Reporting reads ───────────────────────────────────────────────────────────

def _count_when(*conditions):
    """SUM(CASE WHEN ... THEN 1 ELSE 0 END), 0 when no rows match."""
    return func.coalesce(func.sum(case((and_(*conditions), 1), else_=0)), 0)


@_translate_db_errors
def get_counselor_assignment_counts(
    db: Session,
    counselor_id: int,
    today_start: datetime,
    period_start: datetime,
) -> dict[str, int]:
    """Total, today and period counts of a counselor's non-disqualified leads."""
    today_end = today_start + timedelta(days=1)
    row = (
        db.query(
            func.count(Lead.id).label("total"),
            _count_when(Lead.assignment_date >= today_start, Lead.assignment_date < today_end).label("today"),
            _count_when(Lead.assignment_date >= period_start).label("period"),
        )
        .filter(
            Lead.assigned_counselor_id == counselor_id,
            Lead.assignment_date.isnot(None),
            Lead.status != LeadStatus.DISQUALIFIED,
        )
        .one()
    )
    return {"total": int(row.total), "today": int(row.today), "period": int(row.period)}


@_translate_db_errors
def get_counselor_period_counts(
    db: Session,
    counselor_ids: list[int],
    today_start: datetime,
    period_start: datetime,
) -> dict[int, dict[str, int]]:
    """Per-counselor today / period / converted counts for leads assigned since period_start."""
    if not counselor_ids:
        return {}
    today_end = today_start + timedelta(days=1)
    rows = (
        db.query(
            Lead.assigned_counselor_id,
            _count_when(Lead.assignment_date >= today_start, Lead.assignment_date < today_end).label("today"),
            func.count(Lead.id).label("period"),
            _count_when(Lead.status == LeadStatus.CONVERTED).label("converted"),
        )
        .filter(
            Lead.assigned_counselor_id.in_(counselor_ids),
            Lead.assignment_date >= period_start,
        )
        .group_by(Lead.assigned_counselor_id)
        .all()
    )
    return {
        counselor_id: {"today": int(today), "period": int(period), "converted": int(converted)}
        for counselor_id, today, period, converted in rows
    }


@_translate_db_errors
def get_response_times(
    db: Session,
    counselor_ids: list[int],
    since: datetime,
    exclude_disqualified: bool = False,
) -> list[tuple[int, datetime, datetime]]:
    """(counselor_id, assignment_date, first_response_at) for answered leads assigned since `since`."""
    if not counselor_ids:
        return []
    query = db.query(Lead.assigned_counselor_id, Lead.assignment_date, Lead.first_response_at).filter(
        Lead.assigned_counselor_id.in_(counselor_ids),
        Lead.assignment_date >= since,
        Lead.first_response_at.isnot(None),
    )
    if exclude_disqualified:
        query = query.filter(Lead.status != LeadStatus.DISQUALIFIED)
    return [tuple(row) for row in query.all()]


@_translate_db_errors
def get_assigned_leads_in_window(
    db: Session,
    org_id: int,
    start: datetime,
    end: datetime,
) -> list[tuple[Lead, Team]]:
    """Assigned leads of an org within [start, end], paired with the counselor's team."""
    return (
        db.query(Lead, Team)
        .join(User, Lead.assigned_counselor_id == User.id)
        .join(Team, User.team_id == Team.id)
        .filter(
            Lead.org_id == org_id,
            Lead.assignment_date >= start,
            Lead.assignment_date <= end,
            Lead.assigned_counselor_id.isnot(None),
        )
        .all()
    )


@_translate_db_errors
def get_active_teams_with_members(db: Session, org_id: int) -> list[Team]:
    return (
        db.query(Team)
        .options(joinedload(Team.members))
        .filter(Team.org_id == org_id, Team.is_active == True)  # noqa: E712
        .order_by(Team.id.asc())
        .all()
    )


@_translate_db_errors
def get_team_assignment_counts(
    db: Session,
    org_id: int,
    today_start: datetime,
    week_start: datetime,
    month_start: datetime,
) -> dict[int, dict[str, int]]:
    """
    Per-team counts over the leads held by each team's current members.

    Only leads assigned since month_start are read; week_start and
    today_start must not be earlier than it.
    """
    today_end = today_start + timedelta(days=1)
    rows = (
        db.query(
            User.team_id,
            _count_when(Lead.assignment_date >= today_start, Lead.assignment_date < today_end).label("today"),
            _count_when(Lead.assignment_date >= week_start).label("week"),
            _count_when(Lead.status == LeadStatus.CONVERTED).label("month_converted"),
        )
        .select_from(Lead)
        .join(User, Lead.assigned_counselor_id == User.id)
        .filter(
            User.org_id == org_id,
            User.team_id.isnot(None),
            Lead.assignment_date >= month_start,
        )
        .group_by(User.team_id)
        .all()
    )
    return {
        team_id: {"today": int(today), "week": int(week), "month_converted": int(converted)}
        for team_id, today, week, converted in rows
    }

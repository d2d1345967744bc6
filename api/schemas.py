"""
api/schemas.py — Pydantic request/response models for all API endpoints.

These are the API contract — separate from DB ORM models so we can
control exactly what data is exposed over HTTP.
"""

from datetime import date, datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator

from app.db.models import FollowupStatus, Hotness, LeadStatus


# ── Shared ────────────────────────────────────────────────────────────────────

class OKResponse(BaseModel):
    """Generic success acknowledgement."""
    status: str = "ok"
    message: str


# ── Scoring inputs ────────────────────────────────────────────────────────────

class EducationIn(BaseModel):
    institution: Optional[str] = None
    degree_level: Optional[str] = Field(default=None, description="PhD, MASTERS, BACHELORS, DIPLOMA or HS")
    field_of_study: Optional[str] = None
    gpa: Optional[float] = Field(default=None, ge=0)
    gpa_scale: Optional[float] = Field(default=None, gt=0)
    is_highest: bool = False


class ExperienceIn(BaseModel):
    title: str
    company: Optional[str] = None
    industry: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class TestScoreIn(BaseModel):
    test_type: str
    score: Optional[float] = None
    percentile: Optional[float] = Field(default=None, ge=0, le=100)
    taken_on: Optional[date] = None


# ── Lead ─────────────────────────────────────────────────────────────────────

class LeadProfile(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    phone_e164: Optional[str] = None
    company: Optional[str] = None
    website: Optional[str] = None
    country_code: Optional[str] = Field(default=None, min_length=2, max_length=2)
    country_name: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    program_interest: Optional[str] = None


class LeadCreate(LeadProfile):
    org_id: int
    consent_marketing: bool = False
    consent_sales: bool = False
    source_channel: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    education: list[EducationIn] = Field(default_factory=list)
    experience: list[ExperienceIn] = Field(default_factory=list)
    test_scores: list[TestScoreIn] = Field(default_factory=list)


class LeadUpdate(LeadProfile):
    """Partial profile update; scoring and assignment fields are not writable here."""
    status: Optional[LeadStatus] = None
    followup_status: Optional[FollowupStatus] = None
    last_contacted_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None

    @field_validator("status", "followup_status")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class LeadOut(BaseModel):
    id: int
    org_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    country_code: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    program_interest: Optional[str] = None
    status: LeadStatus
    academic_score: int
    experience_score: int
    program_fit_score: int
    engagement_score: int
    geography_score: int
    data_quality_score: int
    lead_score: int
    hotness: Hotness
    last_scored_at: Optional[datetime] = None
    assigned_counselor_id: Optional[int] = None
    assigned_team_id: Optional[int] = None
    assignment_date: Optional[datetime] = None
    assignment_rule: Optional[dict[str, Any]] = None
    followup_status: FollowupStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LeadCaptureOut(BaseModel):
    lead: LeadOut
    scored: bool
    assigned: bool
    errors: dict[str, str] = Field(default_factory=dict)


class LeadUpdateOut(BaseModel):
    lead: LeadOut
    rescored: bool


# ── Scoring ───────────────────────────────────────────────────────────────────

class ScoreOut(BaseModel):
    lead_id: int
    total_score: int
    hotness: Hotness
    breakdown: dict[str, Any]


class BatchScoreRequest(BaseModel):
    lead_ids: list[int] = Field(..., min_length=1, max_length=500)


class BatchScoreResult(BaseModel):
    results: list[dict[str, Any]]
    total: int
    successful: int
    failed: int


# ── Assignment ────────────────────────────────────────────────────────────────

class AssignRequest(BaseModel):
    org_id: int


class ReassignRequest(BaseModel):
    new_counselor_id: int
    reason: str = Field(..., min_length=1)


class BulkAssignRequest(BaseModel):
    org_id: int
    lead_ids: list[int] = Field(..., min_length=1, max_length=500)


class AssignmentOut(BaseModel):
    lead_id: int
    counselor_id: int
    counselor_name: str
    team_id: int
    team_name: Optional[str] = None
    rule_name: str
    assigned_at: datetime


class BulkAssignResult(BaseModel):
    assigned: list[AssignmentOut]
    errors: list[dict[str, Any]]
    total: int
    successful: int
    failed: int
    message: str


class RuleOut(BaseModel):
    rule_id: int
    rule_name: str
    type: str
    priority: int
    team_id: int
    team_name: Optional[str] = None
    country_code: Optional[str] = None
    program_equals: Optional[str] = None
    min_lead_score: Optional[float] = None


class CounselorOut(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    email: str
    team_id: int
    capacity_daily: Optional[int] = None
    workload_weight: Optional[float] = None
    current_daily_load: int

    model_config = {"from_attributes": True}


class AssignmentLogOut(BaseModel):
    id: int
    lead_id: int
    counselor_id: Optional[int] = None
    counselor_name: Optional[str] = None
    counselor_email: Optional[str] = None
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    rule_id: Optional[int] = None
    rule_name: Optional[str] = None
    rule_snapshot: dict[str, Any]
    assigned_at: datetime


class AssignmentLogPage(BaseModel):
    entries: list[AssignmentLogOut]
    page: int
    limit: int
    total: int
    total_pages: int

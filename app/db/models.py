"""
app/db/models.py — SQLAlchemy ORM models for the lead routing system.

Tables:
  - Organization     → tenant that owns teams, counselors and leads
  - Team             → group of counselors sharing a load strategy
  - User             → a counselor who can receive leads
  - Lead             → a prospective student captured through a form
  - LeadEducation    → education history (scoring input)
  - LeadExperience   → work history (scoring input)
  - LeadTestScore    → standardized test results (scoring input)
  - AssignmentRule   → ordered condition that routes a lead to a team
  - AssignmentLog    → append-only audit record of every (re)assignment
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship


# ── Base ─────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Enums ────────────────────────────────────────────────────────────────────

class Hotness(str, enum.Enum):
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class LeadStatus(str, enum.Enum):
    OPEN = "open"
    CONTACTED = "contacted"
    CONVERTED = "converted"
    DISQUALIFIED = "disqualified"


class FollowupStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# Stored as plain strings on the tables below so that rows written by other
# tools with an unrecognised value still load (and simply never match / fall
# back to the first counselor).

class RuleType(str, enum.Enum):
    GEOGRAPHY = "geography"
    PROGRAM_INTEREST = "program_interest"
    LEAD_SCORE = "lead_score"
    LOAD_BALANCING = "load_balancing"


class LoadStrategy(str, enum.Enum):
    ROUND_ROBIN = "round_robin"
    LEAST_LOAD = "least_load"
    WEIGHTED = "weighted"


# ── Models ───────────────────────────────────────────────────────────────────

class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    teams = relationship("Team", back_populates="organization", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    team_name = Column(String(255), nullable=False)
    load_strategy = Column(String(32), nullable=True, default=LoadStrategy.ROUND_ROBIN.value)
    round_robin_offset = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    can_receive_leads = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="teams")
    members = relationship("User", back_populates="team")
    rules = relationship("AssignmentRule", back_populates="team", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Team id={self.id} name={self.team_name!r} strategy={self.load_strategy}>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    status = Column(Enum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    capacity_daily = Column(Integer, nullable=True)       # None → unlimited
    workload_weight = Column(Float, nullable=False, default=1.0)
    can_receive_leads = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    team = relationship("Team", back_populates="members")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.full_name!r} team_id={self.team_id}>"


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)

    # Contact / profile
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    phone_e164 = Column(String(20), nullable=True)
    company = Column(String(255), nullable=True)
    website = Column(String(512), nullable=True)
    country_code = Column(String(2), nullable=True)
    country_name = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    program_interest = Column(String(255), nullable=True)
    consent_marketing = Column(Boolean, nullable=False, default=False)
    consent_sales = Column(Boolean, nullable=False, default=False)

    # Source attribution
    source_raw = Column(String(100), nullable=True)       # e.g. "web_form"
    source_channel = Column(String(100), nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    utm_term = Column(String(255), nullable=True)
    utm_content = Column(String(255), nullable=True)

    status = Column(Enum(LeadStatus), default=LeadStatus.OPEN, nullable=False)

    # Scoring
    academic_score = Column(Integer, nullable=False, default=0)
    experience_score = Column(Integer, nullable=False, default=0)
    program_fit_score = Column(Integer, nullable=False, default=0)
    engagement_score = Column(Integer, nullable=False, default=0)
    geography_score = Column(Integer, nullable=False, default=0)
    data_quality_score = Column(Integer, nullable=False, default=0)
    lead_score = Column(Integer, nullable=False, default=0)
    hotness = Column(Enum(Hotness), default=Hotness.COLD, nullable=False)
    last_scored_at = Column(DateTime, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)
    first_response_at = Column(DateTime, nullable=True)

    # Current assignment (history lives in assignment_logs)
    assigned_counselor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    assignment_date = Column(DateTime, nullable=True)
    assignment_rule = Column(JSON, nullable=True)         # snapshot of the matched rule
    followup_status = Column(Enum(FollowupStatus), default=FollowupStatus.PENDING, nullable=False)

    gdpr_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    assigned_counselor = relationship("User", foreign_keys=[assigned_counselor_id])
    assigned_team = relationship("Team", foreign_keys=[assigned_team_id])
    education = relationship("LeadEducation", back_populates="lead", cascade="all, delete-orphan")
    experiences = relationship("LeadExperience", back_populates="lead", cascade="all, delete-orphan")
    test_scores = relationship("LeadTestScore", back_populates="lead", cascade="all, delete-orphan")
    assignment_logs = relationship("AssignmentLog", back_populates="lead")

    def __repr__(self) -> str:
        return f"<Lead id={self.id} score={self.lead_score} hotness={self.hotness}>"


class LeadEducation(Base):
    __tablename__ = "lead_education"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    institution = Column(String(255), nullable=True)
    degree_level = Column(String(50), nullable=True)      # PhD, MASTERS, BACHELORS, DIPLOMA, HS
    field_of_study = Column(String(255), nullable=True)
    gpa = Column(Float, nullable=True)
    gpa_scale = Column(Float, nullable=True)
    is_highest = Column(Boolean, nullable=False, default=False)

    lead = relationship("Lead", back_populates="education")

    def __repr__(self) -> str:
        return f"<LeadEducation id={self.id} level={self.degree_level!r} field={self.field_of_study!r}>"


class LeadExperience(Base):
    __tablename__ = "lead_experiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)
    industry = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)                # None → current role

    lead = relationship("Lead", back_populates="experiences")

    def __repr__(self) -> str:
        return f"<LeadExperience id={self.id} title={self.title!r}>"


class LeadTestScore(Base):
    __tablename__ = "lead_test_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    test_type = Column(String(50), nullable=False)        # e.g. "GMAT", "GRE"
    score = Column(Float, nullable=True)
    percentile = Column(Float, nullable=True)
    taken_on = Column(Date, nullable=True)

    lead = relationship("Lead", back_populates="test_scores")

    def __repr__(self) -> str:
        return f"<LeadTestScore id={self.id} type={self.test_type!r} pct={self.percentile}>"


class AssignmentRule(Base):
    __tablename__ = "assignment_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    rule_name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False)             # see RuleType
    priority = Column(Integer, nullable=False, default=100)
    active = Column(Boolean, nullable=False, default=True)

    # Type-specific parameters
    country_code = Column(String(2), nullable=True)
    program_equals = Column(String(255), nullable=True)
    min_lead_score = Column(Float, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    team = relationship("Team", back_populates="rules")

    def __repr__(self) -> str:
        return f"<AssignmentRule id={self.id} type={self.type} priority={self.priority}>"


class AssignmentLog(Base):
    __tablename__ = "assignment_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    counselor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    rule_id = Column(Integer, ForeignKey("assignment_rules.id", ondelete="SET NULL"), nullable=True)
    rule_snapshot = Column(Text, nullable=False)          # JSON
    assigned_at = Column(DateTime, nullable=False)
    followup_status = Column(Enum(FollowupStatus), default=FollowupStatus.PENDING, nullable=False)

    # Relationships
    lead = relationship("Lead", back_populates="assignment_logs")
    counselor = relationship("User")
    team = relationship("Team")
    rule = relationship("AssignmentRule")

    def __repr__(self) -> str:
        return f"<AssignmentLog id={self.id} lead_id={self.lead_id} counselor_id={self.counselor_id}>"

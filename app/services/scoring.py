"""
app/services/scoring.py — Lead scoring model.

Pure functions that turn a lead and its education / experience / test-score
records into six capped sub-scores and a hotness tier. Nothing here touches
the database; see app/services/scoring_engine.py for the persisted flow.

Sub-score caps (defaults):
  academic 30 · experience 25 · program fit 20 · engagement 15 · geography 15 · data quality 5

Every tunable number and list lives on ScoringConfig so it can be adjusted
per deployment (via settings) or per organization (by passing a config).
"""

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field, model_validator

from app.config import settings
from app.db.models import Hotness

logger = logging.getLogger(__name__)


# ── Configuration ─────────────────────────────────────────────────────────────

class ScoringConfig(BaseModel):
    """All weights, caps, keyword lists and thresholds used by the model."""

    academic_max: int = 30
    experience_max: int = 25
    program_fit_max: int = 20
    engagement_max: int = 15
    geography_max: int = 15
    data_quality_max: int = 5

    degree_points: dict[str, int] = Field(
        default_factory=lambda: {
            "PHD": 30,
            "MASTERS": 25,
            "BACHELORS": 20,
            "DIPLOMA": 15,
            "HS": 10,
        }
    )
    # (minimum GPA percent, bonus); best tier wins
    gpa_bonus_tiers: list[tuple[float, int]] = Field(default_factory=lambda: [(90, 5), (80, 3), (70, 1)])
    test_taken_bonus: int = 5
    # (minimum percentile, bonus) on top of test_taken_bonus
    test_percentile_tiers: list[tuple[float, int]] = Field(default_factory=lambda: [(90, 3), (80, 2), (70, 1)])

    # (minimum whole years, points) per record
    tenure_tiers: list[tuple[float, int]] = Field(default_factory=lambda: [(5, 10), (2, 7), (1, 5), (0, 3)])
    relevance_bonus: int = 15
    leadership_bonus: int = 5

    relevant_keywords: list[str] = Field(
        default_factory=lambda: [
            "manager", "director", "lead", "senior", "executive",
            "business", "marketing", "sales",
        ]
    )
    leadership_keywords: list[str] = Field(
        default_factory=lambda: [
            "manager", "director", "lead", "head", "chief", "executive",
            "president", "vp", "vice president",
        ]
    )

    program_direct_match: int = 20
    program_related_field: int = 15
    program_interest_only: int = 10

    engagement_base: int = 10
    phone_bonus: int = 2
    company_bonus: int = 2
    website_bonus: int = 1
    # (maximum days since last contact, bonus); closest tier wins
    recency_tiers: list[tuple[int, int]] = Field(default_factory=lambda: [(7, 3), (30, 2), (90, 1)])

    target_countries: list[str] = Field(default_factory=lambda: ["US", "CA", "GB", "AU", "NZ"])
    nearby_countries: list[str] = Field(default_factory=lambda: ["MX", "PR", "VI"])
    target_country_points: int = 15
    nearby_country_points: int = 10
    international_points: int = 5

    data_quality_required_weight: float = 3
    data_quality_optional_weight: float = 2

    hot_threshold: int = 70
    warm_threshold: int = 40

    @model_validator(mode="after")
    def _check_thresholds(self) -> "ScoringConfig":
        if self.warm_threshold > self.hot_threshold:
            raise ValueError("warm_threshold must not exceed hot_threshold")
        return self

    @property
    def max_total(self) -> int:
        return (
            self.academic_max + self.experience_max + self.program_fit_max
            + self.engagement_max + self.geography_max + self.data_quality_max
        )

    @classmethod
    def from_settings(cls) -> "ScoringConfig":
        """Defaults, overridden by whatever the environment configures."""
        overrides: dict[str, Any] = {}
        if settings.relevant_keywords is not None:
            overrides["relevant_keywords"] = [kw.lower() for kw in settings.relevant_keywords]
        if settings.leadership_keywords is not None:
            overrides["leadership_keywords"] = [kw.lower() for kw in settings.leadership_keywords]
        return cls(
            hot_threshold=settings.hot_threshold,
            warm_threshold=settings.warm_threshold,
            target_countries=[c.upper() for c in settings.target_countries],
            nearby_countries=[c.upper() for c in settings.nearby_countries],
            **overrides,
        )


REQUIRED_PROFILE_FIELDS = ("first_name", "last_name", "email", "phone")
OPTIONAL_PROFILE_FIELDS = ("company", "website", "country_code", "city", "state")


@dataclass
class ScoreBreakdown:
    academic_score: int
    experience_score: int
    program_fit_score: int
    engagement_score: int
    geography_score: int
    data_quality_score: int

    @property
    def total(self) -> int:
        return (
            self.academic_score + self.experience_score + self.program_fit_score
            + self.engagement_score + self.geography_score + self.data_quality_score
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _points_at_least(value: float, tiers: Sequence[tuple[float, int]]) -> int:
    """Points of the highest tier whose threshold `value` reaches, else 0."""
    for threshold, points in sorted(tiers, reverse=True):
        if value >= threshold:
            return points
    return 0


def _points_within(days: int, tiers: Sequence[tuple[int, int]]) -> int:
    """Points of the tightest tier whose day limit `days` stays within, else 0."""
    for limit, points in sorted(tiers):
        if days <= limit:
            return points
    return 0


def _lower(value: Optional[str]) -> str:
    return value.lower() if value else ""


def _overlaps(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive substring match in either direction. Empty never overlaps."""
    a, b = _lower(a), _lower(b)
    if not a or not b:
        return False
    return a in b or b in a


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return None


def days_since(value: Any, now: datetime) -> Optional[int]:
    past = _as_datetime(value)
    if past is None:
        return None
    return (now - past).days


def years_of_experience(record: Any, now: datetime) -> int:
    """Whole 365-day periods between start_date and end_date (or now)."""
    start = _as_datetime(getattr(record, "start_date", None))
    if start is None:
        return 0
    end = _as_datetime(getattr(record, "end_date", None)) or now
    return max((end - start).days // 365, 0)


def find_highest_education(education: Sequence[Any]) -> Optional[Any]:
    if not education:
        return None
    for record in education:
        if getattr(record, "is_highest", False):
            return record
    return education[0]


def get_best_test_score(test_scores: Sequence[Any]) -> Optional[Any]:
    """Record with the highest percentile; the earliest one wins ties."""
    if not test_scores:
        return None
    best = test_scores[0]
    for current in test_scores[1:]:
        if (current.percentile or 0) > (best.percentile or 0):
            best = current
    return best


def is_experience_relevant(record: Any, config: ScoringConfig) -> bool:
    title = _lower(getattr(record, "title", None))
    industry = _lower(getattr(record, "industry", None))
    return any(kw in title or kw in industry for kw in config.relevant_keywords)


def is_leadership_role(title: Optional[str], config: ScoringConfig) -> bool:
    title = _lower(title)
    return any(kw in title for kw in config.leadership_keywords)


# ── Sub-scores ───────────────────────────────────────────────────────────────

def calculate_academic_score(
    education: Sequence[Any],
    test_scores: Sequence[Any],
    config: ScoringConfig,
) -> int:
    """
    Degree points for the highest education record, plus GPA and test bonuses.

    Bonuses only apply when an education record exists.
    """
    highest = find_highest_education(education)
    if highest is None:
        return 0

    level = (highest.degree_level or "").strip().upper()
    score = config.degree_points.get(level, 0)

    if highest.gpa and highest.gpa_scale:
        gpa_pct = highest.gpa / highest.gpa_scale * 100
        score += _points_at_least(gpa_pct, config.gpa_bonus_tiers)

    best = get_best_test_score(test_scores)
    if best is not None:
        score += config.test_taken_bonus
        score += _points_at_least(best.percentile or 0, config.test_percentile_tiers)

    return min(score, config.academic_max)


def calculate_experience_score(
    experience: Sequence[Any],
    config: ScoringConfig,
    now: datetime,
) -> int:
    """
    Tenure tier + relevance + leadership per record.

    With several records the total is averaged so that a string of short
    stints does not outscore one long relevant role.
    """
    if not experience:
        return 0

    total = 0.0
    for record in experience:
        years = years_of_experience(record, now)
        total += _points_at_least(years, config.tenure_tiers)

        if is_experience_relevant(record, config):
            total += config.relevance_bonus
        if is_leadership_role(record.title, config):
            total += config.leadership_bonus

    if len(experience) > 1:
        total = total / len(experience)

    return min(_round_half_up(total), config.experience_max)


def calculate_program_fit_score(
    program_interest: Optional[str],
    education: Sequence[Any],
    experience: Sequence[Any],
    config: ScoringConfig,
) -> int:
    if not program_interest:
        return 0

    if any(_overlaps(program_interest, edu.field_of_study) for edu in education):
        score = config.program_direct_match
    elif any(
        _overlaps(program_interest, exp.title) or _overlaps(program_interest, exp.industry)
        for exp in experience
    ):
        score = config.program_related_field
    else:
        score = config.program_interest_only

    return min(score, config.program_fit_max)


def calculate_engagement_score(lead: Any, config: ScoringConfig, now: datetime) -> int:
    score = config.engagement_base  # every scored lead submitted a form

    if getattr(lead, "phone_e164", None) or getattr(lead, "phone", None):
        score += config.phone_bonus
    if getattr(lead, "company", None):
        score += config.company_bonus
    if getattr(lead, "website", None):
        score += config.website_bonus

    days = days_since(getattr(lead, "last_contacted_at", None), now)
    if days is not None:
        score += _points_within(days, config.recency_tiers)

    return min(score, config.engagement_max)


def calculate_geography_score(country_code: Optional[str], config: ScoringConfig) -> int:
    if not country_code:
        return 0
    code = country_code.strip().upper()
    if code in config.target_countries:
        score = config.target_country_points
    elif code in config.nearby_countries:
        score = config.nearby_country_points
    else:
        score = config.international_points
    return min(score, config.geography_max)


def calculate_data_quality_score(lead: Any, config: ScoringConfig) -> int:
    required = sum(1 for name in REQUIRED_PROFILE_FIELDS if getattr(lead, name, None))
    optional = sum(1 for name in OPTIONAL_PROFILE_FIELDS if getattr(lead, name, None))
    score = (
        required / len(REQUIRED_PROFILE_FIELDS) * config.data_quality_required_weight
        + optional / len(OPTIONAL_PROFILE_FIELDS) * config.data_quality_optional_weight
    )
    return min(_round_half_up(score), config.data_quality_max)


def determine_hotness(total_score: float, config: ScoringConfig) -> Hotness:
    if total_score >= config.hot_threshold:
        return Hotness.HOT
    if total_score >= config.warm_threshold:
        return Hotness.WARM
    return Hotness.COLD


# ── Entry point ──────────────────────────────────────────────────────────────

def score_lead_data(
    lead: Any,
    education: Sequence[Any],
    experience: Sequence[Any],
    test_scores: Sequence[Any],
    config: ScoringConfig,
    now: Optional[datetime] = None,
) -> tuple[ScoreBreakdown, int, Hotness]:
    """
    Compute the full breakdown, capped total and hotness for one lead.

    Args:
        lead:        Any object exposing the Lead profile attributes.
        education:   Education records, ordered (highest-flagged first).
        experience:  Experience records.
        test_scores: Test score records.
        config:      Scoring weights and thresholds.
        now:         Reference time for tenure/recency (defaults to utcnow).

    Returns:
        (breakdown, lead_score, hotness)
    """
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    breakdown = ScoreBreakdown(
        academic_score=calculate_academic_score(education, test_scores, config),
        experience_score=calculate_experience_score(experience, config, now),
        program_fit_score=calculate_program_fit_score(
            lead.program_interest, education, experience, config,
        ),
        engagement_score=calculate_engagement_score(lead, config, now),
        geography_score=calculate_geography_score(lead.country_code, config),
        data_quality_score=calculate_data_quality_score(lead, config),
    )
    total = min(breakdown.total, config.max_total)
    hotness = determine_hotness(total, config)
    logger.debug("Scored lead %s: %s → %d (%s)", getattr(lead, "id", "?"), breakdown, total, hotness.value)
    return breakdown, total, hotness

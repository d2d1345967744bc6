"""
tests/test_scoring.py — Unit tests for the pure scoring model.

No database: leads and records are plain namespaces carrying the same
attributes as the ORM rows.
"""

import pytest
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import patch

from pydantic import ValidationError

from app.config import settings
from app.db.models import Hotness
from app.services.scoring import (
    ScoringConfig,
    calculate_academic_score,
    calculate_data_quality_score,
    calculate_engagement_score,
    calculate_experience_score,
    calculate_geography_score,
    calculate_program_fit_score,
    determine_hotness,
    score_lead_data,
    years_of_experience,
)

NOW = datetime(2026, 1, 1, 12, 0, 0)
CONFIG = ScoringConfig()

LEAD_FIELDS = (
    "id", "first_name", "last_name", "email", "phone", "phone_e164", "company",
    "website", "country_code", "city", "state", "program_interest", "last_contacted_at",
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def make_lead(**kwargs) -> SimpleNamespace:
    values = {name: None for name in LEAD_FIELDS}
    values.update(kwargs)
    return SimpleNamespace(**values)


def edu(degree_level="BACHELORS", field_of_study=None, gpa=None, gpa_scale=None, is_highest=False):
    return SimpleNamespace(
        degree_level=degree_level, field_of_study=field_of_study,
        gpa=gpa, gpa_scale=gpa_scale, is_highest=is_highest,
    )


def exp(title, industry=None, start_date=None, end_date=None):
    return SimpleNamespace(title=title, industry=industry, start_date=start_date, end_date=end_date)


def gmat(percentile):
    return SimpleNamespace(test_type="GMAT", percentile=percentile)



# ── Academic ──────────────────────────────────────────────────────────────────

class TestAcademicScore:
    def test_no_education_scores_zero(self):
        assert calculate_academic_score([], [], CONFIG) == 0

    def test_test_scores_without_education_score_zero(self):
        assert calculate_academic_score([], [gmat(95)], CONFIG) == 0

    def test_degree_points(self):
        assert calculate_academic_score([edu("PhD")], [], CONFIG) == 30
        assert calculate_academic_score([edu("MASTERS")], [], CONFIG) == 25
        assert calculate_academic_score([edu("bachelors")], [], CONFIG) == 20
        assert calculate_academic_score([edu("DIPLOMA")], [], CONFIG) == 15
        assert calculate_academic_score([edu("HS")], [], CONFIG) == 10

    def test_unknown_degree_level_scores_zero(self):
        assert calculate_academic_score([edu("CERTIFICATE")], [], CONFIG) == 0

    def test_gpa_bonus_tiers(self):
        assert calculate_academic_score([edu("BACHELORS", gpa=3.7, gpa_scale=4.0)], [], CONFIG) == 25
        assert calculate_academic_score([edu("BACHELORS", gpa=3.3, gpa_scale=4.0)], [], CONFIG) == 23
        assert calculate_academic_score([edu("BACHELORS", gpa=2.9, gpa_scale=4.0)], [], CONFIG) == 21
        assert calculate_academic_score([edu("BACHELORS", gpa=2.0, gpa_scale=4.0)], [], CONFIG) == 20

    def test_test_score_bonus_uses_best_percentile(self):
        score = calculate_academic_score([edu("BACHELORS")], [gmat(60), gmat(85)], CONFIG)
        assert score == 20 + 5 + 2

    def test_test_score_bonus_without_percentile(self):
        assert calculate_academic_score([edu("DIPLOMA")], [gmat(None)], CONFIG) == 15 + 5

    def test_highest_flag_wins_over_order(self):
        records = [edu("BACHELORS"), edu("MASTERS", is_highest=True)]
        assert calculate_academic_score(records, [], CONFIG) == 25

    def test_falls_back_to_first_record(self):
        records = [edu("HS"), edu("PhD")]
        assert calculate_academic_score(records, [], CONFIG) == 10

    def test_capped_at_max(self):
        records = [edu("PhD", gpa=4.0, gpa_scale=4.0)]
        assert calculate_academic_score(records, [gmat(99)], CONFIG) == 30

    def test_bonus_weights_are_configurable(self):
        config = ScoringConfig(gpa_bonus_tiers=[(50, 4)], test_taken_bonus=0, test_percentile_tiers=[])
        records = [edu("BACHELORS", gpa=2.2, gpa_scale=4.0)]
        assert calculate_academic_score(records, [], config) == 24
        assert calculate_academic_score(records, [gmat(99)], config) == 24

    def test_monotonic_in_degree_level(self):
        levels = ["HS", "DIPLOMA", "BACHELORS", "MASTERS", "PhD"]
        scores = [
            calculate_academic_score([edu(level, gpa=3.0, gpa_scale=4.0)], [gmat(75)], CONFIG)
            for level in levels
        ]
        assert scores == sorted(scores)


# ── Experience ────────────────────────────────────────────────────────────────

class TestExperienceScore:
    def test_no_experience_scores_zero(self):
        assert calculate_experience_score([], CONFIG, NOW) == 0

    def test_senior_relevant_leader_is_capped(self):
        records = [exp("Marketing Manager", start_date=date(2019, 1, 1))]
        assert calculate_experience_score(records, CONFIG, NOW) == 25

    def test_junior_irrelevant_role(self):
        records = [exp("Intern", industry="Education", start_date=date(2025, 9, 1))]
        assert calculate_experience_score(records, CONFIG, NOW) == 3

    def test_missing_start_date_counts_as_under_a_year(self):
        assert calculate_experience_score([exp("Analyst")], CONFIG, NOW) == 3

    def test_multiple_records_are_averaged(self):
        records = [
            exp("Analyst", industry="Finance", start_date=date(2019, 1, 1)),                           # 10
            exp("Sales Associate", start_date=date(2024, 6, 1), end_date=date(2025, 12, 1)),           # 5 + 15
        ]
        assert calculate_experience_score(records, CONFIG, NOW) == 15

    def test_average_rounds_half_up(self):
        records = [
            exp("Intern"),                                                                             # 3
            exp("Analyst", industry="Finance", start_date=date(2019, 1, 1)),                           # 10
        ]
        assert calculate_experience_score(records, CONFIG, NOW) == 7

    def test_weights_are_configurable(self):
        config = ScoringConfig(tenure_tiers=[(0, 1)], relevance_bonus=0, leadership_bonus=2)
        records = [exp("Marketing Director", start_date=date(2015, 1, 1))]
        assert calculate_experience_score(records, config, NOW) == 3

    def test_custom_keywords(self):
        config = ScoringConfig(relevant_keywords=["nurse"], leadership_keywords=["charge"])
        records = [exp("Charge Nurse", start_date=date(2025, 9, 1))]
        assert calculate_experience_score(records, config, NOW) == 3 + 15 + 5
        assert calculate_experience_score([exp("Marketing Director")], config, NOW) == 3

    def test_years_of_experience_uses_end_date(self):
        record = exp("Analyst", start_date=date(2018, 1, 1), end_date=date(2021, 1, 1))
        assert years_of_experience(record, NOW) == 3


# ── Program fit ───────────────────────────────────────────────────────────────

class TestProgramFitScore:
    def test_no_program_interest_scores_zero(self):
        assert calculate_program_fit_score(None, [edu(field_of_study="Business")], [], CONFIG) == 0

    def test_education_overlap_is_direct_match(self):
        records = [edu(field_of_study="Business Administration")]
        assert calculate_program_fit_score("business", records, [], CONFIG) == 20

    def test_overlap_works_in_either_direction(self):
        records = [edu(field_of_study="Finance")]
        assert calculate_program_fit_score("MSc Finance", records, [], CONFIG) == 20

    def test_experience_overlap_is_related_field(self):
        records = [exp("Analyst", industry="Data Science")]
        assert calculate_program_fit_score("Data Science MS", [], records, CONFIG) == 15

    def test_interest_only(self):
        assert calculate_program_fit_score("MBA", [], [], CONFIG) == 10
        assert calculate_program_fit_score("MBA", [edu(field_of_study="Biology")], [], CONFIG) == 10

    def test_empty_fields_never_overlap(self):
        assert calculate_program_fit_score("MBA", [edu(field_of_study="")], [exp("Nurse", industry="")], CONFIG) == 10


# ── Engagement ────────────────────────────────────────────────────────────────

class TestEngagementScore:
    def test_base_score_for_form_submission(self):
        assert calculate_engagement_score(make_lead(), CONFIG, NOW) == 10

    def test_presence_bonuses(self):
        lead = make_lead(phone="+1 555 0100", company="Acme")
        assert calculate_engagement_score(lead, CONFIG, NOW) == 14

    def test_e164_phone_counts(self):
        assert calculate_engagement_score(make_lead(phone_e164="+15550100"), CONFIG, NOW) == 12

    def test_recency_tiers(self):
        assert calculate_engagement_score(make_lead(last_contacted_at=NOW - timedelta(days=3)), CONFIG, NOW) == 13
        assert calculate_engagement_score(make_lead(last_contacted_at=NOW - timedelta(days=20)), CONFIG, NOW) == 12
        assert calculate_engagement_score(make_lead(last_contacted_at=NOW - timedelta(days=60)), CONFIG, NOW) == 11
        assert calculate_engagement_score(make_lead(last_contacted_at=NOW - timedelta(days=120)), CONFIG, NOW) == 10

    def test_weights_are_configurable(self):
        config = ScoringConfig(engagement_base=0, website_bonus=5, recency_tiers=[(14, 4)])
        assert calculate_engagement_score(make_lead(website="acme.com"), config, NOW) == 5
        lead = make_lead(website="acme.com", last_contacted_at=NOW - timedelta(days=10))
        assert calculate_engagement_score(lead, config, NOW) == 9
        lead = make_lead(website="acme.com", last_contacted_at=NOW - timedelta(days=20))
        assert calculate_engagement_score(lead, config, NOW) == 5

    def test_capped_at_max(self):
        lead = make_lead(phone="1", company="Acme", website="acme.com", last_contacted_at=NOW)
        assert calculate_engagement_score(lead, CONFIG, NOW) == 15


# ── Geography ─────────────────────────────────────────────────────────────────

class TestGeographyScore:
    def test_target_country(self):
        assert calculate_geography_score("US", CONFIG) == 15
        assert calculate_geography_score("gb", CONFIG) == 15

    def test_nearby_country(self):
        assert calculate_geography_score("MX", CONFIG) == 10

    def test_international(self):
        assert calculate_geography_score("IN", CONFIG) == 5

    def test_missing_country(self):
        assert calculate_geography_score(None, CONFIG) == 0
        assert calculate_geography_score("", CONFIG) == 0

    def test_country_lists_are_configurable(self):
        config = ScoringConfig(target_countries=["IN"], nearby_countries=["US"])
        assert calculate_geography_score("IN", config) == 15
        assert calculate_geography_score("US", config) == 10


# ── Data quality ──────────────────────────────────────────────────────────────

class TestDataQualityScore:
    def test_complete_profile(self):
        lead = make_lead(
            first_name="Ana", last_name="Lima", email="ana@example.com", phone="1",
            company="Acme", website="acme.com", country_code="US", city="Austin", state="TX",
        )
        assert calculate_data_quality_score(lead, CONFIG) == 5

    def test_empty_profile(self):
        assert calculate_data_quality_score(make_lead(), CONFIG) == 0

    def test_required_only(self):
        lead = make_lead(first_name="Ana", last_name="Lima", email="ana@example.com", phone="1")
        assert calculate_data_quality_score(lead, CONFIG) == 3

    def test_weights_are_configurable(self):
        config = ScoringConfig(data_quality_required_weight=5, data_quality_optional_weight=0)
        lead = make_lead(first_name="Ana", last_name="Lima", email="ana@example.com", phone="1")
        assert calculate_data_quality_score(lead, config) == 5
        assert calculate_data_quality_score(make_lead(company="Acme", city="Austin"), config) == 0

    def test_proportional_and_rounded(self):
        assert calculate_data_quality_score(make_lead(first_name="Ana", last_name="Lima"), CONFIG) == 2
        assert calculate_data_quality_score(make_lead(first_name="Ana", city="Austin"), CONFIG) == 1
        lead = make_lead(
            first_name="Ana", last_name="Lima", email="ana@example.com",
            company="Acme", website="acme.com", country_code="US", city="Austin", state="TX",
        )
        assert calculate_data_quality_score(lead, CONFIG) == 4


# ── Hotness & totals ──────────────────────────────────────────────────────────

class TestHotness:
    def test_thresholds(self):
        assert determine_hotness(70, CONFIG) == Hotness.HOT
        assert determine_hotness(69, CONFIG) == Hotness.WARM
        assert determine_hotness(40, CONFIG) == Hotness.WARM
        assert determine_hotness(39, CONFIG) == Hotness.COLD
        assert determine_hotness(0, CONFIG) == Hotness.COLD

    def test_thresholds_are_configurable(self):
        config = ScoringConfig(hot_threshold=50, warm_threshold=20)
        assert determine_hotness(55, config) == Hotness.HOT
        assert determine_hotness(25, config) == Hotness.WARM

    def test_warm_above_hot_is_rejected(self):
        with pytest.raises(ValidationError):
            ScoringConfig(hot_threshold=30, warm_threshold=60)


class TestConfigFromSettings:
    def test_keyword_lists_come_from_settings(self):
        with patch.object(settings, "relevant_keywords", ["Nurse", "Clinical"]):
            config = ScoringConfig.from_settings()
        assert config.relevant_keywords == ["nurse", "clinical"]
        assert config.leadership_keywords == ScoringConfig().leadership_keywords

    def test_unset_keywords_keep_defaults(self):
        config = ScoringConfig.from_settings()
        assert config.relevant_keywords == ScoringConfig().relevant_keywords
        assert config.hot_threshold == settings.hot_threshold


class TestScoreLeadData:
    def test_lead_with_no_records(self):
        lead = make_lead(
            first_name="Ana", last_name="Lima", email="ana@example.com",
            country_code="US", program_interest="MBA",
        )
        breakdown, total, hotness = score_lead_data(lead, [], [], [], CONFIG, now=NOW)

        assert breakdown.academic_score == 0
        assert breakdown.experience_score == 0
        assert breakdown.program_fit_score == 10
        assert breakdown.engagement_score == 10
        assert breakdown.geography_score == 15
        assert breakdown.data_quality_score == 3
        assert total == 38
        assert hotness == Hotness.COLD

    def test_total_is_sum_of_sub_scores(self):
        lead = make_lead(
            first_name="Ana", last_name="Lima", email="ana@example.com", phone="1",
            company="Acme", country_code="CA", program_interest="Marketing",
            last_contacted_at=NOW - timedelta(days=2),
        )
        education = [edu("MASTERS", field_of_study="Marketing", gpa=3.8, gpa_scale=4.0, is_highest=True)]
        experience = [exp("Marketing Director", start_date=date(2015, 3, 1))]
        breakdown, total, hotness = score_lead_data(lead, education, experience, [gmat(92)], CONFIG, now=NOW)

        assert total == sum(breakdown.as_dict().values())
        assert breakdown.academic_score == 30
        assert breakdown.experience_score == 25
        assert breakdown.program_fit_score == 20
        assert breakdown.engagement_score == 15
        assert breakdown.geography_score == 15
        assert hotness == Hotness.HOT

    def test_is_deterministic(self):
        lead = make_lead(country_code="MX", program_interest="MBA", phone="1")
        first = score_lead_data(lead, [edu("HS")], [], [], CONFIG, now=NOW)
        second = score_lead_data(lead, [edu("HS")], [], [], CONFIG, now=NOW)
        assert first == second

"""
Test suite for demographic fuzzy matching.

Run tests:
    pytest tests/services/test_matcher.py -v

Run with coverage:
    pytest tests/services/test_matcher.py --cov=identity_auth.core.services.matcher --cov-report=term-missing -v
"""

import pytest

from identity_auth.core.schemas.auth import DemographicRecord
from identity_auth.core.services.matcher import (
    WEIGHTS,
    MatchScore,
    levenshtein_distance,
    score,
    similarity,
)


class TestLevenshteinDistance:

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ("kitten", "sitting", 3),
            ("flaw", "lawn", 2),
            ("", "abc", 3),
            ("abc", "", 3),
            ("", "", 0),
            ("same", "same", 0),
        ],
    )
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_distance_is_symmetric(self):
        assert levenshtein_distance("jane doe", "jan dough") == levenshtein_distance(
            "jan dough", "jane doe"
        )

    def test_distance_counts_code_points(self):
        assert levenshtein_distance("zoë", "zoe") == 1


class TestSimilarity:

    def test_identical_strings(self):
        assert similarity("jane", "jane") == 100.0

    def test_case_insensitive(self):
        assert similarity("JANE DOE", "jane doe") == 100.0

    def test_one_substitution(self):
        assert similarity("abcd", "abcf") == 75.0

    def test_completely_different_is_zero(self):
        assert similarity("ab", "cd") == 0.0

    @pytest.mark.parametrize("a, b", [(None, "x"), ("x", None), ("", "x"), (None, None)])
    def test_missing_side_is_zero(self, a, b):
        assert similarity(a, b) == 0.0


class TestScore:

    @pytest.fixture
    def on_file(self):
        return DemographicRecord(
            first_name="Jane",
            last_name="Doe",
            date_of_birth="1990-01-01",
            phone="+254712345678",
            email="jane.doe@example.com",
        )

    def test_weights_sum_to_one(self):
        assert sum(WEIGHTS.values()) == pytest.approx(1.0)

    def test_identical_record_scores_100(self, on_file):
        result = score(on_file, on_file.model_copy())

        assert result.total == pytest.approx(100.0)
        assert result.rounded == 100.0
        assert result.authenticated is True

    def test_name_and_dob_only_scores_70_and_fails(self, on_file):
        claimed = DemographicRecord(
            first_name="Jane", last_name="Doe", date_of_birth="1990-01-01"
        )

        result = score(on_file, claimed)

        assert result.name == 100.0
        assert result.date_of_birth == 100.0
        assert result.phone == 0.0
        assert result.email == 0.0
        assert result.total == pytest.approx(70.0)
        assert result.authenticated is False

    def test_name_dob_and_phone_passes(self, on_file):
        claimed = DemographicRecord(
            first_name="jane",
            last_name="DOE",
            date_of_birth="1990-01-01",
            phone="+254712345678",
        )

        result = score(on_file, claimed)

        assert result.total == pytest.approx(85.0)
        assert result.authenticated is True

    def test_dob_mismatch_contributes_zero(self, on_file):
        claimed = on_file.model_copy(update={"date_of_birth": "1990-01-02"})

        result = score(on_file, claimed)

        assert result.date_of_birth == 0.0
        assert result.total == pytest.approx(70.0)

    def test_missing_on_file_contact_contributes_zero(self, on_file):
        stored = on_file.model_copy(update={"phone": None, "email": None})

        result = score(stored, on_file)

        assert result.total == pytest.approx(70.0)

    def test_date_of_birth_accepts_date_objects(self, on_file):
        from datetime import date

        claimed = DemographicRecord(
            **{**on_file.model_dump(), "date_of_birth": date(1990, 1, 1)}
        )

        assert score(on_file, claimed).date_of_birth == 100.0

    def test_date_of_birth_accepts_datetime_objects(self, on_file):
        from datetime import datetime

        on_file_dt = DemographicRecord(
            **{**on_file.model_dump(), "date_of_birth": datetime(1990, 1, 1, 0, 0)}
        )

        assert on_file_dt.date_of_birth == "1990-01-01"
        assert score(on_file_dt, on_file).date_of_birth == 100.0

    def test_scoring_is_deterministic(self, on_file):
        claimed = DemographicRecord(first_name="Jan", last_name="Do", date_of_birth="1990-01-01")

        assert score(on_file, claimed) == score(on_file, claimed)

    def test_custom_threshold(self, on_file):
        claimed = DemographicRecord(
            first_name="Jane", last_name="Doe", date_of_birth="1990-01-01"
        )

        assert score(on_file, claimed, threshold=60.0).authenticated is True

    def test_total_equal_to_threshold_authenticates(self):
        result = MatchScore(
            name=100.0,
            date_of_birth=100.0,
            phone=0.0,
            email=0.0,
            total=75.0,
            threshold=75.0,
        )

        assert result.authenticated is True

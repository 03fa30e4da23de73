"""Unit tests for round classification."""
from processor.round_classifier import (
    classify_round,
    find_max_regular_round,
    is_finals_stage,
)


class TestClassifyRound:
    """Test cases for classify_round."""

    def test_numbered_round(self):
        """Test a numbered regular round."""
        assert classify_round("Men's Hockey - Round 5 - Club A v Club B") == 5

    def test_abbreviated_round(self):
        """Test the Rd abbreviation."""
        assert classify_round("Women's Pennant B - Rd 12 - Club A v Club B") == 12

    def test_round_is_case_insensitive(self):
        """Test lowercase round labels."""
        assert classify_round("midweek round 7") == 7

    def test_grand_final_has_no_round(self):
        """Test that finals never get a round number."""
        assert classify_round("Men's Pennant A - Grand Final - Club A v Club B") is None

    def test_semi_final_has_no_round(self):
        """Test semi finals, matched case-insensitively."""
        assert classify_round("U16 Girls - SEMI FINAL 1") is None

    def test_age_group_digits_not_a_round(self):
        """Test that age-group digits are not mistaken for a round."""
        assert classify_round("Under 12 Boys - Club A v Club B") is None

    def test_bare_r_prefix_not_a_round(self):
        """Test that a bare R token is not treated as a round."""
        assert classify_round("U12 Boys R1 Pool - Club A v Club B") is None

    def test_round_inside_word_not_matched(self):
        """Test word-boundary matching."""
        assert classify_round("Playground 4 - Club A v Club B") is None

    def test_max_round_does_not_change_answer(self):
        """Test that the document maximum does not alter the result."""
        title = "Men's Hockey - Round 3 - Club A v Club B"
        assert classify_round(title, 18) == classify_round(title, 0) == 3

    def test_empty_title(self):
        """Test an empty title."""
        assert classify_round("") is None


class TestFinalsAndMaximum:
    """Test cases for finals detection and the document pre-pass."""

    def test_is_finals_stage(self):
        """Test each finals stage name."""
        for title in (
            "Elimination Final", "Semi Final", "Preliminary Final", "Grand Final"
        ):
            assert is_finals_stage(f"PL - {title} - A v B")
        assert not is_finals_stage("PL - Round 2 - A v B")

    def test_find_max_regular_round(self):
        """Test the highest round across titles."""
        titles = [
            "PL - Round 3 - A v B",
            "PL - Round 11 - A v B",
            "PL - Grand Final - A v B",
            "PL - Rd 9 - A v B",
        ]
        assert find_max_regular_round(titles) == 11

    def test_find_max_regular_round_none(self):
        """Test zero when no numbered round is present."""
        assert find_max_regular_round(["Grand Final", "Under 14 Girls"]) == 0

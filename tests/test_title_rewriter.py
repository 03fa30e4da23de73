"""Unit tests for TitleRewriter."""
import logging
import re

import pytest

from processor.models import (
    ClubRule,
    CompetitionTemplate,
    RoundPattern,
    RuleTables,
)
from processor.title_rewriter import (
    TitleRewriter,
    detect_gender,
    rewrite_title,
)


@pytest.fixture
def rules():
    """Rule tables resembling the production mapping files."""
    return RuleTables(
        clubs=(
            ClubRule("Riverside Hockey Club", "RHC"),
            ClubRule("Example Hockey Club", "EHC"),
        ),
        competitions=(
            CompetitionTemplate("{{GENDER}} Pennant A {{YEAR}}", "{{GENDER}} PenA"),
            CompetitionTemplate("{{GENDER}} Premier League - {{YEAR}}", "PL", 70),
            CompetitionTemplate("Under 12 Boys Shield", "U12B Shield"),
        ),
        rounds=(
            RoundPattern(r"Round (\d+)", r"R\1"),
        ),
    )


@pytest.fixture
def rewriter(rules):
    return TitleRewriter(rules, year=2025)


class TestClubNames:
    """Test cases for club name substitution."""

    def test_suffix_preserved_with_space(self, rewriter):
        """Test that team-number suffixes stay attached with a space."""
        result = rewriter.replace_club_names(
            "Riverside Hockey Club 2 v Example Hockey Club 1"
        )
        assert result == "RHC 2 v EHC 1"
        assert "RHC2" not in result

    def test_club_without_suffix(self, rewriter):
        """Test a club name at the end of the title."""
        assert rewriter.replace_club_names("Bye v Riverside Hockey Club") == "Bye v RHC"

    def test_every_occurrence_replaced(self, rewriter):
        """Test that repeated club names are all replaced."""
        result = rewriter.replace_club_names(
            "Riverside Hockey Club 1 v Riverside Hockey Club 2"
        )
        assert result == "RHC 1 v RHC 2"

    def test_full_name_matched_literally(self):
        """Test that regex characters in club names are literal."""
        rewriter = TitleRewriter(
            RuleTables(clubs=(ClubRule("St. Kilda (HC)", "SKHC"),)), year=2025
        )
        assert rewriter.replace_club_names("St. Kilda (HC) 3 v X") == "SKHC 3 v X"
        assert rewriter.replace_club_names("StX Kilda (HC) 3") == "StX Kilda (HC) 3"

    def test_unmatched_title_warns_and_passes_through(self, rewriter, caplog):
        """Test that no match is a warning, not an error."""
        with caplog.at_level(logging.WARNING):
            result = rewriter.replace_club_names("Unknown Club v Other Club")

        assert result == "Unknown Club v Other Club"
        assert any("No club name mappings" in r.message for r in caplog.records)


class TestCompetitionNames:
    """Test cases for competition template substitution."""

    def test_gender_expansion_men(self, rewriter):
        """Test the Men's expansion of a {{GENDER}} template."""
        assert rewriter.rewrite("Men's Pennant A 2025") == "Men PenA"

    def test_gender_expansion_women(self, rewriter):
        """Test the Women's expansion of a {{GENDER}} template."""
        assert rewriter.rewrite("Women's Pennant A 2025") == "Women PenA"

    def test_year_substituted(self, rules):
        """Test that {{YEAR}} is the configured year, not any year."""
        rewriter = TitleRewriter(rules, year=2026)
        assert rewriter.replace_competition_names("Men's Pennant A 2025") == (
            "Men's Pennant A 2025"
        )
        assert rewriter.replace_competition_names("Men's Pennant A 2026") == "Men PenA"

    def test_year_defaults_to_current_year(self, rules):
        """Test the default year."""
        from datetime import date
        assert TitleRewriter(rules).year == str(date.today().year)

    def test_all_year_tokens_substituted(self):
        """Test that every {{YEAR}} occurrence is expanded."""
        rewriter = TitleRewriter(
            RuleTables(competitions=(
                CompetitionTemplate("Cup {{YEAR}}/{{YEAR}}", "Cup"),
            )),
            year=2025
        )
        assert rewriter.replace_competition_names("Cup 2025/2025 Final") == "Cup Final"

    def test_plain_template(self, rewriter):
        """Test a template without tokens."""
        assert rewriter.replace_competition_names(
            "Under 12 Boys Shield - Round 1"
        ) == "U12B Shield - Round 1"

    def test_invalid_pattern_is_fatal(self):
        """Test that a malformed regex fails at construction."""
        with pytest.raises(re.error):
            TitleRewriter(
                RuleTables(rounds=(RoundPattern("Round (", "R"),)), year=2025
            )


class TestGenderPrefix:
    """Test cases for gender-prefix inference."""

    def test_detect_gender(self):
        """Test gender markers in original titles."""
        assert detect_gender("Women's Pennant A") == "Women"
        assert detect_gender("U14 Girls Shield") == "Women"
        assert detect_gender("Men's Premier League") == "Men"
        assert detect_gender("Under 12 Boys") == "Men"
        assert detect_gender("Mixed Indoor 2") is None

    def test_short_code_gets_prefix(self, rewriter):
        """Test that an ambiguous league code is prefixed."""
        assert rewriter.add_gender_prefix(
            "PL - R3 - RHC 2 v EHC 1", "Men's Premier League - 2025 - Round 3"
        ) == "Men PL - R3 - RHC 2 v EHC 1"

    def test_short_code_without_gender_unchanged(self, rewriter):
        """Test that no prefix is added without a detected gender."""
        assert rewriter.add_gender_prefix("PL - R3", "Premier League") == "PL - R3"

    def test_indoor_label_normalized(self, rewriter):
        """Test that Indoor N becomes Indoor League N with the gender."""
        assert rewriter.add_gender_prefix(
            "Indoor  2 - R1 - RHC v EHC", "Girls Indoor 2 - Round 1"
        ) == "Women Indoor League 2 - R1 - RHC v EHC"

    def test_indoor_label_without_gender(self, rewriter):
        """Test Indoor normalization without a gender."""
        assert rewriter.add_gender_prefix("Indoor 3", "Mixed Indoor 3") == "Indoor League 3"

    def test_existing_gender_not_duplicated(self, rewriter):
        """Test that a title already led by a gender is left alone."""
        assert rewriter.add_gender_prefix("Men PenA - R2", "Men's Pennant A") == "Men PenA - R2"

    def test_long_segment_not_prefixed(self, rewriter):
        """Test that descriptive competition names are not prefixed."""
        assert rewriter.add_gender_prefix(
            "U12B Shield - R1", "Under 12 Boys Shield - Round 1"
        ) == "U12B Shield - R1"

    @pytest.mark.parametrize("title,expected", [
        ("Under 12 Boys - 2026 - Round 1 - A v B", "U12B - R1 - A v B"),
        ("Under 14 Girls - 2026 - Round 1 - A v B", "U14G - R1 - A v B"),
    ])
    def test_age_group_code_not_prefixed(self, title, expected):
        """Test that age-group codes carrying a gender letter are left alone."""
        rewriter = TitleRewriter(
            RuleTables(
                competitions=(
                    CompetitionTemplate("Under 12 Boys - {{YEAR}}", "U12B"),
                    CompetitionTemplate("Under 14 Girls - {{YEAR}}", "U14G"),
                ),
                rounds=(RoundPattern(r"Round (\d+)", r"R\1"),),
            ),
            year=2026
        )
        assert rewriter.rewrite(title) == expected

    def test_ungendered_age_group_code_prefixed(self, rewriter):
        """Test that an age-group code without a gender letter still gets one."""
        assert rewriter.add_gender_prefix(
            "U16 - R2 - A v B", "Under 16 Girls - Round 2"
        ) == "Women U16 - R2 - A v B"


class TestRewrite:
    """Test cases for the full rewrite pipeline."""

    def test_full_pipeline(self, rewriter):
        """Test every stage in order."""
        result = rewriter.rewrite(
            "Men's Premier League - 2025 - Round 3 - "
            "Riverside Hockey Club 2 v Example Hockey Club 1"
        )
        assert result == "Men PL - R3 - RHC 2 v EHC 1"

    def test_whitespace_normalized(self, rewriter):
        """Test that whitespace runs collapse and ends are trimmed."""
        result = rewriter.rewrite(
            "  Women's Pennant A 2025 -\tRound 4 -  Riverside Hockey Club  "
        )
        assert result == "Women PenA - R4 - RHC"

    @pytest.mark.parametrize("title", [
        "Men's Premier League - 2025 - Round 3 - "
        "Riverside Hockey Club 2 v Example Hockey Club 1",
        "Women's Pennant A 2025 - Round 10 - Example Hockey Club v Riverside Hockey Club 3",
        "Under 12 Boys Shield - Round 1 - Riverside Hockey Club 4 v Example Hockey Club 2",
        "Men's Premier League - 2025 - Grand Final - Riverside Hockey Club v Example Hockey Club",
    ])
    def test_rewrite_is_idempotent(self, rewriter, title):
        """Test that rewriting an already-rewritten title changes nothing."""
        once = rewriter.rewrite(title)
        assert rewriter.rewrite(once) == once

    def test_rewrite_title_helper(self, rules):
        """Test the module-level helper."""
        assert rewrite_title("Men's Pennant A 2025", rules, year=2025) == "Men PenA"

    def test_empty_title(self, rewriter):
        """Test that an empty title stays empty."""
        assert rewriter.rewrite("") == ""

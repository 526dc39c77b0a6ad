"""Level curve tests. Thresholds must match the web client's level bar."""

import pytest

from studyhub.gamification.level_thresholds import (
    compute_level,
    level_from_xp,
    level_table,
    level_title,
    xp_for_level,
)


class TestXpForLevel:
    def test_level_one_threshold(self):
        assert xp_for_level(1) == 100

    def test_exponential_growth(self):
        assert xp_for_level(2) == 150
        assert xp_for_level(3) == 225
        assert xp_for_level(4) == 337  # floor(337.5)
        assert xp_for_level(10) == 3844

    def test_non_positive_levels(self):
        assert xp_for_level(0) == 0
        assert xp_for_level(-3) == 0


class TestLevelFromXp:
    @pytest.mark.parametrize(
        "xp,expected_level",
        [
            (0, 1),
            (149, 1),
            (150, 2),
            (224, 2),
            (225, 3),
            (3843, 9),
            (3844, 10),
        ],
    )
    def test_boundaries(self, xp, expected_level):
        assert level_from_xp(xp) == expected_level

    def test_monotonic_in_xp(self):
        levels = [level_from_xp(xp) for xp in range(0, 20_000, 37)]
        assert levels == sorted(levels)


class TestLevelTitle:
    @pytest.mark.parametrize(
        "level,title",
        [
            (1, "Beginner"),
            (9, "Beginner"),
            (10, "Intermediate"),
            (20, "Advanced"),
            (30, "Expert"),
            (40, "Master"),
            (50, "Grandmaster"),
            (75, "Grandmaster"),
        ],
    )
    def test_tiers(self, level, title):
        assert level_title(level) == title


class TestComputeLevel:
    def test_zero_xp(self):
        result = compute_level(0)
        assert result["level"] == 1
        assert result["title"] == "Beginner"
        assert result["xp_into_level"] == 0
        assert result["xp_for_level"] == 150
        assert result["progress_percent"] == 0.0

    def test_xp_into_level(self):
        result = compute_level(200)  # 50 XP into level 2
        assert result["level"] == 2
        assert result["xp_into_level"] == 50
        assert result["xp_for_level"] == 75  # 225 - 150
        assert result["xp_to_next"] == 25
        assert result["progress_percent"] == 66.67

    def test_exactly_at_boundary(self):
        result = compute_level(150)
        assert result["level"] == 2
        assert result["xp_into_level"] == 0

    def test_next_level_title(self):
        result = compute_level(3843)
        assert result["level"] == 9
        assert result["next_level"] == 10
        assert result["next_title"] == "Intermediate"


class TestLevelTable:
    def test_fifty_rows(self):
        table = level_table()
        assert len(table) == 50
        assert table[0] == {"level": 1, "title": "Beginner", "xp_required": 0}
        assert table[1]["xp_required"] == 150

    def test_rows_agree_with_level_from_xp(self):
        for row in level_table(20):
            assert level_from_xp(row["xp_required"]) == row["level"]

"""Tests for message formatting utilities."""

from datetime import datetime, timezone

from models import RoundState, RoundStatus, ScoreboardData, UserStats
from utils.formatting import (
    CLOSED_SUFFIX,
    DISCORD_MAX_LENGTH,
    EMBED_DESCRIPTION_LIMIT,
    format_closed_question_message,
    format_help,
    format_instruction,
    format_player_stats,
    format_question_message,
    format_scoreboard_table,
    format_scoreboard_text,
    parse_question_text,
    parse_solver_id,
    truncate,
)


def make_state(status=RoundStatus.OPEN) -> RoundState:
    return RoundState(op="1", status=status, thread_id="2", channel_id="3")


class TestTruncate:
    def test_short_text(self):
        assert truncate("hello", 10) == "hello"

    def test_exact_limit(self):
        assert truncate("hello", 5) == "hello"

    def test_long_text(self):
        assert truncate("hello world", 6) == "hello…"


class TestQuestionMessage:
    def test_format(self):
        assert format_question_message("42", "Riddle?") == "🧠 <@42> asks:\n**_Riddle?_**"

    def test_parse_back(self):
        assert parse_question_text(format_question_message("42", "Riddle?")) == "Riddle?"

    def test_parse_closed(self):
        assert parse_question_text(format_closed_question_message("42", "Riddle?")) == "Riddle?"

    def test_closed_suffix(self):
        assert format_closed_question_message("42", "Riddle?").endswith(CLOSED_SUFFIX)

    def test_parse_plain_text(self):
        assert parse_question_text("Just a question") == "Just a question"


class TestInstruction:
    def test_open_has_instructions(self):
        text = format_instruction(make_state(), "✅")

        assert text.startswith("Round **OPEN** - OP: <@1>")
        assert "reacts with ✅" in text

    def test_solved_with_solver(self):
        text = format_instruction(make_state(RoundStatus.SOLVED), "✅", solver_id="9")

        assert text == "Round **SOLVED** - OP: <@1> - Solved by: <@9>"
        assert parse_solver_id(text) == "9"

    def test_closed(self):
        assert format_instruction(make_state(RoundStatus.CLOSED), "✅") == "Round **CLOSED** - OP: <@1>"

    def test_parse_solver_missing(self):
        assert parse_solver_id("Round **OPEN** - OP: <@1>") is None


class TestScoreboardTable:
    def test_empty(self):
        assert format_scoreboard_table(ScoreboardData(), {}) == "No scores yet."

    def test_years_newest_first(self):
        data = ScoreboardData(scores_by_year={"2023": {"1": 1}, "2024": {"1": 2}})

        result = format_scoreboard_table(data, {"1": "alice"})

        assert result.index("**2024**") < result.index("**2023**")

    def test_rows_sorted_by_points(self):
        data = ScoreboardData(
            scores_by_year={"2024": {"1": 1, "2": 5}},
            questions_by_year={"2024": {"3": 2}},
        )

        result = format_scoreboard_table(data, {"1": "alice", "2": "bob", "3": "carol"})

        assert result.index("bob") < result.index("alice") < result.index("carol")
        assert "Points" in result
        assert "Asked" in result

    def test_long_names_truncated(self):
        data = ScoreboardData(scores_by_year={"2024": {"1": 1}})

        result = format_scoreboard_table(data, {"1": "a" * 40}, name_width=10)

        assert "a" * 9 + "…" in result
        assert "a" * 10 not in result

    def test_last_updated_footer(self):
        data = ScoreboardData(
            scores_by_year={"2024": {"1": 1}},
            last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        result = format_scoreboard_table(data, {})

        assert result.endswith("Last updated <t:1704067200:R>")

    def test_drops_oldest_years_to_fit(self):
        users = {str(i): 1 for i in range(40)}
        data = ScoreboardData(scores_by_year={str(year): dict(users) for year in range(2000, 2025)})
        names = {str(i): f"player-{i:02d}-long-name" for i in range(40)}

        result = format_scoreboard_table(data, names)

        assert len(result) <= EMBED_DESCRIPTION_LIMIT
        assert "**2024**" in result
        assert "**2000**" not in result
        assert "_Older years omitted._" in result

    def test_single_large_year_keeps_top_rows(self):
        data = ScoreboardData(scores_by_year={"2024": {str(i): 200 - i for i in range(150)}})

        result = format_scoreboard_table(data, {str(i): f"player-{i:03d}" for i in range(150)})

        assert len(result) <= EMBED_DESCRIPTION_LIMIT
        assert result.count("```") == 2
        assert "player-000" in result
        assert "player-149" not in result
        assert "more\n```" in result

    def test_single_large_year_keeps_footer(self):
        data = ScoreboardData(
            scores_by_year={"2024": {str(i): 1 for i in range(250)}},
            last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        result = format_scoreboard_table(data, {})

        assert len(result) <= EMBED_DESCRIPTION_LIMIT
        assert result.count("```") == 2
        assert result.endswith("```\nLast updated <t:1704067200:R>")


class TestScoreboardText:
    def test_empty(self):
        assert "No scores yet." in format_scoreboard_text(ScoreboardData(), {})

    def test_lines(self):
        data = ScoreboardData(scores_by_year={"2024": {"1": 1}}, questions_by_year={"2024": {"1": 2}})

        result = format_scoreboard_text(data, {"1": "alice"})

        assert "1. alice - 1 point, 2 questions asked" in result
        assert len(result) <= DISCORD_MAX_LENGTH


class TestPlayerStats:
    def test_totals_and_years(self):
        stats = UserStats(user_id="1", points_by_year={"2023": 2, "2024": 1}, questions_by_year={"2024": 3})

        result = format_player_stats(stats, "alice")

        assert "Stats for alice" in result
        assert "**Total points:** 3" in result
        assert "**Questions asked:** 3" in result
        assert result.index("**2024:**") < result.index("**2023:**")
        assert "**2023:** 2 points, 0 questions asked" in result


class TestHelp:
    def test_mentions_solve_emoji(self):
        assert "reacts with 🎯" in format_help(is_admin=False, solve_emoji="🎯")

    def test_admin_section(self):
        assert "Admin Commands" in format_help(is_admin=True, solve_emoji="✅")
        assert "Admin Commands" not in format_help(is_admin=False, solve_emoji="✅")

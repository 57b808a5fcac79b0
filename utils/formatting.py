"""Message formatting utilities for rounds, prompts and the scoreboard."""

import re
from datetime import datetime
from typing import Optional

from models import RoundState, RoundStatus, ScoreboardData, UserStats
from utils.snowflake import format_relative_time

# Discord limits
DISCORD_MAX_LENGTH = 2000
EMBED_DESCRIPTION_LIMIT = 4096

SCOREBOARD_TITLE = "🏆 Scoreboard"
SCOREBOARD_DATA_HEADER = "Scoreboard Data"
INSTRUCTION_PREFIX = "Round"
CLOSED_SUFFIX = "\n\n_🔒 Round closed by OP_"

NUDGE_TEXT = "Heads-up: this one's already been solved - feel free to keep guessing for fun though!"

SOLVER_PATTERN = re.compile(r"Solved by: <@!?(\w+)>")
QUESTION_PREFIX_PATTERN = re.compile(r"^\s*(?:🧠|:brain:) <@!?\w+> asks:\n")


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


def truncate(text: str, limit: int) -> str:
    """Cut text to `limit` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def format_question_message(op_id: str, question: str) -> str:
    return f"🧠 {mention(op_id)} asks:\n**_{question}_**"


def format_closed_question_message(op_id: str, question: str) -> str:
    return format_question_message(op_id, question) + CLOSED_SUFFIX


def parse_question_text(root_text: str) -> str:
    """Recover the question from a question message posted by older versions."""
    text = root_text.strip()
    if text.endswith(CLOSED_SUFFIX.strip()):
        text = text[: -len(CLOSED_SUFFIX.strip())].strip()
    stripped = QUESTION_PREFIX_PATTERN.sub("", text, count=1).strip()
    stripped = stripped.strip("*_").strip()
    return stripped or text or "(unknown question)"


def format_instruction(state: RoundState, solve_emoji: str, solver_id: Optional[str] = None) -> str:
    """Format the human-readable status message kept in each round's thread."""
    header = f"{INSTRUCTION_PREFIX} **{state.status.value}** - OP: {mention(state.op)}"

    if state.status is RoundStatus.SOLVED:
        return header + (f" - Solved by: {mention(solver_id)}" if solver_id else "")
    if state.status is RoundStatus.CLOSED:
        return header

    return (
        f"{header}\n"
        "Reply in this thread with guesses. Or privately using the button above.\n"
        f"OP reacts with {solve_emoji} on the correct guess to solve (you'll be asked to confirm)."
    )


def parse_solver_id(instruction_text: str) -> Optional[str]:
    match = SOLVER_PATTERN.search(instruction_text)
    return match.group(1) if match else None


def format_solve_prompt(candidate_id: str, question: str, answer: str, private: bool = False) -> str:
    """Format the DM asking the OP to confirm a solve."""
    kind = "private answer" if private else "answer"
    return (
        f"Has {mention(candidate_id)} solved your question:\n\n"
        f'> **"{question}"**\n\n'
        f"with their {kind}:\n\n"
        f'> _"{answer}"_'
    )


def format_dm_status(text: str, confirmed: bool) -> str:
    emoji = "✅" if confirmed else "❌"
    return f"{emoji} {text}"


def format_solved_notice(winner_id: str) -> str:
    return f"✅ Solved. Point goes to {mention(winner_id)}"


def format_congratulations(question: str, answer: str, op_id: str, year: str) -> str:
    return (
        f"🎉 {mention(op_id)} accepted your answer!\n\n"
        f'> **"{question}"**\n'
        f'> _"{answer}"_\n\n'
        f"You earned 1 point for {year}."
    )


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _year_rows(data: ScoreboardData, year: str, names: dict[str, str]) -> list[tuple[str, int, int]]:
    """Return (name, score, questions) rows for a year, highest score first."""
    scores = data.scores_by_year.get(year, {})
    questions = data.questions_by_year.get(year, {})
    rows = [
        (names.get(user_id, user_id), scores.get(user_id, 0), questions.get(user_id, 0))
        for user_id in set(scores) | set(questions)
    ]
    return sorted(rows, key=lambda r: (-r[1], -r[2], r[0].lower()))


def _box_table(headers: list[str], rows: list[list[str]], right_align: set[int]) -> str:
    widths = [max([len(h)] + [len(r[i]) for r in rows]) for i, h in enumerate(headers)]

    def rule(left: str, mid: str, right: str) -> str:
        return left + mid.join("─" * (w + 2) for w in widths) + right

    def line(cells: list[str]) -> str:
        padded = [
            c.rjust(w) if i in right_align else c.ljust(w) for i, (c, w) in enumerate(zip(cells, widths))
        ]
        return "│" + "│".join(f" {c} " for c in padded) + "│"

    return "\n".join(
        [rule("┌", "┬", "┐"), line(headers), rule("├", "┼", "┤")]
        + [line(r) for r in rows]
        + [rule("└", "┴", "┘")]
    )


def _last_updated_footer(last_updated: Optional[datetime]) -> str:
    if last_updated is None:
        return ""
    return f"Last updated {format_relative_time(int(last_updated.timestamp() * 1000))}"


SCOREBOARD_HEADERS = ["#", "Name", "Points", "Asked"]


def _year_section(year: str, rows: list[list[str]], shown: Optional[int] = None) -> str:
    """Render one year's table, keeping only the top `shown` rows."""
    kept = rows if shown is None else rows[:shown]
    table = _box_table(SCOREBOARD_HEADERS, kept, right_align={0, 2, 3})
    if len(kept) < len(rows):
        table += f"\n…and {len(rows) - len(kept)} more"
    return f"**{year}**\n```\n{table}\n```"


def format_scoreboard_table(data: ScoreboardData, names: dict[str, str], name_width: int = 16) -> str:
    """Format the pinned scoreboard: one box-drawing table per year.

    Ensures the output fits within the embed description limit by dropping
    the oldest years first. If the newest year alone is still too long, its
    lowest rows are dropped.
    """
    years = data.years()
    if not years:
        return "No scores yet."

    tables = []
    for year in years:
        rows = [
            [str(i), truncate(name, name_width), str(score), str(asked)]
            for i, (name, score, asked) in enumerate(_year_rows(data, year, names), 1)
        ]
        if rows:
            tables.append((year, rows))

    footer = _last_updated_footer(data.last_updated)
    omitted = False
    shown: Optional[int] = None

    while True:
        sections = [_year_section(year, rows) for year, rows in tables]
        if shown is not None:
            sections[0] = _year_section(*tables[0], shown=shown)
        parts = sections + (["_Older years omitted._"] if omitted else []) + ([footer] if footer else [])
        result = "\n".join(parts)
        if len(result) <= EMBED_DESCRIPTION_LIMIT or not tables:
            return result
        if len(tables) > 1:
            # Too long - drop the oldest year
            tables.pop()
            omitted = True
            continue
        # Only the newest year is left - drop its lowest rows
        current = len(tables[0][1]) if shown is None else shown
        if current == 0:
            return result[:EMBED_DESCRIPTION_LIMIT]
        shown = max(0, min(current - 1, current * EMBED_DESCRIPTION_LIMIT // len(result)))


def format_scoreboard_text(data: ScoreboardData, names: dict[str, str]) -> str:
    """Format the scoreboard without tables, for plain-text replies."""
    lines = [f"**{SCOREBOARD_TITLE}**", ""]

    years = [y for y in data.years() if _year_rows(data, y, names)]
    if not years:
        lines.append("No scores yet.")
        return "\n".join(lines)

    for year in years:
        lines.append(f"**{year}**")
        for i, (name, score, asked) in enumerate(_year_rows(data, year, names), 1):
            lines.append(f"{i}. {name} - {_plural(score, 'point')}, {_plural(asked, 'question')} asked")
        lines.append("")

    footer = _last_updated_footer(data.last_updated)
    if footer:
        lines.append(footer)

    return "\n".join(lines).strip()[:DISCORD_MAX_LENGTH]


def format_player_stats(stats: UserStats, display_name: str) -> str:
    """Format a player's stats display."""
    lines = [
        f"## 📊 Stats for {display_name}",
        "",
        f"**Total points:** {stats.total_points}",
        f"**Questions asked:** {stats.total_questions}",
    ]

    years = sorted(set(stats.points_by_year) | set(stats.questions_by_year), reverse=True)
    if years:
        lines.append("")
    for year in years:
        points = stats.points_by_year.get(year, 0)
        asked = stats.questions_by_year.get(year, 0)
        lines.append(f"**{year}:** {_plural(points, 'point')}, {_plural(asked, 'question')} asked")

    return "\n".join(lines)


def format_help(is_admin: bool, solve_emoji: str) -> str:
    """Format the /logic help text. Admin commands are only listed for admins."""
    sections = [
        "**Logic Bot Commands:**\n"
        "`/logic <your question>` - Start a new round by posting the question and starting a thread\n"
        "`/logic help` - Show this help message\n"
        "`/logic scoreboard` - Ensure the scoreboard exists and show it\n"
        "`/logic stats` - Show your stats\n"
        "`/logic stats @user` - Show stats for a user"
    ]

    if is_admin:
        sections.append(
            "**Admin Commands:**\n"
            "`/logic setscore @user 10 [year]` - Set a user's score\n"
            "`/logic addpoint @user [year]` - Add 1 point to a user\n"
            "`/logic removepoint @user [year]` - Remove 1 point from a user"
        )

    sections.append(
        "**How it works:**\n"
        "- A round = a thread (the bot creates the thread for you)\n"
        "- Start a round by running `/logic <question>` in the channel\n"
        f"- The OP (who started the round) reacts with {solve_emoji} to a guess to solve it\n"
        "- Anyone can also answer privately with the button on the question\n"
        "- Points are awarded when a round is solved"
    )

    return "\n\n".join(sections)

"""Parsing and dispatch of the free-text `/logic` command."""

import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from bot.services.message_store import MessageStore, MessageStoreError
from bot.services.round_service import RoundService
from bot.services.scoreboard_service import NegativeScoreError, ScoreboardService
from utils.formatting import format_help, format_player_stats, mention

logger = logging.getLogger(__name__)

YEAR_PATTERN = re.compile(r"\d{4}")

ADMIN_COMMANDS = ("setscore", "addpoint", "removepoint")

ADMIN_USAGE = {
    "setscore": "Usage: `/logic setscore @user <points> [year]`",
    "addpoint": "Usage: `/logic addpoint @user [year]`",
    "removepoint": "Usage: `/logic removepoint @user [year]`",
}

NOT_ALLOWED_TEXT = "Sorry, I only operate in specific channels. Please use me in the designated logic channel."


def _current_year() -> str:
    return str(datetime.now(timezone.utc).year)


class CommandService:
    """Turns `/logic <text>` into a reply."""

    def __init__(
        self,
        store: MessageStore,
        rounds: RoundService,
        scoreboard: ScoreboardService,
        allowed_channel_ids: Sequence[str] = (),
        admin_user_ids: Sequence[str] = (),
        solve_emoji: str = "✅",
        current_year: Callable[[], str] = _current_year,
    ):
        self.store = store
        self.rounds = rounds
        self.scoreboard = scoreboard
        self.allowed_channel_ids = set(allowed_channel_ids)
        self.admin_user_ids = set(admin_user_ids)
        self.solve_emoji = solve_emoji
        self.current_year = current_year

    def is_allowed_channel(self, channel_id: str) -> bool:
        # No configured channels means no restriction
        return not self.allowed_channel_ids or channel_id in self.allowed_channel_ids

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admin_user_ids

    async def handle_command(self, channel_id: str, user_id: str, text: str) -> str:
        if not self.is_allowed_channel(channel_id):
            return NOT_ALLOWED_TEXT

        text = text.strip()
        args = text.split()
        command = args[0].lower() if args else ""

        if command == "help":
            return format_help(self.is_admin(user_id), self.solve_emoji)
        if command == "scoreboard":
            return await self._scoreboard(channel_id)
        if command == "stats":
            return await self._stats(channel_id, user_id, args[1:])
        if command in ADMIN_COMMANDS:
            if not self.is_admin(user_id):
                return "Sorry, only admins can use this command."
            return await self._admin(channel_id, command, args[1:])

        _success, message = await self.rounds.start_round(channel_id, user_id, text)
        return message

    async def _scoreboard(self, channel_id: str) -> str:
        try:
            await self.scoreboard.get_or_create_scoreboard(channel_id)
        except MessageStoreError:
            logger.exception(f"Error creating scoreboard in channel {channel_id}")
            return "Error loading the scoreboard."
        return await self.scoreboard.render_text(channel_id)

    async def _stats(self, channel_id: str, user_id: str, args: list[str]) -> str:
        target_id = user_id
        if args:
            target_id = await self.store.resolve_identity(channel_id, " ".join(args))
            if target_id is None:
                return "User not found."

        stats = await self.scoreboard.get_user_stats(channel_id, target_id)
        return format_player_stats(stats, await self.store.display_name(channel_id, target_id))

    def _parse_year(self, args: list[str]) -> str | None:
        """Return the optional trailing year argument, the current year if absent, None if malformed."""
        if not args:
            return self.current_year()
        if len(args) == 1 and YEAR_PATTERN.fullmatch(args[0]):
            return args[0]
        return None

    async def _admin(self, channel_id: str, command: str, args: list[str]) -> str:
        usage = ADMIN_USAGE[command]
        if not args:
            return usage

        target_id = await self.store.resolve_identity(channel_id, args[0])
        if target_id is None:
            return "User not found."

        score = None
        if command == "setscore":
            if len(args) < 2:
                return usage
            try:
                score = int(args[1])
            except ValueError:
                return usage
            args = args[2:]
        else:
            args = args[1:]

        year = self._parse_year(args)
        if year is None:
            return usage

        logger.info(f"Admin command {command} for {target_id} in {channel_id} ({year})")

        try:
            if command == "setscore":
                new_score = await self.scoreboard.set_score(channel_id, target_id, score, year)
                return f"Set {mention(target_id)}'s score for {year} to {new_score}."
            if command == "addpoint":
                new_score = await self.scoreboard.add_points(channel_id, target_id, 1, year)
                return f"Added 1 point to {mention(target_id)} for {year}. New score: {new_score}."
            new_score = await self.scoreboard.add_points(channel_id, target_id, -1, year)
            return f"Removed 1 point from {mention(target_id)} for {year}. New score: {new_score}."
        except NegativeScoreError as e:
            return str(e)
        except MessageStoreError:
            logger.exception(f"Error running {command} in channel {channel_id}")
            return "Error updating the scoreboard."

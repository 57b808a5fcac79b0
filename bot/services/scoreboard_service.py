"""Per-channel scoreboard persisted in pinned messages.

Each channel has two pinned bot messages: a display message (an embed titled
`🏆 Scoreboard` with one table per year) and a data message holding the
encrypted JSON of `ScoreboardData`. Both are created on first use and kept in
sync on every update.
"""

import json
import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

from bot.services.message_store import BotIdentity, MessageStore
from models import MessageRef, ScoreboardData, StoredMessage, UserStats
from utils.crypto import InvalidCiphertext, ScoreboardCipher
from utils.formatting import (
    SCOREBOARD_DATA_HEADER,
    SCOREBOARD_TITLE,
    format_scoreboard_table,
    format_scoreboard_text,
)

logger = logging.getLogger(__name__)

ENCRYPTED_BLOCK_PATTERN = re.compile(r"```\w*\n?([0-9a-fA-F]+:[0-9a-fA-F]+)\s*```")
LEGACY_JSON_PATTERN = re.compile(r"```json\n([\s\S]*?)\n```")

Mutator = Callable[[ScoreboardData], ScoreboardData]


class NegativeScoreError(ValueError):
    """Raised by a mutation that would leave a score below zero."""

    def __init__(self, value: int):
        self.value = value
        super().__init__(f"Cannot set score to negative value. Result would be {value}.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_legacy_data_message(message: StoredMessage) -> bool:
    return "```json" in message.text and '"score' in message.text


def _is_data_message(message: StoredMessage) -> bool:
    if message.title is not None:
        return False
    return message.text.startswith(SCOREBOARD_DATA_HEADER) or _is_legacy_data_message(message)


def _is_display_message(message: StoredMessage) -> bool:
    return message.title == SCOREBOARD_TITLE


class ScoreboardService:
    """Reads, updates and renders a channel's scoreboard."""

    def __init__(
        self,
        store: MessageStore,
        identity: BotIdentity,
        cipher: ScoreboardCipher,
        name_width: int = 16,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.identity = identity
        self.cipher = cipher
        self.name_width = name_width
        self.now = now
        self._decoders: list[Callable[[str], Optional[ScoreboardData]]] = [
            self._decode_encrypted,
            self._decode_legacy,
        ]

    # Encoding

    def encode_data(self, data: ScoreboardData) -> str:
        payload = self.cipher.encrypt(data.model_dump_json(by_alias=True))
        return f"{SCOREBOARD_DATA_HEADER}\n```\n{payload}\n```"

    def _decode_encrypted(self, text: str) -> Optional[ScoreboardData]:
        match = ENCRYPTED_BLOCK_PATTERN.search(text)
        if not match:
            return None
        try:
            return ScoreboardData.model_validate(json.loads(self.cipher.decrypt(match.group(1))))
        except InvalidCiphertext:
            logger.warning("Scoreboard data could not be decrypted")
            return None
        except ValueError:
            logger.warning("Decrypted scoreboard data is not valid JSON")
            return None

    def _decode_legacy(self, text: str) -> Optional[ScoreboardData]:
        match = LEGACY_JSON_PATTERN.search(text)
        raw = match.group(1) if match else text
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(parsed, dict):
            return None
        # The oldest format kept an all-time "scores" map that is no longer used
        parsed.pop("scores", None)
        try:
            return ScoreboardData.model_validate(parsed)
        except ValueError:
            return None

    def decode_data(self, text: str) -> Optional[ScoreboardData]:
        for decoder in self._decoders:
            data = decoder(text)
            if data is not None:
                return data
        return None

    # Locating the pinned messages

    async def _own_pins(self, channel_id: str) -> list[StoredMessage]:
        bot_id = await self.identity.get()
        return [m for m in await self.store.list_pinned(channel_id) if m.author_id == bot_id]

    async def _canonical(self, candidates: list[StoredMessage]) -> StoredMessage:
        """Keep the earliest message and unpin any duplicates."""
        ordered = sorted(candidates, key=lambda m: int(m.message_id))
        for duplicate in ordered[1:]:
            logger.warning(f"Unpinning duplicate scoreboard message {duplicate.message_id}")
            await self.store.unpin(duplicate.ref)
        return ordered[0]

    async def _ensure_message(
        self, channel_id: str, candidates: list[StoredMessage], text: str, title: Optional[str] = None
    ) -> MessageRef:
        if candidates:
            return (await self._canonical(candidates)).ref

        ref = await self.store.post_message(channel_id, text, title=title)
        await self.store.pin(ref)
        logger.info(f"Created scoreboard message {ref.message_id} in channel {channel_id}")
        return ref

    async def get_or_create_scoreboard(self, channel_id: str) -> MessageRef:
        """Return the pinned display message, creating and pinning it if needed."""
        pinned = await self._own_pins(channel_id)
        displays = [m for m in pinned if _is_display_message(m)]
        if displays:
            return await self._ensure_message(channel_id, displays, "")

        data = self._data_from_pins(pinned)
        names = await self._names(channel_id, data)
        return await self._ensure_message(
            channel_id, [], format_scoreboard_table(data, names, self.name_width), title=SCOREBOARD_TITLE
        )

    # Reading

    def _data_from_pins(self, pinned: list[StoredMessage]) -> ScoreboardData:
        candidates = sorted((m for m in pinned if _is_data_message(m)), key=lambda m: int(m.message_id))
        if not candidates:
            return ScoreboardData()
        data = self.decode_data(candidates[0].text)
        if data is None:
            logger.warning(f"Scoreboard data message {candidates[0].message_id} could not be decoded")
            return ScoreboardData()
        return data

    async def get_scoreboard_data(self, channel_id: str) -> ScoreboardData:
        """Load a channel's scoreboard. Never raises; returns empty data on any failure."""
        try:
            return self._data_from_pins(await self._own_pins(channel_id))
        except Exception:
            logger.exception(f"Error loading scoreboard data for channel {channel_id}")
            return ScoreboardData()

    async def _names(self, channel_id: str, data: ScoreboardData) -> dict[str, str]:
        user_ids: set[str] = set()
        for by_user in list(data.scores_by_year.values()) + list(data.questions_by_year.values()):
            user_ids.update(by_user)
        return {user_id: await self.store.display_name(channel_id, user_id) for user_id in sorted(user_ids)}

    # Writing

    async def update_scoreboard(self, channel_id: str, mutator: Mutator) -> ScoreboardData:
        """Read-modify-write the scoreboard.

        The mutator receives a copy of the current data. If it raises, nothing
        is written. Failures reading the current data propagate so that a
        transient error can't overwrite the board with empty data.
        """
        pinned = await self._own_pins(channel_id)
        current = self._data_from_pins(pinned)

        updated = mutator(current.model_copy(deep=True))
        updated.last_updated = self.now()

        names = await self._names(channel_id, updated)
        table = format_scoreboard_table(updated, names, self.name_width)
        display_ref = await self._ensure_message(
            channel_id, [m for m in pinned if _is_display_message(m)], table, title=SCOREBOARD_TITLE
        )
        await self.store.update_message(display_ref, table, title=SCOREBOARD_TITLE)

        encoded = self.encode_data(updated)
        data_ref = await self._ensure_message(channel_id, [m for m in pinned if _is_data_message(m)], encoded)
        await self.store.update_message(data_ref, encoded)

        return updated

    async def add_points(self, channel_id: str, user_id: str, delta: int, year: str) -> int:
        """Add (or with a negative delta, remove) points. Returns the new score."""

        def mutate(data: ScoreboardData) -> ScoreboardData:
            year_scores = data.scores_by_year.setdefault(year, {})
            new_score = year_scores.get(user_id, 0) + delta
            if new_score < 0:
                raise NegativeScoreError(new_score)
            year_scores[user_id] = new_score
            return data

        updated = await self.update_scoreboard(channel_id, mutate)
        logger.info(f"Changed score of {user_id} in {channel_id} for {year} by {delta}")
        return updated.scores_by_year[year][user_id]

    async def set_score(self, channel_id: str, user_id: str, score: int, year: str) -> int:
        def mutate(data: ScoreboardData) -> ScoreboardData:
            if score < 0:
                raise NegativeScoreError(score)
            data.scores_by_year.setdefault(year, {})[user_id] = score
            return data

        await self.update_scoreboard(channel_id, mutate)
        logger.info(f"Set score of {user_id} in {channel_id} for {year} to {score}")
        return score

    async def add_question(self, channel_id: str, user_id: str, year: str) -> None:
        def mutate(data: ScoreboardData) -> ScoreboardData:
            year_questions = data.questions_by_year.setdefault(year, {})
            year_questions[user_id] = year_questions.get(user_id, 0) + 1
            return data

        await self.update_scoreboard(channel_id, mutate)

    async def remove_question(self, channel_id: str, user_id: str, year: str) -> None:
        """Decrement a question count. Entries that reach zero are removed."""

        def mutate(data: ScoreboardData) -> ScoreboardData:
            year_questions = data.questions_by_year.get(year)
            if not year_questions or user_id not in year_questions:
                return data
            new_count = year_questions[user_id] - 1
            if new_count > 0:
                year_questions[user_id] = new_count
            else:
                del year_questions[user_id]
                if not year_questions:
                    del data.questions_by_year[year]
            return data

        await self.update_scoreboard(channel_id, mutate)

    # Reports

    async def get_user_stats(self, channel_id: str, user_id: str) -> UserStats:
        data = await self.get_scoreboard_data(channel_id)
        return UserStats(
            user_id=user_id,
            points_by_year={y: s[user_id] for y, s in data.scores_by_year.items() if user_id in s},
            questions_by_year={y: q[user_id] for y, q in data.questions_by_year.items() if user_id in q},
        )

    async def render_text(self, channel_id: str) -> str:
        """Render the scoreboard as plain text for an ephemeral reply."""
        data = await self.get_scoreboard_data(channel_id)
        return format_scoreboard_text(data, await self._names(channel_id, data))

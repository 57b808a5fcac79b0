"""Pytest configuration and shared fixtures."""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

import pytest

from bot.services.message_store import BotIdentity, MessageStore, MessageStoreError
from bot.services.round_service import RoundService
from bot.services.round_store import RoundStore
from bot.services.scoreboard_service import ScoreboardService
from models import Button, MessageRef, StoredMessage
from utils.crypto import ScoreboardCipher
from utils.discord_utils import parse_user_token
from utils.snowflake import timestamp_ms_to_snowflake

BOT_ID = "900000000000000009"
OP_ID = "100000000000000001"
GUESSER_ID = "200000000000000002"
OTHER_ID = "300000000000000003"
CHANNEL_ID = "500000000000000005"
TEST_CHANNEL_ID = "600000000000000006"


def year_ms(year: int) -> int:
    return int(datetime(year, 6, 1, tzinfo=timezone.utc).timestamp() * 1000)


class FakeMessageStore(MessageStore):
    """In-memory chat platform.

    Message IDs are real snowflakes built from `now_ms`, so a thread's ID
    tells the year it was started in, as it does on Discord.
    """

    def __init__(self, bot_id: str = BOT_ID, members: Optional[dict[str, str]] = None, year: int = 2024):
        self.bot_id = bot_id
        self.members = members or {}
        self.now_ms = year_ms(year)
        self.messages: dict[str, StoredMessage] = {}
        self.buttons: dict[str, list[Button]] = {}
        self.order: list[str] = []
        self.pinned: dict[str, list[str]] = {}
        self.failing: set[str] = set()
        self.identity_lookups = 0
        self._seq = 0

    def set_year(self, year: int) -> None:
        self.now_ms = year_ms(year)

    def _next_id(self) -> str:
        self._seq += 1
        return str(timestamp_ms_to_snowflake(self.now_ms) + self._seq)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise MessageStoreError(f"{operation} failed")

    def _store(
        self,
        channel_id: str,
        author_id: str,
        text: str,
        thread_id: Optional[str] = None,
        title: Optional[str] = None,
        buttons: Sequence[Button] = (),
        payload: Optional[str] = None,
    ) -> StoredMessage:
        message = StoredMessage(
            channel_id=channel_id,
            message_id=self._next_id(),
            thread_id=thread_id,
            author_id=author_id,
            text=text,
            title=title,
            payload=payload,
        )
        self.messages[message.message_id] = message
        self.buttons[message.message_id] = list(buttons)
        self.order.append(message.message_id)
        return message

    def add_user_message(self, channel_id: str, author_id: str, text: str, thread_id: Optional[str] = None) -> str:
        """Simulate a user posting a message. Returns its ID."""
        return self._store(channel_id, author_id, text, thread_id=thread_id).message_id

    def thread_messages(self, channel_id: str, thread_id: str) -> list[StoredMessage]:
        return [
            self.messages[m]
            for m in self.order
            if self.messages[m].channel_id == channel_id and self.messages[m].thread_id == thread_id
        ]

    def dms_to(self, user_id: str) -> list[StoredMessage]:
        return [self.messages[m] for m in self.order if self.messages[m].channel_id == f"dm-{user_id}"]

    # MessageStore

    async def post_message(
        self,
        channel_id: str,
        text: str,
        *,
        thread_id: Optional[str] = None,
        title: Optional[str] = None,
        buttons: Sequence[Button] = (),
        payload: Optional[str] = None,
    ) -> MessageRef:
        self._check("post_message")
        return self._store(channel_id, self.bot_id, text, thread_id, title, buttons, payload).ref

    async def update_message(
        self,
        ref: MessageRef,
        text: str,
        *,
        title: Optional[str] = None,
        buttons: Sequence[Button] = (),
        payload: Optional[str] = None,
    ) -> None:
        self._check("update_message")
        message = self.messages.get(ref.message_id)
        if message is None:
            raise MessageStoreError(f"Unknown message {ref.message_id}")
        self.messages[ref.message_id] = message.model_copy(update={"text": text, "title": title, "payload": payload})
        self.buttons[ref.message_id] = list(buttons)

    async def list_thread_replies(self, channel_id: str, thread_id: str) -> list[StoredMessage]:
        self._check("list_thread_replies")
        return self.thread_messages(channel_id, thread_id)

    async def get_message(self, channel_id: str, message_id: str) -> Optional[StoredMessage]:
        self._check("get_message")
        message = self.messages.get(message_id)
        # Thread replies can be addressed through the thread's own ID, as on Discord
        if message is None or channel_id not in (message.channel_id, message.thread_id):
            return None
        return message

    async def list_pinned(self, channel_id: str) -> list[StoredMessage]:
        self._check("list_pinned")
        return [self.messages[m] for m in self.pinned.get(channel_id, [])]

    async def pin(self, ref: MessageRef) -> None:
        self._check("pin")
        self.pinned.setdefault(ref.channel_id, []).append(ref.message_id)

    async def unpin(self, ref: MessageRef) -> None:
        self._check("unpin")
        self.pinned[ref.channel_id].remove(ref.message_id)

    async def open_direct_channel(self, user_id: str) -> str:
        self._check("open_direct_channel")
        return f"dm-{user_id}"

    async def resolve_identity(self, channel_id: str, token: str) -> Optional[str]:
        user_id, name = parse_user_token(token)
        if user_id is not None:
            return str(user_id) if str(user_id) in self.members else None
        for member_id, member_name in self.members.items():
            if name and member_name.lower() == name.lower():
                return member_id
        return None

    async def display_name(self, channel_id: str, user_id: str) -> str:
        return self.members.get(user_id, user_id)

    async def permalink(self, ref: MessageRef) -> Optional[str]:
        return f"https://chat.example/{ref.channel_id}/{ref.message_id}"

    async def fetch_self_identity(self) -> str:
        self.identity_lookups += 1
        return self.bot_id


@pytest.fixture
def store():
    """Create an in-memory message store with a few known members."""
    return FakeMessageStore(members={OP_ID: "alice", GUESSER_ID: "bob", OTHER_ID: "carol"})


@pytest.fixture
def identity(store):
    return BotIdentity(store)


@pytest.fixture
def cipher():
    return ScoreboardCipher("test-secret")


@pytest.fixture
def scoreboard(store, identity, cipher):
    return ScoreboardService(store, identity, cipher, now=lambda: datetime(2024, 6, 1, tzinfo=timezone.utc))


@pytest.fixture
def round_store(store, identity):
    return RoundStore(store, identity)


@pytest.fixture
def round_service(store, round_store, scoreboard, identity):
    return RoundService(store, round_store, scoreboard, identity, test_channel_id=TEST_CHANNEL_ID)

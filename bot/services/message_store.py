"""The chat platform as seen by the round and scoreboard services.

Everything the bot remembers lives in chat messages, so the services only
need a small set of message operations. `DiscordMessageStore` implements them
against the Discord API; tests use an in-memory implementation.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Optional

from models import Button, MessageRef, StoredMessage

logger = logging.getLogger(__name__)


class MessageStoreError(Exception):
    """A chat platform call failed (transport error, missing message, no permission)."""


class MessageStore(ABC):
    """Message operations used by the bot's services."""

    @abstractmethod
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
        """Post a message, as a thread reply when `thread_id` is given.

        `title` renders the message as a rich block with that header.
        `payload` is an opaque token shared by all of the message's buttons.
        """

    @abstractmethod
    async def update_message(
        self,
        ref: MessageRef,
        text: str,
        *,
        title: Optional[str] = None,
        buttons: Sequence[Button] = (),
        payload: Optional[str] = None,
    ) -> None:
        """Replace a message's text, header, buttons and payload."""

    @abstractmethod
    async def list_thread_replies(self, channel_id: str, thread_id: str) -> list[StoredMessage]:
        """Return the replies in a thread, oldest first."""

    @abstractmethod
    async def get_message(self, channel_id: str, message_id: str) -> Optional[StoredMessage]:
        """Fetch a single message, or None if it doesn't exist."""

    @abstractmethod
    async def list_pinned(self, channel_id: str) -> list[StoredMessage]:
        """Return the pinned messages of a channel."""

    @abstractmethod
    async def pin(self, ref: MessageRef) -> None: ...

    @abstractmethod
    async def unpin(self, ref: MessageRef) -> None: ...

    @abstractmethod
    async def open_direct_channel(self, user_id: str) -> str:
        """Return the ID of the direct message channel with a user."""

    @abstractmethod
    async def resolve_identity(self, channel_id: str, token: str) -> Optional[str]:
        """Resolve a mention, raw ID or @name to a user ID."""

    @abstractmethod
    async def display_name(self, channel_id: str, user_id: str) -> str:
        """Return a user's display name, falling back to the ID."""

    @abstractmethod
    async def permalink(self, ref: MessageRef) -> Optional[str]: ...

    @abstractmethod
    async def fetch_self_identity(self) -> str:
        """Return the bot's own user ID."""


class BotIdentity:
    """The bot's own user ID, looked up once and cached for the process lifetime."""

    def __init__(self, store: MessageStore):
        self._store = store
        self._user_id: Optional[str] = None

    async def get(self) -> str:
        # Concurrent first calls may both look it up; the result is the same
        if self._user_id is None:
            self._user_id = await self._store.fetch_self_identity()
            logger.info(f"Resolved bot identity: {self._user_id}")
        return self._user_id

"""Message store backed by the Discord API."""

import contextlib
import logging
from collections.abc import Iterator, Sequence
from typing import Optional

import discord
from discord import ui
from discord.ext import commands

from bot.services.message_store import MessageStore, MessageStoreError
from models import Button, MessageRef, StoredMessage
from utils.discord_utils import find_member_by_name, get_or_fetch_member, parse_user_token

logger = logging.getLogger(__name__)

# Component custom IDs look like "logic:confirm_solve"
CUSTOM_ID_PREFIX = "logic:"

THREAD_NAME = "Logic round"

BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "danger": discord.ButtonStyle.danger,
}


@contextlib.contextmanager
def _api_errors(action: str) -> Iterator[None]:
    """Translate Discord API failures into MessageStoreError."""
    try:
        yield
    except discord.HTTPException as e:
        raise MessageStoreError(f"Discord API error while trying to {action}: {e}") from e


def build_view(buttons: Sequence[Button]) -> Optional[ui.View]:
    """Build a persistent view for a message's buttons.

    Action buttons are dispatched by custom ID, so the view never times out
    and keeps working across restarts.
    """
    if not buttons:
        return None

    view = ui.View(timeout=None)
    for button in buttons:
        if button.url:
            view.add_item(ui.Button(label=button.label, url=button.url))
        else:
            view.add_item(
                ui.Button(
                    label=button.label,
                    custom_id=f"{CUSTOM_ID_PREFIX}{button.action}",
                    style=BUTTON_STYLES[button.style],
                )
            )
    return view


def build_embeds(text: str, title: Optional[str], payload: Optional[str]) -> list[discord.Embed]:
    """Titled messages are rendered as an embed; the payload rides in the embed footer."""
    if title is None and payload is None:
        return []
    embed = discord.Embed(title=title, description=text if title else None)
    if payload:
        embed.set_footer(text=payload)
    return [embed]


def to_stored_message(message: discord.Message) -> StoredMessage:
    """Convert a Discord message, normalising thread replies to (parent channel, thread)."""
    channel = message.channel
    if isinstance(channel, discord.Thread):
        channel_id, thread_id = str(channel.parent_id), str(channel.id)
    else:
        channel_id, thread_id = str(channel.id), None

    embed = message.embeds[0] if message.embeds else None
    text = message.content or ""
    if not text and embed and embed.description:
        text = embed.description

    return StoredMessage(
        channel_id=channel_id,
        message_id=str(message.id),
        thread_id=thread_id,
        author_id=str(message.author.id),
        text=text,
        title=embed.title if embed else None,
        payload=embed.footer.text if embed and embed.footer else None,
    )


class DiscordMessageStore(MessageStore):
    """MessageStore implementation for a discord.py bot."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def _get_channel(self, channel_id: str):
        """Get a channel from cache, falling back to an API fetch."""
        channel = self.bot.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(int(channel_id))
            except (discord.NotFound, discord.Forbidden):
                return None
        return channel

    async def _get_thread(self, channel_id: str, thread_id: str, create: bool = False) -> Optional[discord.Thread]:
        """Get the thread started from message `thread_id`, optionally creating it."""
        thread = await self._get_channel(thread_id)
        if isinstance(thread, discord.Thread):
            return thread
        if not create:
            return None

        parent = await self._get_channel(channel_id)
        if not isinstance(parent, discord.TextChannel):
            raise MessageStoreError(f"Channel {channel_id} can't hold threads")
        logger.info(f"Creating thread for message {thread_id} in channel {channel_id}")
        return await parent.get_partial_message(int(thread_id)).create_thread(name=THREAD_NAME)

    def _messageable(self, ref: MessageRef) -> discord.PartialMessageable:
        return self.bot.get_partial_messageable(int(ref.thread_id or ref.channel_id))

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
        kwargs: dict = {"content": None if title else text}
        embeds = build_embeds(text, title, payload)
        if embeds:
            kwargs["embeds"] = embeds
        view = build_view(buttons)
        if view is not None:
            kwargs["view"] = view

        with _api_errors("post a message"):
            if thread_id:
                target = await self._get_thread(channel_id, thread_id, create=True)
            else:
                target = self.bot.get_partial_messageable(int(channel_id))
            message = await target.send(**kwargs)

        return MessageRef(channel_id=channel_id, message_id=str(message.id), thread_id=thread_id)

    async def update_message(
        self,
        ref: MessageRef,
        text: str,
        *,
        title: Optional[str] = None,
        buttons: Sequence[Button] = (),
        payload: Optional[str] = None,
    ) -> None:
        with _api_errors("update a message"):
            message = self._messageable(ref).get_partial_message(int(ref.message_id))
            await message.edit(
                content=None if title else text,
                embeds=build_embeds(text, title, payload),
                view=build_view(buttons),
            )

    async def list_thread_replies(self, channel_id: str, thread_id: str) -> list[StoredMessage]:
        with _api_errors("read a thread"):
            thread = await self._get_thread(channel_id, thread_id)
            if thread is None:
                return []
            return [to_stored_message(m) async for m in thread.history(limit=None, oldest_first=True)]

    async def get_message(self, channel_id: str, message_id: str) -> Optional[StoredMessage]:
        with _api_errors("fetch a message"):
            channel = await self._get_channel(channel_id)
            if channel is None:
                return None
            try:
                message = await channel.fetch_message(int(message_id))
            except discord.NotFound:
                return None
            return to_stored_message(message)

    async def list_pinned(self, channel_id: str) -> list[StoredMessage]:
        with _api_errors("list pinned messages"):
            channel = self.bot.get_partial_messageable(int(channel_id))
            pins = channel.pins()
            # Newer discord.py versions return an async iterator here
            if hasattr(pins, "__aiter__"):
                messages = [m async for m in pins]
            else:
                messages = await pins
            return [to_stored_message(m) for m in messages]

    async def pin(self, ref: MessageRef) -> None:
        with _api_errors("pin a message"):
            await self._messageable(ref).get_partial_message(int(ref.message_id)).pin()

    async def unpin(self, ref: MessageRef) -> None:
        with _api_errors("unpin a message"):
            await self._messageable(ref).get_partial_message(int(ref.message_id)).unpin()

    async def open_direct_channel(self, user_id: str) -> str:
        with _api_errors("open a DM"):
            user = self.bot.get_user(int(user_id)) or await self.bot.fetch_user(int(user_id))
            dm = await user.create_dm()
            return str(dm.id)

    async def resolve_identity(self, channel_id: str, token: str) -> Optional[str]:
        user_id, name = parse_user_token(token)
        channel = await self._get_channel(channel_id)
        guild = getattr(channel, "guild", None)
        if guild is None:
            return str(user_id) if user_id else None

        if user_id is not None:
            member = await get_or_fetch_member(guild, user_id)
        elif name:
            member = find_member_by_name(guild, name)
        else:
            member = None
        return str(member.id) if member else None

    async def display_name(self, channel_id: str, user_id: str) -> str:
        channel = await self._get_channel(channel_id)
        guild = getattr(channel, "guild", None)
        if guild is not None:
            member = await get_or_fetch_member(guild, int(user_id))
            if member:
                return member.display_name
        user = self.bot.get_user(int(user_id))
        return user.display_name if user else user_id

    async def permalink(self, ref: MessageRef) -> Optional[str]:
        target_id = ref.thread_id or ref.channel_id
        channel = await self._get_channel(target_id)
        if channel is None:
            return None
        guild = getattr(channel, "guild", None)
        guild_part = str(guild.id) if guild else "@me"
        return f"https://discord.com/channels/{guild_part}/{target_id}/{ref.message_id}"

    async def fetch_self_identity(self) -> str:
        if self.bot.user is None:
            await self.bot.wait_until_ready()
        return str(self.bot.user.id)

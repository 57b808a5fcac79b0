"""Message event handlers for round threads."""

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

if TYPE_CHECKING:
    from bot.main import LogicBot

logger = logging.getLogger(__name__)


class MessageEvents(commands.Cog):
    """Cog for handling messages posted in round threads."""

    def __init__(self, bot: "LogicBot"):
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Nudge people still guessing in a round that's already solved."""
        # Skip DMs
        if not message.guild:
            return

        # Skip bot messages
        if message.author.bot:
            return

        # Rounds only live in threads
        if not isinstance(message.channel, discord.Thread) or not message.content:
            return

        if not self.bot.round_service:
            return

        try:
            nudged = await self.bot.round_service.nudge_if_solved(
                channel_id=str(message.channel.parent_id),
                thread_id=str(message.channel.id),
                author_id=str(message.author.id),
                text=message.content,
            )
        except Exception:
            logger.exception(f"Error checking message {message.id} for a nudge")
            return

        if nudged:
            logger.debug(f"Nudged guess {message.id} in solved thread {message.channel.id}")


async def setup(bot: "LogicBot"):
    """Load the cog."""
    await bot.add_cog(MessageEvents(bot))

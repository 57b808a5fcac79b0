"""Reaction event handlers for solving rounds."""

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

if TYPE_CHECKING:
    from bot.main import LogicBot

logger = logging.getLogger(__name__)


class ReactionEvents(commands.Cog):
    """Cog for handling reaction events."""

    def __init__(self, bot: "LogicBot"):
        self.bot = bot

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        """Pass the OP's solve reaction on a guess to the round service."""
        # Skip DMs
        if payload.guild_id is None:
            return

        # Skip the bot's own reactions
        if self.bot.user and payload.user_id == self.bot.user.id:
            return

        if not self.bot.round_service:
            return

        try:
            prompted = await self.bot.round_service.handle_reaction(
                channel_id=str(payload.channel_id),
                message_id=str(payload.message_id),
                reactor_id=str(payload.user_id),
                emoji=str(payload.emoji),
            )
        except Exception:
            logger.exception(f"Error handling reaction on message {payload.message_id}")
            return

        if prompted:
            logger.debug(f"Solve prompt sent for message {payload.message_id}")


async def setup(bot: "LogicBot"):
    """Load the cog."""
    await bot.add_cog(ReactionEvents(bot))

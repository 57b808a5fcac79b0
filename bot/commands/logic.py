"""The /logic command and the buttons and forms attached to rounds."""

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands, ui
from discord.ext import commands

from bot.services.confirmation import (
    PAYLOAD_TEXT_LIMIT,
    Action,
    EditQuestion,
    SubmitPrivateAnswer,
    parse_action,
)
from bot.services.discord_store import CUSTOM_ID_PREFIX, to_stored_message
from bot.services.round_service import MAX_QUESTION_LENGTH, edit_form_prefill

if TYPE_CHECKING:
    from bot.main import LogicBot

logger = logging.getLogger(__name__)


async def _reply(interaction: discord.Interaction, message: str) -> None:
    """Send an ephemeral reply whether or not the interaction was already acknowledged."""
    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)


class PrivateAnswerModal(ui.Modal, title="Submit answer privately"):
    answer = ui.TextInput(
        label="Your answer",
        placeholder="Only the OP will see this",
        style=discord.TextStyle.paragraph,
        max_length=PAYLOAD_TEXT_LIMIT,
    )

    def __init__(self, bot: "LogicBot", channel_id: str, thread_id: str):
        super().__init__(timeout=600)
        self.bot = bot
        self.channel_id = channel_id
        self.thread_id = thread_id

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        success, message = await self.bot.round_service.submit_private_answer(
            self.channel_id, self.thread_id, str(interaction.user.id), str(self.answer)
        )
        await interaction.followup.send(message, ephemeral=True)


class EditQuestionModal(ui.Modal, title="Edit question"):
    question = ui.TextInput(
        label="Question",
        style=discord.TextStyle.paragraph,
        max_length=MAX_QUESTION_LENGTH,
    )

    def __init__(self, bot: "LogicBot", channel_id: str, thread_id: str, current: str):
        super().__init__(timeout=600)
        self.bot = bot
        self.channel_id = channel_id
        self.thread_id = thread_id
        self.question.default = current[:MAX_QUESTION_LENGTH]

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        success, message = await self.bot.round_service.edit_question(
            self.channel_id, self.thread_id, str(interaction.user.id), str(self.question)
        )
        await interaction.followup.send(message, ephemeral=True)


class LogicCommands(commands.Cog):
    """Cog containing the /logic command and round button handling."""

    bot: "LogicBot"

    def __init__(self, bot: "LogicBot"):
        self.bot = bot

    @app_commands.command(name="logic", description="Start a logic puzzle round or run a Logic Bot command")
    @app_commands.describe(text="Your question, or: help, scoreboard, stats [@user], setscore, addpoint, removepoint")
    async def logic(self, interaction: discord.Interaction, text: str = ""):
        """Run a /logic command."""
        channel_name = getattr(interaction.channel, "name", "DM")
        logger.info(f"Logic command invoked by {interaction.user} in #{channel_name}: {text!r}")
        await interaction.response.defer(ephemeral=True)

        if not interaction.guild or not self.bot.command_service:
            await interaction.followup.send("This command only works in servers.", ephemeral=True)
            return

        try:
            message = await self.bot.command_service.handle_command(
                str(interaction.channel_id), str(interaction.user.id), text
            )
        except Exception:
            logger.exception("Error handling /logic command")
            message = "An error occurred while running that command."

        await interaction.followup.send(message, ephemeral=True)

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction):
        """Dispatch presses of the bot's round buttons."""
        if interaction.type != discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id")  # type: ignore[union-attr]
        if not isinstance(custom_id, str) or not custom_id.startswith(CUSTOM_ID_PREFIX):
            return
        if not self.bot.round_service:
            return

        kind = custom_id[len(CUSTOM_ID_PREFIX) :]
        token = to_stored_message(interaction.message).payload if interaction.message else None
        action = parse_action(kind, token)
        logger.info(f"Button {kind} pressed by {interaction.user}")

        try:
            if action is None:
                await _reply(interaction, "This button is no longer valid.")
            else:
                await self.handle_action(interaction, action)
        except Exception:
            logger.exception(f"Error handling button {kind}")
            await _reply(interaction, "An error occurred while handling that button.")

    async def handle_action(self, interaction: discord.Interaction, action: Action):
        service = self.bot.round_service
        user_id = str(interaction.user.id)

        # Forms must be the first response to the press, so these aren't deferred
        if isinstance(action, SubmitPrivateAnswer):
            thread_id = action.payload.thread_id
            if thread_id is None:
                await _reply(interaction, "Round not found.")
                return
            await interaction.response.send_modal(PrivateAnswerModal(self.bot, action.payload.channel_id, thread_id))
            return

        if isinstance(action, EditQuestion):
            thread_id = action.payload.thread_id
            if thread_id is None:
                await _reply(interaction, "Round not found.")
                return
            # The form must open within the interaction window, so the round is checked on submit
            text = to_stored_message(interaction.message).text if interaction.message else ""
            current, error = edit_form_prefill(action.payload, user_id, text)
            if error:
                await _reply(interaction, error)
                return
            await interaction.response.send_modal(
                EditQuestionModal(self.bot, action.payload.channel_id, thread_id, current)
            )
            return

        await interaction.response.defer(ephemeral=True)
        success, message = await service.handle_action(action, user_id)
        await interaction.followup.send(message, ephemeral=True)


async def setup(bot: "LogicBot"):
    """Load the cog."""
    await bot.add_cog(LogicCommands(bot))

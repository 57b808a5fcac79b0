"""Main entry point for the Logic Bot."""

import asyncio
import logging
import sys
from pathlib import Path

import discord
from discord.ext import commands

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from bot.services.command_service import CommandService
from bot.services.discord_store import DiscordMessageStore
from bot.services.message_store import BotIdentity
from bot.services.round_service import RoundService
from bot.services.round_store import RoundStore
from bot.services.scoreboard_service import ScoreboardService
from config import Config
from utils.crypto import ScoreboardCipher

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class LogicBot(commands.Bot):
    """Custom bot class wiring the message store and the round services."""

    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.guild_messages = True
        intents.guild_reactions = True
        # Needed to resolve "@name" arguments to members
        intents.members = True

        super().__init__(
            command_prefix="!",  # Fallback prefix, using slash commands primarily
            intents=intents,
            help_command=None,
        )

        self.store: DiscordMessageStore = None
        self.scoreboard_service: ScoreboardService = None
        self.round_service: RoundService = None
        self.command_service: CommandService = None

    async def setup_hook(self):
        """Called when the bot is starting up."""
        self.store = DiscordMessageStore(self)
        identity = BotIdentity(self.store)

        self.scoreboard_service = ScoreboardService(
            self.store,
            identity,
            ScoreboardCipher(Config.SCOREBOARD_SECRET),
            name_width=Config.SCOREBOARD_NAME_WIDTH,
        )
        self.round_service = RoundService(
            self.store,
            RoundStore(self.store, identity, Config.SOLVE_EMOJI),
            self.scoreboard_service,
            identity,
            test_channel_id=Config.LOGIC_CHANNEL_ID_TEST,
            solve_emoji=Config.SOLVE_EMOJI,
        )
        self.command_service = CommandService(
            self.store,
            self.round_service,
            self.scoreboard_service,
            allowed_channel_ids=Config.ALLOWED_CHANNEL_IDS,
            admin_user_ids=Config.ADMIN_USER_IDS,
            solve_emoji=Config.SOLVE_EMOJI,
        )

        # Load cogs
        cogs = [
            "bot.commands.logic",
            "bot.events.reaction",
            "bot.events.message",
        ]

        for cog in cogs:
            try:
                await self.load_extension(cog)
                logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                logger.error(f"Failed to load cog {cog}: {e}")

        # Sync slash commands
        logger.info("Syncing slash commands...")
        await self.tree.sync()
        logger.info("Slash commands synced!")

    async def on_ready(self):
        """Called when the bot is fully ready."""
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        if not Config.ALLOWED_CHANNEL_IDS:
            logger.warning("No logic channels configured, /logic will work in every channel")

        # Set activity
        activity = discord.Activity(
            type=discord.ActivityType.playing,
            name="/logic help",
        )
        await self.change_presence(activity=activity)


async def main():
    """Main entry point."""
    if not Config.DISCORD_TOKEN:
        logger.error("DISCORD_TOKEN not set! Please set it in your .env file.")
        sys.exit(1)

    if not Config.SCOREBOARD_SECRET:
        logger.error("SCOREBOARD_SECRET not set! Please set it in your .env file.")
        sys.exit(1)

    bot = LogicBot()

    try:
        await bot.start(Config.DISCORD_TOKEN)
    except discord.LoginFailure:
        logger.error("Invalid Discord token! Please check your .env file.")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        await bot.close()


if __name__ == "__main__":
    asyncio.run(main())

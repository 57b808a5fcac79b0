"""Tests for /logic command parsing."""

import pytest

from bot.services.command_service import NOT_ALLOWED_TEXT, CommandService
from conftest import CHANNEL_ID, GUESSER_ID, OP_ID, TEST_CHANNEL_ID

ADMIN_ID = "400000000000000004"


@pytest.fixture
def commands(store, round_service, scoreboard):
    store.members[ADMIN_ID] = "admin"
    return CommandService(
        store,
        round_service,
        scoreboard,
        allowed_channel_ids=[CHANNEL_ID, TEST_CHANNEL_ID],
        admin_user_ids=[ADMIN_ID],
        current_year=lambda: "2025",
    )


class TestChannelRestriction:
    @pytest.mark.asyncio
    async def test_other_channel(self, commands, store):
        assert await commands.handle_command("700000000000000007", OP_ID, "A riddle?") == NOT_ALLOWED_TEXT
        assert store.messages == {}

    @pytest.mark.asyncio
    async def test_no_configured_channels(self, store, round_service, scoreboard):
        service = CommandService(store, round_service, scoreboard)

        assert service.is_allowed_channel("700000000000000007")


class TestHelp:
    @pytest.mark.asyncio
    async def test_help_hides_admin_commands(self, commands):
        text = await commands.handle_command(CHANNEL_ID, OP_ID, "help")

        assert "/logic scoreboard" in text
        assert "setscore" not in text

    @pytest.mark.asyncio
    async def test_help_for_admin(self, commands):
        text = await commands.handle_command(CHANNEL_ID, ADMIN_ID, "HELP")

        assert "setscore" in text


class TestStartRound:
    @pytest.mark.asyncio
    async def test_free_text_starts_round(self, commands, store):
        reply = await commands.handle_command(CHANNEL_ID, OP_ID, "What has keys but no locks?")

        assert reply.startswith("Puzzle posted")
        assert any("What has keys but no locks?" in m.text for m in store.messages.values())

    @pytest.mark.asyncio
    async def test_empty_text_shows_usage(self, commands):
        reply = await commands.handle_command(CHANNEL_ID, OP_ID, "")

        assert reply.startswith("Usage:")


class TestScoreboardAndStats:
    @pytest.mark.asyncio
    async def test_scoreboard_creates_pinned_display(self, commands, store):
        reply = await commands.handle_command(CHANNEL_ID, OP_ID, "scoreboard")

        assert "No scores yet." in reply
        assert len(store.pinned[CHANNEL_ID]) == 1

    @pytest.mark.asyncio
    async def test_own_stats(self, commands, scoreboard):
        await scoreboard.add_points(CHANNEL_ID, OP_ID, 2, "2024")

        reply = await commands.handle_command(CHANNEL_ID, OP_ID, "stats")

        assert "Stats for alice" in reply
        assert "**Total points:** 2" in reply

    @pytest.mark.asyncio
    async def test_stats_for_mention(self, commands):
        reply = await commands.handle_command(CHANNEL_ID, OP_ID, f"stats <@{GUESSER_ID}>")

        assert "Stats for bob" in reply

    @pytest.mark.asyncio
    async def test_stats_for_name(self, commands):
        reply = await commands.handle_command(CHANNEL_ID, OP_ID, "stats @Bob")

        assert "Stats for bob" in reply

    @pytest.mark.asyncio
    async def test_stats_unknown_user(self, commands):
        assert await commands.handle_command(CHANNEL_ID, OP_ID, "stats @nobody") == "User not found."


class TestAdminCommands:
    @pytest.mark.asyncio
    async def test_non_admin(self, commands, scoreboard):
        reply = await commands.handle_command(CHANNEL_ID, OP_ID, f"setscore <@{GUESSER_ID}> 5 2024")

        assert reply == "Sorry, only admins can use this command."
        assert (await scoreboard.get_scoreboard_data(CHANNEL_ID)).scores_by_year == {}

    @pytest.mark.asyncio
    async def test_setscore_overwrites(self, commands, scoreboard):
        await scoreboard.add_points(CHANNEL_ID, GUESSER_ID, 3, "2024")

        reply = await commands.handle_command(CHANNEL_ID, ADMIN_ID, f"setscore <@{GUESSER_ID}> 5 2024")

        assert reply == f"Set <@{GUESSER_ID}>'s score for 2024 to 5."
        assert (await scoreboard.get_scoreboard_data(CHANNEL_ID)).scores_by_year["2024"][GUESSER_ID] == 5

    @pytest.mark.asyncio
    async def test_addpoint_defaults_to_current_year(self, commands, scoreboard):
        reply = await commands.handle_command(CHANNEL_ID, ADMIN_ID, f"addpoint {GUESSER_ID}")

        assert reply.endswith("for 2025. New score: 1.")
        assert (await scoreboard.get_scoreboard_data(CHANNEL_ID)).scores_by_year == {"2025": {GUESSER_ID: 1}}

    @pytest.mark.asyncio
    async def test_removepoint_at_zero_is_rejected(self, commands, store, scoreboard):
        await commands.handle_command(CHANNEL_ID, ADMIN_ID, f"setscore <@{GUESSER_ID}> 0 2024")
        before = {m: store.messages[m].text for m in store.pinned[CHANNEL_ID]}

        reply = await commands.handle_command(CHANNEL_ID, ADMIN_ID, f"removepoint <@{GUESSER_ID}> 2024")

        assert reply == "Cannot set score to negative value. Result would be -1."
        assert {m: store.messages[m].text for m in store.pinned[CHANNEL_ID]} == before

    @pytest.mark.asyncio
    async def test_removepoint(self, commands, scoreboard):
        await scoreboard.add_points(CHANNEL_ID, GUESSER_ID, 2, "2024")

        reply = await commands.handle_command(CHANNEL_ID, ADMIN_ID, f"removepoint <@{GUESSER_ID}> 2024")

        assert reply.endswith("New score: 1.")

    @pytest.mark.asyncio
    async def test_unknown_user(self, commands):
        assert await commands.handle_command(CHANNEL_ID, ADMIN_ID, "addpoint @nobody") == "User not found."

    @pytest.mark.parametrize(
        "text",
        [
            "setscore",
            f"setscore <@{GUESSER_ID}>",
            f"setscore <@{GUESSER_ID}> lots",
            f"addpoint <@{GUESSER_ID}> last-year",
            f"addpoint <@{GUESSER_ID}> 2024 extra",
        ],
    )
    @pytest.mark.asyncio
    async def test_usage(self, commands, text):
        reply = await commands.handle_command(CHANNEL_ID, ADMIN_ID, text)

        assert reply.startswith("Usage:")

    @pytest.mark.asyncio
    async def test_store_failure(self, commands, store):
        store.failing.add("post_message")

        reply = await commands.handle_command(CHANNEL_ID, ADMIN_ID, f"addpoint <@{GUESSER_ID}> 2024")

        assert reply == "Error updating the scoreboard."

"""Discord API utility helpers."""

import logging
import re

import discord

logger = logging.getLogger(__name__)

USER_MENTION_PATTERN = re.compile(r"<@!?(\d+)>")
RAW_USER_ID_PATTERN = re.compile(r"\d{15,21}")


async def get_or_fetch_member(guild: discord.Guild, user_id: int) -> discord.Member | None:
    """Look up a guild member by ID, falling back to an API call if not cached."""
    member = guild.get_member(user_id)
    if member is None:
        try:
            member = await guild.fetch_member(user_id)
        except discord.NotFound:
            pass
        except discord.HTTPException:
            logger.warning(f"Failed to fetch member {user_id}")
    return member


def find_member_by_name(guild: discord.Guild, name: str) -> discord.Member | None:
    """Find a member by username, global name or nickname, ignoring case."""
    wanted = name.lower()
    for member in guild.members:
        candidates = (member.name, member.global_name, member.nick, member.display_name)
        if any(c and c.lower() == wanted for c in candidates):
            return member
    return None


def parse_user_token(token: str) -> tuple[int | None, str | None]:
    """Split a user reference into (user_id, name).

    Accepts `<@123>` / `<@!123>` mentions, raw IDs, and `@name` or `name`.
    """
    token = token.strip()
    mention = USER_MENTION_PATTERN.fullmatch(token)
    if mention:
        return (int(mention.group(1)), None)
    if RAW_USER_ID_PATTERN.fullmatch(token):
        return (int(token), None)
    name = token[1:] if token.startswith("@") else token
    return (None, name or None)

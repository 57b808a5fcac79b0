"""Application configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Discord
    discord_token: str = Field(default="", alias="DISCORD_TOKEN")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Channels the bot operates in; the test channel also allows OP self-solves
    logic_channel_id_main: str = Field(default="", alias="LOGIC_CHANNEL_ID_MAIN")
    logic_channel_id_test: str = Field(default="", alias="LOGIC_CHANNEL_ID_TEST")

    # Comma-separated user IDs allowed to run admin commands
    logic_admin_user_ids: str = Field(default="", alias="LOGIC_ADMIN_USER_IDS")

    # Scoreboard encryption. Required, there is no built-in default key.
    scoreboard_secret: str = Field(default="", alias="SCOREBOARD_SECRET")

    # Game settings
    solve_emoji: str = Field(default="✅", alias="SOLVE_EMOJI")
    scoreboard_name_width: int = Field(default=16, alias="SCOREBOARD_NAME_WIDTH")

    @property
    def allowed_channel_ids(self) -> list[str]:
        return [c for c in (self.logic_channel_id_main, self.logic_channel_id_test) if c]

    @property
    def admin_user_ids(self) -> list[str]:
        return [u.strip() for u in self.logic_admin_user_ids.split(",") if u.strip()]


# Global settings instance
settings = Settings()


# Backwards compatibility - expose as Config class with uppercase attributes
class Config:
    """Backwards-compatible config interface."""

    DISCORD_TOKEN = settings.discord_token
    LOG_LEVEL = settings.log_level.upper()
    LOGIC_CHANNEL_ID_MAIN = settings.logic_channel_id_main
    LOGIC_CHANNEL_ID_TEST = settings.logic_channel_id_test
    ALLOWED_CHANNEL_IDS = settings.allowed_channel_ids
    ADMIN_USER_IDS = settings.admin_user_ids
    SCOREBOARD_SECRET = settings.scoreboard_secret
    SOLVE_EMOJI = settings.solve_emoji
    SCOREBOARD_NAME_WIDTH = settings.scoreboard_name_width

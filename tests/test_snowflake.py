"""Tests for Discord snowflake utilities."""

from datetime import datetime, timezone

from utils.snowflake import (
    DISCORD_EPOCH,
    format_relative_time,
    snowflake_to_datetime,
    snowflake_to_timestamp_ms,
    timestamp_ms_to_snowflake,
    year_from_snowflake,
)


class TestSnowflakeTimestamps:
    def test_epoch_snowflake(self):
        assert snowflake_to_timestamp_ms(0) == DISCORD_EPOCH

    def test_string_input(self):
        assert snowflake_to_timestamp_ms("175928847299117063") > DISCORD_EPOCH

    def test_roundtrip(self):
        timestamp_ms = 1609459200000  # 2021-01-01 00:00:00 UTC
        assert snowflake_to_timestamp_ms(timestamp_ms_to_snowflake(timestamp_ms)) == timestamp_ms

    def test_low_bits_are_ignored(self):
        # Worker, process and increment bits don't change the timestamp
        snowflake = timestamp_ms_to_snowflake(1609459200000)
        assert snowflake_to_timestamp_ms(snowflake + 12345) == 1609459200000

    def test_datetime_is_utc(self):
        result = snowflake_to_datetime(175928847299117063)
        assert result.tzinfo == timezone.utc
        assert result.year == 2016


class TestYearFromSnowflake:
    def test_year(self):
        timestamp_ms = int(datetime(2023, 12, 31, 23, 59, tzinfo=timezone.utc).timestamp() * 1000)

        assert year_from_snowflake(timestamp_ms_to_snowflake(timestamp_ms)) == "2023"

    def test_new_year_boundary(self):
        timestamp_ms = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)

        assert year_from_snowflake(str(timestamp_ms_to_snowflake(timestamp_ms))) == "2024"


class TestFormatRelativeTime:
    def test_relative_style(self):
        assert format_relative_time(1609459200000) == "<t:1609459200:R>"

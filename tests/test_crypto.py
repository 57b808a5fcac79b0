"""Tests for scoreboard encryption."""

import re

import pytest

from utils.crypto import InvalidCiphertext, ScoreboardCipher


class TestScoreboardCipher:
    def test_roundtrip(self):
        cipher = ScoreboardCipher("secret")
        plaintext = '{"scoresByYear": {"2024": {"123": 5}}}'

        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_output_format(self):
        payload = ScoreboardCipher("secret").encrypt("hello")

        assert re.fullmatch(r"[0-9a-f]{32}:[0-9a-f]+", payload)

    def test_fresh_iv_per_message(self):
        cipher = ScoreboardCipher("secret")

        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_empty_secret_is_refused(self):
        with pytest.raises(ValueError):
            ScoreboardCipher("")

    def test_wrong_key(self):
        payload = ScoreboardCipher("secret").encrypt("hello world, this is a scoreboard")

        # A wrong key almost always breaks the padding; if it doesn't, the text is garbage
        try:
            result = ScoreboardCipher("other").decrypt(payload)
        except InvalidCiphertext:
            return
        assert result != "hello world, this is a scoreboard"

    @pytest.mark.parametrize(
        "payload",
        [
            "no separator",
            "zz:zz",
            "00:00",
            "00112233445566778899aabbccddeeff:",
            "00112233445566778899aabbccddeeff:0011",
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(InvalidCiphertext):
            ScoreboardCipher("secret").decrypt(payload)

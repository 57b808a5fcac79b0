"""Symmetric encryption for the scoreboard data message."""

import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

IV_SIZE = 16


class InvalidCiphertext(ValueError):
    """Raised when a stored payload can't be decrypted."""


class ScoreboardCipher:
    """AES-256-CBC with PKCS7 padding, serialised as `hex(iv):hex(ciphertext)`.

    The key is the SHA-256 digest of the configured secret. An empty secret
    is refused rather than replaced with a built-in key.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("SCOREBOARD_SECRET must be set to encrypt scoreboard data")
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, payload: str) -> str:
        iv_hex, sep, ciphertext_hex = payload.strip().partition(":")
        if not sep:
            raise InvalidCiphertext("Missing IV separator")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as e:
            raise InvalidCiphertext("Payload is not hex encoded") from e

        if len(iv) != IV_SIZE or not ciphertext or len(ciphertext) % IV_SIZE:
            raise InvalidCiphertext("Payload has the wrong length")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as e:
            # Wrong key or corrupted data
            raise InvalidCiphertext("Payload could not be decrypted") from e

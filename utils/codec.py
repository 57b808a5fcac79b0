"""Encoding of round state and callback payloads into message text.

Round state is stored as the text of a bot message in the round's thread.
Two formats exist in the wild: the current opaque token (base64 JSON) and the
legacy single-line grammar written by the first version of the bot. Decoding
tries each format in order and stops at the first that succeeds.
"""

import base64
import binascii
import json
import logging
import re
from collections.abc import Callable
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from models import RoundState, RoundStatus

logger = logging.getLogger(__name__)

# [logic_round v1] op=U123 status=OPEN threadId=123 channelId=C123 answer=...
LEGACY_ROUND_PATTERN = re.compile(
    r"(?:\[logic_round v(\d+)\]\s+)?"
    r"op=(\w+)\s+status=(\w+)\s+thread(?:Id|Ts)=([\w.]+)\s+channelId=(\w+)"
    r"(?:\s+answer=(.+?))?\s*",
    re.DOTALL,
)

LEGACY_DEFAULT_VERSION = "1"


def _b64_json_encode(data: dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def _b64_json_decode(token: str) -> Optional[Any]:
    try:
        raw = base64.b64decode(token.strip(), validate=True)
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def encode_round_state(state: RoundState) -> str:
    """Encode a round as an opaque token for its control message."""
    return _b64_json_encode(state.model_dump(mode="json", by_alias=True, exclude_none=True))


def _decode_token(text: str) -> Optional[RoundState]:
    data = _b64_json_decode(text)
    if not isinstance(data, dict):
        return None
    try:
        return RoundState.model_validate(data)
    except ValidationError:
        return None


def _decode_legacy(text: str) -> Optional[RoundState]:
    match = LEGACY_ROUND_PATTERN.fullmatch(text.strip())
    if not match:
        return None

    version, op, status_str, thread_id, channel_id, answer = match.groups()
    try:
        status = RoundStatus(status_str)
    except ValueError:
        return None

    return RoundState(
        version=version or LEGACY_DEFAULT_VERSION,
        op=op,
        status=status,
        thread_id=thread_id,
        channel_id=channel_id,
        answer=answer.strip() if answer else None,
    )


ROUND_DECODERS: list[Callable[[str], Optional[RoundState]]] = [_decode_token, _decode_legacy]


def decode_round_state(text: str) -> Optional[RoundState]:
    """Decode a control message's text, or return None if it holds no round."""
    if not text:
        return None
    for decoder in ROUND_DECODERS:
        state = decoder(text)
        if state is not None:
            return state
    return None


def encode_thread_ref(thread_id: str) -> str:
    """Obscure a thread ID for use in button payloads."""
    return base64.urlsafe_b64encode(thread_id.encode("utf-8")).decode("ascii")


def decode_thread_ref(encoded: str) -> Optional[str]:
    try:
        return base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8") or None
    except (binascii.Error, UnicodeError, ValueError):
        return None


def encode_payload(payload: BaseModel) -> str:
    """Encode a callback payload as an opaque token."""
    return _b64_json_encode(payload.model_dump(mode="json", by_alias=True, exclude_none=True))


def decode_payload(token: Optional[str]) -> Optional[dict[str, Any]]:
    """Decode a callback payload token into its raw fields."""
    if not token:
        return None
    data = _b64_json_decode(token)
    if not isinstance(data, dict):
        logger.debug("Discarding malformed payload token")
        return None
    return data

"""Button actions and the payloads they carry.

Every button the bot posts is one of a closed set of actions. A button's
action ID names the kind (`logic:<kind>`); the message it sits on carries one
opaque payload token shared by all of its buttons. `parse_action` turns the
pair back into a typed action, or None if the payload doesn't fit the kind.
"""

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from models import Button
from utils.codec import decode_payload, decode_thread_ref, encode_payload, encode_thread_ref
from utils.formatting import truncate

logger = logging.getLogger(__name__)

# Question/answer text carried in a payload is capped so the token stays small
PAYLOAD_TEXT_LIMIT = 400

# Discord embed footers, which carry the payload token, hold up to 2048 characters
PAYLOAD_TOKEN_LIMIT = 2048

# Stands in for a DM message ID that is only known once the prompt is posted
MAX_SNOWFLAKE_ID = "9" * 20


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ThreadRefPayload(_Payload):
    """Carried by the buttons on a round's public question message."""

    channel_id: str = Field(alias="channelId")
    encoded_thread_id: str = Field(alias="encodedThreadId")
    op: Optional[str] = None

    @classmethod
    def for_thread(cls, channel_id: str, thread_id: str, op: Optional[str] = None) -> "ThreadRefPayload":
        return cls(channel_id=channel_id, encoded_thread_id=encode_thread_ref(thread_id), op=op)

    @property
    def thread_id(self) -> Optional[str]:
        return decode_thread_ref(self.encoded_thread_id)


class SolvePromptPayload(_Payload):
    """Carried by the Yes/No buttons of the DM sent to the OP for a public guess."""

    channel_id: str = Field(alias="channelId")
    thread_id: str = Field(alias="threadId")
    candidate_id: str = Field(alias="guessAuthorId")
    round_control_id: str = Field(alias="roundControlId")
    question_text: str = Field(alias="questionText")
    answer_text: str = Field(alias="answerText")
    dm_channel_id: str = Field(default="", alias="dmChannelId")
    dm_message_id: str = Field(default="", alias="dmMessageId")
    op: Optional[str] = None


class PrivateAnswerPayload(SolvePromptPayload):
    """Same as SolvePromptPayload, for an answer submitted through the private form."""

    candidate_id: str = Field(alias="submitterId")


def capped(text: str) -> str:
    return truncate(text, PAYLOAD_TEXT_LIMIT)


def fit_payload(payload: SolvePromptPayload) -> SolvePromptPayload:
    """Shorten the question and answer until the encoded token fits a footer.

    The size check assumes the longest possible DM message ID, so the payload
    still fits once the real ID is filled in.
    """
    sized = payload.model_copy(update={"dm_message_id": payload.dm_message_id or MAX_SNOWFLAKE_ID})
    while len(encode_payload(sized)) > PAYLOAD_TOKEN_LIMIT:
        field = "question_text" if len(sized.question_text) >= len(sized.answer_text) else "answer_text"
        text = getattr(sized, field)
        if len(text) <= 1:
            raise ValueError("Payload doesn't fit a footer even without its text")
        sized = sized.model_copy(update={field: truncate(text, len(text) * 3 // 4)})
    return sized.model_copy(update={"dm_message_id": payload.dm_message_id})


class ConfirmSolve(BaseModel):
    kind: Literal["confirm_solve"] = "confirm_solve"
    payload: SolvePromptPayload


class CancelSolve(BaseModel):
    kind: Literal["cancel_solve"] = "cancel_solve"
    payload: SolvePromptPayload


class ConfirmPrivateSolve(BaseModel):
    kind: Literal["confirm_private_solve"] = "confirm_private_solve"
    payload: PrivateAnswerPayload


class CancelPrivateSolve(BaseModel):
    kind: Literal["cancel_private_solve"] = "cancel_private_solve"
    payload: PrivateAnswerPayload


class SubmitPrivateAnswer(BaseModel):
    kind: Literal["submit_private_answer"] = "submit_private_answer"
    payload: ThreadRefPayload


class EditQuestion(BaseModel):
    kind: Literal["edit_question"] = "edit_question"
    payload: ThreadRefPayload


class CloseRound(BaseModel):
    kind: Literal["close_round"] = "close_round"
    payload: ThreadRefPayload


class ViewAnswer(BaseModel):
    kind: Literal["view_answer"] = "view_answer"
    payload: ThreadRefPayload


Action = Annotated[
    Union[
        ConfirmSolve,
        CancelSolve,
        SubmitPrivateAnswer,
        ConfirmPrivateSolve,
        CancelPrivateSolve,
        EditQuestion,
        CloseRound,
        ViewAnswer,
    ],
    Field(discriminator="kind"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)

ACTION_KINDS = frozenset(
    [
        "confirm_solve",
        "cancel_solve",
        "submit_private_answer",
        "confirm_private_solve",
        "cancel_private_solve",
        "edit_question",
        "close_round",
        "view_answer",
    ]
)


def parse_action(kind: str, token: Optional[str]) -> Optional[Action]:
    """Rebuild a typed action from a button's kind and its message's payload token."""
    if kind not in ACTION_KINDS:
        logger.debug(f"Unknown action kind: {kind}")
        return None
    payload = decode_payload(token)
    if payload is None:
        return None
    try:
        return _action_adapter.validate_python({"kind": kind, "payload": payload})
    except ValidationError:
        logger.warning(f"Payload doesn't match action {kind}")
        return None


def question_buttons() -> list[Button]:
    """Buttons on an open round's question message."""
    return [
        Button(label="Submit answer privately", action="submit_private_answer"),
        Button(label="Edit question", action="edit_question"),
        Button(label="Close round", action="close_round", style="danger"),
    ]


def solved_buttons() -> list[Button]:
    return [Button(label="View answer", action="view_answer")]


def prompt_buttons(private: bool, permalink: Optional[str]) -> list[Button]:
    """Yes/No buttons of a solve confirmation DM, plus a link to the thread."""
    confirm, cancel = ("confirm_private_solve", "cancel_private_solve") if private else ("confirm_solve", "cancel_solve")
    buttons = [
        Button(label="Yes", action=confirm, style="primary"),
        Button(label="No", action=cancel),
    ]
    if permalink:
        buttons.append(Button(label="View thread", url=permalink))
    return buttons


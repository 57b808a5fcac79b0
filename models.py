"""Pydantic models for round and scoreboard data structures."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Version tag written into newly encoded round state
ROUND_STATE_VERSION = "2"


class RoundStatus(str, Enum):
    """Lifecycle status of a round. SOLVED and CLOSED are terminal."""

    OPEN = "OPEN"
    SOLVED = "SOLVED"
    CLOSED = "CLOSED"


class RoundState(BaseModel):
    """The machine-readable state of one round, stored in its control message.

    `answer` is only written on the transition to SOLVED. Rounds solved by
    older deployments may be SOLVED without an answer, so this is not
    validated here.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str = ROUND_STATE_VERSION
    op: str
    status: RoundStatus = RoundStatus.OPEN
    thread_id: str = Field(
        validation_alias=AliasChoices("threadId", "threadTs", "thread_id"),
        serialization_alias="threadId",
    )
    channel_id: str = Field(alias="channelId")
    question: Optional[str] = None
    answer: Optional[str] = None


class ScoreboardData(BaseModel):
    """Per-channel points and question counts, keyed by year then user ID."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    scores_by_year: dict[str, dict[str, int]] = Field(default_factory=dict, alias="scoresByYear")
    questions_by_year: dict[str, dict[str, int]] = Field(default_factory=dict, alias="questionsByYear")
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")

    @field_validator("scores_by_year", "questions_by_year", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return {} if value is None else value

    def years(self) -> list[str]:
        """All years with any data, newest first."""
        years = set(self.scores_by_year) | set(self.questions_by_year)
        return sorted(years, key=lambda y: int(y) if y.isdigit() else 0, reverse=True)


class MessageRef(BaseModel):
    """Location of a message. `thread_id` is set for replies inside a thread."""

    channel_id: str
    message_id: str
    thread_id: Optional[str] = None


class StoredMessage(BaseModel):
    """A message as read back from the chat platform."""

    channel_id: str
    message_id: str
    thread_id: Optional[str] = None
    author_id: str
    text: str = ""
    title: Optional[str] = None
    payload: Optional[str] = None

    @property
    def ref(self) -> MessageRef:
        return MessageRef(channel_id=self.channel_id, message_id=self.message_id, thread_id=self.thread_id)


class Button(BaseModel):
    """A message button. Either `action` (a callback kind) or `url` is set."""

    label: str
    action: Optional[str] = None
    url: Optional[str] = None
    style: Literal["primary", "secondary", "danger"] = "secondary"


class RoundRecord(BaseModel):
    """A decoded round together with the control message holding it."""

    ref: MessageRef
    state: RoundState


class InstructionRecord(BaseModel):
    """The human-readable status message of a round."""

    ref: MessageRef
    text: str
    solver_id: Optional[str] = None


class UserStats(BaseModel):
    """A user's scoreboard entries across all years."""

    user_id: str
    points_by_year: dict[str, int] = Field(default_factory=dict)
    questions_by_year: dict[str, int] = Field(default_factory=dict)

    @property
    def total_points(self) -> int:
        return sum(self.points_by_year.values())

    @property
    def total_questions(self) -> int:
        return sum(self.questions_by_year.values())

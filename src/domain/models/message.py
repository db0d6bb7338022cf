"""Interview transcript models.

Core Concepts:
    - Speaker identification: RESPONDENT (the persona) vs INTERVIEWER (the
      user or the automated moderator)
    - Automated flag: marks interviewer messages written by the moderator
    - Append-only transcript: messages are never edited or removed once
      appended during an interview
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Optional, Sequence

from pydantic import BaseModel, Field


class Speaker(str, Enum):
    """Speaker role for message attribution."""

    RESPONDENT = "respondent"
    INTERVIEWER = "interviewer"


class ChatMessage(BaseModel):
    """Single message in the interview transcript."""

    speaker: Speaker
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    automated: bool = Field(
        default=False,
        description="Written by the automated moderator (interviewer messages only)",
    )

    model_config = {"frozen": True}

    @property
    def is_respondent(self) -> bool:
        return self.speaker == Speaker.RESPONDENT


class Transcript:
    """Append-only, ordered sequence of interview messages."""

    def __init__(self, messages: Optional[Sequence[ChatMessage]] = None):
        self._messages: List[ChatMessage] = list(messages or [])

    def append(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        return message

    @property
    def messages(self) -> List[ChatMessage]:
        """Copy of the messages; mutating it does not affect the transcript."""
        return list(self._messages)

    @property
    def last(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._messages))

# ------------------------------------------------------------
# Module: h5p_assist/consumer/messages.py
# Purpose: Conversational message model for the streaming consumer.
# ------------------------------------------------------------

"""Chat messages as seen by the editor.

An assistant message starts as an empty placeholder, grows by `append()` while
its status is STREAMING, and is frozen by `close()` / `fail()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

Role = Literal["user", "assistant"]

APOLOGY_TEXT = "Sorry, I encountered an error while getting suggestions."


class MessageStatus(str, Enum):
    STREAMING = "streaming"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    # partial text kept, stream broke
    INCOMPLETE = "incomplete"
    # nothing received; text is APOLOGY_TEXT
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    role: Role
    text: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    status: MessageStatus = MessageStatus.COMPLETE
    error: str | None = None

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", text=text)

    @classmethod
    def placeholder(cls) -> Message:
        return cls(role="assistant", status=MessageStatus.STREAMING)

    @property
    def is_open(self) -> bool:
        return self.status is MessageStatus.STREAMING

    def append(self, delta: str) -> None:
        if not self.is_open:
            raise RuntimeError(f"cannot append to a {self.status.value} message")
        self.text += delta

    def advance(self, text: str) -> None:
        """Replace the text with a folded buffer that extends it."""
        if not text.startswith(self.text):
            raise ValueError("folded text must extend the current text")
        self.append(text[len(self.text) :])

    def close(self, status: MessageStatus = MessageStatus.COMPLETE) -> None:
        if not self.is_open:
            raise RuntimeError(f"message already {self.status.value}")
        if status not in (MessageStatus.COMPLETE, MessageStatus.CANCELLED):
            raise ValueError(f"close() takes complete or cancelled, got {status.value}")
        self.status = status

    def fail(self, error: str) -> None:
        """Close on a transport failure, keeping any partial text."""
        if not self.is_open:
            raise RuntimeError(f"message already {self.status.value}")
        self.error = error
        if self.text:
            self.status = MessageStatus.INCOMPLETE
        else:
            self.text = APOLOGY_TEXT
            self.status = MessageStatus.FAILED

"""
Conversation Models
===================

Chat history exchanged with the completion service.

Core Concepts:
    - Message: immutable {id, role, content} entry
    - StreamingAccumulator: the one live assistant message of a query round
    - Conversation: committed history plus at most one live accumulator

Invariants:
    - At most one trailing assistant message is live at any time
    - The live message is only committed into history when its stream
      ends, is cancelled, or fails
    - Committed messages are never rewritten
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def new_message_id() -> str:
    return uuid.uuid4().hex[:12]


class Role(str, Enum):
    """Message author."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One conversation entry."""

    id: str = Field(default_factory=new_message_id)
    role: Role
    content: str = ""

    model_config = {"frozen": True}

    def to_chat(self) -> dict:
        """Role-tagged dict understood by chat completion APIs."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class StreamingAccumulator:
    """
    Trailing assistant message being rewritten by a live stream.

    Each delta replaces the rendered content with the cumulative text,
    so the content only ever grows.
    """

    id: str = field(default_factory=new_message_id)
    text_so_far: str = ""

    def append(self, delta: str) -> str:
        self.text_so_far += delta
        return self.text_so_far

    def render(self) -> Message:
        return Message(id=self.id, role=Role.ASSISTANT, content=self.text_so_far)


class Conversation:
    """
    Ordered chat history with a single optional live assistant message.

    The query engine is the only writer of assistant content; user messages
    are appended immediately before a query is issued.
    """

    def __init__(self) -> None:
        self._history: List[Message] = []
        self._live: Optional[StreamingAccumulator] = None

    @property
    def history(self) -> List[Message]:
        """Committed messages only."""
        return list(self._history)

    @property
    def messages(self) -> List[Message]:
        """Committed messages followed by the live one, if any."""
        rendered = list(self._history)
        if self._live is not None:
            rendered.append(self._live.render())
        return rendered

    @property
    def live(self) -> Optional[StreamingAccumulator]:
        return self._live

    def __len__(self) -> int:
        return len(self._history) + (1 if self._live is not None else 0)

    def append_user(self, content: str) -> Message:
        message = Message(role=Role.USER, content=content)
        self._history.append(message)
        return message

    def begin_assistant(self) -> StreamingAccumulator:
        """Open the live assistant message for a new query round."""
        if self._live is not None:
            raise RuntimeError("an assistant message is already streaming")
        self._live = StreamingAccumulator()
        return self._live

    def commit_live(self, keep_empty: bool = True) -> Optional[Message]:
        """
        Move the live message into history.

        Args:
            keep_empty: Commit the message even when no text arrived

        Returns:
            The committed message, or None if nothing was committed.
        """
        live, self._live = self._live, None
        if live is None:
            return None
        if not live.text_so_far and not keep_empty:
            return None
        message = live.render()
        self._history.append(message)
        return message

    def clear(self) -> None:
        self._history.clear()
        self._live = None

    def to_list(self) -> List[dict]:
        return [message.model_dump(mode="json") for message in self.messages]

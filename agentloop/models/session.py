"""Conversation session domain model."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from agentloop.models.tool import FileDiff


@dataclass(frozen=True)
class SessionMessage:
    """One entry of the user-visible conversation."""

    text: str
    is_user: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    file_diff: FileDiff | None = None

    def to_doc(self) -> dict:
        doc: dict = {
            "text": self.text,
            "is_user": self.is_user,
            "timestamp": self.timestamp,
        }
        if self.file_diff:
            doc["file_diff"] = self.file_diff.to_dict()
        return doc

    @classmethod
    def from_doc(cls, doc: dict) -> SessionMessage:
        diff = doc.get("file_diff")
        return cls(
            text=doc.get("text", ""),
            is_user=doc.get("is_user", False),
            timestamp=doc.get("timestamp", datetime.now(timezone.utc)),
            file_diff=FileDiff.from_dict(diff) if diff else None,
        )


@dataclass(frozen=True)
class Session:
    """Ordered message history plus pause/resume bookkeeping."""

    id: str
    messages: tuple[SessionMessage, ...] = ()
    paused: bool = False
    last_prompt: str = ""
    last_partial_response: str = ""
    workspace_root: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Session must have an id")

    def with_messages(self, *messages: SessionMessage) -> Session:
        """Return a copy with messages appended."""
        return replace(
            self,
            messages=self.messages + tuple(messages),
            updated_at=datetime.now(timezone.utc),
        )

    def with_paused(self, prompt: str, partial_response: str) -> Session:
        """Return a paused copy remembering where the operation stopped."""
        return replace(
            self,
            paused=True,
            last_prompt=prompt,
            last_partial_response=partial_response,
            updated_at=datetime.now(timezone.utc),
        )

    def with_resumed(self) -> Session:
        return replace(
            self,
            paused=False,
            last_partial_response="",
            updated_at=datetime.now(timezone.utc),
        )

    def to_doc(self) -> dict:
        return {
            "_id": self.id,
            "messages": [m.to_doc() for m in self.messages],
            "paused": self.paused,
            "last_prompt": self.last_prompt,
            "last_partial_response": self.last_partial_response,
            "workspace_root": self.workspace_root,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> Session:
        return cls(
            id=str(doc["_id"]),
            messages=tuple(SessionMessage.from_doc(m) for m in doc.get("messages", [])),
            paused=doc.get("paused", False),
            last_prompt=doc.get("last_prompt", ""),
            last_partial_response=doc.get("last_partial_response", ""),
            workspace_root=doc.get("workspace_root", ""),
            created_at=doc.get("created_at", datetime.now(timezone.utc)),
            updated_at=doc.get("updated_at", datetime.now(timezone.utc)),
        )

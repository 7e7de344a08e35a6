"""Pydantic models for the collaboration layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


# Fields owned by the store: the id is the document key and timestamps are
# stamped server-side, so they never travel inside a written document.
_STORE_FIELDS = {"id", "created_at", "updated_at"}


class StoredModel(BaseModel):
    """Base for records that live as documents in the external store."""

    def to_document(self) -> dict[str, Any]:
        """Serialise to a JSON-safe document body for a store write."""
        return self.model_dump(mode="json", exclude=_STORE_FIELDS)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Any:
        """Build a model from a store snapshot document."""
        return cls.model_validate(doc)


class CandidateUser(BaseModel):
    """A roster entry a mention can resolve to."""

    id: str
    display_name: str = ""
    email: str = ""


class Reaction(BaseModel):
    """One (user, emoji) marker on a comment."""

    id: str = Field(default_factory=_new_id)
    comment_id: str
    user_id: str
    emoji: str
    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.comment_id, self.user_id, self.emoji)


class Comment(StoredModel):
    """A task comment. ``parent_id`` set means it is a reply to a root comment."""

    id: str = ""
    task_id: str
    project_id: str
    author_id: str
    author_display_name: str = ""
    author_avatar_ref: str = ""
    content: str
    parent_id: Optional[str] = None
    mentions: list[str] = Field(default_factory=list)
    """Resolved mention user ids, captured at creation time."""

    reactions: list[Reaction] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


class NotificationType(str, Enum):
    MENTION = "mention"
    REPLY_ADDED = "reply_added"
    COMMENT_ADDED = "comment_added"
    REACTION_ADDED = "reaction_added"


class Notification(StoredModel):
    """A per-recipient notification record."""

    id: str = ""
    user_id: str
    title: str
    message: str
    type: NotificationType
    link: str = ""
    is_read: bool = False
    created_at: Optional[datetime] = None


class ActivityType(str, Enum):
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_ARCHIVED = "project_archived"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    TASK_DELETED = "task_deleted"
    COMMENT_ADDED = "comment_added"
    REPLY_ADDED = "reply_added"
    MEMBER_ADDED = "member_added"


class Activity(StoredModel):
    """An immutable project timeline entry."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    project_id: str
    type: ActivityType
    actor_id: str = ""
    actor_name: str = ""
    target_id: str = ""
    target_name: str = ""
    details: str = ""
    created_at: Optional[datetime] = None


class ReactionGroup(BaseModel):
    """Reactions sharing one emoji, for display."""

    emoji: str
    user_ids: list[str] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.user_ids)


class Thread(BaseModel):
    """A root comment and its direct replies, both in creation order."""

    root: Comment
    replies: list[Comment] = Field(default_factory=list)

    @property
    def reply_count(self) -> int:
        return len(self.replies)

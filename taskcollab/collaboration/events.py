"""Domain events consumed by the notification dispatcher.

Each event kind is its own model with a ``kind`` literal, so the union below
is discriminated and every variant's required fields are enforced when the
event is built.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


def task_link(project_id: str, task_id: str) -> str:
    """Deep link back to a task."""
    return f"/projects/{project_id}/tasks/{task_id}"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor_id: str = Field(min_length=1)
    actor_name: str = ""
    project_id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)
    comment_id: str = Field(min_length=1)
    link: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_link(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("link"):
            project_id = data.get("project_id")
            task_id = data.get("task_id")
            if project_id and task_id:
                data = {**data, "link": task_link(project_id, task_id)}
        return data


class CommentAdded(_Event):
    """A root comment was posted.  Only its resolved mentions are notified."""

    kind: Literal["comment_added"] = "comment_added"
    content: str
    mentioned_user_ids: list[str] = Field(default_factory=list)


class ReplyAdded(_Event):
    """A reply was posted under a root comment."""

    kind: Literal["reply_added"] = "reply_added"
    content: str
    parent_comment_id: str = Field(min_length=1)
    parent_author_id: str = Field(min_length=1)


class ReactionAdded(_Event):
    """A reaction was added (not removed) on a comment."""

    kind: Literal["reaction_added"] = "reaction_added"
    emoji: str = Field(min_length=1)
    comment_author_id: str = Field(min_length=1)


class Mentioned(_Event):
    """Users were mentioned in a comment body."""

    kind: Literal["mentioned"] = "mentioned"
    content: str
    mentioned_user_ids: list[str] = Field(min_length=1)


DomainEvent = Annotated[
    Union[CommentAdded, ReplyAdded, ReactionAdded, Mentioned],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter[Any] = TypeAdapter(DomainEvent)


def parse_event(data: dict[str, Any]) -> CommentAdded | ReplyAdded | ReactionAdded | Mentioned:
    """Validate a loosely-typed payload into the matching event model."""
    return _event_adapter.validate_python(data)

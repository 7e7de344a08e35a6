"""CommentStore — task comments and their two-tier threads."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from taskcollab.config import COMMENTS_COLLECTION
from taskcollab.errors import PermissionDenied, StoreUnavailable, ValidationError
from taskcollab.collaboration.models import Comment, Thread
from taskcollab.collaboration.subscriptions import Subscription, SubscriptionHub
from taskcollab.store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _creation_key(comment: Comment) -> tuple[datetime, str]:
    return (comment.created_at or _EPOCH, comment.id)


def sort_comments(comments: Iterable[Comment]) -> list[Comment]:
    """Ascending by creation time."""
    return sorted(comments, key=_creation_key)


def build_threads(comments: Iterable[Comment]) -> list[Thread]:
    """Group a task's comments into root threads, both levels in creation order.

    Replies whose parent is gone are left out; see :func:`orphaned_replies`.
    """
    ordered = sort_comments(comments)
    threads: dict[str, Thread] = {}
    for comment in ordered:
        if comment.parent_id is None:
            threads[comment.id] = Thread(root=comment)
    for comment in ordered:
        if comment.parent_id is not None and comment.parent_id in threads:
            threads[comment.parent_id].replies.append(comment)
    return list(threads.values())


def orphaned_replies(comments: Iterable[Comment]) -> list[Comment]:
    """Replies whose parent comment no longer exists."""
    ordered = sort_comments(comments)
    root_ids = {c.id for c in ordered if c.parent_id is None}
    return [c for c in ordered if c.parent_id is not None and c.parent_id not in root_ids]


def _snapshot_to_comments(docs: list[Document]) -> list[Comment]:
    return sort_comments(Comment.from_document(d) for d in docs)


class CommentStore:
    """Comment CRUD and live task comment lists over a document store.

    Parameters
    ----------
    store:
        The realtime document store.
    hub:
        Shared subscription hub; one store subscription per task.
    """

    def __init__(self, store: DocumentStore, hub: SubscriptionHub) -> None:
        self._store = store
        self._hub = hub

    async def create_comment(
        self,
        task_id: str,
        project_id: str,
        author_id: str,
        author_name: str,
        content: str,
        parent_id: Optional[str] = None,
        author_avatar: str = "",
        mentions: Iterable[str] = (),
    ) -> Optional[Comment]:
        """Persist a comment and return it as stored.

        Raises
        ------
        ValidationError
            Empty content, unknown parent, or a parent that is itself a reply.

        Returns None when the store is unavailable.
        """
        if not content or not content.strip():
            raise ValidationError("Comment content must not be empty")

        try:
            if parent_id is not None:
                await self._check_parent(parent_id, task_id)

            comment = Comment(
                task_id=task_id,
                project_id=project_id,
                author_id=author_id,
                author_display_name=author_name,
                author_avatar_ref=author_avatar,
                content=content,
                parent_id=parent_id,
                mentions=list(mentions),
            )
            doc = await self._store.write(COMMENTS_COLLECTION, None, comment.to_document())
        except StoreUnavailable:
            logger.warning("Store unavailable, comment on task %s not saved", task_id)
            return None

        stored = Comment.from_document(doc)
        logger.info("Added comment %s to task %s", stored.id, task_id)
        return stored

    async def add_comment(
        self,
        task_id: str,
        project_id: str,
        author_id: str,
        author_name: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> Optional[str]:
        """Add a comment to a task.  Returns the new comment id, or None."""
        comment = await self.create_comment(
            task_id, project_id, author_id, author_name, content, parent_id,
        )
        return comment.id if comment else None

    async def _check_parent(self, parent_id: str, task_id: str) -> None:
        doc = await self._store.get(COMMENTS_COLLECTION, parent_id)
        if doc is None:
            raise ValidationError(f"Parent comment {parent_id} does not exist")
        parent = Comment.from_document(doc)
        if parent.parent_id is not None:
            raise ValidationError("Replies cannot be replied to; reply to the root comment")
        if parent.task_id != task_id:
            raise ValidationError(f"Parent comment {parent_id} belongs to another task")

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        try:
            doc = await self._store.get(COMMENTS_COLLECTION, comment_id)
        except StoreUnavailable:
            logger.debug("Store unavailable, comment %s not read", comment_id)
            return None
        return Comment.from_document(doc) if doc else None

    async def list_comments(self, task_id: str) -> list[Comment]:
        """All comments of a task, ascending by creation time."""
        try:
            docs = await self._store.query(COMMENTS_COLLECTION, task_id=task_id)
        except StoreUnavailable:
            logger.debug("Store unavailable, comments of task %s not read", task_id)
            return []
        return _snapshot_to_comments(docs)

    async def delete_comment(self, comment_id: str, actor_id: Optional[str]) -> bool:
        """Delete a comment.  Replies are left in place.

        With ``actor_id=None`` (no signed-in user) anyone may delete.

        Raises
        ------
        PermissionDenied
            A signed-in user who is not the author tried to delete.
        """
        try:
            doc = await self._store.get(COMMENTS_COLLECTION, comment_id)
            if doc is None:
                return False
            if actor_id is not None and doc.get("author_id") != actor_id:
                raise PermissionDenied(
                    f"User '{actor_id}' may not delete comment {comment_id}"
                )
            removed = await self._store.delete(COMMENTS_COLLECTION, comment_id)
        except StoreUnavailable:
            logger.warning("Store unavailable, comment %s not deleted", comment_id)
            return False

        if removed:
            logger.info("Deleted comment %s", comment_id)
        return removed

    def subscribe(
        self,
        task_id: str,
        callback: Callable[[list[Comment]], None],
    ) -> Subscription:
        """Live list of a task's comments, roots and replies, oldest first."""
        return self._hub.subscribe(
            ("comments", task_id),
            COMMENTS_COLLECTION,
            {"task_id": task_id},
            _snapshot_to_comments,
            callback,
        )

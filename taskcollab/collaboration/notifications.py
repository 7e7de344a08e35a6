"""Notifications — event fan-out to recipients, and the recipient's inbox.

:class:`NotificationDispatcher` turns a domain event into per-recipient
:class:`Notification` records.  Delivery is best-effort: each write is
independent, and failures are logged and dropped without retry.

:class:`NotificationCenter` is the recipient's side: live inbox, mark read,
delete, and the bulk variants.  A notification goes from unread to read, or
is deleted; nothing here marks it unread again.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Union

from taskcollab.config import ELLIPSIS, EXCERPT_LENGTH, NOTIFICATIONS_COLLECTION
from taskcollab.errors import PermissionDenied, StoreUnavailable
from taskcollab.collaboration.events import CommentAdded, Mentioned, ReactionAdded, ReplyAdded
from taskcollab.collaboration.models import Notification, NotificationType
from taskcollab.collaboration.subscriptions import Subscription, SubscriptionHub
from taskcollab.store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

Event = Union[CommentAdded, ReplyAdded, ReactionAdded, Mentioned]


def preview(text: str, length: int = EXCERPT_LENGTH) -> str:
    return text[:length] + (ELLIPSIS if len(text) > length else "")


def recipients_for(event: Event) -> list[str]:
    """Who an event notifies: deduplicated, actor excluded."""
    if isinstance(event, (CommentAdded, Mentioned)):
        candidates: Iterable[str] = event.mentioned_user_ids
    elif isinstance(event, ReplyAdded):
        candidates = [event.parent_author_id]
    elif isinstance(event, ReactionAdded):
        candidates = [event.comment_author_id]
    else:
        raise TypeError(f"Unknown event type: {type(event).__name__}")

    seen: list[str] = []
    for user_id in candidates:
        if user_id and user_id != event.actor_id and user_id not in seen:
            seen.append(user_id)
    return seen


class NotificationDispatcher:
    """Fan domain events out to notification records."""

    def __init__(self, store: DocumentStore, preview_length: int = EXCERPT_LENGTH) -> None:
        self._store = store
        self._preview_length = preview_length

    def build(self, event: Event) -> list[Notification]:
        """Notifications an event produces, one per recipient."""
        actor = event.actor_name or "A user"

        if isinstance(event, (CommentAdded, Mentioned)):
            ntype = NotificationType.MENTION
            title = "You were mentioned"
            message = (
                f'{actor} mentioned you in a comment: '
                f'"{preview(event.content, self._preview_length)}"'
            )
        elif isinstance(event, ReplyAdded):
            ntype = NotificationType.REPLY_ADDED
            title = "New reply to your comment"
            message = (
                f'{actor} replied to your comment: '
                f'"{preview(event.content, self._preview_length)}"'
            )
        else:
            ntype = NotificationType.REACTION_ADDED
            title = "New reaction"
            message = f"{actor} reacted {event.emoji} to your comment"

        return [
            Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=ntype,
                link=event.link,
            )
            for user_id in recipients_for(event)
        ]

    async def dispatch(self, event: Event) -> list[Notification]:
        """Write one notification per recipient.  Returns those written.

        Never raises for delivery failures.
        """
        sent: list[Notification] = []
        for notification in self.build(event):
            try:
                doc = await self._store.write(
                    NOTIFICATIONS_COLLECTION, None, notification.to_document(),
                )
            except StoreUnavailable:
                logger.warning(
                    "Store unavailable, %s notification for %s dropped",
                    notification.type.value, notification.user_id,
                )
                continue
            except Exception:
                logger.warning(
                    "Notification to %s failed", notification.user_id, exc_info=True,
                )
                continue
            sent.append(Notification.from_document(doc))
            logger.info(
                "Sent %s notification to %s", notification.type.value, notification.user_id,
            )
        return sent


def _snapshot_to_notifications(docs: list[Document]) -> list[Notification]:
    notifications = [Notification.from_document(d) for d in docs]
    notifications.sort(key=lambda n: (n.created_at is not None, n.created_at), reverse=True)
    return notifications


def unread_count(notifications: Iterable[Notification]) -> int:
    return sum(1 for n in notifications if not n.is_read)


class NotificationCenter:
    """A recipient's notifications: live inbox and read/delete operations."""

    def __init__(self, store: DocumentStore, hub: SubscriptionHub) -> None:
        self._store = store
        self._hub = hub

    def subscribe(
        self,
        user_id: str,
        callback: Callable[[list[Notification]], None],
    ) -> Subscription:
        """Live list of a user's notifications, newest first."""
        return self._hub.subscribe(
            ("notifications", user_id),
            NOTIFICATIONS_COLLECTION,
            {"user_id": user_id},
            _snapshot_to_notifications,
            callback,
        )

    async def list_notifications(self, user_id: str) -> list[Notification]:
        try:
            docs = await self._store.query(NOTIFICATIONS_COLLECTION, user_id=user_id)
        except StoreUnavailable:
            logger.debug("Store unavailable, notifications of %s not read", user_id)
            return []
        return _snapshot_to_notifications(docs)

    async def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one of *user_id*'s notifications read."""
        try:
            if not await self._owned(notification_id, user_id):
                return False
            doc = await self._store.update(
                NOTIFICATIONS_COLLECTION, notification_id, {"is_read": True},
            )
        except StoreUnavailable:
            logger.warning("Store unavailable, notification %s not marked read", notification_id)
            return False
        return doc is not None

    async def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread notification of *user_id* read in one batch.

        Returns how many were changed.
        """
        try:
            docs = await self._store.query(
                NOTIFICATIONS_COLLECTION, user_id=user_id, is_read=False,
            )
            if not docs:
                return 0
            changed = await self._store.batch_update(
                NOTIFICATIONS_COLLECTION, {d["id"]: {"is_read": True} for d in docs},
            )
        except StoreUnavailable:
            logger.warning("Store unavailable, notifications of %s not marked read", user_id)
            return 0
        logger.info("Marked %d notifications read for %s", changed, user_id)
        return changed

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        try:
            if not await self._owned(notification_id, user_id):
                return False
            return await self._store.delete(NOTIFICATIONS_COLLECTION, notification_id)
        except StoreUnavailable:
            logger.warning("Store unavailable, notification %s not deleted", notification_id)
            return False

    async def clear_all(self, user_id: str) -> int:
        """Delete every notification of *user_id*.  Returns how many went."""
        try:
            docs = await self._store.query(NOTIFICATIONS_COLLECTION, user_id=user_id)
            removed = 0
            for doc in docs:
                if await self._store.delete(NOTIFICATIONS_COLLECTION, doc["id"]):
                    removed += 1
        except StoreUnavailable:
            logger.warning("Store unavailable, notifications of %s not cleared", user_id)
            return 0
        logger.info("Cleared %d notifications for %s", removed, user_id)
        return removed

    async def _owned(self, notification_id: str, user_id: str) -> bool:
        doc = await self._store.get(NOTIFICATIONS_COLLECTION, notification_id)
        if doc is None:
            return False
        if doc.get("user_id") != user_id:
            raise PermissionDenied(
                f"Notification {notification_id} does not belong to '{user_id}'"
            )
        return True

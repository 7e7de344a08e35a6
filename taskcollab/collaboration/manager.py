"""CollaborationManager — main entry point for the collaboration layer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from taskcollab.config import Settings
from taskcollab.errors import StoreUnavailable
from taskcollab.collaboration.activity import ActivityLogger
from taskcollab.collaboration.comments import CommentStore
from taskcollab.collaboration.events import CommentAdded, Mentioned, ReactionAdded, ReplyAdded
from taskcollab.collaboration.identity import LOCAL_USER_ID, IdentityProvider
from taskcollab.collaboration.mentions import MentionResolver
from taskcollab.collaboration.models import Activity, ActivityType, Comment, Notification
from taskcollab.collaboration.notifications import NotificationCenter, NotificationDispatcher
from taskcollab.collaboration.reactions import (
    ReactionAggregator,
    ReactionToggle,
    toggle_in,
    validate_emoji,
)
from taskcollab.collaboration.subscriptions import ReconciledView, Subscription, SubscriptionHub
from taskcollab.store import create_store
from taskcollab.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    """Outcome of a comment submission."""

    comment: Optional[Comment]

    @property
    def comment_id(self) -> Optional[str]:
        return self.comment.id if self.comment else None

    @property
    def keep_draft(self) -> bool:
        """True when nothing was saved, so the compose box keeps its text."""
        return self.comment is None


class CollaborationManager:
    """Orchestrates comments, reactions, notifications, and the activity log.

    A comment or reaction write happens first.  Activity logging and
    notification dispatch then run as independent background tasks; their
    failures are logged and never undo the write.  Call :meth:`drain` to wait
    for them.

    Parameters
    ----------
    store:
        Realtime document store.  Not initialized until :meth:`initialize`.
    identity:
        Identity provider for the acting user and mention rosters.
    settings:
        Runtime settings; defaults apply when omitted.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.identity = identity

        self.hub = SubscriptionHub(store)
        self.mentions = MentionResolver(identity)
        self.comments = CommentStore(store, self.hub)
        self.reactions = ReactionAggregator(store)
        self.dispatcher = NotificationDispatcher(store, self.settings.excerpt_length)
        self.notifications = NotificationCenter(store, self.hub)
        self.activity = ActivityLogger(
            store,
            self.hub,
            excerpt_length=self.settings.excerpt_length,
            feed_limit=self.settings.activity_limit,
        )

        self._background: set[asyncio.Task[Any]] = set()
        self._views: dict[Subscription, ReconciledView[Comment]] = {}

    @classmethod
    def from_settings(cls, settings: Settings, identity: IdentityProvider) -> CollaborationManager:
        """Build a manager over the store back-end named in *settings*."""
        return cls(create_store(settings), identity, settings)

    # -- Lifecycle ------------------------------------------------------------

    def initialize(self) -> None:
        """Open the store.  A store that cannot open leaves us local-only."""
        try:
            self.store.initialize()
        except StoreUnavailable:
            logger.warning("Document store unavailable, running local-only")

    async def teardown(self) -> None:
        """Finish background work, stop all subscriptions, close the store."""
        await self.drain()
        for sub in list(self._views):
            sub.unsubscribe()
        self.hub.close()
        self.store.teardown()

    async def __aenter__(self) -> CollaborationManager:
        self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.teardown()

    @property
    def is_online(self) -> bool:
        return self.store.is_ready

    @property
    def actor_id(self) -> str:
        return self.identity.current_user_id or LOCAL_USER_ID

    async def drain(self) -> None:
        """Wait until every background dispatch and log write has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro: Awaitable[Any], label: str) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning("Background %s failed: %s", label, t.exception())

        task.add_done_callback(_done)

    # -- Comments -------------------------------------------------------------

    async def submit_comment(
        self,
        task_id: str,
        project_id: str,
        content: str,
        parent_id: str | None = None,
        task_title: str = "",
    ) -> SubmitResult:
        """Post a comment or reply as the current user.

        Raises ValidationError for empty content or an invalid reply target.
        """
        author_id = self.actor_id
        author_name = self.identity.current_display_name
        mentioned = self.mentions.resolve(content, project_id, author_id)

        comment = await self.comments.create_comment(
            task_id,
            project_id,
            author_id,
            author_name,
            content,
            parent_id=parent_id,
            mentions=[u.id for u in mentioned],
        )
        if comment is None:
            return SubmitResult(comment=None)

        self._spawn(
            self.activity.log_activity(
                project_id,
                ActivityType.REPLY_ADDED if comment.is_reply else ActivityType.COMMENT_ADDED,
                actor_id=author_id,
                actor_name=author_name,
                target_id=task_id,
                target_name=task_title or "Task",
                details=content,
            ),
            "activity log",
        )

        common = dict(
            actor_id=author_id,
            actor_name=author_name,
            project_id=project_id,
            task_id=task_id,
            comment_id=comment.id,
            content=content,
        )
        if comment.is_reply:
            parent = await self.comments.get_comment(comment.parent_id)
            if parent is not None:
                self._spawn(
                    self.dispatcher.dispatch(ReplyAdded(
                        parent_comment_id=parent.id,
                        parent_author_id=parent.author_id,
                        **common,
                    )),
                    "reply notification",
                )
            if comment.mentions:
                self._spawn(
                    self.dispatcher.dispatch(Mentioned(mentioned_user_ids=comment.mentions, **common)),
                    "mention notification",
                )
        else:
            self._spawn(
                self.dispatcher.dispatch(CommentAdded(mentioned_user_ids=comment.mentions, **common)),
                "mention notification",
            )

        return SubmitResult(comment=comment)

    async def reply(self, parent_id: str, content: str, task_title: str = "") -> SubmitResult:
        """Reply to a root comment, on the same task and project."""
        parent = await self.comments.get_comment(parent_id)
        if parent is None:
            return SubmitResult(comment=None)
        return await self.submit_comment(
            parent.task_id, parent.project_id, content, parent_id=parent_id, task_title=task_title,
        )

    async def delete_comment(self, comment_id: str) -> bool:
        """Delete a comment as the current user (anyone, when signed out)."""
        return await self.comments.delete_comment(comment_id, self.identity.current_user_id)

    def subscribe_comments(
        self,
        task_id: str,
        callback: Callable[[list[Comment]], None],
    ) -> Subscription:
        """Confirmed comment snapshots for a task, oldest first."""
        return self.comments.subscribe(task_id, callback)

    def watch_comments(
        self,
        task_id: str,
        callback: Callable[[list[Comment]], None],
    ) -> Subscription:
        """Comments of a task including this client's pending reactions.

        Every confirmed snapshot replaces the pending state.  Each call gets
        its own view, and unsubscribing drops it.
        """
        handle: list[Subscription] = []

        def on_change(comments: list[Comment]) -> None:
            if not handle or handle[0].active:
                callback(comments)

        view: ReconciledView[Comment] = ReconciledView(on_change=on_change)

        def on_snapshot(comments: list[Comment]) -> None:
            self.reactions.observe(comments)
            view.confirm(comments)

        inner = self.comments.subscribe(task_id, on_snapshot)
        if not inner.active:
            return inner

        def close(sub: Subscription) -> None:
            self._views.pop(sub, None)
            inner.unsubscribe()

        sub = Subscription(inner.key, close)
        handle.append(sub)
        self._views[sub] = view
        return sub

    # -- Reactions ------------------------------------------------------------

    async def toggle_reaction(self, comment_id: str, emoji: str) -> Optional[ReactionToggle]:
        """Toggle the current user's reaction; notify the author on add."""
        user_id = self.actor_id
        views = self._views_containing(comment_id)
        for view in views:
            self._apply_optimistic(view, comment_id, user_id, emoji)

        result = await self.reactions.toggle_reaction(comment_id, user_id, emoji)
        if result is None:
            for view in views:
                view.discard_pending(comment_id)
            return None

        if result.added:
            comment = result.comment
            self._spawn(
                self.dispatcher.dispatch(ReactionAdded(
                    actor_id=user_id,
                    actor_name=self.identity.current_display_name,
                    project_id=comment.project_id,
                    task_id=comment.task_id,
                    comment_id=comment.id,
                    emoji=emoji,
                    comment_author_id=comment.author_id,
                )),
                "reaction notification",
            )
        return result

    async def remove_reaction(self, reaction_id: str, comment_id: str | None = None) -> bool:
        return await self.reactions.remove_reaction(reaction_id, comment_id)

    def _views_containing(self, comment_id: str) -> list[ReconciledView[Comment]]:
        return [v for v in self._views.values() if v.get(comment_id) is not None]

    @staticmethod
    def _apply_optimistic(
        view: ReconciledView[Comment],
        comment_id: str,
        user_id: str,
        emoji: str,
    ) -> None:
        validate_emoji(emoji)
        current = view.get(comment_id)
        if current is None:
            return
        reactions, _, _ = toggle_in(current.reactions, comment_id, user_id, emoji)
        view.apply_pending(current.model_copy(update={"reactions": reactions}))

    # -- Notifications --------------------------------------------------------

    def subscribe_notifications(
        self,
        callback: Callable[[list[Notification]], None],
    ) -> Subscription:
        """The signed-in user's notifications, newest first.

        Signed-out clients have no inbox and get an inactive handle.
        """
        user_id = self.identity.current_user_id
        if user_id is None:
            return Subscription.inactive(("notifications", ""))
        return self.notifications.subscribe(user_id, callback)

    async def mark_notification_read(self, notification_id: str) -> bool:
        return await self.notifications.mark_as_read(notification_id, self.actor_id)

    async def mark_all_notifications_read(self) -> int:
        return await self.notifications.mark_all_as_read(self.actor_id)

    async def delete_notification(self, notification_id: str) -> bool:
        return await self.notifications.delete_notification(notification_id, self.actor_id)

    async def clear_notifications(self) -> int:
        return await self.notifications.clear_all(self.actor_id)

    # -- Activity -------------------------------------------------------------

    def subscribe_activity(
        self,
        project_id: str,
        callback: Callable[[list[Activity]], None],
    ) -> Subscription:
        return self.activity.subscribe(project_id, callback)

    async def log_project_event(
        self,
        project_id: str,
        activity_type: ActivityType | str,
        target_id: str = "",
        target_name: str = "",
        details: str = "",
    ) -> Optional[Activity]:
        """Record a task or project event from elsewhere in the app."""
        return await self.activity.log_activity(
            project_id,
            activity_type,
            actor_id=self.actor_id,
            actor_name=self.identity.current_display_name,
            target_id=target_id,
            target_name=target_name,
            details=details,
        )

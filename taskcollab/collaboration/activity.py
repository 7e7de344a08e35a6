"""ActivityLogger — append-only project timeline."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from taskcollab.config import (
    ACTIVITIES_COLLECTION,
    ACTIVITY_FEED_LIMIT,
    ELLIPSIS,
    EXCERPT_LENGTH,
)
from taskcollab.errors import StoreUnavailable
from taskcollab.collaboration.models import Activity, ActivityType
from taskcollab.collaboration.subscriptions import Subscription, SubscriptionHub
from taskcollab.store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

_DESCRIPTIONS: dict[ActivityType, str] = {
    ActivityType.TASK_COMPLETED: "{actor} completed task {target}",
    ActivityType.COMMENT_ADDED: "{actor} commented on task {target}",
    ActivityType.REPLY_ADDED: "{actor} replied to a comment on task {target}",
    ActivityType.TASK_CREATED: "{actor} created task {target}",
    ActivityType.TASK_UPDATED: "{actor} updated task {target}",
    ActivityType.TASK_DELETED: "{actor} deleted task {target}",
    ActivityType.MEMBER_ADDED: "{actor} added a member to the project",
    ActivityType.PROJECT_CREATED: "{actor} created the project",
    ActivityType.PROJECT_UPDATED: "{actor} updated the project",
    ActivityType.PROJECT_ARCHIVED: "{actor} archived the project",
}


def excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    """First *length* characters, with an ellipsis when cut."""
    return text[:length] + (ELLIPSIS if len(text) > length else "")


def describe(activity: Activity) -> str:
    """One-line summary of an activity for a timeline."""
    template = _DESCRIPTIONS.get(activity.type, "{actor} did something")
    return template.format(
        actor=activity.actor_name or "Someone",
        target=activity.target_name or activity.target_id,
    )


def _newest_first(docs: list[Document]) -> list[Activity]:
    activities = [Activity.from_document(d) for d in docs]
    activities.sort(key=lambda a: (a.created_at is not None, a.created_at), reverse=True)
    return activities


class ActivityLogger:
    """Append-only activity timeline, one per project.

    Records are written once and never updated or deleted here.  Logging
    does not depend on anyone being notified.

    Parameters
    ----------
    store:
        The realtime document store.
    hub:
        Shared subscription hub.
    excerpt_length:
        Characters of ``details`` kept before the ellipsis.
    feed_limit:
        Newest activities per live timeline snapshot.
    """

    def __init__(
        self,
        store: DocumentStore,
        hub: SubscriptionHub,
        excerpt_length: int = EXCERPT_LENGTH,
        feed_limit: int = ACTIVITY_FEED_LIMIT,
    ) -> None:
        self._store = store
        self._hub = hub
        self.excerpt_length = excerpt_length
        self.feed_limit = feed_limit

    async def log_activity(
        self,
        project_id: str,
        activity_type: ActivityType | str,
        actor_id: str,
        actor_name: str = "",
        target_id: str = "",
        target_name: str = "",
        details: str = "",
    ) -> Optional[Activity]:
        """Append an activity.  ``details`` is cut to a short excerpt."""
        activity = Activity(
            project_id=project_id,
            type=ActivityType(activity_type),
            actor_id=actor_id,
            actor_name=actor_name,
            target_id=target_id,
            target_name=target_name,
            details=excerpt(details, self.excerpt_length) if details else "",
        )
        return await self.record(activity)

    async def record(self, activity: Activity) -> Optional[Activity]:
        """Append a prepared activity.  Returns it as stored, or None."""
        try:
            doc = await self._store.write(ACTIVITIES_COLLECTION, None, activity.to_document())
        except StoreUnavailable:
            logger.warning(
                "Store unavailable, %s activity for project %s dropped",
                activity.type.value, activity.project_id,
            )
            return None
        logger.debug("Recorded activity: %s (%s)", activity.type.value, activity.target_name)
        return Activity.from_document(doc)

    def subscribe(
        self,
        project_id: str,
        callback: Callable[[list[Activity]], None],
    ) -> Subscription:
        """Live project timeline, newest first, capped at ``feed_limit``."""
        limit = self.feed_limit
        return self._hub.subscribe(
            ("activities", project_id),
            ACTIVITIES_COLLECTION,
            {"project_id": project_id},
            lambda docs: _newest_first(docs)[:limit],
            callback,
        )

    async def get_feed(
        self,
        project_id: str,
        since: datetime | None = None,
        actor_id: str | None = None,
        activity_type: ActivityType | str | None = None,
        limit: int | None = None,
    ) -> list[Activity]:
        """Get a project's timeline with optional filtering.

        Parameters
        ----------
        since:
            Only activities at or after this timestamp.
        actor_id:
            Filter by actor.
        activity_type:
            Filter by activity type.
        limit:
            Maximum activities to return; defaults to ``feed_limit``.
        """
        try:
            docs = await self._store.query(ACTIVITIES_COLLECTION, project_id=project_id)
        except StoreUnavailable:
            logger.debug("Store unavailable, feed of project %s not read", project_id)
            return []

        wanted_type = ActivityType(activity_type) if activity_type else None
        activities: list[Activity] = []
        for activity in _newest_first(docs):
            if since and activity.created_at and activity.created_at < since:
                continue
            if actor_id and activity.actor_id != actor_id:
                continue
            if wanted_type and activity.type != wanted_type:
                continue
            activities.append(activity)

        return activities[: limit if limit is not None else self.feed_limit]

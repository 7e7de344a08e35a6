"""Collaboration layer — comments, mentions, reactions, notifications, activity."""

from taskcollab.collaboration.activity import ActivityLogger
from taskcollab.collaboration.comments import CommentStore, build_threads, orphaned_replies
from taskcollab.collaboration.events import (
    CommentAdded,
    DomainEvent,
    Mentioned,
    ReactionAdded,
    ReplyAdded,
    parse_event,
)
from taskcollab.collaboration.identity import IdentityProvider, StaticIdentityProvider
from taskcollab.collaboration.manager import CollaborationManager, SubmitResult
from taskcollab.collaboration.mentions import MentionResolver, resolve_mentions
from taskcollab.collaboration.models import (
    Activity,
    ActivityType,
    CandidateUser,
    Comment,
    Notification,
    NotificationType,
    Reaction,
    ReactionGroup,
    Thread,
)
from taskcollab.collaboration.notifications import NotificationCenter, NotificationDispatcher
from taskcollab.collaboration.reactions import ReactionAggregator, group_reactions
from taskcollab.collaboration.subscriptions import ReconciledView, Subscription, SubscriptionHub

__all__ = [
    "Activity",
    "ActivityLogger",
    "ActivityType",
    "CandidateUser",
    "CollaborationManager",
    "Comment",
    "CommentAdded",
    "CommentStore",
    "DomainEvent",
    "IdentityProvider",
    "MentionResolver",
    "Mentioned",
    "Notification",
    "NotificationCenter",
    "NotificationDispatcher",
    "NotificationType",
    "Reaction",
    "ReactionAdded",
    "ReactionAggregator",
    "ReactionGroup",
    "ReconciledView",
    "ReplyAdded",
    "StaticIdentityProvider",
    "SubmitResult",
    "Subscription",
    "SubscriptionHub",
    "Thread",
    "build_threads",
    "group_reactions",
    "orphaned_replies",
    "parse_event",
    "resolve_mentions",
]

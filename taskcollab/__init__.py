"""taskcollab — real-time collaboration events for a project-management tool."""

__version__ = "1.0.0"

from taskcollab.collaboration.manager import CollaborationManager
from taskcollab.collaboration.identity import StaticIdentityProvider
from taskcollab.collaboration.models import (
    Activity,
    ActivityType,
    CandidateUser,
    Comment,
    Notification,
    NotificationType,
    Reaction,
)
from taskcollab.config import Settings, load_settings
from taskcollab.errors import (
    CollabError,
    ConfigError,
    PermissionDenied,
    StoreUnavailable,
    ValidationError,
)
from taskcollab.store import (
    DocumentStore,
    MemoryDocumentStore,
    NullDocumentStore,
    SQLiteDocumentStore,
    create_store,
)

__all__ = [
    "__version__",
    # Collaboration
    "Activity",
    "ActivityType",
    "CandidateUser",
    "CollaborationManager",
    "Comment",
    "Notification",
    "NotificationType",
    "Reaction",
    "StaticIdentityProvider",
    # Errors
    "CollabError",
    "ConfigError",
    "PermissionDenied",
    "StoreUnavailable",
    "ValidationError",
    # Store
    "DocumentStore",
    "MemoryDocumentStore",
    "NullDocumentStore",
    "SQLiteDocumentStore",
    "create_store",
    # Config
    "Settings",
    "load_settings",
]

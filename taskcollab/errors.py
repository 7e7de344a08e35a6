"""Exceptions raised by taskcollab."""

from __future__ import annotations


class CollabError(Exception):
    """Base class for collaboration errors."""


class StoreUnavailable(CollabError):
    """The document store is unreachable, unconfigured, or torn down.

    Caught at the adapter boundary; callers see a no-op result instead.
    """


class ValidationError(CollabError):
    """Rejected input: empty content, malformed emoji, invalid reply target."""


class PermissionDenied(CollabError):
    """Raised when a user mutates something they do not own."""


class ConfigError(CollabError):
    """A setting has a value that cannot be used."""

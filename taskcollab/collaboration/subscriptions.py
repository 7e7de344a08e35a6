"""Live subscriptions and optimistic-state reconciliation.

:class:`SubscriptionHub` keeps one store subscription per key (comments per
task, notifications per user, activities per project) and fans each full
snapshot out to every local listener on that key.  Deliveries are always the
complete collection, never a diff.

:class:`ReconciledView` holds a confirmed snapshot plus pending optimistic
changes; any confirmed snapshot replaces the pending state wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

from taskcollab.errors import StoreUnavailable
from taskcollab.store.base import Document, DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)

T = TypeVar("T")

ChannelKey = tuple[str, str]
Listener = Callable[[list[Any]], None]
Projection = Callable[[list[Document]], list[Any]]


class Subscription:
    """Handle returned by every subscribe call.

    ``unsubscribe()`` (or calling the handle) stops further callbacks and is
    safe to repeat.
    """

    def __init__(
        self,
        key: ChannelKey,
        on_close: Optional[Callable[[Subscription], None]] = None,
    ) -> None:
        self.key = key
        self._on_close = on_close
        self._active = on_close is not None

    @classmethod
    def inactive(cls, key: ChannelKey) -> Subscription:
        """A handle for a subscription that never started."""
        return cls(key)

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            on_close(self)

    __call__ = unsubscribe


@dataclass
class _Channel:
    key: ChannelKey
    project: Projection
    listeners: dict[Subscription, Listener] = field(default_factory=dict)
    latest: Optional[list[Any]] = None
    store_unsubscribe: Optional[Unsubscribe] = None

    def publish(self, docs: list[Document]) -> None:
        items = self.project(docs)
        self.latest = items
        for sub, listener in list(self.listeners.items()):
            _safe_call(sub, listener, items)


def _safe_call(sub: Subscription, listener: Listener, items: list[Any]) -> None:
    if not sub.active:
        return
    try:
        listener(list(items))
    except Exception:
        logger.warning("Listener on %s failed", sub.key, exc_info=True)


class SubscriptionHub:
    """One live store subscription per key, shared by local listeners."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._channels: dict[ChannelKey, _Channel] = {}

    def subscribe(
        self,
        key: ChannelKey,
        collection: str,
        where: dict[str, Any],
        project: Projection,
        listener: Listener,
    ) -> Subscription:
        """Attach *listener* to the channel for *key*, opening it if needed.

        The current snapshot is delivered immediately.  When the store is
        unavailable an inactive handle is returned and nothing is delivered.
        """
        sub = Subscription(key, self._detach)
        channel = self._channels.get(key)
        if channel is not None:
            channel.listeners[sub] = listener
            if channel.latest is not None:
                _safe_call(sub, listener, channel.latest)
            return sub

        channel = _Channel(key=key, project=project)
        channel.listeners[sub] = listener
        self._channels[key] = channel
        try:
            channel.store_unsubscribe = self._store.subscribe(
                collection, where, channel.publish,
            )
        except StoreUnavailable:
            logger.warning("Store unavailable, %s not subscribed", key)
            del self._channels[key]
            sub.unsubscribe()
            return sub

        if not channel.listeners:
            # Listener unsubscribed during the initial delivery.
            channel.store_unsubscribe()
            return sub

        logger.debug("Opened channel %s", key)
        return sub

    def channel_keys(self) -> list[ChannelKey]:
        return list(self._channels)

    def listener_count(self, key: ChannelKey) -> int:
        channel = self._channels.get(key)
        return len(channel.listeners) if channel else 0

    def close(self) -> None:
        """Stop every listener and release every store subscription."""
        for channel in list(self._channels.values()):
            for sub in list(channel.listeners):
                sub.unsubscribe()
        self._channels.clear()

    def _detach(self, sub: Subscription) -> None:
        channel = self._channels.get(sub.key)
        if channel is None:
            return
        channel.listeners.pop(sub, None)
        if channel.listeners:
            return
        del self._channels[sub.key]
        if channel.store_unsubscribe is not None:
            channel.store_unsubscribe()
        logger.debug("Closed channel %s", sub.key)


_REMOVED = object()


class ReconciledView(Generic[T]):
    """Confirmed items plus pending optimistic changes, keyed by id.

    Parameters
    ----------
    key:
        Extracts an item's identity.
    on_change:
        Called with the merged view after every change.
    """

    def __init__(
        self,
        key: Callable[[T], Hashable] = lambda item: item.id,  # type: ignore[attr-defined]
        on_change: Optional[Callable[[list[T]], None]] = None,
    ) -> None:
        self._key = key
        self._on_change = on_change
        self._confirmed: list[T] = []
        self._pending: dict[Hashable, Any] = {}

    @property
    def confirmed(self) -> list[T]:
        return list(self._confirmed)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def is_pending(self, item_id: Hashable) -> bool:
        return item_id in self._pending

    def get(self, item_id: Hashable) -> Optional[T]:
        for item in self.items:
            if self._key(item) == item_id:
                return item
        return None

    @property
    def items(self) -> list[T]:
        """Confirmed items with pending upserts and removals applied."""
        merged: list[T] = []
        seen: set[Hashable] = set()
        for item in self._confirmed:
            k = self._key(item)
            seen.add(k)
            pending = self._pending.get(k)
            if pending is _REMOVED:
                continue
            merged.append(pending if pending is not None else item)
        for k, pending in self._pending.items():
            if k not in seen and pending is not _REMOVED:
                merged.append(pending)
        return merged

    def apply_pending(self, item: T) -> None:
        self._pending[self._key(item)] = item
        self._changed()

    def remove_pending(self, item_id: Hashable) -> None:
        self._pending[item_id] = _REMOVED
        self._changed()

    def discard_pending(self, item_id: Hashable) -> None:
        """Drop a pending change, e.g. after its write failed."""
        if self._pending.pop(item_id, None) is not None:
            self._changed()

    def confirm(self, snapshot: list[T]) -> None:
        """Replace confirmed state and clear every pending change."""
        self._confirmed = list(snapshot)
        self._pending.clear()
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.items)

"""Tests for CommentStore and thread building."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from taskcollab.collaboration.comments import (
    CommentStore,
    build_threads,
    orphaned_replies,
    sort_comments,
)
from taskcollab.collaboration.models import Comment
from taskcollab.collaboration.subscriptions import SubscriptionHub
from taskcollab.errors import PermissionDenied, ValidationError
from taskcollab.store import MemoryDocumentStore, NullDocumentStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> MemoryDocumentStore:
    s = MemoryDocumentStore()
    s.initialize()
    yield s
    s.teardown()


@pytest.fixture
def comments(store: MemoryDocumentStore) -> CommentStore:
    return CommentStore(store, SubscriptionHub(store))


def _add(comments: CommentStore, content: str, author: str = "u-alice", parent_id=None, task="t1"):
    return asyncio.run(
        comments.create_comment(task, "p1", author, author.title(), content, parent_id=parent_id),
    )


_T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _comment(cid: str, minutes: int, parent_id=None) -> Comment:
    return Comment(
        id=cid,
        task_id="t1",
        project_id="p1",
        author_id="u",
        content=cid,
        parent_id=parent_id,
        created_at=_T0 + timedelta(minutes=minutes),
    )


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateComment:
    def test_stored_with_server_fields(self, comments) -> None:
        comment = _add(comments, "Looks good")
        assert comment.id
        assert comment.created_at is not None
        assert comment.author_id == "u-alice"
        assert comment.reactions == []
        assert not comment.is_reply

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_empty_content_rejected(self, comments, content) -> None:
        with pytest.raises(ValidationError):
            _add(comments, content)

    def test_reply_to_root(self, comments) -> None:
        root = _add(comments, "root")
        reply = _add(comments, "reply", author="u-bob", parent_id=root.id)
        assert reply.is_reply
        assert reply.parent_id == root.id

    def test_reply_to_reply_rejected(self, comments) -> None:
        root = _add(comments, "root")
        reply = _add(comments, "reply", parent_id=root.id)
        with pytest.raises(ValidationError):
            _add(comments, "nested", parent_id=reply.id)

    def test_unknown_parent_rejected(self, comments) -> None:
        with pytest.raises(ValidationError):
            _add(comments, "reply", parent_id="missing")

    def test_parent_on_other_task_rejected(self, comments) -> None:
        root = _add(comments, "root", task="t2")
        with pytest.raises(ValidationError):
            _add(comments, "reply", parent_id=root.id, task="t1")

    def test_unavailable_store_returns_none(self) -> None:
        store = NullDocumentStore()
        store.initialize()
        comments = CommentStore(store, SubscriptionHub(store))
        assert _add(comments, "hello") is None
        assert asyncio.run(comments.add_comment("t1", "p1", "u", "U", "hello")) is None
        assert asyncio.run(comments.list_comments("t1")) == []

    def test_add_comment_returns_id(self, comments) -> None:
        cid = asyncio.run(comments.add_comment("t1", "p1", "u-alice", "Alice", "hi"))
        assert asyncio.run(comments.get_comment(cid)).content == "hi"


# ---------------------------------------------------------------------------
# Listing and deletion
# ---------------------------------------------------------------------------


class TestListAndDelete:
    def test_list_is_oldest_first_and_per_task(self, comments) -> None:
        first = _add(comments, "first")
        second = _add(comments, "second")
        _add(comments, "elsewhere", task="t2")
        listed = asyncio.run(comments.list_comments("t1"))
        assert [c.id for c in listed] == [first.id, second.id]

    def test_author_may_delete(self, comments) -> None:
        comment = _add(comments, "mine")
        assert asyncio.run(comments.delete_comment(comment.id, "u-alice")) is True
        assert asyncio.run(comments.get_comment(comment.id)) is None

    def test_other_user_may_not_delete(self, comments) -> None:
        comment = _add(comments, "mine")
        with pytest.raises(PermissionDenied):
            asyncio.run(comments.delete_comment(comment.id, "u-bob"))

    def test_signed_out_may_delete(self, comments) -> None:
        comment = _add(comments, "anything")
        assert asyncio.run(comments.delete_comment(comment.id, None)) is True

    def test_delete_missing(self, comments) -> None:
        assert asyncio.run(comments.delete_comment("missing", "u-alice")) is False

    def test_replies_survive_root_deletion(self, comments) -> None:
        root = _add(comments, "root")
        reply = _add(comments, "reply", author="u-bob", parent_id=root.id)
        asyncio.run(comments.delete_comment(root.id, "u-alice"))

        remaining = asyncio.run(comments.list_comments("t1"))
        assert [c.id for c in remaining] == [reply.id]
        assert build_threads(remaining) == []
        assert [c.id for c in orphaned_replies(remaining)] == [reply.id]


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


class TestBuildThreads:
    def test_two_tier_grouping(self) -> None:
        items = [
            _comment("r2", 5),
            _comment("a2", 4, parent_id="r1"),
            _comment("r1", 0),
            _comment("a1", 2, parent_id="r1"),
            _comment("b1", 6, parent_id="r2"),
        ]
        threads = build_threads(items)
        assert [t.root.id for t in threads] == ["r1", "r2"]
        assert [c.id for c in threads[0].replies] == ["a1", "a2"]
        assert threads[0].reply_count == 2
        assert [c.id for c in threads[1].replies] == ["b1"]

    def test_sort_comments(self) -> None:
        items = [_comment("b", 2), _comment("a", 1)]
        assert [c.id for c in sort_comments(items)] == ["a", "b"]


# ---------------------------------------------------------------------------
# Live subscription
# ---------------------------------------------------------------------------


class TestSubscribe:
    def test_initial_and_updates(self, comments) -> None:
        first = _add(comments, "first")
        snapshots: list[list[Comment]] = []
        sub = comments.subscribe("t1", snapshots.append)
        assert [c.id for c in snapshots[0]] == [first.id]

        second = _add(comments, "second")
        _add(comments, "other task", task="t2")
        assert [c.id for c in snapshots[-1]] == [first.id, second.id]

        sub.unsubscribe()
        count = len(snapshots)
        _add(comments, "third")
        assert len(snapshots) == count

    def test_deletion_delivers_full_snapshot(self, comments) -> None:
        first = _add(comments, "first")
        second = _add(comments, "second")
        snapshots: list[list[Comment]] = []
        comments.subscribe("t1", snapshots.append)
        asyncio.run(comments.delete_comment(first.id, "u-alice"))
        assert [c.id for c in snapshots[-1]] == [second.id]

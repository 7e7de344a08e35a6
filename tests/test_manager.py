"""End-to-end tests for CollaborationManager.

Several users share one store and one identity provider; ``sign_in``
switches who is acting.
"""

from __future__ import annotations

import asyncio

import pytest

from taskcollab import (
    ActivityType,
    CandidateUser,
    CollaborationManager,
    MemoryDocumentStore,
    NotificationType,
    NullDocumentStore,
    Settings,
    StaticIdentityProvider,
)
from taskcollab.collaboration.reactions import group_reactions
from taskcollab.errors import PermissionDenied, ValidationError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


ROSTER = [
    CandidateUser(id="u-alice", display_name="Alice Chen", email="alice@example.com"),
    CandidateUser(id="u-bob", display_name="Bob Martin", email="bob@example.com"),
    CandidateUser(id="u-carol", display_name="Carol Diaz", email="carol@example.com"),
]


@pytest.fixture
def identity() -> StaticIdentityProvider:
    return StaticIdentityProvider("u-alice", "Alice Chen", roster=ROSTER)


@pytest.fixture
def manager(identity: StaticIdentityProvider) -> CollaborationManager:
    mgr = CollaborationManager(MemoryDocumentStore(), identity)
    mgr.initialize()
    return mgr


def run(coro):
    return asyncio.run(coro)


async def _notifications(mgr: CollaborationManager, user_id: str):
    return await mgr.notifications.list_notifications(user_id)


# ---------------------------------------------------------------------------
# Comments and mentions
# ---------------------------------------------------------------------------


class TestSubmitComment:
    def test_mention_notifies_once(self, manager) -> None:
        async def scenario():
            result = await manager.submit_comment("t1", "p1", "Great work @Bob, and @bob again")
            await manager.drain()
            return result, await _notifications(manager, "u-bob")

        result, inbox = run(scenario())
        assert result.comment_id
        assert not result.keep_draft
        assert result.comment.mentions == ["u-bob"]
        assert len(inbox) == 1
        assert inbox[0].type is NotificationType.MENTION
        assert inbox[0].link == "/projects/p1/tasks/t1"
        assert inbox[0].message.startswith("Alice Chen mentioned you")

    def test_self_mention_not_notified(self, manager) -> None:
        async def scenario():
            await manager.submit_comment("t1", "p1", "note to self @Alice")
            await manager.drain()
            return await _notifications(manager, "u-alice")

        assert run(scenario()) == []

    def test_plain_comment_notifies_nobody(self, manager) -> None:
        async def scenario():
            await manager.submit_comment("t1", "p1", "No mentions here")
            await manager.drain()
            return await manager.store.query("notifications")

        assert run(scenario()) == []

    def test_activity_logged(self, manager) -> None:
        async def scenario():
            await manager.submit_comment("t1", "p1", "x" * 80, task_title="Fix login")
            await manager.drain()
            return await manager.activity.get_feed("p1")

        [activity] = run(scenario())
        assert activity.type is ActivityType.COMMENT_ADDED
        assert activity.actor_id == "u-alice"
        assert activity.target_id == "t1"
        assert activity.target_name == "Fix login"
        assert activity.details == "x" * 50 + "..."

    def test_empty_content_keeps_nothing(self, manager) -> None:
        with pytest.raises(ValidationError):
            run(manager.submit_comment("t1", "p1", "   "))


class TestReply:
    def test_reply_notifies_parent_author(self, manager, identity) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Can someone review?")
            identity.sign_in("u-bob", "Bob Martin")
            reply = await manager.reply(root.comment_id, "Thanks!")
            await manager.drain()
            return reply, await _notifications(manager, "u-alice"), await manager.activity.get_feed("p1")

        reply, inbox, feed = run(scenario())
        assert reply.comment.is_reply
        assert [n.type for n in inbox] == [NotificationType.REPLY_ADDED]
        assert inbox[0].message == 'Bob Martin replied to your comment: "Thanks!"'
        assert feed[0].type is ActivityType.REPLY_ADDED
        assert feed[0].details == "Thanks!"

    def test_reply_mentioning_parent_author_sends_both(self, manager, identity) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Draft ready")
            identity.sign_in("u-bob", "Bob Martin")
            await manager.reply(root.comment_id, "@Alice looks good, cc @Carol")
            await manager.drain()
            return await _notifications(manager, "u-alice"), await _notifications(manager, "u-carol")

        alice, carol = run(scenario())
        assert sorted(n.type.value for n in alice) == ["mention", "reply_added"]
        assert [n.type for n in carol] == [NotificationType.MENTION]

    def test_own_reply_not_notified(self, manager) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "first")
            await manager.reply(root.comment_id, "and a follow-up")
            await manager.drain()
            return await _notifications(manager, "u-alice")

        assert run(scenario()) == []

    def test_reply_to_missing_parent(self, manager) -> None:
        result = run(manager.reply("missing", "hello"))
        assert result.keep_draft


class TestDeleteComment:
    def test_only_author_deletes(self, manager, identity) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "mine")
            identity.sign_in("u-bob", "Bob Martin")
            with pytest.raises(PermissionDenied):
                await manager.delete_comment(root.comment_id)
            identity.sign_in("u-alice", "Alice Chen")
            return await manager.delete_comment(root.comment_id)

        assert run(scenario()) is True


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------


class TestReactions:
    def test_toggle_twice_one_notification(self, manager, identity) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Shipped")
            identity.sign_in("u-bob", "Bob Martin")
            first = await manager.toggle_reaction(root.comment_id, "👍")
            second = await manager.toggle_reaction(root.comment_id, "👍")
            await manager.drain()
            return first, second, await _notifications(manager, "u-alice")

        first, second, inbox = run(scenario())
        assert first.added and not second.added
        assert group_reactions(second.comment.reactions) == []
        assert len(inbox) == 1
        assert inbox[0].type is NotificationType.REACTION_ADDED
        assert inbox[0].message == "Bob Martin reacted 👍 to your comment"

    def test_reacting_to_own_comment_not_notified(self, manager) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Shipped")
            await manager.toggle_reaction(root.comment_id, "🎉")
            await manager.drain()
            return await _notifications(manager, "u-alice")

        assert run(scenario()) == []

    def test_remove_reaction(self, manager) -> None:
        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Shipped")
            toggled = await manager.toggle_reaction(root.comment_id, "🎉")
            return await manager.remove_reaction(toggled.reaction.id)

        assert run(scenario()) is True

    def test_watch_comments_reconciles(self, manager, identity) -> None:
        views: list[list] = []

        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Shipped")
            manager.watch_comments("t1", views.append)
            identity.sign_in("u-bob", "Bob Martin")
            await manager.toggle_reaction(root.comment_id, "👍")
            await manager.drain()
            return root

        root = run(scenario())
        # Initial snapshot, optimistic update, confirmed snapshot.
        assert len(views) == 3
        optimistic, confirmed = views[1][0], views[2][0]
        assert optimistic.id == confirmed.id == root.comment_id
        assert [r.user_id for r in optimistic.reactions] == ["u-bob"]
        assert [r.user_id for r in confirmed.reactions] == ["u-bob"]

    def test_unwatched_callback_gets_nothing(self, manager) -> None:
        seen: list[list] = []

        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Shipped")
            sub = manager.watch_comments("t1", seen.append)
            sub.unsubscribe()
            sub.unsubscribe()
            await manager.toggle_reaction(root.comment_id, "👍")
            await manager.drain()
            return sub

        sub = run(scenario())
        assert not sub.active
        assert len(seen) == 1
        assert manager.hub.channel_keys() == []

    def test_two_watchers_on_one_task(self, manager, identity) -> None:
        first: list[list] = []
        second: list[list] = []

        async def scenario():
            root = await manager.submit_comment("t1", "p1", "Shipped")
            manager.watch_comments("t1", first.append)
            leaving = manager.watch_comments("t1", second.append)
            identity.sign_in("u-bob", "Bob Martin")
            await manager.toggle_reaction(root.comment_id, "👍")
            leaving.unsubscribe()
            await manager.toggle_reaction(root.comment_id, "🎉")
            await manager.drain()

        run(scenario())
        # Initial, optimistic and confirmed deliveries per toggle.
        assert len(first) == 5
        assert len(second) == 3
        assert [r.emoji for r in second[1][0].reactions] == ["👍"]
        assert [r.emoji for r in first[-1][0].reactions] == ["👍", "🎉"]


# ---------------------------------------------------------------------------
# Notifications through the manager
# ---------------------------------------------------------------------------


class TestInbox:
    def test_live_inbox_and_mark_all(self, manager, identity) -> None:
        snapshots: list[list] = []

        async def scenario():
            await manager.submit_comment("t1", "p1", "@Bob one")
            await manager.submit_comment("t1", "p1", "@Bob two")
            await manager.drain()
            identity.sign_in("u-bob", "Bob Martin")
            manager.subscribe_notifications(snapshots.append)
            changed = await manager.mark_all_notifications_read()
            cleared = await manager.clear_notifications()
            return changed, cleared

        changed, cleared = run(scenario())
        assert changed == 2
        assert cleared == 2
        assert [len(s) for s in snapshots][0] == 2
        assert snapshots[-1] == []

    def test_signed_out_has_no_inbox(self, manager, identity) -> None:
        identity.sign_out()
        sub = manager.subscribe_notifications(lambda items: None)
        assert not sub.active


# ---------------------------------------------------------------------------
# Local-only mode and lifecycle
# ---------------------------------------------------------------------------


class TestLocalOnly:
    def test_unconfigured_store(self) -> None:
        identity = StaticIdentityProvider()

        async def scenario():
            async with CollaborationManager(NullDocumentStore(), identity) as mgr:
                assert not mgr.is_online
                assert mgr.actor_id == "local-user"
                result = await mgr.submit_comment("t1", "p1", "offline note")
                sub = mgr.subscribe_comments("t1", lambda items: None)
                feed = await mgr.activity.get_feed("p1")
                logged = await mgr.log_project_event("p1", ActivityType.TASK_CREATED, "t1", "New")
                return result, sub, feed, logged

        result, sub, feed, logged = run(scenario())
        assert result.keep_draft
        assert result.comment_id is None
        assert not sub.active
        assert feed == []
        assert logged is None

    def test_from_settings_and_teardown(self, tmp_path) -> None:
        settings = Settings(store="sqlite", store_path=str(tmp_path / "c.db"), activity_limit=5)
        identity = StaticIdentityProvider("u-alice", "Alice Chen", roster=ROSTER)

        async def scenario():
            mgr = CollaborationManager.from_settings(settings, identity)
            mgr.initialize()
            snapshots: list[list] = []
            mgr.subscribe_activity("p1", snapshots.append)
            for i in range(7):
                await mgr.log_project_event("p1", "task_updated", f"t{i}", f"Task {i}")
            await mgr.teardown()
            return mgr, snapshots

        mgr, snapshots = run(scenario())
        assert len(snapshots[-1]) == 5
        assert snapshots[-1][0].target_id == "t6"
        assert not mgr.is_online
        assert mgr.hub.channel_keys() == []

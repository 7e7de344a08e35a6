"""ReactionAggregator — toggled (user, emoji) reactions on comments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from taskcollab.config import COMMENTS_COLLECTION, MAX_EMOJI_LENGTH
from taskcollab.errors import StoreUnavailable, ValidationError
from taskcollab.collaboration.models import Comment, Reaction, ReactionGroup
from taskcollab.store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

# Curated picker palette.  Any other short string is accepted too.
DEFAULT_PALETTE = ("👍", "❤️", "😂", "🎉", "😮", "😢", "🚀", "👀")


@dataclass
class ReactionToggle:
    """Outcome of a toggle: the reaction and whether it was added or removed."""

    added: bool
    reaction: Reaction
    comment: Comment


def validate_emoji(emoji: str) -> str:
    """Return *emoji* if it is a usable reaction, else raise ValidationError."""
    if not isinstance(emoji, str) or not emoji.strip():
        raise ValidationError("Reaction emoji must not be empty")
    if emoji != emoji.strip() or len(emoji) > MAX_EMOJI_LENGTH:
        raise ValidationError(f"Malformed reaction emoji: {emoji!r}")
    return emoji


def toggle_in(
    reactions: Iterable[Reaction],
    comment_id: str,
    user_id: str,
    emoji: str,
) -> tuple[list[Reaction], Reaction, bool]:
    """Toggle one (comment, user, emoji) reaction in a list.

    Returns the new list, the reaction added or removed, and True if added.
    """
    current = list(reactions)
    key = (comment_id, user_id, emoji)
    for existing in current:
        if existing.key == key:
            return [r for r in current if r.key != key], existing, False
    added = Reaction(comment_id=comment_id, user_id=user_id, emoji=emoji)
    return current + [added], added, True


def group_reactions(reactions: Iterable[Reaction]) -> list[ReactionGroup]:
    """Group reactions by emoji, in order of each emoji's first appearance."""
    groups: dict[str, ReactionGroup] = {}
    for reaction in reactions:
        group = groups.setdefault(reaction.emoji, ReactionGroup(emoji=reaction.emoji))
        if reaction.user_id not in group.user_ids:
            group.user_ids.append(reaction.user_id)
    return list(groups.values())


class ReactionAggregator:
    """Add and remove reactions stored inside their comment document.

    Every toggle is one atomic document mutation, so two users reacting at
    once cannot overwrite each other.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._reaction_comments: dict[str, str] = {}

    async def toggle_reaction(
        self,
        comment_id: str,
        user_id: str,
        emoji: str,
    ) -> Optional[ReactionToggle]:
        """Add the reaction, or remove it if the user already has it.

        Returns None when the comment is missing or the store is unavailable.
        """
        validate_emoji(emoji)
        outcome: dict[str, Any] = {}

        def mutate(body: Document) -> Document:
            reactions = [Reaction.model_validate(r) for r in body.get("reactions", [])]
            new_list, reaction, added = toggle_in(reactions, comment_id, user_id, emoji)
            outcome["reaction"] = reaction
            outcome["added"] = added
            body["reactions"] = [r.model_dump(mode="json") for r in new_list]
            return body

        try:
            doc = await self._store.transform(COMMENTS_COLLECTION, comment_id, mutate)
        except StoreUnavailable:
            logger.warning("Store unavailable, reaction on %s not saved", comment_id)
            return None

        if doc is None:
            logger.debug("Reaction on missing comment %s ignored", comment_id)
            return None

        reaction: Reaction = outcome["reaction"]
        if outcome["added"]:
            self._reaction_comments[reaction.id] = comment_id
        else:
            self._reaction_comments.pop(reaction.id, None)

        logger.info(
            "%s reaction %s by %s on comment %s",
            "Added" if outcome["added"] else "Removed", emoji, user_id, comment_id,
        )
        return ReactionToggle(
            added=outcome["added"],
            reaction=reaction,
            comment=Comment.from_document(doc),
        )

    add_reaction = toggle_reaction

    async def remove_reaction(
        self,
        reaction_id: str,
        comment_id: Optional[str] = None,
    ) -> bool:
        """Remove a reaction by id.  Returns True if it existed.

        Without *comment_id* the owning comment is looked up from reactions
        this aggregator has seen, then by scanning the comments collection.
        """
        try:
            comment_id = comment_id or await self._find_comment(reaction_id)
            if comment_id is None:
                return False

            removed: list[bool] = []

            def mutate(body: Document) -> Document | None:
                reactions = body.get("reactions", [])
                kept = [r for r in reactions if r.get("id") != reaction_id]
                if len(kept) == len(reactions):
                    return None
                removed.append(True)
                body["reactions"] = kept
                return body

            await self._store.transform(COMMENTS_COLLECTION, comment_id, mutate)
        except StoreUnavailable:
            logger.warning("Store unavailable, reaction %s not removed", reaction_id)
            return False

        self._reaction_comments.pop(reaction_id, None)
        if removed:
            logger.info("Removed reaction %s from comment %s", reaction_id, comment_id)
        return bool(removed)

    def observe(self, comments: Iterable[Comment]) -> None:
        """Remember which comment owns each reaction in a snapshot."""
        for comment in comments:
            for reaction in comment.reactions:
                self._reaction_comments[reaction.id] = comment.id

    async def _find_comment(self, reaction_id: str) -> Optional[str]:
        known = self._reaction_comments.get(reaction_id)
        if known is not None:
            return known
        for doc in await self._store.query(COMMENTS_COLLECTION):
            if any(r.get("id") == reaction_id for r in doc.get("reactions", [])):
                return doc["id"]
        return None

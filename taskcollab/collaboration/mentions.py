"""Mention resolution — ``@name`` tokens in comment text matched to a roster.

Resolution is best-effort.  A token is matched against the roster by, in
priority order:

1. exact, case-insensitive display name,
2. display name with all whitespace removed,
3. email local part,
4. first word of the display name.

Multi-word names (``@Jean Dupont``) are supported by trying the token's word
prefixes longest first.  A token that matches more than one user on the same
tier is ambiguous and ignored, as is a token that matches nobody.  Text is
never rewritten: rendering gets character spans to style instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

from taskcollab.collaboration.identity import IdentityProvider
from taskcollab.collaboration.models import CandidateUser

logger = logging.getLogger(__name__)

# '@' at start of text or after a space/newline, a word character, then
# letters, digits, diacritics, spaces, hyphens, underscores, apostrophes, dots.
_MENTION_RE = re.compile(r"(?<![^ \n])@([\w\u0300-\u036f][\w\u0300-\u036f'.\- ]*)")
_TRAILING = " .'-"
_POSSESSIVE = re.compile(r"'s$", re.IGNORECASE)
_WORD_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class MentionToken:
    """A raw ``@token`` found in text."""

    raw: str
    """Token text after the '@', trailing whitespace and punctuation trimmed."""

    start: int
    """Index of the '@' in the source text."""

    def prefixes(self) -> Iterator[str]:
        """Word prefixes of the token, longest first.

        A possessive prefix (``Bob's``) is followed by its bare form.
        """
        ends = [m.end() for m in _WORD_RE.finditer(self.raw)]
        for end in reversed(ends):
            prefix = self.raw[:end].rstrip(_TRAILING)
            if not prefix:
                continue
            yield prefix
            bare = _POSSESSIVE.sub("", prefix)
            if bare and bare != prefix:
                yield bare


@dataclass(frozen=True)
class MentionSpan:
    """A resolved mention's location, for highlighting."""

    start: int
    end: int
    text: str
    user_id: str


def _exact(m: str, user: CandidateUser) -> bool:
    return user.display_name.strip().lower() == m


def _squashed(m: str, user: CandidateUser) -> bool:
    name = "".join(user.display_name.lower().split())
    return bool(name) and name == "".join(m.split())


def _email_local(m: str, user: CandidateUser) -> bool:
    return bool(user.email) and user.email.lower().split("@")[0] == m


def _first_name(m: str, user: CandidateUser) -> bool:
    words = user.display_name.lower().split()
    return bool(words) and words[0] == m


_TIERS: tuple[tuple[str, Callable[[str, CandidateUser], bool]], ...] = (
    ("exact", _exact),
    ("normalized", _squashed),
    ("email", _email_local),
    ("first_name", _first_name),
)


def extract_tokens(text: str) -> list[MentionToken]:
    """Find every ``@token`` in *text*, in order of appearance."""
    tokens: list[MentionToken] = []
    for match in _MENTION_RE.finditer(text):
        raw = match.group(1).rstrip(_TRAILING)
        if raw:
            tokens.append(MentionToken(raw=raw, start=match.start()))
    return tokens


def extract_mentions(text: str) -> list[str]:
    """Raw mention strings in *text* (without the '@')."""
    return [t.raw for t in extract_tokens(text)]


def match_token(
    token: MentionToken,
    roster: Iterable[CandidateUser],
) -> tuple[Optional[CandidateUser], str]:
    """Resolve one token to at most one roster user.

    Returns the user (or None) and the prefix of the token that matched.
    """
    users = list(roster)
    for prefix in token.prefixes():
        m = prefix.lower()
        for tier, predicate in _TIERS:
            matches = {u.id: u for u in users if predicate(m, u)}
            if len(matches) == 1:
                return next(iter(matches.values())), prefix
            if len(matches) > 1:
                logger.debug(
                    "Ambiguous mention @%s (%s): %s", prefix, tier, sorted(matches),
                )
                return None, ""
    return None, ""


def resolve_mentions(
    text: str,
    roster: Iterable[CandidateUser],
    author_id: Optional[str] = None,
) -> list[CandidateUser]:
    """Users mentioned in *text*, each once, in order of first mention.

    The author is never returned, even when they mention themselves.
    """
    users = list(roster)
    resolved: dict[str, CandidateUser] = {}
    for token in extract_tokens(text):
        user, _ = match_token(token, users)
        if user is None or user.id == author_id:
            continue
        resolved.setdefault(user.id, user)
    return list(resolved.values())


def mention_spans(text: str, roster: Iterable[CandidateUser]) -> list[MentionSpan]:
    """Character spans of resolved mentions, self-mentions included."""
    users = list(roster)
    spans: list[MentionSpan] = []
    for token in extract_tokens(text):
        user, prefix = match_token(token, users)
        if user is None:
            continue
        end = token.start + 1 + len(prefix)
        spans.append(MentionSpan(token.start, end, text[token.start:end], user.id))
    return spans


# -- Compose-box helpers ------------------------------------------------------


def mention_query_at(text: str, cursor: int) -> Optional[str]:
    """The partial ``@query`` being typed just before *cursor*, if any.

    Only a single word counts: once a space follows the '@' the popup closes.
    """
    at = text.rfind("@", 0, cursor)
    if at == -1:
        return None
    if at > 0 and text[at - 1] not in (" ", "\n"):
        return None
    query = text[at + 1:cursor]
    if " " in query or "\n" in query:
        return None
    return query


def suggest_mentions(query: str, roster: Iterable[CandidateUser]) -> list[CandidateUser]:
    """Roster users whose name or email contains *query*, case-insensitively."""
    q = query.lower()
    return [
        u for u in roster
        if q in u.display_name.lower() or q in u.email.lower()
    ]


def insert_mention(text: str, cursor: int, user: CandidateUser) -> tuple[str, int]:
    """Replace the partial ``@query`` before *cursor* with the user's name.

    Returns the new text and cursor position.  Text without an active query
    is returned unchanged.
    """
    if mention_query_at(text, cursor) is None:
        return text, cursor
    at = text.rfind("@", 0, cursor)
    inserted = f"@{user.display_name or user.email} "
    return text[:at] + inserted + text[cursor:], at + len(inserted)


class MentionResolver:
    """Resolves mentions against the roster of a project."""

    def __init__(self, identity: IdentityProvider) -> None:
        self._identity = identity

    def roster(self, project_id: str) -> list[CandidateUser]:
        return self._identity.list_candidate_users(project_id)

    def resolve(
        self,
        text: str,
        project_id: str,
        author_id: Optional[str] = None,
    ) -> list[CandidateUser]:
        users = resolve_mentions(text, self.roster(project_id), author_id)
        if users:
            logger.debug("Resolved mentions: %s", [u.id for u in users])
        return users

    def spans(self, text: str, project_id: str) -> list[MentionSpan]:
        return mention_spans(text, self.roster(project_id))

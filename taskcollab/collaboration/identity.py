"""Identity providers — who is acting, and who can be mentioned."""

from __future__ import annotations

import abc
import logging
from typing import Iterable, Optional

from taskcollab.collaboration.models import CandidateUser

logger = logging.getLogger(__name__)

LOCAL_USER_ID = "local-user"
LOCAL_DISPLAY_NAME = "Local user"


class IdentityProvider(abc.ABC):
    """Abstract identity provider."""

    @property
    @abc.abstractmethod
    def current_user_id(self) -> Optional[str]:
        """Authenticated user id, or None when running local-only."""

    @property
    def current_display_name(self) -> str:
        return LOCAL_DISPLAY_NAME

    @property
    def is_authenticated(self) -> bool:
        return self.current_user_id is not None

    @abc.abstractmethod
    def list_candidate_users(self, project_id: str) -> list[CandidateUser]:
        """Users who can be mentioned in *project_id*."""


class StaticIdentityProvider(IdentityProvider):
    """Fixed identity with per-project rosters.

    Parameters
    ----------
    user_id:
        Signed-in user, or None for unauthenticated local mode.
    display_name:
        Name denormalised onto comments and activity records.
    roster:
        Users available in every project without a specific roster.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        display_name: str = "",
        roster: Iterable[CandidateUser] = (),
    ) -> None:
        self._user_id = user_id
        self._display_name = display_name
        self._default_roster = list(roster)
        self._project_rosters: dict[str, list[CandidateUser]] = {}

    @property
    def current_user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def current_display_name(self) -> str:
        return self._display_name or LOCAL_DISPLAY_NAME

    def sign_in(self, user_id: str, display_name: str = "") -> None:
        self._user_id = user_id
        self._display_name = display_name
        logger.info("Signed in as %s", user_id)

    def sign_out(self) -> None:
        logger.info("Signed out %s", self._user_id)
        self._user_id = None
        self._display_name = ""

    def set_project_roster(self, project_id: str, users: Iterable[CandidateUser]) -> None:
        self._project_rosters[project_id] = list(users)

    def list_candidate_users(self, project_id: str) -> list[CandidateUser]:
        return list(self._project_rosters.get(project_id, self._default_roster))

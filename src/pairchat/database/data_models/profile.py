"""
Profile data model and storage interface.

A profile is the public face of an account: display name, the short public
handle ('uid') used for contact discovery and a fixed avatar colour. The
handle is unique across all profiles; implementations must raise
'DuplicateHandleError' when a write would break that.

Read visibility follows the row-level policy of the managed backend: a caller
sees its own profile and the profiles of users it has added as contacts.
'find_by_uid' is the one exception and returns only a 'ProfileMatch', never
the full row.

Concrete implementation: 'InMemoryProfileDatabase'.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, computed_field


class Profile(BaseModel):
    """Display data attached to one account ('user_id')."""

    id: str
    user_id: str
    name: str
    uid: str
    avatar_color: str
    create_timestamp: int
    update_timestamp: int

    @computed_field
    @property
    def initial(self) -> str:
        return self.name[:1].upper()


class ProfileMatch(BaseModel):
    """Minimal result of a handle lookup."""

    user_id: str
    name: str


class ProfileDatabase(ABC):
    """Abstract repository for 'Profile' records."""

    @abstractmethod
    async def create_profile(self, profile: Profile) -> Profile:
        pass

    @abstractmethod
    async def get_profile_by_user_id(self, caller_id: str, user_id: str) -> Profile | None:
        pass

    @abstractmethod
    async def get_profiles_by_user_ids(self, caller_id: str, user_ids: list[str]) -> list[Profile]:
        pass

    @abstractmethod
    async def find_by_uid(self, uid: str) -> ProfileMatch | None:
        pass

    @abstractmethod
    async def update_profile(
        self,
        caller_id: str,
        user_id: str,
        name: str | None = None,
        uid: str | None = None,
    ) -> Profile:
        """Update the given fields and refresh 'update_timestamp'.

        Raises 'AuthorizationError' if 'caller_id' does not own the row,
        'NotFoundError' if there is no profile and 'DuplicateHandleError' if 'uid' is taken.
        """
        pass

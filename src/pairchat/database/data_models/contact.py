"""
Contact edge data model and storage interface.

An edge is the directed relation "'user_id' has added 'contact_user_id'". It is
unique per ordered pair and only ever visible to, and deletable by, its owner.
Removing an edge never touches the reverse edge.

Concrete implementation: 'InMemoryContactDatabase'.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class ContactEdge(BaseModel):
    """One directed "added as contact" relation."""

    id: str
    user_id: str
    contact_user_id: str
    create_timestamp: int


class ContactDatabase(ABC):
    """Abstract repository for 'ContactEdge' records."""

    @abstractmethod
    async def create_contact(self, caller_id: str, edge: ContactEdge) -> ContactEdge:
        """Insert an edge owned by 'caller_id'.

        Raises 'AuthorizationError' if the edge is not owned by the caller and
        'ConflictError' if the pair already exists.
        """
        pass

    @abstractmethod
    async def get_contacts_by_user_id(self, caller_id: str, user_id: str) -> list[ContactEdge]:
        pass

    @abstractmethod
    async def delete_contact(self, caller_id: str, contact_id: str) -> bool:
        """Delete one of the caller's edges. Returns False if no visible edge matched."""
        pass

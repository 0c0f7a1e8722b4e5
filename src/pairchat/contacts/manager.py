"""
Contact graph manager.

Maintains the directed "has added as contact" relation of one owner and its
join with the peers' profiles. Adding a contact goes through four checks, each
of which rejects with its own 'AddContactReason' before anything is written:

    1  handle length             -> INVALID_HANDLE
    2  handle resolves           -> NOT_FOUND
    3  handle is not the owner   -> SELF
    4  edge does not exist yet   -> DUPLICATE

A duplicate insert that slips past check 4 (two concurrent adds) is rejected by
the store's uniqueness constraint and reported as DUPLICATE as well.
"""

from collections.abc import Sequence

from loguru import logger

from pairchat.contacts.data_models import PLACEHOLDER_PROFILE, Contact, ContactProfile
from pairchat.database.data_models.contact import ContactDatabase, ContactEdge
from pairchat.database.data_models.profile import Profile, ProfileDatabase
from pairchat.directory.service import UidDirectoryService, is_valid_handle
from pairchat.errors import AddContactError, AddContactReason, ConflictError
from pairchat.utils.database import generate_uid
from pairchat.utils.time import get_current_timestamp


def join_contacts(edges: Sequence[ContactEdge], profiles: Sequence[Profile]) -> list[Contact]:
    """Attach each edge's peer profile; peers without a readable profile get 'PLACEHOLDER_PROFILE'."""
    by_user_id = {profile.user_id: profile for profile in profiles}
    contacts: list[Contact] = []
    for edge in edges:
        profile = by_user_id.get(edge.contact_user_id)
        if profile is None:
            logger.warning(f"No profile for contact {edge.contact_user_id}, using placeholder")
            contacts.append(
                Contact(
                    id=edge.id,
                    contact_user_id=edge.contact_user_id,
                    profile=PLACEHOLDER_PROFILE.model_copy(),
                    resolved=False,
                )
            )
            continue
        contacts.append(
            Contact(
                id=edge.id,
                contact_user_id=edge.contact_user_id,
                profile=ContactProfile(name=profile.name, uid=profile.uid, avatar_color=profile.avatar_color),
            )
        )
    return contacts


def filter_contacts(contacts: Sequence[Contact], query: str) -> list[Contact]:
    """Case-insensitive substring match on name or handle. An empty query keeps everything."""
    needle = query.strip().lower()
    if not needle:
        return list(contacts)
    return [c for c in contacts if needle in c.profile.name.lower() or needle in c.profile.uid.lower()]


class ContactGraphManager:
    """
    Add, remove and list the contacts of the signed-in user.

    Attributes:
        directory: Resolves handles to accounts.
        contact_db: Stores the edges.
        profile_db: Supplies the peer profiles for 'list_contacts'.
    """

    def __init__(
        self,
        directory: UidDirectoryService,
        contact_db: ContactDatabase,
        profile_db: ProfileDatabase,
    ) -> None:
        self.directory = directory
        self.contact_db = contact_db
        self.profile_db = profile_db

    async def add_contact(self, owner_id: str, handle: str) -> Contact:
        handle = (handle or "").strip()
        if not is_valid_handle(handle):
            raise AddContactError(AddContactReason.INVALID_HANDLE)

        match = await self.directory.lookup(handle)
        if match is None:
            raise AddContactError(AddContactReason.NOT_FOUND)

        if match.user_id == owner_id:
            raise AddContactError(AddContactReason.SELF)

        edges = await self.contact_db.get_contacts_by_user_id(owner_id, owner_id)
        if any(edge.contact_user_id == match.user_id for edge in edges):
            raise AddContactError(AddContactReason.DUPLICATE)

        try:
            edge = await self.contact_db.create_contact(
                owner_id,
                ContactEdge(
                    id=generate_uid(),
                    user_id=owner_id,
                    contact_user_id=match.user_id,
                    create_timestamp=get_current_timestamp(),
                ),
            )
        except ConflictError as exc:
            raise AddContactError(AddContactReason.DUPLICATE) from exc

        logger.info(f"User {owner_id} added {match.name} ({match.user_id}) as a contact")
        profile = await self.profile_db.get_profile_by_user_id(owner_id, match.user_id)
        return join_contacts([edge], [profile] if profile else [])[0]

    async def remove_contact(self, caller_id: str, contact_id: str) -> bool:
        """Delete one of the caller's edges. Removing an edge that is already gone is not an error."""
        removed = await self.contact_db.delete_contact(caller_id, contact_id)
        if removed:
            logger.info(f"User {caller_id} removed contact edge {contact_id}")
        else:
            logger.debug(f"Contact edge {contact_id} was already removed")
        return removed

    async def list_contacts(self, owner_id: str) -> list[Contact]:
        edges = await self.contact_db.get_contacts_by_user_id(owner_id, owner_id)
        if not edges:
            return []
        profiles = await self.profile_db.get_profiles_by_user_ids(
            owner_id, [edge.contact_user_id for edge in edges]
        )
        return join_contacts(edges, profiles)

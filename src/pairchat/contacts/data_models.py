"""
View models for the contacts list.

'Contact' is the result of joining one 'ContactEdge' with the current profile
of its peer. The join never fails on a missing profile: the peer is shown with
'PLACEHOLDER_PROFILE' instead.
"""

from pydantic import BaseModel, computed_field


class ContactProfile(BaseModel):
    """The part of a peer's profile shown next to a contact."""

    name: str
    uid: str
    avatar_color: str

    @computed_field
    @property
    def initial(self) -> str:
        """Upper-cased first letter of the name, as shown in the avatar bubble."""
        return self.name[:1].upper()


PLACEHOLDER_PROFILE = ContactProfile(name="Unknown", uid="????????", avatar_color="#888888")


class Contact(BaseModel):
    """
    One entry of a user's contacts list.

    'id' is the id of the underlying edge and is what 'remove_contact' takes;
    'contact_user_id' is the peer account, used to open a thread.
    """

    id: str
    contact_user_id: str
    profile: ContactProfile
    resolved: bool = True

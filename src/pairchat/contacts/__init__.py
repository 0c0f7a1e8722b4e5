from pairchat.contacts.data_models import PLACEHOLDER_PROFILE, Contact, ContactProfile
from pairchat.contacts.manager import ContactGraphManager, filter_contacts, join_contacts

__all__ = [
    "PLACEHOLDER_PROFILE",
    "Contact",
    "ContactGraphManager",
    "ContactProfile",
    "filter_contacts",
    "join_contacts",
]

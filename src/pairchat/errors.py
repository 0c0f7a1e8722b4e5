"""
Error taxonomy shared by every layer of the messenger.

Validation problems are raised before any storage call is made. Storage
implementations raise 'AuthorizationError' and 'ConflictError' independently
of whatever the client already checked, so client-side checks are advisory
only. 'NotFoundError' is raised by storage for missing rows but the thread
synchroniser and the directory degrade it to an empty result instead of
propagating it.
"""

from enum import StrEnum


class PairChatError(Exception):
    """Base class for all errors raised by the package."""


class ValidationError(PairChatError):
    """Malformed input (handle, message content, profile name, password)."""


class NotFoundError(PairChatError):
    """The referenced row does not exist or is not visible to the caller."""


class AuthorizationError(PairChatError):
    """The caller does not own the row it tried to modify."""


class AuthenticationError(PairChatError):
    """Invalid credentials or an unknown / expired session token."""


class ConflictError(PairChatError):
    """A uniqueness constraint was violated."""


class DuplicateHandleError(ConflictError):
    """The requested handle is already assigned to another profile."""


class HandleAllocationError(ConflictError):
    """No free handle could be allocated within the retry bound."""


class TransientError(PairChatError):
    """The backend is temporarily unavailable; the caller may re-issue the operation."""


class RateLimitError(PairChatError):
    """A send arrived before the minimum interval since the previous one elapsed."""


class AddContactReason(StrEnum):
    """Distinct, user-facing reasons for rejecting 'add_contact'."""

    INVALID_HANDLE = "invalid_handle"
    NOT_FOUND = "not_found"
    SELF = "self"
    DUPLICATE = "duplicate"


_ADD_CONTACT_MESSAGES: dict[AddContactReason, tuple[str, str]] = {
    AddContactReason.INVALID_HANDLE: ("Invalid UID", "UID must be exactly 8 characters."),
    AddContactReason.NOT_FOUND: ("User not found", "No user exists with that UID."),
    AddContactReason.SELF: ("Invalid UID", "You can't add yourself as a contact."),
    AddContactReason.DUPLICATE: ("Already added", "This user is already in your contacts."),
}


class AddContactError(ValidationError):
    """
    Rejection of an 'add_contact' request.

    Attributes:
        reason: Which of the four checks failed.
        title: Short headline suitable for a notification.
        description: One-sentence explanation for the user.
    """

    def __init__(self, reason: AddContactReason) -> None:
        self.reason = reason
        self.title, self.description = _ADD_CONTACT_MESSAGES[reason]
        super().__init__(self.description)

"""
Direct message data model and storage interface.

A message belongs to the conversation implied by the unordered pair
{'sender_id', 'receiver_id'}. 'reply_to_id' is a nullable reference to any
earlier message the sender could see; deleting the referenced message sets it
back to None on every dependent instead of deleting them.

Storage validates content independently of the client: non-empty after
trimming and at most 'MAX_MESSAGE_LENGTH' characters. Only the sender may
update or delete a message. Every successful write is announced on the
change feed the database was built with.

Concrete implementation: 'InMemoryMessageDatabase'.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from pairchat.config import MAX_MESSAGE_LENGTH
from pairchat.errors import ValidationError


class Message(BaseModel):
    """A single direct message."""

    id: str
    sender_id: str
    receiver_id: str
    content: str
    reply_to_id: str | None = None
    is_edited: bool = False
    create_timestamp: int
    update_timestamp: int

    def involves(self, user_a: str, user_b: str) -> bool:
        """True if the message was exchanged between 'user_a' and 'user_b' in either direction."""
        return {self.sender_id, self.receiver_id} == {user_a, user_b}


class MessageDatabase(ABC):
    """Abstract repository for 'Message' records."""

    @abstractmethod
    async def create_message(self, caller_id: str, message: Message) -> Message:
        """Raise 'NotFoundError' if 'reply_to_id' is set but names no message the sender can read."""
        pass

    @abstractmethod
    async def get_messages_between(self, caller_id: str, user_a: str, user_b: str) -> list[Message]:
        """Return the conversation between two users ordered by ('create_timestamp', 'id')."""
        pass

    @abstractmethod
    async def get_message_by_id(self, caller_id: str, message_id: str) -> Message | None:
        pass

    @abstractmethod
    async def update_message_content(self, caller_id: str, message_id: str, content: str) -> Message:
        """Replace the content, mark the message edited and refresh 'update_timestamp'."""
        pass

    @abstractmethod
    async def delete_message(self, caller_id: str, message_id: str) -> bool:
        """Delete the message and void dependent reply references. False if it did not exist."""
        pass


def check_message_content(content: str) -> None:
    """Raise 'ValidationError' unless 'content' is non-blank and within 'MAX_MESSAGE_LENGTH'."""
    if not content or not content.strip():
        raise ValidationError("Message content cannot be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content exceeds maximum length of {MAX_MESSAGE_LENGTH} characters")

"""
View models of an open conversation.

'ThreadMessage' extends the stored 'Message' with the 'reply_to' preview the
client needs but that is not stored on the message record. A snapshot is
always replaced as a whole; nothing mutates one after it has been published.
"""

from enum import StrEnum

from pydantic import BaseModel

from pairchat.database.data_models.message import Message

SELF_SENDER_NAME = "You"
UNKNOWN_SENDER_NAME = "Unknown"


class ReplyPreview(BaseModel):
    content: str
    sender_name: str


class ThreadMessage(Message):
    reply_to: ReplyPreview | None = None


class ThreadState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    RECONCILING = "reconciling"


class ThreadSnapshot(BaseModel):
    """
    The fully reconciled state of one conversation.

    Attributes:
        peer_id: The other participant.
        messages: Ordered by ('create_timestamp', 'id').
        version: Increases by one every time a reconcile is applied for this peer.
    """

    peer_id: str
    messages: list[ThreadMessage]
    version: int = 1

    def get(self, message_id: str) -> ThreadMessage | None:
        return next((m for m in self.messages if m.id == message_id), None)

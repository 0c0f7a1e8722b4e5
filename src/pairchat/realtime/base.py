"""
Change-notification abstractions.

The managed backend pushes "something in the messages collection changed"
with at-least-once delivery. Subscribers must not rely on the payload beyond
deciding whether to refetch; 'ChangeEvent' carries the pair of users involved
only so that a subscriber may choose to ignore changes outside its open
conversation.

Concrete implementation: 'InMemoryChangeFeed'.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import StrEnum

from pydantic import BaseModel


class ChangeKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A single change to a row of the messages collection."""

    kind: ChangeKind
    message_id: str
    sender_id: str
    receiver_id: str
    table: str = "messages"

    def involves(self, user_a: str, user_b: str) -> bool:
        return {self.sender_id, self.receiver_id} == {user_a, user_b}


class Subscription(ABC):
    """
    A live stream of change events.

    Iterating yields events until 'close' is called; closing is idempotent.
    """

    @abstractmethod
    async def get(self) -> ChangeEvent | None:
        """Wait for the next event. Returns None once the subscription is closed."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def pending(self) -> int:
        """Number of delivered events not yet consumed, or 0 when the transport cannot tell."""
        return 0

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class ChangeFeed(ABC):
    """Abstract broadcast channel for message changes."""

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        pass

    @abstractmethod
    def subscribe(self) -> Subscription:
        pass

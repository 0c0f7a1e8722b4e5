"""
Fetch-and-reconcile of a single conversation.

'load_thread' is the whole reconcile step: it reads every message between the
viewer and the peer, then resolves the reply preview of each message that
carries a 'reply_to_id'. Preview lookups are independent and run concurrently
with 'asyncio.gather'; a lookup that misses or fails leaves that one preview
empty and never fails the fetch. A failure of the main query propagates.
"""

import asyncio

from loguru import logger

from pairchat.chat.data_models import SELF_SENDER_NAME, UNKNOWN_SENDER_NAME, ReplyPreview, ThreadMessage
from pairchat.database.data_models.message import Message, MessageDatabase
from pairchat.database.data_models.profile import ProfileDatabase
from pairchat.errors import PairChatError


async def _sender_name(
    viewer_id: str,
    peer_id: str,
    peer_name: str,
    sender_id: str,
    profile_db: ProfileDatabase | None,
) -> str:
    if sender_id == viewer_id:
        return SELF_SENDER_NAME
    if sender_id == peer_id:
        return peer_name
    if profile_db is None:
        return UNKNOWN_SENDER_NAME
    profile = await profile_db.get_profile_by_user_id(viewer_id, sender_id)
    return profile.name if profile else UNKNOWN_SENDER_NAME


async def resolve_reply_preview(
    message: Message,
    viewer_id: str,
    peer_id: str,
    peer_name: str,
    message_db: MessageDatabase,
    profile_db: ProfileDatabase | None = None,
) -> ThreadMessage:
    """Return 'message' with its reply preview attached when the referenced message is still readable."""
    thread_message = ThreadMessage(**message.model_dump())
    if message.reply_to_id is None:
        return thread_message
    try:
        original = await message_db.get_message_by_id(viewer_id, message.reply_to_id)
        if original is None:
            logger.debug(f"Reply target {message.reply_to_id} of {message.id} is unavailable")
            return thread_message
        sender_name = await _sender_name(viewer_id, peer_id, peer_name, original.sender_id, profile_db)
    except (PairChatError, OSError) as exc:
        logger.warning(f"Could not resolve reply preview for message {message.id}: {exc}")
        return thread_message
    thread_message.reply_to = ReplyPreview(content=original.content, sender_name=sender_name)
    return thread_message


async def load_thread(
    viewer_id: str,
    peer_id: str,
    peer_name: str,
    message_db: MessageDatabase,
    profile_db: ProfileDatabase | None = None,
) -> list[ThreadMessage]:
    messages = await message_db.get_messages_between(viewer_id, viewer_id, peer_id)
    messages.sort(key=lambda m: (m.create_timestamp, m.id))
    resolved = await asyncio.gather(
        *(resolve_reply_preview(m, viewer_id, peer_id, peer_name, message_db, profile_db) for m in messages)
    )
    return list(resolved)

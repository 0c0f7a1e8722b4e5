from pairchat.chat.data_models import ReplyPreview, ThreadMessage, ThreadSnapshot, ThreadState
from pairchat.chat.synchronizer import MessageThreadSynchronizer
from pairchat.chat.thread import load_thread, resolve_reply_preview

__all__ = [
    "MessageThreadSynchronizer",
    "ReplyPreview",
    "ThreadMessage",
    "ThreadSnapshot",
    "ThreadState",
    "load_thread",
    "resolve_reply_preview",
]

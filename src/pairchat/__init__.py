"""
pairchat: one-to-one messaging core.

Three cooperating pieces sit on top of pluggable storage, identity and
realtime collaborators:

    'UidDirectoryService'        short public handles, lookup and regeneration
    'ContactGraphManager'        the directed contact relation and its profile join
    'MessageThreadSynchronizer'  the open conversation, kept in sync with the store

'MessengerController' wires them together; 'pairchat.api.server.create_app'
serves the controller over HTTP.
"""

from pairchat.chat.synchronizer import MessageThreadSynchronizer
from pairchat.contacts.manager import ContactGraphManager
from pairchat.controller import MessengerController
from pairchat.directory.service import UidDirectoryService

__version__ = "0.1.0"

__all__ = [
    "ContactGraphManager",
    "MessageThreadSynchronizer",
    "MessengerController",
    "UidDirectoryService",
    "__version__",
]

""" Python implementation of pfeed, a protocol replay tool. A feed of
    messages, loaded from files or packet captures, is replayed to a single
    peer over TCP or UDP, as either the client or the server, paced by the
    peer's own traffic; ad-hoc messages can be injected into a live session
    via the blit channel.
"""

# Utility components.

from . import json
from . import config
from . import notice
from . import reactor

# Submodules used by multiple other components.

from . import message
from . import transport
from . import sources
from . import blit

# Primary public-facing interfaces.

from .config import Configuration
from .message import Message, Feed
from .session import Session
from .supervisor import Supervisor

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

"""Transport interface.

This is the (small) contract that the connection adapters follow. The
session layer only ever talks to an :class:`Adapter`; it never touches a
socket directly, and never needs to know whether it is a client or a server,
or whether the messages travel over TCP or UDP.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from ..message import Message
from .peer import Peer, PeerRegistry


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


class TransportPortError(TransportError):
    """The requested local address could not be bound."""


Address = Tuple[str, int]


class Adapter(ABC):
    """Uniform bidirectional message channel for one role/transport pairing.

    Events are reported to *sink*, a callable invoked as ``sink(event, *args)``:

    - ``connected``: the channel is ready for traffic.
    - ``received`` (peer, data): inbound bytes.
    - ``sent`` (message): an outbound message was handed to the kernel.
    - ``closed`` (reason): the peer ended the connection (TCP only).
    - ``error`` (exception): the channel failed.
    - ``refused`` (peer, message=None): an ICMP port-unreachable was
      reported (UDP only); *message* is the send that was refused, if any.
    """

    transport = None

    def __init__(self, reactor, sink: Callable, target: Optional[Address] = None,
                 listen: Optional[Address] = None):
        self.reactor = reactor
        self.sink = sink
        self.target = target
        self.listen = listen
        self.peers = PeerRegistry()
        self.socket = None

    def __repr__(self):
        return '%s: peer %s' % (self.__class__.__name__, self.peer)

    @property
    def peer(self) -> Optional[Peer]:
        """The peer that feed traffic is exchanged with, if known."""
        return self.peers.active

    @property
    def is_open(self) -> bool:
        """Whether the adapter currently holds a socket."""
        return self.socket is not None

    def can_send(self) -> bool:
        """Whether :func:`send` has somewhere to send to."""
        return self.is_open and self.peer is not None

    @abstractmethod
    def open(self) -> None:
        """Connect (client role) or listen (server role)."""

    @abstractmethod
    def send(self, message: Message) -> None:
        """Send a Message to the active peer."""

    @abstractmethod
    def close(self) -> None:
        """Tear down every socket held by this adapter."""

    def _emit(self, event, *args) -> None:
        # Events are always delivered from the reactor loop, never from
        # inside whatever call triggered them.
        self.reactor.call_soon(self.sink, event, *args)

"""Peer identity and the registry used to track it.

TCP gets its peer for free when the connection is established. UDP has no
such notion, so the registry makes the discovery explicit: a peer is either
unknown, registered manually from the configured target, or learned from
the first inbound datagram.
"""

from __future__ import annotations

import dataclasses
from typing import Dict, Optional


UNKNOWN = 'unknown'
MANUAL = 'manual'
LEARNED = 'learned'


@dataclasses.dataclass(frozen=True)
class Peer:
    address: str
    port: int
    transport: str = 'tcp'

    def __str__(self):
        if ':' in self.address:
            return '%s [%s]:%d' % (self.transport.upper(), self.address, self.port)
        return '%s %s:%d' % (self.transport.upper(), self.address, self.port)

    @classmethod
    def from_address(cls, address, transport='tcp') -> 'Peer':
        # IPv6 socket addresses carry flowinfo and scope id; only the first
        # two fields identify the peer.
        return cls(str(address[0]), int(address[1]), transport)


class PeerRegistry:
    """Every peer seen by one adapter, and which of them is the active one.

    The first peer registered or learned becomes the active peer, and stays
    so for the lifetime of the registry.
    """

    def __init__(self):
        self.active: Optional[Peer] = None
        self.known: Dict[Peer, str] = dict()

    def __contains__(self, peer):
        return peer in self.known

    def __len__(self):
        return len(self.known)

    @property
    def state(self) -> str:
        """How the active peer was established."""
        if self.active is None:
            return UNKNOWN
        return self.known[self.active]

    def register(self, peer: Peer) -> Peer:
        """Manually register *peer*, making it active if none is yet."""
        self.known.setdefault(peer, MANUAL)
        if self.active is None:
            self.active = peer
        return self.active

    def observe(self, peer: Peer) -> bool:
        """Note inbound traffic from *peer*. Returns True if *peer* is the
        active peer, learning it as such if no peer was known before.
        """
        if peer not in self.known:
            self.known[peer] = LEARNED

        if self.active is None:
            self.active = peer

        return peer == self.active

    def is_active(self, peer: Peer) -> bool:
        return self.active is not None and peer == self.active

    def clear(self) -> None:
        self.active = None
        self.known.clear()

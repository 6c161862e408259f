"""UDP connection adapters.

There is no handshake and no connection to lose. A :class:`Client` binds a
local socket and registers the configured target as its peer up front; a
:class:`Server` binds and learns its peer from the first datagram that
arrives. Neither ever reports ``closed``; a UDP session ends only when the
feed is exhausted with close-at-end, or when the process is interrupted.
"""

from __future__ import annotations

import socket as pysocket

from ..message import Message
from .base import (
    Adapter,
    TransportConnectionError,
    TransportPortError,
)
from .peer import Peer


class _Datagram(Adapter):
    """Shared handling for a bound datagram socket."""

    transport = 'udp'
    chunk = 65535

    @property
    def port(self):
        """The bound local port, useful when binding to port 0."""
        if self.socket is None:
            return None
        return self.socket.getsockname()[1]

    def _bind(self, host, port, family=0) -> None:
        try:
            info = pysocket.getaddrinfo(host, port, family, pysocket.SOCK_DGRAM, flags=pysocket.AI_PASSIVE)
        except pysocket.gaierror as exc:
            raise TransportPortError('cannot resolve %s: %s' % (host, exc)) from exc

        family, kind, proto, _name, address = info[0]
        sock = pysocket.socket(family, kind, proto)
        sock.setsockopt(pysocket.SOL_SOCKET, pysocket.SO_REUSEADDR, 1)

        try:
            sock.bind(address)
        except OSError as exc:
            sock.close()
            raise TransportPortError('cannot bind %s:%d: %s' % (host, port, exc)) from exc

        self.socket = sock
        self.reactor.register(sock, self._readable)

    def _readable(self) -> None:
        try:
            data, address = self.socket.recvfrom(self.chunk)
        except (BlockingIOError, InterruptedError):
            return
        except ConnectionRefusedError:
            # An ICMP port-unreachable for an earlier datagram. The peer may
            # simply not be up yet; UDP has no connection to tear down.
            self._emit('refused', self.peer)
            return
        except OSError as exc:
            self.close()
            self._emit('error', exc)
            return

        peer = Peer.from_address(address, self.transport)
        self.peers.observe(peer)
        self._emit('received', peer, data)

    def send(self, message: Message) -> None:
        peer = self.peer

        if self.socket is None or peer is None:
            raise TransportConnectionError('no peer to send to')

        try:
            self.socket.sendto(message.data, (peer.address, peer.port))
        except ConnectionRefusedError:
            self._emit('refused', peer, message)
            return
        except OSError as exc:
            self.close()
            self._emit('error', exc)
            return

        self._emit('sent', message)

    def close(self) -> None:
        sock = self.socket
        if sock is None:
            return

        self.socket = None
        self.reactor.unregister(sock)
        sock.close()


class Client(_Datagram):
    """Bind locally and register *target* as the peer."""

    def open(self) -> None:
        if self.target is None:
            raise TransportConnectionError('no target address to send to')

        host, port = self.target

        try:
            info = pysocket.getaddrinfo(host, port, type=pysocket.SOCK_DGRAM)
        except pysocket.gaierror as exc:
            raise TransportConnectionError('cannot resolve %s: %s' % (host, exc)) from exc

        family = info[0][0]
        resolved = info[0][4]

        if self.listen is None:
            if family == pysocket.AF_INET6:
                local = ('::', 0)
            else:
                local = ('0.0.0.0', 0)
        else:
            local = self.listen

        self._bind(local[0], local[1], family)
        self.peers.register(Peer.from_address(resolved, self.transport))
        self._emit('connected')


class Server(_Datagram):
    """Bind to *listen* and wait for the first datagram."""

    def open(self) -> None:
        if self.listen is None:
            raise TransportPortError('no address to listen on')

        self._bind(*self.listen)
        self._emit('connected')

"""TCP connection adapters.

A :class:`Client` connects out to the configured target; a :class:`Server`
listens on the configured address and accepts exactly one peer, after which
the listening socket is released. Either way the result is one connected
stream socket registered with the reactor.

Every socket here is non-blocking. Outbound data is queued and written as
the socket becomes writable, so a peer that stops reading never stalls the
reactor; ``sent`` is only reported once the kernel has taken every byte.
"""

from __future__ import annotations

import collections
import errno
import os
import socket as pysocket
from typing import Optional

import zmq

from ..message import Message
from .base import (
    Adapter,
    TransportConnectionError,
    TransportPortError,
)
from .peer import Peer


in_progress = (0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY)


class _Stream(Adapter):
    """Shared handling for an established TCP connection."""

    transport = 'tcp'
    chunk = 65536

    def __init__(self, *args, **kwargs):
        Adapter.__init__(self, *args, **kwargs)
        self.outbound = collections.deque()
        self.writing = False

    def _established(self, sock, address) -> None:
        sock.setblocking(False)
        sock.setsockopt(pysocket.IPPROTO_TCP, pysocket.TCP_NODELAY, 1)

        self.socket = sock
        self.peers.observe(Peer.from_address(address, self.transport))
        self.reactor.register(sock, self._readable)
        self._emit('connected')

    def _readable(self) -> None:
        try:
            data = self.socket.recv(self.chunk)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            self._drop()
            self._emit('error', exc)
            return

        if data == b'':
            self._drop()
            self._emit('closed', 'peer')
            return

        self._emit('received', self.peer, data)

    def send(self, message: Message) -> None:
        if self.socket is None:
            raise TransportConnectionError('no connection to send on')

        self.outbound.append([message, memoryview(message.data)])
        self._writable()

    def _writable(self) -> None:
        """Write as much queued data as the socket will take right now."""

        while self.outbound:
            message, pending = self.outbound[0]

            if pending:
                try:
                    written = self.socket.send(pending)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as exc:
                    self._drop()
                    self._emit('error', exc)
                    return

                pending = pending[written:]
                self.outbound[0][1] = pending

                if pending:
                    break

            self.outbound.popleft()
            self._emit('sent', message)

        if self.outbound and self.writing == False:
            self.writing = True
            self.reactor.register(self.socket, self._writable, zmq.POLLOUT)
        elif not self.outbound and self.writing == True:
            self.writing = False
            self.reactor.unregister(self.socket, zmq.POLLOUT)

    def _drop(self) -> None:
        sock = self.socket
        if sock is None:
            return

        self.socket = None
        self.writing = False
        self.outbound.clear()
        self.reactor.unregister(sock)

        # Half-close first so that anything already written is delivered
        # ahead of the FIN. Unread inbound data at close() time makes the
        # kernel send a RST instead, which can discard what was written;
        # read and discard whatever has already arrived.
        try:
            sock.shutdown(pysocket.SHUT_WR)
        except OSError:
            pass

        try:
            while sock.recv(self.chunk):
                pass
        except OSError:
            pass

        sock.close()

    def close(self) -> None:
        self._drop()


class Client(_Stream):
    """Connect to *target*, optionally binding the local end to *listen*.

    The connect itself is non-blocking: :func:`open` returns immediately,
    and the outcome arrives as a ``connected`` or ``error`` event once the
    socket becomes writable.
    """

    def __init__(self, *args, **kwargs):
        _Stream.__init__(self, *args, **kwargs)
        self.connecting: Optional[pysocket.socket] = None

    def open(self) -> None:
        if self.target is None:
            raise TransportConnectionError('no target address to connect to')

        host, port = self.target

        try:
            info = pysocket.getaddrinfo(host, port, type=pysocket.SOCK_STREAM)
        except pysocket.gaierror as exc:
            raise TransportConnectionError('cannot resolve %s: %s' % (host, exc)) from exc

        family, kind, proto, _name, address = info[0]
        sock = pysocket.socket(family, kind, proto)
        sock.setblocking(False)

        if self.listen is not None:
            try:
                sock.bind(self.listen)
            except OSError as exc:
                sock.close()
                if exc.errno == errno.EADDRINUSE:
                    raise TransportPortError('local address in use: %s:%d' % self.listen) from exc
                raise TransportPortError('cannot bind %s:%d: %s' % (self.listen[0], self.listen[1], exc)) from exc

        result = sock.connect_ex(address)

        if result not in in_progress:
            sock.close()
            self._emit('error', self._refusal(result))
            return

        self.connecting = sock
        self.reactor.register(sock, self._completed, zmq.POLLOUT)

    def _completed(self) -> None:
        sock = self.connecting
        if sock is None:
            return

        self.connecting = None
        self.reactor.unregister(sock)

        result = sock.getsockopt(pysocket.SOL_SOCKET, pysocket.SO_ERROR)

        if result != 0:
            sock.close()
            self._emit('error', self._refusal(result))
            return

        try:
            address = sock.getpeername()
        except OSError as exc:
            sock.close()
            self._emit('error', self._refusal(exc.errno))
            return

        self._established(sock, address)

    def _refusal(self, result) -> TransportConnectionError:
        host, port = self.target
        return TransportConnectionError('cannot connect to %s:%d: %s' % (host, port, os.strerror(result)))

    @property
    def is_open(self) -> bool:
        return self.socket is not None or self.connecting is not None

    def close(self) -> None:
        sock = self.connecting
        if sock is not None:
            self.connecting = None
            self.reactor.unregister(sock)
            sock.close()

        self._drop()


class Server(_Stream):
    """Listen on *listen* and accept the first peer that connects."""

    backlog = 1

    def __init__(self, *args, **kwargs):
        _Stream.__init__(self, *args, **kwargs)
        self.listener: Optional[pysocket.socket] = None

    @property
    def port(self) -> Optional[int]:
        """The bound listening port, useful when listening on port 0."""
        if self.listener is None:
            return None
        return self.listener.getsockname()[1]

    def open(self) -> None:
        if self.listen is None:
            raise TransportPortError('no address to listen on')

        host, port = self.listen

        try:
            info = pysocket.getaddrinfo(host, port, type=pysocket.SOCK_STREAM, flags=pysocket.AI_PASSIVE)
        except pysocket.gaierror as exc:
            raise TransportPortError('cannot resolve %s: %s' % (host, exc)) from exc

        family, kind, proto, _name, address = info[0]
        listener = pysocket.socket(family, kind, proto)
        listener.setsockopt(pysocket.SOL_SOCKET, pysocket.SO_REUSEADDR, 1)
        listener.setblocking(False)

        try:
            listener.bind(address)
            listener.listen(self.backlog)
        except OSError as exc:
            listener.close()
            raise TransportPortError('cannot listen on %s:%d: %s' % (host, port, exc)) from exc

        self.listener = listener
        self.reactor.register(listener, self._accept)

    def _accept(self) -> None:
        try:
            sock, address = self.listener.accept()
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            self._release()
            self._emit('error', exc)
            return

        # Two-party sessions only: once a peer is connected, nobody else
        # is let in.
        self._release()
        self._established(sock, address)

    def _release(self) -> None:
        listener = self.listener
        if listener is None:
            return

        self.listener = None
        self.reactor.unregister(listener)
        listener.close()

    @property
    def is_open(self) -> bool:
        return self.socket is not None or self.listener is not None

    def can_send(self) -> bool:
        return self.socket is not None and self.peer is not None

    def close(self) -> None:
        self._release()
        self._drop()

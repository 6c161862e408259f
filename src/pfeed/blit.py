""" The blit channel: a local side-channel for injecting ad-hoc messages
    into a live session. Any TCP client can connect to the blit address;
    every chunk of bytes it sends is handed to the owning session as one
    injected message, verbatim, with no framing of any kind.

    The listener is a ZeroMQ STREAM socket, which speaks raw TCP to its
    peers while giving each connection its own identity frame; connections
    and disconnections show up as empty messages.
"""

import socket
import time
import weakref

import zmq
from zmq.utils.monitor import recv_monitor_message

from .message import Message
from .reactor import zmq_context
from .transport import TransportPortError


class Channel:
    """ Listen for blit control connections on *address*, a (host, port)
        tuple, forwarding payloads to the *session* that owns this channel.
        Only a weak reference to the session is retained; a channel never
        keeps a finished session alive.

        :ivar connections: Maps connection identity to a sequence number.
        :ivar forwarded: How many payloads have been handed to the session.
    """

    release_timeout = 1000

    def __init__(self, session, address, reactor, notices=None):

        self.session = weakref.ref(session)
        self.address = address
        self.reactor = reactor
        self.notices = notices

        self.connections = dict()
        self.connection_count = 0
        self.forwarded = 0
        self.socket = None
        self.endpoint = None
        self.port = None


    def __repr__(self):
        return 'blit.Channel: %s:%s, %d connections' % (self.address[0], self.port, len(self.connections))


    def open(self):
        """ Bind the listening socket and register it with the reactor. If
            the configured port is zero, an ephemeral port is chosen; the
            port in use is available as :attr:`port` afterwards.
        """

        host, port = self.address

        if ':' in host:
            host = '[' + host + ']'

        if port == 0:
            endpoint = 'tcp://%s:*' % (host)
        else:
            endpoint = 'tcp://%s:%d' % (host, port)

        sock = zmq_context.socket(zmq.STREAM)
        sock.setsockopt(zmq.LINGER, 0)

        if ':' in self.address[0]:
            sock.setsockopt(zmq.IPV6, 1)

        try:
            sock.bind(endpoint)
        except zmq.ZMQError as exc:
            sock.close()
            raise TransportPortError("cannot bind blit address %s: %s" % (endpoint, exc)) from exc

        bound = sock.getsockopt_string(zmq.LAST_ENDPOINT)
        self.endpoint = bound
        self.port = int(bound.rsplit(':', 1)[1])

        self.socket = sock
        self.reactor.register(sock, self._incoming)

        if self.notices is not None:
            self.notices.info('blit channel listening on %s:%d', self.address[0], self.port)


    def close(self):
        """ Release the listening socket and drop every control connection.
            The listening port is free for reuse by the time this returns:
            zmq closes its listener in a background thread, so the endpoint
            is unbound first, and the close waits for the monitor to report
            that the listener is gone.
        """

        sock = self.socket

        if sock is None:
            return

        self.socket = None
        self.reactor.unregister(sock)

        monitor = sock.get_monitor_socket(zmq.EVENT_CLOSED)

        try:
            sock.unbind(self.endpoint)

            if self._released(monitor) == False and self.notices is not None:
                self.notices.transport('blit listener on %s not yet released', self.endpoint)
        finally:
            sock.disable_monitor()
            monitor.close(linger=0)
            sock.close(linger=0)
            self.connections.clear()


    def _released(self, monitor):
        """ Wait, up to :attr:`release_timeout` milliseconds, for the
            monitor to report that the bound listener has been closed.
        """

        expiration = time.time() + self.release_timeout / 1000.0

        while True:
            remaining = int((expiration - time.time()) * 1000)

            if remaining <= 0:
                return False

            if monitor.poll(remaining) == 0:
                return False

            event = recv_monitor_message(monitor)

            if event['event'] == zmq.EVENT_CLOSED:
                return True


    def _incoming(self):
        """ Drain every pending message from the STREAM socket. Each message
            is a two-part (identity, data) pair; an empty data frame marks
            either a new connection or the end of an existing one.
        """

        while self.socket is not None:
            try:
                identity, data = self.socket.recv_multipart(flags=zmq.NOBLOCK)
            except zmq.Again:
                break

            if data == b'':
                self._toggle(identity)
                continue

            try:
                number = self.connections[identity]
            except KeyError:
                # Data ahead of the connect notification; this should not
                # happen, but there is no reason to discard the payload.
                number = self._toggle(identity)

            self._forward(number, data)


    def _toggle(self, identity):

        try:
            number = self.connections.pop(identity)
        except KeyError:
            pass
        else:
            if self.notices is not None:
                self.notices.info('blit connection #%d closed', number)
            return number

        self.connection_count += 1
        number = self.connection_count
        self.connections[identity] = number

        if self.notices is not None:
            self.notices.info('blit connection #%d opened', number)

        return number


    def _forward(self, number, data):

        message = Message(data, note='blit #%d' % (number))
        session = self.session()

        if session is None:
            # The session is gone; the channel outlived it only because
            # close() has not been called yet.
            if self.notices is not None:
                self.notices.injection('dropped %s, session no longer exists', message.describe())
            return

        self.forwarded += 1
        session.inject(message)


# end of class Channel



def send(address, port, data, timeout=5):
    """ Connect to the blit channel at *address* and *port* and deliver one
        payload. This is what a local control tool uses to inject a message
        into a running session.
    """

    if isinstance(data, str):
        data = data.encode()

    connection = socket.create_connection((address, int(port)), timeout)

    try:
        connection.sendall(data)
    finally:
        try:
            connection.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        connection.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

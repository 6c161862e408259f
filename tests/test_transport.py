import pytest
import socket
import threading
import time
import zmq

import pfeed

from pfeed.transport import tcp, udp


class Recorder:
    """ Event sink that simply remembers everything it is handed.
    """

    def __init__(self):
        self.events = list()

    def __call__(self, event, *args):
        self.events.append((event,) + args)

    def named(self, event):
        return [args for args in self.events if args[0] == event]

    def saw(self, event):
        return lambda: len(self.named(event)) > 0


def unused_port():

    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(('127.0.0.1', 0))
    port = holder.getsockname()[1]
    holder.close()
    return port


def test_tcp_exchange(reactor):

    server_events = Recorder()
    client_events = Recorder()

    server = tcp.Server(reactor, server_events, listen=('127.0.0.1', 0))
    server.open()
    port = server.port
    assert port != 0
    assert server.can_send() == False

    client = tcp.Client(reactor, client_events, target=('127.0.0.1', port))
    client.open()

    assert reactor.run(until=server_events.saw('connected'), timeout=5)
    assert reactor.run(until=client_events.saw('connected'), timeout=5)

    # Only one peer, ever: the listening socket is gone.

    assert server.listener is None
    assert server.can_send() == True
    assert client.peer.port == port
    assert client.peers.state == pfeed.transport.peer.LEARNED

    client.send(pfeed.Message(b'ping'))
    assert reactor.run(until=server_events.saw('received'), timeout=5)

    _event, peer, data = server_events.named('received')[0]
    assert data == b'ping'
    assert peer == server.peer
    assert client_events.named('sent')[0][1].data == b'ping'

    client.close()
    assert reactor.run(until=server_events.saw('closed'), timeout=5)
    assert server_events.named('closed')[0] == ('closed', 'peer')
    assert server.is_open == False


def test_tcp_connect_refused(reactor):

    events = Recorder()
    client = tcp.Client(reactor, events, target=('127.0.0.1', unused_port()))

    # The connect completes in the background; a refusal is an event, not
    # an exception out of open().

    client.open()
    assert reactor.run(until=events.saw('error'), timeout=5)

    error = events.named('error')[0][1]
    assert isinstance(error, pfeed.transport.TransportConnectionError)
    assert events.saw('connected')() == False
    assert client.is_open == False
    assert reactor.handlers == dict()


def test_tcp_send_to_stalled_peer(reactor):

    events = Recorder()
    server = tcp.Server(reactor, events, listen=('127.0.0.1', 0))
    server.open()

    peer = socket.create_connection(('127.0.0.1', server.port))

    try:
        assert reactor.run(until=events.saw('connected'), timeout=5)

        # Far more than any socket buffer will hold. The peer reads
        # nothing, so most of this stays queued; the reactor carries on.

        bulk = pfeed.Message(b'x' * (64 * 1024 * 1024))
        server.send(bulk)

        assert server.writing == True
        assert events.saw('sent')() == False

        peer.sendall(b'hello')
        assert reactor.run(until=events.saw('received'), timeout=5)
        assert events.named('received')[0][2] == b'hello'
        assert events.saw('sent')() == False

        drained = list()

        def drain():
            total = 0
            while total < len(bulk.data):
                data = peer.recv(1024 * 1024)
                if data == b'':
                    break
                total += len(data)
            drained.append(total)

        reader = threading.Thread(target=drain, daemon=True)
        reader.start()

        assert reactor.run(until=events.saw('sent'), timeout=30)
        reader.join(timeout=30)

        assert drained == [len(bulk.data)]
        assert events.named('sent')[0][1] is bulk
        assert server.writing == False
        assert list(reactor.handlers[server.socket]) == [zmq.POLLIN]
    finally:
        server.close()
        peer.close()


def test_tcp_close_with_unread_input(reactor):

    events = Recorder()
    server = tcp.Server(reactor, events, listen=('127.0.0.1', 0))
    server.open()

    peer = socket.create_connection(('127.0.0.1', server.port))

    try:
        assert reactor.run(until=events.saw('connected'), timeout=5)

        # This arrives while nothing is reading it; closing must not
        # answer it with a reset that throws away the final message.

        peer.sendall(b'unread')
        time.sleep(0.1)

        server.send(pfeed.Message(b'last'))
        server.close()

        peer.settimeout(5)
        received = b''
        while True:
            data = peer.recv(1024)
            if data == b'':
                break
            received += data

        assert received == b'last'
        assert reactor.handlers == dict()
    finally:
        peer.close()


def test_tcp_port_in_use(reactor):

    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(('127.0.0.1', 0))
    blocker.listen(1)

    try:
        server = tcp.Server(reactor, Recorder(), listen=blocker.getsockname())

        with pytest.raises(pfeed.transport.TransportPortError):
            server.open()
    finally:
        blocker.close()


def test_udp_exchange(reactor):

    server_events = Recorder()
    client_events = Recorder()

    server = udp.Server(reactor, server_events, listen=('127.0.0.1', 0))
    server.open()

    assert server.peers.state == pfeed.transport.peer.UNKNOWN
    assert server.can_send() == False

    with pytest.raises(pfeed.transport.TransportConnectionError):
        server.send(pfeed.Message(b'nowhere'))

    client = udp.Client(reactor, client_events, target=('127.0.0.1', server.port))
    client.open()

    assert client.peers.state == pfeed.transport.peer.MANUAL
    assert client.can_send() == True

    client.send(pfeed.Message(b'hello'))
    assert reactor.run(until=server_events.saw('received'), timeout=5)

    _event, peer, data = server_events.named('received')[0]
    assert data == b'hello'
    assert peer.port == client.port
    assert server.peers.state == pfeed.transport.peer.LEARNED
    assert server.can_send() == True

    server.send(pfeed.Message(b'back'))
    assert reactor.run(until=client_events.saw('received'), timeout=5)
    assert client_events.named('received')[0][2] == b'back'

    client.close()
    server.close()
    assert server.is_open == False


def test_peer_registry():

    registry = pfeed.transport.PeerRegistry()
    first = pfeed.transport.Peer('10.0.0.1', 1000, 'udp')
    second = pfeed.transport.Peer('10.0.0.2', 2000, 'udp')

    assert registry.state == pfeed.transport.peer.UNKNOWN
    assert registry.observe(first) == True
    assert registry.state == pfeed.transport.peer.LEARNED
    assert registry.observe(second) == False
    assert registry.active == first
    assert len(registry) == 2

    registry.clear()
    registry.register(second)
    assert registry.state == pfeed.transport.peer.MANUAL
    assert registry.is_active(second)
    assert registry.is_active(first) == False


def test_peer_str():

    assert str(pfeed.transport.Peer('127.0.0.1', 80)) == 'TCP 127.0.0.1:80'
    assert str(pfeed.transport.Peer('::1', 80, 'udp')) == 'UDP [::1]:80'
    assert pfeed.transport.Peer.from_address(('::1', 80, 0, 0)) == pfeed.transport.Peer('::1', 80)


def test_create(reactor):

    cases = (
        (dict(target=('127.0.0.1', 1)), tcp.Client),
        (dict(target=('127.0.0.1', 1), transport='udp'), udp.Client),
        (dict(role='server', listen=('127.0.0.1', 0)), tcp.Server),
        (dict(role='server', listen=('127.0.0.1', 0), transport='udp'), udp.Server),
    )

    for options, expected in cases:
        config = pfeed.Configuration(**options)
        adapter = pfeed.transport.create(config, reactor, Recorder())
        assert type(adapter) is expected
        assert adapter.is_open == False

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

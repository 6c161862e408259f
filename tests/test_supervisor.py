import socket
import threading

import pfeed

from conftest import FakeAdapter, build_feed


class HangupAdapter(FakeAdapter):
    """ Hang up as soon as the first message has been sent.
    """

    def send(self, message):
        FakeAdapter.send(self, message)
        self.hangup()


class InterruptAdapter(FakeAdapter):

    def open(self):
        raise KeyboardInterrupt()


class InjectingAdapter(FakeAdapter):
    """ Once connected, push :attr:`payload` through the blit channel on
        *blit_port*; hang up after sending it on to the peer.
    """

    def __init__(self, *args, blit_port=None, payload=None, **kwargs):
        FakeAdapter.__init__(self, *args, **kwargs)
        self.blit_port = blit_port
        self.payload = payload

    def open(self):
        FakeAdapter.open(self)
        self.reactor.call_soon(self._inject)

    def _inject(self):
        pfeed.blit.send('127.0.0.1', self.blit_port, self.payload)

    def send(self, message):
        FakeAdapter.send(self, message)
        self.hangup()


def unused_port():

    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(('127.0.0.1', 0))
    port = holder.getsockname()[1]
    holder.close()
    return port


def test_persist_three_disconnects(make_config, output):
    """ Every persistent cycle is an independent session: a new adapter and
        a new cursor, so each one starts again from the first message.
    """

    config = make_config(go_first=True, persist=True)
    notices = pfeed.notice.Notices(config, stream=output)
    feed = build_feed([b'A', b'B'])

    adapters = list()

    def factory(config, reactor, sink):
        adapter = HangupAdapter(reactor, sink, config.target, config.listen)
        adapters.append(adapter)

        if len(adapters) == 3:
            supervisor.stop()

        return adapter

    supervisor = pfeed.Supervisor(config, feed, notices, adapter_factory=factory)
    status = supervisor.run()

    assert status == 0
    assert supervisor.cycles == 3
    assert len(adapters) == 3

    for adapter in adapters:
        assert adapter.transmitted == [b'A']
        assert adapter.closed == True

    assert output.getvalue().count('reconnecting') == 2


def test_persist_with_fixed_blit_port(make_config, output):
    """ Each persistent cycle binds its own blit channel on the same fixed
        port, and a payload injected during a cycle is delivered by that
        cycle's adapter.
    """

    port = unused_port()

    config = make_config(persist=True, blit=('127.0.0.1', port))
    notices = pfeed.notice.Notices(config, stream=output)
    feed = build_feed([b'A'])

    adapters = list()

    def factory(config, reactor, sink):
        number = len(adapters) + 1
        adapter = InjectingAdapter(reactor, sink, config.target, config.listen,
                                   blit_port=port, payload=b'cycle %d' % (number))
        adapters.append(adapter)

        if number == 3:
            supervisor.stop()

        return adapter

    supervisor = pfeed.Supervisor(config, feed, notices, adapter_factory=factory)
    status = supervisor.run()

    text = output.getvalue()

    assert status == 0
    assert supervisor.cycles == 3
    assert 'blit channel setup failed' not in text
    assert text.count('blit channel listening on 127.0.0.1:%d' % (port)) == 3

    for number, adapter in enumerate(adapters, 1):
        assert adapter.transmitted == [b'cycle %d' % (number)]
        assert adapter.closed == True

    assert supervisor.session.reason == 'peer'
    assert supervisor.session.blit is None


def test_setup_failure_status(make_config, output):

    config = make_config()
    notices = pfeed.notice.Notices(config, stream=output)
    feed = build_feed([b'A'])

    def factory(config, reactor, sink):
        failure = pfeed.transport.TransportConnectionError('connection refused')
        return FakeAdapter(reactor, sink, config.target, config.listen, failure=failure)

    supervisor = pfeed.Supervisor(config, feed, notices, adapter_factory=factory)

    assert supervisor.run() == 1
    assert supervisor.cycles == 1
    assert supervisor.session.reason == 'setup'
    assert '[transport] connection setup failed' in output.getvalue()


def test_keyboard_interrupt(make_config, output):

    config = make_config(persist=True)
    notices = pfeed.notice.Notices(config, stream=output)
    feed = build_feed([b'A'])

    def factory(config, reactor, sink):
        return InterruptAdapter(reactor, sink, config.target, config.listen)

    supervisor = pfeed.Supervisor(config, feed, notices, adapter_factory=factory)

    assert supervisor.run() == 0
    assert supervisor.session.reason == 'interrupt'
    assert supervisor.session.adapter.closed == True


def test_console_steps(make_config, output):
    """ Operator input arrives on a file descriptor registered with the
        reactor; a pipe stands in for stdin.
    """

    config = make_config(go_first=True, step=True, close_at_end=True)
    notices = pfeed.notice.Notices(config, stream=output)
    feed = build_feed([b'A'])

    adapters = list()

    def factory(config, reactor, sink):
        adapter = FakeAdapter(reactor, sink, config.target, config.listen)
        adapters.append(adapter)
        return adapter

    reading, writing = socket.socketpair()

    try:
        supervisor = pfeed.Supervisor(config, feed, notices, adapter_factory=factory,
                                      console=reading.fileno())

        writing.sendall(b'bogus\n\n')
        status = supervisor.run()
    finally:
        reading.close()
        writing.close()

    assert status == 0
    assert adapters[0].transmitted == [b'A']
    assert supervisor.session.reason == 'exhausted'
    assert 'unrecognized input' in output.getvalue()


def test_tcp_client_end_to_end(make_config, output):

    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(('127.0.0.1', 0))
    listener.listen(1)
    port = listener.getsockname()[1]

    received = list()

    def peer():
        connection, _address = listener.accept()
        connection.settimeout(5)

        data = b''
        while data != b'A':
            data += connection.recv(1024)

        received.append(data)
        connection.sendall(b'ok')

        data = b''
        while True:
            chunk = connection.recv(1024)
            if chunk == b'':
                break
            data += chunk

        received.append(data)
        connection.close()

    thread = threading.Thread(target=peer, daemon=True)
    thread.start()

    config = make_config(target=('127.0.0.1', port), go_first=True, close_at_end=True)
    notices = pfeed.notice.Notices(config, stream=output)
    feed = build_feed([b'A', b'B'])

    try:
        supervisor = pfeed.Supervisor(config, feed, notices)
        status = supervisor.run()
        thread.join(5)
    finally:
        listener.close()

    assert status == 0
    assert supervisor.session.reason == 'exhausted'
    assert received == [b'A', b'B']

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

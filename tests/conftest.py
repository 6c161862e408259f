import io
import pytest

import pfeed


class FakeAdapter(pfeed.transport.Adapter):
    """ An adapter that never touches the network. Everything sent is
        recorded in :attr:`transmitted`, and inbound traffic is simulated
        with :func:`deliver`; all events reach the session through the
        reactor, exactly as they would from a real adapter.
    """

    transport = 'tcp'
    default_peer = pfeed.transport.Peer('127.0.0.1', 9999)

    def __init__(self, reactor, sink, target=None, listen=None, peer=True, failure=None):
        pfeed.transport.Adapter.__init__(self, reactor, sink, target, listen)
        self.auto_peer = peer
        self.failure = failure
        self.transmitted = list()
        self.closed = False

    def open(self):
        if self.failure is not None:
            raise self.failure

        self.socket = True

        if self.auto_peer:
            self.peers.register(self.default_peer)

        self._emit('connected')

    def send(self, message):
        self.transmitted.append(message.data)
        self._emit('sent', message)

    def close(self):
        self.socket = None
        self.closed = True

    def deliver(self, data, peer=None):
        if peer is None:
            peer = self.default_peer

        self.peers.observe(peer)
        self._emit('received', peer, data)

    def hangup(self):
        self.socket = None
        self._emit('closed', 'peer')


def build_feed(messages):
    converted = list()

    for message in messages:
        if not isinstance(message, pfeed.Message):
            message = pfeed.Message(message)
        converted.append(message)

    return pfeed.Feed(converted)


@pytest.fixture
def reactor():
    reactor = pfeed.reactor.Reactor()
    yield reactor
    reactor.close()


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def make_config():

    def make(**options):
        if options.get('role', 'client') == 'client':
            options.setdefault('target', ('127.0.0.1', 9999))
        else:
            options.setdefault('listen', ('127.0.0.1', 0))

        return pfeed.Configuration(**options)

    return make


@pytest.fixture
def make_session(reactor, output, make_config):
    """ Return a function that builds an unstarted session around a
        :class:`FakeAdapter`. Keyword arguments not consumed by the adapter
        are passed through to the configuration.
    """

    def make(messages, peer=True, failure=None, **options):
        config = make_config(**options)
        notices = pfeed.notice.Notices(config, stream=output)
        feed = build_feed(messages)

        def factory(config, reactor, sink):
            return FakeAdapter(reactor, sink, config.target, config.listen, peer=peer, failure=failure)

        return pfeed.Session(config, feed, reactor, notices, factory)

    return make

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

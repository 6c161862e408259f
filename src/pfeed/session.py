""" The feed session: the state machine that decides what to send, and when,
    for one connection.

    A :class:`Session` owns one connection adapter, one cursor into the
    shared :class:`pfeed.message.Feed`, an injection queue, and at most one
    :class:`pfeed.blit.Channel`. Everything that happens to it arrives as a
    discrete event via :func:`Session.dispatch`, which looks up the handler
    for the (state, event) pair in :attr:`Session.transitions`. Handlers run
    to completion; there is never more than one in progress.

    States: CONNECTING, then ACTIVE, then EXHAUSTED, then CLOSED. Any state
    short of CLOSED can go directly to CLOSED when the connection ends.

    While ACTIVE, a pending feed send may be blocked in one of two sub-modes:
    AWAITING_PEER (it is the peer's turn to speak, or there is no peer yet)
    or AWAITING_STEP (the operator has not yet confirmed the send).
"""

import collections

from . import transport
from .blit import Channel
from .transport import TransportError


CONNECTING = 'connecting'
ACTIVE = 'active'
EXHAUSTED = 'exhausted'
CLOSED = 'closed'

AWAITING_PEER = 'awaiting peer'
AWAITING_STEP = 'awaiting step'

# Close reasons, and the exit status each one implies for a non-persistent
# process.

reasons = {
    'exhausted': 0,
    'peer': 0,
    'operator': 0,
    'interrupt': 0,
    'error': 1,
    'setup': 1,
}


class Session:
    """ Replay *feed* over a connection described by *config*. The adapter
        is created by *adapter_factory*, which is called as
        ``adapter_factory(config, reactor, sink)``; the default is
        :func:`pfeed.transport.create`.

        :ivar state: One of CONNECTING, ACTIVE, EXHAUSTED, CLOSED.
        :ivar mode: None, AWAITING_PEER, or AWAITING_STEP.
        :ivar turn: True when a feed message may be sent without waiting
            for the peer: granted by go_first and by every inbound message
            from the active peer, consumed by every feed send.
        :ivar reason: Why the session closed, once it has.
    """

    transitions = {
        (CONNECTING, 'connected'): '_connected',
        (CONNECTING, 'closed'): '_peer_closed',
        (CONNECTING, 'error'): '_setup_failed',
        (CONNECTING, 'interrupt'): '_interrupted',

        (ACTIVE, 'received'): '_received',
        (ACTIVE, 'sent'): '_sent',
        (ACTIVE, 'injected'): '_injected',
        (ACTIVE, 'step'): '_step',
        (ACTIVE, 'refused'): '_refused',
        (ACTIVE, 'closed'): '_peer_closed',
        (ACTIVE, 'error'): '_failed',
        (ACTIVE, 'interrupt'): '_interrupted',

        (EXHAUSTED, 'received'): '_received',
        (EXHAUSTED, 'sent'): '_sent',
        (EXHAUSTED, 'injected'): '_injected',
        (EXHAUSTED, 'refused'): '_refused',
        (EXHAUSTED, 'closed'): '_peer_closed',
        (EXHAUSTED, 'error'): '_failed',
        (EXHAUSTED, 'interrupt'): '_interrupted',
    }

    def __init__(self, config, feed, reactor, notices, adapter_factory=None):

        if adapter_factory is None:
            adapter_factory = transport.create

        self.config = config
        self.feed = feed
        self.reactor = reactor
        self.notices = notices

        self.cursor = feed.cursor()
        self.adapter = adapter_factory(config, reactor, self.dispatch)
        self.blit = None

        self.injections = collections.deque()
        self.in_flight = None
        self.released = False
        self.turn = False

        self.state = CONNECTING
        self.mode = None
        self.reason = None

        self.sent_feed = 0
        self.sent_injected = 0


    def __repr__(self):
        return 'session.Session: %s, %s' % (self.state, self.cursor)


    @property
    def closed(self):
        return self.state == CLOSED


    @property
    def status(self):
        """ The process exit status this session's outcome implies: zero
            for an orderly end, non-zero for a transport failure. None if
            the session has not closed.
        """

        if self.reason is None:
            return None

        return reasons[self.reason]


    def start(self):
        """ Open the connection adapter: connect in the client role, listen
            in the server role. Returns False if that fails, in which case
            the session is already CLOSED.
        """

        try:
            self.adapter.open()
        except TransportError as exc:
            self.notices.transport('connection setup failed: %s', exc)
            self._enter_closed('setup')
            return False

        if self.config.role == 'server' and self.state == CONNECTING:
            host, port = self.config.listen
            port = getattr(self.adapter, 'port', None) or port
            self.notices.info('listening on %s %s:%d', self.config.transport.upper(), host, port)

        return True


    def dispatch(self, event, *args):
        """ Deliver one *event* to the session. Any event without a handler
            in the current state is ignored, with the exception of injected
            messages, which are reported as dropped.
        """

        try:
            name = self.transitions[(self.state, event)]
        except KeyError:
            self._unhandled(event, *args)
            return

        handler = getattr(self, name)
        handler(*args)


    def inject(self, message):
        """ Queue a :class:`pfeed.message.Message` to be sent ahead of any
            further feed messages. This is the entry point for the blit
            channel.
        """

        self.dispatch('injected', message)


    def resume(self, action='send'):
        """ Operator response to a step prompt. The *action* is one of
            'send', 'skip', or 'close'.
        """

        self.dispatch('step', action)


    def interrupt(self):
        self.dispatch('interrupt')


    def _unhandled(self, event, *args):

        if event == 'injected':
            message = args[0]
            self.notices.injection('dropped %s, session is %s', message.describe(), self.state)
        elif event == 'step':
            self.notices.info('no message awaiting confirmation, session is %s', self.state)


    # Transition handlers. Each of these is only ever invoked via dispatch().

    def _connected(self):

        self.state = ACTIVE

        if self.config.role == 'client':
            peer = self.adapter.peer
            self.notices.info('connected to %s', peer)
        elif self.adapter.peer is None:
            self.notices.info('ready, waiting for the first datagram')
        else:
            self.notices.info('accepted connection from %s', self.adapter.peer)

        if self.config.blit is not None:
            channel = Channel(self, self.config.blit, self.reactor, self.notices)

            try:
                channel.open()
            except TransportError as exc:
                self.notices.transport('blit channel setup failed: %s', exc)
                self._enter_closed('setup')
                return

            self.blit = channel

        if self.config.go_first:
            self.turn = True

        self._pump()


    def _received(self, peer, data):

        self.notices.received(peer, data)

        if not self.adapter.peers.is_active(peer):
            self.notices.info('ignoring %d bytes from %s, not the active peer', len(data), peer)
            return

        self.turn = True
        self._pump()


    def _sent(self, message):

        in_flight = self.in_flight
        self.in_flight = None

        if in_flight is None or in_flight[0] is not message:
            # Not something this session sent; nothing to account for.
            self._pump()
            return

        injected = in_flight[1]

        if injected:
            self.sent_injected += 1
        else:
            self.sent_feed += 1

        self.notices.sent(message, injected)
        self._pump()


    def _injected(self, message):

        self.injections.append(message)
        self._pump()


    def _step(self, action):

        if self.mode != AWAITING_STEP:
            self.notices.info('no message awaiting confirmation')
            return

        if action == 'send':
            self.released = True
            self.mode = None

        elif action == 'skip':
            message = self.cursor.next()
            self.mode = None
            self.notices.info('skipped %s', message.describe())

        elif action == 'close':
            self.notices.info('session closed by operator')
            self._enter_closed('operator')
            return

        else:
            raise ValueError('unknown step action: ' + repr(action))

        self._pump()


    def _refused(self, peer, message=None):

        self.notices.transport('%s refused a datagram', peer)

        if message is None or self.in_flight is None or self.in_flight[0] is not message:
            return

        # The refused send is not retried; the next opportunity moves on.

        self.in_flight = None
        self.notices.transport('%s was not delivered', message.describe())
        self._pump()


    def _peer_closed(self, reason='peer'):
        self.notices.transport('connection closed by %s', self.adapter.peer or 'peer')
        self._enter_closed('peer')


    def _failed(self, exception):
        self.notices.transport('connection failed: %s', exception)
        self._enter_closed('error')


    def _setup_failed(self, exception):
        self.notices.transport('connection setup failed: %s', exception)
        self._enter_closed('setup')


    def _interrupted(self):
        self.notices.info('interrupted, closing session')
        self._enter_closed('interrupt')


    def _pump(self):
        """ Take the next send opportunity, if there is one: an injected
            message first, then (if it is our turn, and the operator has
            confirmed it when stepping) the next feed message.
        """

        if self.state != ACTIVE and self.state != EXHAUSTED:
            return

        if self.in_flight is not None:
            return

        if self.state == ACTIVE and not self.injections:
            if self.cursor.peek_remaining() == 0:
                self._exhaust()
                return

        if not self.adapter.can_send():
            # No peer to send to yet; the send is deferred, not dropped.
            self.mode = AWAITING_PEER
            return

        if self.injections:
            message = self.injections.popleft()
            self._transmit(message, True)
            return

        if self.state == EXHAUSTED:
            return

        if self.turn == False:
            self.mode = AWAITING_PEER
            return

        if self.config.step and self.released == False:
            if self.mode != AWAITING_STEP:
                self.mode = AWAITING_STEP
                upcoming = self.cursor.peek()
                number = self.cursor.advanced + 1
                total = number + self.cursor.peek_remaining() - 1
                self.notices.info('message %d/%d ready, %s: [enter] send, [k] skip, [q] quit', number, total, upcoming.describe())
            return

        message = self.cursor.next()

        self.turn = False
        self.released = False
        self.mode = None

        self._transmit(message, False)


    def _transmit(self, message, injected):

        self.in_flight = (message, injected)

        try:
            self.adapter.send(message)
        except TransportError as exc:
            self.in_flight = None
            self.notices.transport('send failed: %s', exc)
            self._enter_closed('error')


    def _exhaust(self):

        self.state = EXHAUSTED
        self.mode = None

        self.notices.exhausted('feed exhausted after %d messages', self.sent_feed)

        if self.config.close_at_end:
            self.notices.info('closing connection at end of feed')
            self._enter_closed('exhausted')


    def _enter_closed(self, reason):

        if self.state == CLOSED:
            return

        self.state = CLOSED
        self.mode = None
        self.reason = reason

        self.adapter.close()

        if self.blit is not None:
            self.blit.close()
            self.blit = None

        if self.injections:
            self.notices.injection('dropped %d queued injected messages', len(self.injections))
            self.injections.clear()


# end of class Session



def step_action(line):
    """ Translate one line of operator input into a :func:`Session.resume`
        action, or None if the line is not understood.
    """

    line = line.strip().lower()

    if line in ('', 's', 'send'):
        return 'send'
    if line in ('k', 'skip'):
        return 'skip'
    if line in ('q', 'quit', 'close'):
        return 'close'

    return None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" The single-threaded event loop that drives every socket in a pfeed
    process. A :class:`Reactor` wraps a :class:`zmq.Poller`, which happily
    polls ZeroMQ sockets, plain Python sockets, and raw file descriptors
    (such as stdin) side by side.

    Handlers registered here, and callbacks queued via
    :func:`Reactor.call_soon`, always run to completion before the next one
    is invoked; there is no preemption, and there are no threads.
"""

import atexit
import collections
import time

import zmq


zmq_context = zmq.Context()


class Reactor:
    """ Dispatch readiness events to registered handlers. Each registered
        *socket* (a :class:`zmq.Socket`, anything with a ``fileno()`` method,
        or an integer file descriptor) is associated with a handler for
        readability and, optionally, another for writability; handlers are
        invoked with no arguments.

        Deferred callbacks queued with :func:`call_soon` are run in the order
        they were queued, ahead of any further polling.
    """

    interval = 250

    def __init__(self):

        self.poller = zmq.Poller()
        self.handlers = dict()
        self.pending = collections.deque()
        self.shutdown = False


    def register(self, socket, handler, events=zmq.POLLIN):
        """ Invoke *handler* whenever *socket* is ready for *events*, either
            :data:`zmq.POLLIN` (readable, the default) or :data:`zmq.POLLOUT`
            (writable). A socket can have one handler for each; registering
            the same socket and events again replaces the handler.
        """

        try:
            registered = self.handlers[socket]
        except KeyError:
            registered = dict()
            self.handlers[socket] = registered

        registered[events] = handler
        self.poller.register(socket, self._mask(registered))


    def unregister(self, socket, events=None):
        """ Stop watching *socket* for *events*, or for anything at all if
            *events* is not specified. Unknown sockets are ignored, so that
            teardown code can call this unconditionally.
        """

        try:
            registered = self.handlers[socket]
        except KeyError:
            return

        if events is None:
            registered.clear()
        else:
            registered.pop(events, None)

        if registered:
            self.poller.register(socket, self._mask(registered))
        else:
            del self.handlers[socket]
            self.poller.unregister(socket)


    def _mask(self, registered):

        mask = 0
        for events in registered.keys():
            mask |= events

        return mask


    def call_soon(self, callback, *args):
        """ Queue *callback* to be invoked with *args* on the next pass
            through the loop.
        """

        self.pending.append((callback, args))


    def flush(self):
        """ Invoke every queued callback, including any queued by the
            callbacks themselves. Returns the number of callbacks invoked.
        """

        invoked = 0

        while self.pending:
            callback, args = self.pending.popleft()
            callback(*args)
            invoked += 1

        return invoked


    def poll(self, timeout=None):
        """ Wait up to *timeout* milliseconds for a registered socket to
            become readable and invoke the relevant handlers. Queued callbacks
            take priority; if any are present, the poll does not block.
        """

        if timeout is None:
            timeout = self.interval

        if self.pending:
            timeout = 0

        if self.handlers:
            ready = self.poller.poll(timeout)
        else:
            ready = ()
            if timeout:
                time.sleep(timeout / 1000.0)

        for active, flags in ready:
            for events in (zmq.POLLIN, zmq.POLLOUT):
                if not flags & events:
                    continue

                # An earlier handler in this same batch may have
                # unregistered this socket; it is no longer of interest.

                try:
                    handler = self.handlers[active][events]
                except KeyError:
                    continue

                handler()

        self.flush()


    def run(self, until=None, timeout=None):
        """ Run the loop until :func:`stop` is called, or until the optional
            *until* callable returns True. If *timeout* (in seconds) is
            provided the loop gives up after that long; the return value
            is True if the loop ended for any reason other than a timeout.
        """

        self.shutdown = False

        if timeout is None:
            expiration = None
        else:
            expiration = time.time() + timeout

        while self.shutdown == False:
            self.flush()

            if until is not None and until():
                break

            if expiration is None:
                self.poll()
            else:
                remaining = expiration - time.time()
                if remaining <= 0:
                    return False

                remaining = int(remaining * 1000)
                self.poll(min(remaining, self.interval))

        return True


    def stop(self):
        self.shutdown = True


    def close(self):
        """ Forget every registered socket and drop any queued callbacks.
            The sockets themselves are the responsibility of whoever
            registered them.
        """

        for socket in list(self.handlers.keys()):
            self.unregister(socket)

        self.pending.clear()


# end of class Reactor



def _cleanup():

    # destroy() rather than term(): any socket left open at exit would
    # otherwise block termination indefinitely.

    try:
        zmq_context.destroy(linger=0)
    except zmq.ZMQError:
        pass


atexit.register(_cleanup)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" The top-level control loop for a pfeed process. The :class:`Supervisor`
    runs one :class:`pfeed.session.Session` at a time until it closes, and
    either stops there or, for a persistent configuration, starts another
    one straight away.
"""

import os
import sys

from . import transport
from .notice import Notices
from .reactor import Reactor
from .session import Session, step_action


class Supervisor:
    """ Run sessions for *config*, replaying *feed*. The *notices*,
        *reactor*, and *adapter_factory* default to freshly constructed
        instances appropriate for the configuration; they can be supplied
        explicitly, which is primarily useful for testing.

        If the configuration enables stepping, operator input is read from
        *console*, a file descriptor (stdin by default), for the lifetime of
        the supervisor.

        :ivar cycles: How many sessions have been started.
        :ivar session: The current (or most recent) session.
    """

    def __init__(self, config, feed, notices=None, reactor=None,
                 adapter_factory=None, console=None):

        if notices is None:
            notices = Notices(config)

        if reactor is None:
            reactor = Reactor()

        if adapter_factory is None:
            adapter_factory = transport.create

        if console is None and config.step:
            console = sys.stdin.fileno()

        self.config = config
        self.feed = feed
        self.notices = notices
        self.reactor = reactor
        self.adapter_factory = adapter_factory
        self.console = console

        self.cycles = 0
        self.session = None
        self.shutdown = False

        self._console_buffer = b''


    def run(self):
        """ Run sessions until done. Returns the process exit status: the
            status of the final session, or zero if the operator interrupted
            the process.
        """

        status = 0

        self._attach_console()

        try:
            while self.shutdown == False:
                session = self.cycle()
                status = session.status

                if self.config.persist == False or self.shutdown == True:
                    break

                self.notices.info('session %d ended (%s), reconnecting', self.cycles, session.reason)

        except KeyboardInterrupt:
            if self.session is not None:
                self.session.interrupt()
            status = 0

        finally:
            self._detach_console()
            self.reactor.close()

        return status


    def cycle(self):
        """ Run exactly one session, from adapter creation to CLOSED, and
            return it. Every cycle starts with a fresh adapter, a fresh feed
            cursor, and (if configured) a fresh blit channel.
        """

        self.cycles += 1

        session = Session(self.config, self.feed, self.reactor, self.notices, self.adapter_factory)
        self.session = session

        if session.start():
            self.reactor.run(until=self._finished)

        # Drain anything still queued for the closed session, so none of it
        # leaks into the next cycle.

        self.reactor.flush()
        return session


    def stop(self):
        """ Do not start another session once the current one closes.
        """

        self.shutdown = True


    def _finished(self):
        return self.session is None or self.session.closed


    def _attach_console(self):

        if self.console is None:
            return

        self.reactor.register(self.console, self._console_input)


    def _detach_console(self):

        if self.console is None:
            return

        self.reactor.unregister(self.console)


    def _console_input(self):
        """ Handle operator input while stepping. Input is read directly from
            the file descriptor, rather than through a buffered file object,
            so that no complete line is left sitting in a buffer the reactor
            cannot see.
        """

        data = os.read(self.console, 4096)

        if data == b'':
            self.notices.info('console closed, stepping is no longer possible')
            self._detach_console()
            return

        self._console_buffer += data

        while b'\n' in self._console_buffer:
            line, self._console_buffer = self._console_buffer.split(b'\n', 1)
            line = line.decode('utf-8', 'replace')

            action = step_action(line)

            if action is None:
                self.notices.info('unrecognized input %r: [enter] send, [k] skip, [q] quit', line.strip())
                continue

            if self.session is not None:
                self.session.resume(action)


# end of class Supervisor


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

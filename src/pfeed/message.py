""" A class representation of a pfeed message, and of the ordered feed of
    messages that a session replays.

    A :class:`Message` is opaque: nothing in pfeed ever looks inside the
    payload, it is only ever sent, received, counted, and displayed.
"""

import dataclasses
from typing import Optional


@dataclasses.dataclass(frozen=True)
class Message:
    """ The :class:`Message` provides a very thin encapsulation of what it
        means to be a message in a pfeed context: the raw *data* that goes
        on the wire, an optional *note* describing where the data came from
        (a file name, a capture frame number, a blit connection), and a
        *skip* flag that keeps a message in the feed without ever sending it.

        Messages are immutable once created; a :class:`Feed` built from them
        is shared across every session the process runs.
    """

    data: bytes
    note: Optional[str] = None
    skip: bool = False

    def __post_init__(self):
        data = self.data

        if isinstance(data, str):
            data = data.encode()
        elif isinstance(data, (bytearray, memoryview)):
            data = bytes(data)

        if not isinstance(data, bytes):
            raise TypeError('message data must be bytes, not ' + type(data).__name__)

        if self.note is not None and not isinstance(self.note, str):
            raise TypeError('message note must be a string, not ' + type(self.note).__name__)

        # Frozen dataclass; the only way to normalize the field is to
        # reach around the generated __setattr__.

        object.__setattr__(self, 'data', data)


    def describe(self):
        """ Return a terse, human-readable summary of this message suitable
            for a single line of output.
        """

        described = '%d bytes' % (len(self.data))

        if self.note:
            described += ' (' + self.note + ')'

        return described


    def skipped(self):
        """ Return a copy of this message with the skip flag set.
        """

        return dataclasses.replace(self, skip=True)


# end of class Message



class _Exhausted:
    """ Sentinel returned by :func:`Cursor.next` once every sendable message
        in the feed has been handed out.
    """

    def __repr__(self):
        return 'EXHAUSTED'


    def __bool__(self):
        return False


# end of class _Exhausted


EXHAUSTED = _Exhausted()



class Feed:
    """ An ordered, immutable sequence of :class:`Message` instances. The
        feed itself has no notion of position; each session asks for its
        own :class:`Cursor` via :func:`cursor`, so that a reconnecting
        session always starts from the first message while sharing the
        same underlying sequence.
    """

    def __init__(self, messages=()):

        messages = tuple(messages)

        for message in messages:
            if not isinstance(message, Message):
                raise TypeError('a Feed contains Message instances, not ' + type(message).__name__)

        self.messages = messages


    def __getitem__(self, index):
        return self.messages[index]


    def __iter__(self):
        return iter(self.messages)


    def __len__(self):
        return len(self.messages)


    def __repr__(self):
        return 'message.Feed: %d messages' % (len(self.messages))


    def __add__(self, other):
        return Feed(self.messages + tuple(other))


    def cursor(self):
        """ Return a fresh :class:`Cursor` positioned at the start of this
            feed.
        """

        return Cursor(self)


    def sendable(self):
        """ Return the number of messages in the feed that are not flagged
            to be skipped.
        """

        count = 0
        for message in self.messages:
            if message.skip == False:
                count += 1

        return count


# end of class Feed



class Cursor:
    """ Read position within a :class:`Feed`. A cursor only ever moves
        forward, except for an explicit :func:`reset`; it is owned by exactly
        one session and is never shared.

        :ivar position: Index of the next message to inspect in the feed.
        :ivar advanced: How many messages :func:`next` has handed out.
        :ivar skipped: How many skip-flagged messages were passed over.
    """

    def __init__(self, feed):
        self.feed = feed
        self.position = 0
        self.advanced = 0
        self.skipped = 0


    def __repr__(self):
        return 'message.Cursor: %d/%d' % (self.position, len(self.feed))


    def _seek(self):
        """ Move past any skip-flagged messages, returning the index of the
            next sendable message, or None if there is nothing left.
        """

        messages = self.feed.messages

        while self.position < len(messages):
            if messages[self.position].skip:
                self.position += 1
                self.skipped += 1
                continue

            return self.position

        return None


    def next(self):
        """ Return the next sendable :class:`Message` and advance past it;
            return :data:`EXHAUSTED` if the feed has nothing left to send.
        """

        index = self._seek()

        if index is None:
            return EXHAUSTED

        self.position = index + 1
        self.advanced += 1
        return self.feed.messages[index]


    def peek(self):
        """ Return the message :func:`next` would return, without advancing.
        """

        messages = self.feed.messages
        index = self.position

        while index < len(messages):
            if messages[index].skip == False:
                return messages[index]
            index += 1

        return EXHAUSTED


    def peek_remaining(self):
        """ Return the number of sendable messages not yet handed out.
        """

        remaining = 0

        for message in self.feed.messages[self.position:]:
            if message.skip == False:
                remaining += 1

        return remaining


    def reset(self):
        """ Rewind to the start of the feed. Only used when a session is
            restarted for a persistent reconnection.
        """

        self.position = 0
        self.advanced = 0
        self.skipped = 0


# end of class Cursor


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" Operator-facing output. Every termination path, every transport problem,
    and (depending on verbosity) every message sent or received is reported
    through a :class:`Notices` instance.

    Notices are classified according to the kind of condition that produced
    them; the category is included as a prefix on each line so that an
    operator can tell a configuration problem from a transport failure at a
    glance.
"""

import logging
import sys


CONFIGURATION = 'configuration'
TRANSPORT = 'transport'
EXHAUSTED = 'exhausted'
INJECTION = 'injection'
INFO = 'info'

categories = (CONFIGURATION, TRANSPORT, EXHAUSTED, INJECTION, INFO)


class Notices:
    """ Emit notices for the provided :class:`pfeed.config.Configuration`.
        Output goes to *stream* (stderr by default) and, if the configuration
        names an output file, to that file as well.

        The underlying :class:`logging.Logger` is private to this instance;
        it is not registered with the :mod:`logging` module, so creating a
        :class:`Notices` never alters process-wide logging configuration.
    """

    format = '%(asctime)s %(message)s'

    def __init__(self, config, stream=None):

        self.config = config
        self.verbosity = config.verbosity
        self.squelch_exhausted = config.squelch_exhausted

        if stream is None:
            stream = sys.stderr

        logger = logging.Logger('pfeed.notice.%d' % (id(self)))
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        formatter = logging.Formatter(self.format)

        handler = logging.StreamHandler(stream)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if config.output:
            handler = logging.FileHandler(config.output)
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        self.logger = logger


    def close(self):
        """ Flush and release any handlers, in particular the output file.
        """

        for handler in list(self.logger.handlers):
            handler.flush()
            handler.close()
            self.logger.removeHandler(handler)


    def notice(self, category, text, *args, level=logging.INFO):
        """ Emit a single notice. The *text* is formatted %-style with any
            additional *args*, the same as for :mod:`logging`.
        """

        if category not in categories:
            raise ValueError('unknown notice category: ' + repr(category))

        self.logger.log(level, '[' + category + '] ' + text, *args)


    def info(self, text, *args):
        self.notice(INFO, text, *args)


    def configuration(self, text, *args):
        self.notice(CONFIGURATION, text, *args, level=logging.ERROR)


    def transport(self, text, *args):
        self.notice(TRANSPORT, text, *args, level=logging.WARNING)


    def injection(self, text, *args):
        self.notice(INJECTION, text, *args, level=logging.WARNING)


    def exhausted(self, text, *args):
        """ Announce that the feed has nothing left to send, unless the
            configuration requests this particular notice be squelched.
        """

        if self.squelch_exhausted:
            return

        self.notice(EXHAUSTED, text, *args)


    def sent(self, message, injected=False):
        """ Report an outbound :class:`pfeed.message.Message`, subject to the
            configured verbosity.
        """

        if self.verbosity < 1:
            return

        if injected:
            direction = 'sent (injected)'
        else:
            direction = 'sent'

        self.info('%s %s', direction, message.describe())

        if self.verbosity > 1 and message.data:
            self.logger.info(hexdump(message.data))


    def received(self, peer, data):
        """ Report inbound *data* from the given :class:`pfeed.transport.Peer`,
            subject to the configured verbosity.
        """

        if self.verbosity < 1:
            return

        self.info('received %d bytes from %s', len(data), peer)

        if self.verbosity > 1 and data:
            self.logger.info(hexdump(data))


# end of class Notices



def _printable(byte):
    """ Return the character for *byte* if it is printable ASCII,
        otherwise a placeholder dot.
    """

    if 32 <= byte <= 126:
        return chr(byte)
    else:
        return '.'



def hexdump(data):
    """ Return a 'classic' hexdump of *data* as a multi-line string: an
        offset column, two blocks of eight bytes, and an ASCII column on
        the right. The final line is padded so that the ASCII column always
        lines up.
    """

    # Formatting values for the hexdump:
    # - col_fmt/col_width describe an individual byte value.
    # - sep1 is the gap between bytes 8 and 9.
    # - sep2 is the gap between the last byte and the ASCII column.

    col_fmt = '%02X '
    col_width = 3
    sep1 = ' ' * 2
    sep2 = ' ' * 3

    digits = max(4, len('%x' % (max(len(data) - 1, 0))))
    off_fmt = '%%0%dX  ' % (digits)

    lines = list()

    for offset in range(0, len(data), 16):
        block = data[offset:offset + 16]

        left = ''.join(col_fmt % (byte) for byte in block[:8])
        right = ''.join(col_fmt % (byte) for byte in block[8:])

        left = left.ljust(8 * col_width)
        right = right.ljust(8 * col_width)

        ascii = ''.join(_printable(byte) for byte in block)

        line = off_fmt % (offset) + left + sep1 + right + sep2 + ascii
        lines.append(line.rstrip())

    return '\n'.join(lines)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" Command-line entry points: :func:`main` for ``pfeed`` itself, and
    :func:`blit_main` for ``pfeed-blit``, the matching control tool that
    injects a message into a running session.
"""

import argparse
import sys

from . import blit
from . import sources
from .config import Configuration, ConfigurationError, parse_address
from .notice import Notices
from .supervisor import Supervisor


description = '''Replay a sequence of messages over TCP or UDP, as either
the client or the server. Messages are loaded from any number of sources,
concatenated in the order they appear on the command line.'''


def _source(kind):
    """ Return an argparse type converter tagging a filename with the
        source *kind*, so that every source flag can share one destination
        list and command-line order is preserved across kinds.
    """

    def tag(filename):
        return (kind, filename)

    tag.__name__ = kind + ' source'
    return tag



def parser():

    parser = argparse.ArgumentParser(prog='pfeed', description=description)

    parser.add_argument('target', nargs='?', metavar='HOST:PORT',
                        help='remote address to connect to (client mode only)')

    mode = parser.add_argument_group('Mode')
    mode.add_argument('--server', action='store_true',
                      help='listen for the peer instead of connecting to it')
    mode.add_argument('--udp', action='store_true',
                      help='use UDP instead of TCP')
    mode.add_argument('-l', '--listen', metavar='ADDR:PORT',
                      help='local address to listen on (required in server mode)')
    mode.add_argument('-b', '--blit', metavar='ADDR:PORT',
                      help='local address for the blit injection channel')

    pacing = parser.add_argument_group('Pacing')
    pacing.add_argument('-g', '--go-first', action='store_true',
                        help='send the first message without waiting for the peer')
    pacing.add_argument('-c', '--close', action='store_true',
                        help='close the connection once the feed is exhausted')
    pacing.add_argument('--step', action='store_true',
                        help='wait for confirmation on stdin before each message')
    pacing.add_argument('-p', '--persist', action='store_true',
                        help='start a new session whenever the previous one ends')

    output = parser.add_argument_group('Output')
    output.add_argument('-v', '--verbose', action='count', default=0,
                        help='report each message; repeat for hexdumps')
    output.add_argument('-o', '--output', metavar='FILE',
                        help='also write all output to FILE')
    output.add_argument('-q', '--squelch', action='store_true',
                        help='do not announce when the feed is exhausted')

    data = parser.add_argument_group('Data sources')
    data.add_argument('--raw', dest='sources', action='append', type=_source('raw'),
                      metavar='FILE', help='entire file is one message')
    data.add_argument('--hex', dest='sources', action='append', type=_source('hex'),
                      metavar='FILE', help='hex text, one message per paragraph')
    data.add_argument('--json', dest='sources', action='append', type=_source('json'),
                      metavar='FILE', help='JSON array of messages')
    data.add_argument('--pcap', dest='sources', action='append', type=_source('pcap'),
                      metavar='FILE', help='packet capture; TCP and UDP payloads')
    data.add_argument('--pcap-source', metavar='IP:PORT',
                      help='only replay capture packets sent from IP:PORT')
    data.add_argument('--skip', action='append', type=int, default=list(),
                      metavar='INDEX', help='never send message INDEX (zero-based)')

    return parser



def main(argv=None):

    arguments_parser = parser()
    arguments = arguments_parser.parse_args(argv)

    try:
        config = Configuration.from_arguments(arguments)
    except ConfigurationError as exc:
        arguments_parser.error(str(exc))

    pcap_source = None
    if arguments.pcap_source is not None:
        try:
            pcap_source = parse_address(arguments.pcap_source)
        except ConfigurationError as exc:
            arguments_parser.error('--pcap-source: ' + str(exc))

    notices = Notices(config)

    try:
        specs = arguments.sources or ()

        try:
            feed = sources.load(specs, arguments.skip, pcap_source)
        except sources.SourceError as exc:
            notices.configuration('%s', exc)
            return 1

        notices.info('loaded %d messages (%d to send)', len(feed), feed.sendable())

        supervisor = Supervisor(config, feed, notices)
        return supervisor.run()

    finally:
        notices.close()



def blit_main(argv=None):

    blit_parser = argparse.ArgumentParser(prog='pfeed-blit',
            description='Inject one message into a running pfeed session.')

    blit_parser.add_argument('address', metavar='ADDR:PORT',
                             help='blit channel address of the running session')
    blit_parser.add_argument('data', nargs='?',
                             help='payload text; read from stdin if omitted')

    encoding = blit_parser.add_mutually_exclusive_group()
    encoding.add_argument('-x', '--hex', action='store_true',
                          help='payload is hexadecimal text')
    encoding.add_argument('-f', '--file', action='store_true',
                          help='payload is the contents of the named file')

    arguments = blit_parser.parse_args(argv)

    try:
        host, port = parse_address(arguments.address, default_host='127.0.0.1')
    except ConfigurationError as exc:
        blit_parser.error(str(exc))

    data = arguments.data

    try:
        if arguments.file:
            if data is None:
                blit_parser.error('--file requires a filename')
            with open(data, 'rb') as source:
                payload = source.read()
        elif data is None:
            payload = sys.stdin.buffer.read()
        elif arguments.hex:
            payload = bytes.fromhex(''.join(data.split()))
        else:
            payload = data.encode()
    except ValueError as exc:
        blit_parser.error('invalid hex payload: ' + str(exc))
    except OSError as exc:
        sys.stderr.write('pfeed-blit: cannot read %s: %s\n' % (data, exc.strerror))
        return 1

    try:
        blit.send(host, port, payload)
    except OSError as exc:
        sys.stderr.write('pfeed-blit: cannot deliver to %s:%d: %s\n' % (host, port, exc))
        return 1

    return 0


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

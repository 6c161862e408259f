""" Import sources for the message feed. Each loader takes a filename and
    returns a list of :class:`pfeed.message.Message` instances; :func:`load`
    concatenates any number of sources, in the order given, into one
    :class:`pfeed.message.Feed`.

    Supported kinds:

    * ``raw``: the entire file is one message.
    * ``hex``: hex digits, one message per paragraph (blank-line separated).
    * ``json``: a JSON array of messages.
    * ``pcap``: TCP and UDP payloads from a packet capture.
"""

import base64
import binascii
import os
import re

from . import json as pfjson
from .message import Feed, Message


class SourceError(ValueError):
    """ An import source could not be read or parsed.
    """



def raw(filename):
    """ Load the entire contents of *filename* as a single message.
    """

    try:
        with open(filename, 'rb') as source:
            data = source.read()
    except OSError as exc:
        raise SourceError('cannot read %s: %s' % (filename, exc.strerror)) from exc

    note = os.path.basename(filename)
    return [Message(data, note=note)]


_offset = re.compile(r'^\s*[0-9a-fA-F]+:')


def hexdump(filename):
    """ Load hexadecimal text from *filename*. A '#' starts a comment that
        runs to the end of the line. Blank lines separate messages; within a
        message, every hex digit on every line is concatenated, after
        removing an optional leading ``offset:`` column.
    """

    try:
        with open(filename, 'r') as source:
            lines = source.read().split('\n')
    except OSError as exc:
        raise SourceError('cannot read %s: %s' % (filename, exc.strerror)) from exc
    except UnicodeDecodeError as exc:
        raise SourceError('%s is not a text file' % (filename)) from exc

    basename = os.path.basename(filename)

    paragraphs = list()
    current = list()
    first_line = None

    for number, line in enumerate(lines, 1):
        line = line.split('#', 1)[0]
        line = _offset.sub('', line)
        line = ''.join(line.split())

        if line == '':
            if current:
                paragraphs.append((first_line, ''.join(current)))
                current = list()
            continue

        if not current:
            first_line = number

        current.append(line)

    if current:
        paragraphs.append((first_line, ''.join(current)))

    messages = list()

    for first_line, digits in paragraphs:
        try:
            data = bytes.fromhex(digits)
        except ValueError as exc:
            raise SourceError('%s line %d: invalid hex: %s' % (filename, first_line, exc)) from exc

        note = '%s:%d' % (basename, first_line)
        messages.append(Message(data, note=note))

    return messages


def json(filename):
    """ Load a JSON array from *filename*. Each element is either a string,
        sent as UTF-8, or an object with exactly one of the keys ``text``,
        ``hex``, or ``base64`` providing the payload, plus optional ``note``
        and ``skip`` keys.
    """

    try:
        with open(filename, 'rb') as source:
            raw_json = source.read()
    except OSError as exc:
        raise SourceError('cannot read %s: %s' % (filename, exc.strerror)) from exc

    try:
        entries = pfjson.loads(raw_json)
    except pfjson.DecodeError as exc:
        raise SourceError('%s is not valid JSON: %s' % (filename, exc)) from exc

    if not isinstance(entries, list):
        raise SourceError('%s must contain a JSON array' % (filename))

    basename = os.path.basename(filename)
    messages = list()

    for index, entry in enumerate(entries):
        default_note = '%s[%d]' % (basename, index)

        if isinstance(entry, str):
            messages.append(Message(entry.encode('utf-8'), note=default_note))
            continue

        if not isinstance(entry, dict):
            raise SourceError('%s[%d]: expected a string or an object' % (filename, index))

        encodings = [key for key in ('text', 'hex', 'base64') if key in entry]

        if len(encodings) != 1:
            raise SourceError('%s[%d]: exactly one of text, hex, base64 is required' % (filename, index))

        encoding = encodings[0]
        value = entry[encoding]

        if not isinstance(value, str):
            raise SourceError('%s[%d]: %s must be a string' % (filename, index, encoding))

        try:
            if encoding == 'text':
                data = value.encode('utf-8')
            elif encoding == 'hex':
                data = bytes.fromhex(value)
            else:
                data = base64.b64decode(value, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise SourceError('%s[%d]: invalid %s: %s' % (filename, index, encoding, exc)) from exc

        note = entry.get('note')

        if note is None:
            note = default_note
        elif not isinstance(note, str):
            raise SourceError('%s[%d]: note must be a string' % (filename, index))

        skip = bool(entry.get('skip', False))

        messages.append(Message(data, note=note, skip=skip))

    return messages


def pcap(filename, source=None):
    """ Load TCP and UDP payloads from the packet capture in *filename*, one
        message per packet that carries a payload. If *source* is provided,
        as an (address, port) tuple, only packets sent from that endpoint are
        kept; this is how one side of a captured conversation is selected.
    """

    # scapy is slow to import; only pay for it when a capture is loaded.

    from scapy.error import Scapy_Exception
    from scapy.layers.inet import IP, TCP, UDP
    from scapy.layers.inet6 import IPv6
    from scapy.packet import Raw
    from scapy.utils import rdpcap

    try:
        packets = rdpcap(filename)
    except OSError as exc:
        raise SourceError('cannot read %s: %s' % (filename, exc.strerror)) from exc
    except Scapy_Exception as exc:
        raise SourceError('%s is not a packet capture: %s' % (filename, exc)) from exc

    basename = os.path.basename(filename)
    messages = list()

    for number, packet in enumerate(packets, 1):

        if packet.haslayer(IP):
            network = packet[IP]
        elif packet.haslayer(IPv6):
            network = packet[IPv6]
        else:
            continue

        if network.haslayer(TCP):
            segment = network[TCP]
        elif network.haslayer(UDP):
            segment = network[UDP]
        else:
            continue

        if source is not None:
            address, port = source
            if network.src != address or segment.sport != int(port):
                continue

        if not segment.haslayer(Raw):
            continue

        data = bytes(segment[Raw].load)

        note = '%s frame %d' % (basename, number)
        messages.append(Message(data, note=note))

    return messages



loaders = {
    'raw': raw,
    'hex': hexdump,
    'json': json,
    'pcap': pcap,
}


def load(specs, skip=(), pcap_source=None):
    """ Build a :class:`pfeed.message.Feed` from *specs*, a sequence of
        (kind, filename) pairs, concatenated in order. The zero-based feed
        indices listed in *skip* are flagged so they are never sent. The
        *pcap_source* (address, port) filter applies to every pcap source.
    """

    messages = list()

    for kind, filename in specs:
        try:
            loader = loaders[kind]
        except KeyError:
            raise SourceError('unknown source kind: ' + repr(kind))

        if kind == 'pcap':
            loaded = loader(filename, pcap_source)
        else:
            loaded = loader(filename)

        messages.extend(loaded)

    for index in skip:
        index = int(index)

        if index < 0 or index >= len(messages):
            raise SourceError('cannot skip message %d, the feed has %d messages' % (index, len(messages)))

        messages[index] = messages[index].skipped()

    return Feed(messages)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" Configuration handling for pfeed. A single :class:`Configuration`
    instance is established at startup and handed, explicitly, to every
    component that needs it; nothing here is stored in module-level state
    beyond the cached environment lookup in :func:`default_blit`.
"""

import os


roles = ('client', 'server')
transports = ('tcp', 'udp')


class ConfigurationError(ValueError):
    """ The requested configuration is malformed or incomplete. Raised before
        any network activity takes place.
    """



class Configuration:
    """ The full set of options for one pfeed process. The *role* is either
        'client' or 'server', the *transport* either 'tcp' or 'udp'. Addresses
        are (host, port) tuples: *target* is the remote endpoint for a client,
        *listen* the local endpoint for a server (or the local bind address
        for a client), and *blit* the local endpoint for the injection
        side-channel.

        :ivar go_first: Send the first feed message without waiting for the peer.
        :ivar close_at_end: Close the connection once the feed is exhausted.
        :ivar step: Wait for operator confirmation before each feed message.
        :ivar persist: Start a new session whenever the previous one closes.
        :ivar squelch_exhausted: Do not announce feed exhaustion.
        :ivar verbosity: 0 for notices only, 1 for message summaries, 2 for hexdumps.
        :ivar output: Optional filename receiving a copy of all output.
    """

    def __init__(self, role='client', transport='tcp', target=None, listen=None,
                 blit=None, go_first=False, close_at_end=False, step=False,
                 persist=False, squelch_exhausted=False, verbosity=0, output=None):

        role = str(role).lower()
        transport = str(transport).lower()

        if role not in roles:
            raise ConfigurationError('invalid role: ' + repr(role))

        if transport not in transports:
            raise ConfigurationError('invalid transport: ' + repr(transport))

        if role == 'client':
            if target is None:
                raise ConfigurationError('a HOST:PORT target is required in client mode')
        else:
            if target is not None:
                raise ConfigurationError('a HOST:PORT target is only valid in client mode')
            if listen is None:
                raise ConfigurationError('a listen address is required in server mode')

        self.role = role
        self.transport = transport
        self.target = target
        self.listen = listen
        self.blit = blit

        self.go_first = bool(go_first)
        self.close_at_end = bool(close_at_end)
        self.step = bool(step)
        self.persist = bool(persist)
        self.squelch_exhausted = bool(squelch_exhausted)

        self.verbosity = int(verbosity)
        self.output = output


    def __repr__(self):
        return 'config.Configuration: ' + repr(vars(self))


    @classmethod
    def from_arguments(cls, arguments):
        """ Build a :class:`Configuration` from an :class:`argparse.Namespace`
            as produced by :func:`pfeed.cli.parser`. Address strings are
            parsed here; any failure raises :class:`ConfigurationError`.
        """

        if arguments.server:
            role = 'server'
        else:
            role = 'client'

        if arguments.udp:
            transport = 'udp'
        else:
            transport = 'tcp'

        target = None
        if arguments.target is not None:
            target = parse_address(arguments.target)

        listen = None
        if arguments.listen is not None:
            listen = parse_address(arguments.listen, default_host='0.0.0.0')

        blit = arguments.blit
        if blit is None:
            blit = default_blit()

        if blit is not None:
            blit = parse_address(blit, default_host='127.0.0.1')

        return cls(role=role, transport=transport, target=target,
                   listen=listen, blit=blit, go_first=arguments.go_first,
                   close_at_end=arguments.close, step=arguments.step,
                   persist=arguments.persist, squelch_exhausted=arguments.squelch,
                   verbosity=arguments.verbose, output=arguments.output)


# end of class Configuration



def parse_address(text, default_host=None):
    """ Parse a 'host:port' string into a (host, port) tuple. IPv6 addresses
        must be enclosed in brackets, as in '[::1]:8080'. If *default_host*
        is provided, a bare port number is also accepted.
    """

    if text is None:
        raise ConfigurationError('no address provided')

    text = str(text).strip()

    if text == '':
        raise ConfigurationError('no address provided')

    if ':' in text:
        host, port = text.rsplit(':', 1)
    elif default_host is not None:
        host = default_host
        port = text
    else:
        raise ConfigurationError('expected HOST:PORT, got ' + repr(text))

    if host.startswith('['):
        if host.endswith(']'):
            host = host[1:-1]
        else:
            raise ConfigurationError('unbalanced brackets in address ' + repr(text))
    elif ':' in host:
        raise ConfigurationError('IPv6 addresses must be bracketed: ' + repr(text))

    if host == '':
        if default_host is None:
            raise ConfigurationError('missing host in address ' + repr(text))
        host = default_host

    try:
        port = int(port)
    except ValueError:
        raise ConfigurationError('invalid port in address ' + repr(text))

    if port < 0 or port > 65535:
        raise ConfigurationError('port out of range in address ' + repr(text))

    return (host, port)



def format_address(address):
    """ Inverse of :func:`parse_address`.
    """

    host, port = address[:2]

    if ':' in host:
        host = '[' + host + ']'

    return '%s:%d' % (host, port)



def default_blit():
    """ Return the default blit address, if any. This is only ever set via
        the ``PFEED_BLIT`` environment variable; note that changes to the
        environment variable will be ignored unless it is set prior to the
        first invocation of this method.
    """

    found = default_blit.found

    if found is not None:
        return found or None

    try:
        found = os.environ['PFEED_BLIT']
    except KeyError:
        found = ''

    found = found.strip()
    default_blit.found = found
    return found or None

default_blit.found = None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

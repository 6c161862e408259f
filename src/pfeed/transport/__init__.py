"""Connection adapter implementations."""

from .base import (
    Adapter,
    TransportError,
    TransportConnectionError,
    TransportPortError,
)
from .peer import Peer, PeerRegistry
from . import tcp
from . import udp


_adapters = {
    ('client', 'tcp'): tcp.Client,
    ('server', 'tcp'): tcp.Server,
    ('client', 'udp'): udp.Client,
    ('server', 'udp'): udp.Server,
}


def create(config, reactor, sink):
    """ Return an unopened :class:`Adapter` appropriate for the role and
        transport in the provided :class:`pfeed.config.Configuration`.
    """

    try:
        adapter_class = _adapters[(config.role, config.transport)]
    except KeyError:
        raise ValueError("unknown role/transport: %s/%s" % (config.role, config.transport))

    return adapter_class(reactor, sink, target=config.target, listen=config.listen)

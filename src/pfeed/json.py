''' Wrapper module to select the most performant available library to handle
    the equivalent of :func:`json.loads`. Input to :func:`loads` is bytes,
    as read directly from a source file.
'''

# msgspec is an optional extra; orjson is always installed alongside pfeed.

msgspec = None
orjson = None

try:
    import msgspec
except ImportError:
    import orjson


if msgspec is not None:
    decoder = msgspec.json.Decoder()
    loads = decoder.decode

    DecodeError = msgspec.DecodeError
else:
    loads = orjson.loads

    DecodeError = orjson.JSONDecodeError


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

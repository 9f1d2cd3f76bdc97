''' JSON encoding for the frames exchanged by :mod:`catalink.transport.zmq`
    and for configuration documents. Encoding always yields bytes; decoding
    accepts bytes or str.
'''

import msgspec

encoder = msgspec.json.Encoder()
decoder = msgspec.json.Decoder()

dumps = encoder.encode
loads = decoder.decode

errors = (msgspec.DecodeError,)


def load_object(raw, source):
    """ Decode *raw* and return the JSON object it contains. Raises
        ValueError, naming *source*, if *raw* is malformed or holds
        anything other than an object.
    """

    try:
        value = decoder.decode(raw)
    except errors as e:
        raise ValueError('cannot parse %s: %s' % (source, e)) from e

    if isinstance(value, dict):
        return value

    raise ValueError('%s must contain a JSON object' % (source))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

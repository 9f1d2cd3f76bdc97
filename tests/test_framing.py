import pytest

from catalink.transport.zmq import framing


def test_to_frames():

    frame = framing.Frame(framing.CALL, b'00000001', 'login', {'args': [1]})
    parts = framing.to_frames(frame)

    assert len(parts) == 5
    assert parts[0] == framing.PROTOCOL_VERSION.encode()
    assert parts[1] == b'CALL'
    assert parts[2] == b'00000001'
    assert parts[3] == b'login'
    assert isinstance(parts[4], bytes)


def test_empty_payload():

    frame = framing.Frame(framing.UNSUB, b'00000002')
    parts = framing.to_frames(frame)

    assert parts[3] == b''
    assert parts[4] == b''

    decoded = framing.from_frames(parts)
    assert decoded.msg_type == framing.UNSUB
    assert decoded.target is None
    assert decoded.payload is None
    assert decoded.prefix == ()


def test_routing_prefix():
    """ A ROUTER socket sees the sender's identity ahead of the version
        frame; it is kept so that a reply can be routed back.
    """

    frame = framing.Frame(framing.RESULT, b'00000003', None, {'value': 44}, prefix=(b'client',))

    parts = framing.to_frames(frame)
    assert parts[0] == framing.PROTOCOL_VERSION.encode()

    parts = framing.to_frames(frame, include_prefix=True)
    assert parts[0] == b'client'

    decoded = framing.from_frames(parts)
    assert decoded.prefix == (b'client',)
    assert decoded.msg_type == framing.RESULT
    assert decoded.msg_id == b'00000003'
    assert decoded.payload == {'value': 44}


def test_version_mismatch():

    # Without a recognizable version frame the first frame is treated as a
    # routing prefix, and the remainder is too short.

    parts = (b'c0', b'RESULT', b'00000004', b'', b'{"value": 1}')

    with pytest.raises(ValueError):
        framing.from_frames(parts)

    parts = (b'identity', b'c0', b'RESULT', b'00000004', b'', b'{"value": 1}')
    decoded = framing.from_frames(parts)

    assert decoded.msg_type == framing.ERROR
    assert decoded.msg_id == b'00000004'
    assert 'protocol' in decoded.payload['text']


def test_malformed():

    with pytest.raises(ValueError):
        framing.from_frames(())

    with pytest.raises(ValueError):
        framing.from_frames((framing.PROTOCOL_VERSION.encode(), b'CALL'))

    parts = (framing.PROTOCOL_VERSION.encode(), b'DATA', b'', b'sensors', b'{broken')

    with pytest.raises(ValueError):
        framing.from_frames(parts)


def test_next_id():

    first = framing.next_id()
    second = framing.next_id()

    assert isinstance(first, bytes)
    assert len(first) == 8
    assert first != second


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

import octarget
import pytest

from octarget import json
from octarget.errors import MalformedValue
from octarget.protocol import message
from octarget.value import Type, Value

V = octarget.value.from_python


def test_codec():

    assert json.codec in ('msgspec', 'orjson', 'json')

    encoded = json.dumps({'element': ['a', 'b']})
    assert isinstance(encoded, bytes)
    assert json.loads(encoded) == {'element': ['a', 'b']}
    assert json.loads(encoded.decode()) == {'element': ['a', 'b']}


def test_bytes_field():

    raw = b'\x00\xff\x80binary'
    text = json.encode_bytes(raw)

    assert isinstance(text, str)
    assert json.decode_bytes(text) == raw
    assert json.decode_bytes(None) == b''

    with pytest.raises(MalformedValue) as raised:
        json.decode_bytes('not base64!', 'data')

    assert 'data' in raised.value.message


def test_value_payload():

    # Bytes that are not valid UTF-8 must survive a trip through JSON.

    value = Value(b'\x00\xff\x80', Type.BYTES)
    frame = json.pack({'value': value.to_dict()})

    assert Value.from_dict(json.unpack(frame)['value']) == value

    enumerated = octarget.value.enumerated(2, 'UP')
    assert Value.from_dict(json.loads(json.dumps(enumerated.to_dict()))).name == 'UP'


def test_notification_payload():

    notification = message.Notification(1234, ('interfaces', 'eth0'), updates=[message.Update(('mtu',), V(1500))], deletes=[('description',)])

    frame = json.pack(notification)
    assert frame == json.dumps(notification.to_dict())

    decoded = json.unpack(frame, message.Notification)
    assert decoded.timestamp == 1234
    assert decoded.prefix == ('interfaces', 'eth0')
    assert decoded.updates[0].value.decode() == 1500
    assert decoded.paths() == [('interfaces', 'eth0', 'mtu'), ('interfaces', 'eth0', 'description')]


def test_empty_frame():

    assert json.pack(None) == b''
    assert json.pack(b'{}') == b'{}'
    assert json.unpack(b'') is None

    # An empty frame decodes as an empty message of the requested kind.

    request = json.unpack(b'', message.GetRequest)
    assert request.paths == []


def test_malformed_frame():

    with pytest.raises(MalformedValue):
        json.unpack(b'{"unterminated": ')

    with pytest.raises(json.DecodeError):
        json.loads(b'{"unterminated": ')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

''' JSON handling for everything octarget puts on the wire or reads from
    disk. The fastest codec available is selected once, at import time;
    whichever it is, :func:`dumps` returns bytes and :func:`loads` accepts
    bytes or str.

    Raw bytes (JSON-encoded leaf values, model data) travel inside JSON
    payloads as base64 text; :func:`encode_bytes` and :func:`decode_bytes`
    handle that field encoding. :func:`pack` and :func:`unpack` handle the
    payload frame of a request, response, or stream message.
'''

import base64
import binascii

from . import errors

# Only import the less efficient libraries if the preferred one is missing.

msgspec = None
orjson = None
stdlib_json = None

try:
    import msgspec
except ImportError:
    pass

if msgspec is None:
    try:
        import orjson
    except ImportError:
        pass

if msgspec is None and orjson is None:
    import json as stdlib_json


if msgspec is not None:
    codec = 'msgspec'
    dumps = msgspec.json.Encoder().encode
    loads = msgspec.json.Decoder().decode
    DecodeError = msgspec.DecodeError

elif orjson is not None:
    codec = 'orjson'
    dumps = orjson.dumps
    loads = orjson.loads
    DecodeError = orjson.JSONDecodeError

else:
    codec = 'json'
    DecodeError = stdlib_json.JSONDecodeError
    loads = stdlib_json.loads

    def dumps(python):
        return stdlib_json.dumps(python, separators=(',', ':')).encode()



def encode_bytes(raw):
    """ Return the base64 text that carries *raw* bytes in a JSON payload.
    """

    return base64.b64encode(raw).decode()



def decode_bytes(text, field='value'):
    """ Return the bytes carried as base64 *text* in a JSON payload. A
        malformed encoding raises :class:`errors.MalformedValue`, naming the
        offending *field*.
    """

    if text is None:
        return b''

    try:
        return base64.b64decode(text, validate=True)
    except (TypeError, ValueError, binascii.Error) as e:
        raise errors.MalformedValue('bad %s encoding: %s' % (field, e))



def pack(payload):
    """ Return the bytes for a message frame. *payload* can be None (an
        empty frame), a dictionary, or anything with a ``to_dict`` method.
    """

    if payload is None:
        return b''

    if isinstance(payload, bytes):
        return payload

    if not isinstance(payload, dict):
        payload = payload.to_dict()

    return dumps(payload)



def unpack(frame, kind=None):
    """ Interpret the bytes of a message frame. An empty frame is None. If
        *kind* is specified the decoded dictionary is handed to its
        ``from_dict`` class method and that instance is returned instead.
        A frame that is not valid JSON raises :class:`errors.MalformedValue`.
    """

    if frame == b'' or frame is None:
        payload = None
    else:
        try:
            payload = loads(frame)
        except DecodeError as e:
            raise errors.MalformedValue('undecodable payload: ' + str(e))

    if kind is None:
        return payload

    if payload is None:
        payload = dict()

    return kind.from_dict(payload)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

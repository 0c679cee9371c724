""" Tagged value representation for the octarget tree. A :class:`Value` is
    the unit stored at every leaf, and the unit carried in every update on
    the wire.
"""

import enum

from . import errors
from . import json


class Type(enum.IntEnum):
    """ Encoding of the raw bytes in a :class:`Value`. The ordinals are part
        of the wire contract.
    """

    JSON = 0
    BYTES = 1
    PROTO = 2


class Value:
    """ A :class:`Value` is raw *value* bytes tagged with the *type* that
        describes how those bytes are encoded. An enumerated constant is
        represented as a JSON value holding the numeric constant, with the
        symbolic *name* of the constant alongside it.

        Instances are treated as immutable once created; two values compare
        equal if the bytes, type and name all match.
    """

    __slots__ = ('value', 'type', 'name')

    def __init__(self, value=b'', type=Type.JSON, name=''):

        try:
            value.decode
        except AttributeError:
            raise errors.MalformedValue('value bytes must be bytes, not ' + repr(value))

        try:
            type = Type(type)
        except ValueError:
            raise errors.MalformedValue('unknown value type: ' + repr(type))

        if name is None:
            name = ''

        self.value = bytes(value)
        self.type = type
        self.name = name


    def __eq__(self, other):
        if isinstance(other, Value):
            return self.value == other.value and self.type == other.type and self.name == other.name
        return NotImplemented


    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result


    def __hash__(self):
        return hash((self.value, self.type, self.name))


    def __repr__(self):
        if self.name:
            return 'Value(%r, %s, %r)' % (self.value, self.type.name, self.name)
        return 'Value(%r, %s)' % (self.value, self.type.name)


    def decode(self):
        """ Return the Python-native interpretation of this value: the decoded
            JSON for a JSON value, the raw bytes otherwise.
        """

        if self.type == Type.JSON:
            try:
                return json.loads(self.value)
            except json.DecodeError as e:
                raise errors.MalformedValue('undecodable JSON value: ' + str(e))

        return self.value


    def is_directory(self):
        """ Return True if this value describes a directory of values (a JSON
            object) rather than a single leaf value.
        """

        if self.type != Type.JSON or self.name:
            return False

        stripped = self.value.lstrip()
        return stripped[:1] == b'{'


    def validate(self):
        """ Raise :class:`errors.MalformedValue` if this value is not well
            formed. Only JSON values can be checked for content; an enumerated
            name is only meaningful on a JSON value.
        """

        if self.name and self.type != Type.JSON:
            raise errors.MalformedValue('enumerated name on a non-JSON value: ' + repr(self.name))

        if self.type == Type.JSON:
            self.decode()


    def to_dict(self):

        encoded = dict()
        encoded['value'] = json.encode_bytes(self.value)
        encoded['type'] = int(self.type)

        if self.name:
            encoded['name'] = self.name

        return encoded


    @classmethod
    def from_dict(cls, encoded):

        raw = json.decode_bytes(encoded.get('value'))
        return cls(raw, encoded.get('type', Type.JSON), encoded.get('name', ''))


# end of class Value



def from_python(python, name=''):
    """ Interpret a Python-native *python* value as a :class:`Value`. Bytes
        become a BYTES value; everything else is JSON-encoded. An existing
        :class:`Value` is returned as-is.
    """

    if isinstance(python, Value):
        return python

    if isinstance(python, (bytes, bytearray)):
        return Value(bytes(python), Type.BYTES)

    try:
        encoded = json.dumps(python)
    except TypeError as e:
        raise errors.MalformedValue('cannot encode value as JSON: ' + str(e))

    return Value(encoded, Type.JSON, name)



def enumerated(number, name):
    """ Return a :class:`Value` for the enumerated constant *name* with the
        numeric value *number*.
    """

    return from_python(int(number), name)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" Exception classes raised by the octarget engine. Every exception carries
    a canonical gRPC status code and a human-readable message, and can be
    rendered as the wire representation of an error.
"""

import enum


class Code(enum.IntEnum):
    """ Canonical status codes. The ordinals are fixed by the wire contract
        and must never be renumbered.
    """

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14


class TargetError(Exception):
    """ Base class for all errors surfaced to a caller. The *message* is
        free-form text; the *code* defaults to the class-level code, which
        each subclass sets to the canonical code for that kind of failure.
    """

    code = Code.UNKNOWN

    def __init__(self, message, code=None):
        Exception.__init__(self, message)
        self.message = message

        if code is not None:
            self.code = Code(code)


    def __repr__(self):
        return "%s(%s, %r)" % (self.__class__.__name__, self.code.name, self.message)


    def to_dict(self):
        """ Return the error as a dictionary suitable for inclusion in a
            response payload.
        """

        error = dict()
        error['code'] = int(self.code)
        error['message'] = self.message
        return error


    @classmethod
    def from_dict(cls, error):

        code = error.get('code', Code.UNKNOWN)
        message = error.get('message', '')

        try:
            specific = by_code[code]
        except KeyError:
            return TargetError(message, code)

        return specific(message)


class InvalidPath(TargetError):
    code = Code.INVALID_ARGUMENT

class ReadOnlyPath(TargetError):
    code = Code.PERMISSION_DENIED

class MalformedValue(TargetError):
    code = Code.INVALID_ARGUMENT

class UnsupportedSubscriptionMode(TargetError):
    code = Code.UNIMPLEMENTED

class UnsatisfiableInterval(TargetError):
    code = Code.OUT_OF_RANGE

class OverlappingPoll(TargetError):
    code = Code.FAILED_PRECONDITION

class AliasConflict(TargetError):
    code = Code.ALREADY_EXISTS

class QueueOverflow(TargetError):
    code = Code.RESOURCE_EXHAUSTED

class Unimplemented(TargetError):
    code = Code.UNIMPLEMENTED

class Aborted(TargetError):
    code = Code.ABORTED

class Cancelled(TargetError):
    code = Code.CANCELLED


# Several error kinds share a code; decoding a wire error picks the most
# general class for each code.

by_code = dict()
by_code[Code.INVALID_ARGUMENT] = InvalidPath
by_code[Code.PERMISSION_DENIED] = ReadOnlyPath
by_code[Code.OUT_OF_RANGE] = UnsatisfiableInterval
by_code[Code.FAILED_PRECONDITION] = OverlappingPoll
by_code[Code.ALREADY_EXISTS] = AliasConflict
by_code[Code.RESOURCE_EXHAUSTED] = QueueOverflow
by_code[Code.UNIMPLEMENTED] = Unimplemented
by_code[Code.ABORTED] = Aborted
by_code[Code.CANCELLED] = Cancelled


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" The bounded outbound queue for a single subscription stream. Responses
    leave the queue in the order they were put in; the sequence number is
    assigned on the way out, so it counts only what was actually delivered
    and never has gaps, which is what a datagram wrapper numbering the
    stream needs.

    When the queue is full the overflow *policy* decides what happens:

    ``coalesce``
        Discard a queued coalescible response to make room: first one with
        the same coalescing key as the new response (a sampled update for
        the same path, superseded by the new one), else the oldest. If
        nothing queued is coalescible, block as for ``block``.
    ``block``
        Block the producer until there is room.
    ``close``
        Fail immediately.

    A producer that is blocked for more than *timeout* seconds, or that
    fails under the ``close`` policy, receives :class:`errors.QueueOverflow`;
    the session treats that as fatal for the stream. Responses that are not
    coalescible (on-change and delete updates, sync) are never discarded.
"""

import collections
import logging
import threading
import time

from . import errors

logger = logging.getLogger(__name__)

policies = set(('coalesce', 'block', 'close'))


class _Entry:

    __slots__ = ('response', 'key')

    def __init__(self, response, key):
        self.response = response
        self.key = key


class Outbound:

    def __init__(self, capacity=1000, policy='coalesce', timeout=5):

        if policy not in policies:
            raise ValueError('unknown overflow policy: ' + repr(policy))

        capacity = int(capacity)
        if capacity < 1:
            raise ValueError('outbound capacity must be at least 1')

        self.capacity = capacity
        self.policy = policy
        self.timeout = timeout

        self.closed = False
        self.dropped = 0
        self.sequence = 0
        self.last_put = time.monotonic()

        self._entries = collections.deque()
        self._condition = threading.Condition()


    def __len__(self):
        return len(self._entries)


    def put(self, response, key=None):
        """ Append *response* to the queue. A *key* of None marks the response
            as not coalescible; any other value is the coalescing key. Return
            False if the queue was closed and the response discarded.
        """

        with self._condition:
            if self.closed == True:
                return False

            if len(self._entries) >= self.capacity:
                self._make_room(key)

                if self.closed == True:
                    return False

            self._entries.append(_Entry(response, key))
            self.last_put = time.monotonic()
            self._condition.notify_all()

        return True


    def _make_room(self, key):
        """ Called with the condition held and the queue full.
        """

        if self.policy == 'close':
            raise errors.QueueOverflow('outbound queue full (%d entries)' % (self.capacity))

        if self.policy == 'coalesce':
            victim = None

            for entry in self._entries:
                if entry.key is None:
                    continue

                if key is not None and entry.key == key:
                    victim = entry
                    break

                if victim is None:
                    victim = entry

            if victim is not None:
                self._entries.remove(victim)
                self.dropped += 1
                logger.debug("outbound queue full, dropped coalescible %r", victim.response)
                return

        deadline = time.monotonic() + self.timeout

        while len(self._entries) >= self.capacity and self.closed == False:
            remaining = deadline - time.monotonic()

            if remaining <= 0:
                raise errors.QueueOverflow("outbound queue full for %.1f seconds" % (self.timeout))

            self._condition.wait(remaining)


    def get(self, timeout=None):
        """ Remove and return the next response, with its sequence number
            assigned. Block for up to *timeout* seconds (indefinitely if
            None) for one to arrive. Return None if the timeout expires, or
            if the queue is closed and empty.
        """

        with self._condition:
            if timeout is not None:
                deadline = time.monotonic() + timeout

            while not self._entries:
                if self.closed == True:
                    return None

                if timeout is None:
                    self._condition.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._condition.wait(remaining)

            entry = self._entries.popleft()
            self.sequence += 1
            entry.response.sequence = self.sequence
            self._condition.notify_all()

        return entry.response


    def close(self, purge=False):
        """ Refuse any further responses. Queued responses remain available
            to :func:`get` unless *purge* is True, in which case they are
            discarded. Blocked producers are released.
        """

        with self._condition:
            self.closed = True

            if purge == True:
                self._entries.clear()

            self._condition.notify_all()


# end of class Outbound


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

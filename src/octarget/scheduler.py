""" Per-subscription delivery policy. A :class:`NotificationScheduler` belongs
    to a single streaming session; for each of the session's subscriptions it
    holds a :class:`Scheduled` instance that decides when a changed leaf is
    handed to the session for delivery.

    On-change subscriptions emit a changed leaf immediately, unless the value
    is identical to the one last delivered. Sampled subscriptions remember
    the latest value of each leaf and emit on a fixed cadence from a
    :class:`ticker.Ticker`. The heartbeat of an on-change subscription is
    kept by a :class:`ticker.Watchdog` instead, so that a forced re-send
    follows the last delivery by exactly one heartbeat interval. Removed
    leaves are always emitted immediately, regardless of mode.

    All intervals are in nanoseconds, matching the wire representation.
"""

import logging
import threading
import time

from . import errors
from . import path as pathlib
from . import ticker
from .protocol.message import SubscriptionMode

logger = logging.getLogger(__name__)

second = 1000000000


class Scheduled:
    """ Delivery state for one subscription. The *emit* callable is invoked
        as ``emit(path, value, timestamp, key)``, where *value* is None for
        a removed leaf and *key* is the coalescing key (None for emissions
        that must never be discarded).
    """

    def __init__(self, path, subscription, mode, sample, heartbeat, emit):

        self.path = path
        self.subscription = subscription
        self.mode = mode
        self.sample = sample
        self.heartbeat = heartbeat
        self.suppress_redundant = bool(subscription.suppress_redundant)
        self.emit = emit

        self.latest = dict()
        self.delivered = dict()
        self.delivered_time = time.monotonic()

        self.lock = threading.Lock()
        self.ticker = None
        self.retired = False


    def __repr__(self):
        return 'Scheduled(%s, %s)' % (pathlib.render(self.path), self.mode.name)


    def start(self):
        """ Begin periodic processing, if this subscription needs any.
        """

        if self.mode != SubscriptionMode.SAMPLE and not self.heartbeat:
            return

        with self.lock:
            if self.retired == True or self.ticker is not None:
                return

            if self.mode == SubscriptionMode.SAMPLE:
                self.ticker = ticker.start(self.tick, self.sample / second)
            else:
                last = lambda: self.delivered_time
                self.ticker = ticker.Watchdog(self.beat, last, self.heartbeat / second)


    def record(self, path, value, timestamp):
        """ Note that *value* was delivered for *path* as part of the initial
            synchronization of the subscription.
        """

        with self.lock:
            self.latest[path] = (value, timestamp)
            self.delivered[path] = value
            self.delivered_time = time.monotonic()


    def offer(self, change):
        """ Handle a :class:`tree.Change` governed by this subscription.
        """

        emissions = list()

        with self.lock:
            if self.retired == True:
                return

            path = change.path

            if change.deleted:
                self.latest.pop(path, None)
                self.delivered.pop(path, None)
                self.delivered_time = time.monotonic()
                emissions.append((path, None, change.timestamp, None))

            else:
                self.latest[path] = (change.value, change.timestamp)

                if self.mode == SubscriptionMode.ON_CHANGE:
                    if self.delivered.get(path) != change.value:
                        self.delivered[path] = change.value
                        self.delivered_time = time.monotonic()
                        emissions.append((path, change.value, change.timestamp, None))

        for emission in emissions:
            self.emit(*emission)


    def tick(self):
        """ Invoked by the ticker of a sampled subscription: emit whatever
            the sample cadence or the heartbeat requires.
        """

        with self.lock:
            if self.retired == True:
                return

            now = time.monotonic()
            forced = False

            if self.heartbeat:
                heartbeat = self.heartbeat / second

                # Ticks are quantised to the sample interval. Allow half a
                # sample period of slack, otherwise jitter in the ticker
                # would routinely push the heartbeat out by one sample.

                slack = self.sample / second / 2

                if now - self.delivered_time >= heartbeat - slack:
                    forced = True

            emissions = self._current(forced, now)

        for emission in emissions:
            self.emit(*emission)


    def beat(self):
        """ Invoked by the watchdog of an on-change subscription once a full
            heartbeat interval has passed with no delivery: re-send every
            current value.
        """

        with self.lock:
            if self.retired == True:
                return

            now = time.monotonic()

            if now - self.delivered_time < self.heartbeat / second:
                return

            emissions = self._current(True, now)

        for emission in emissions:
            self.emit(*emission)


    def _current(self, forced, now):
        """ Return the emissions for the latest value of every leaf. The
            caller must hold :attr:`lock`.
        """

        emissions = list()

        for path, latest in self.latest.items():
            value, timestamp = latest

            if forced == False and self.suppress_redundant and self.delivered.get(path) == value:
                continue

            self.delivered[path] = value
            emissions.append((path, value, timestamp, path))

        if emissions:
            self.delivered_time = now

        return emissions


    def retire(self):
        """ Stop all processing for this subscription. When this method
            returns the ticker thread, if any, has exited.
        """

        with self.lock:
            self.retired = True
            running = self.ticker
            self.ticker = None

        if running is not None:
            running.stop()


# end of class Scheduled



class NotificationScheduler:
    """ Resolve and validate subscriptions against the *config* policy, and
        track the :class:`Scheduled` instances for a single session.
    """

    def __init__(self, emit, config):

        self.emit = emit
        self.config = config
        self.scheduled = list()


    def validate(self, subscription):
        """ Return the effective (mode, sample interval, heartbeat interval)
            for *subscription*, or raise an exception if it cannot be
            satisfied.
        """

        try:
            mode = SubscriptionMode(subscription.mode)
        except ValueError:
            raise errors.UnsupportedSubscriptionMode('unsupported subscription mode: ' + repr(subscription.mode))

        if mode == SubscriptionMode.TARGET_DEFINED:
            if self.config['target_defined_mode'] == 'sample':
                mode = SubscriptionMode.SAMPLE
            else:
                mode = SubscriptionMode.ON_CHANGE

        try:
            sample = int(subscription.sample_interval)
            heartbeat = int(subscription.heartbeat_interval)
        except (TypeError, ValueError):
            raise errors.UnsatisfiableInterval('subscription intervals must be integers')

        if sample < 0 or heartbeat < 0:
            raise errors.UnsatisfiableInterval('subscription intervals cannot be negative')

        if mode == SubscriptionMode.SAMPLE:
            if sample == 0:
                sample = self.config['default_sample_interval']

            minimum = self.config['minimum_sample_interval']
            if sample < minimum:
                raise errors.UnsatisfiableInterval('sample interval %d ns is below the minimum of %d ns' % (sample, minimum))

        if heartbeat:
            minimum = self.config['minimum_heartbeat_interval']
            if heartbeat < minimum:
                raise errors.UnsatisfiableInterval('heartbeat interval %d ns is below the minimum of %d ns' % (heartbeat, minimum))

            if mode == SubscriptionMode.SAMPLE and heartbeat < sample:
                raise errors.UnsatisfiableInterval('heartbeat interval %d ns is shorter than the sample interval %d ns' % (heartbeat, sample))

        return (mode, sample, heartbeat)


    def schedule(self, path, subscription):
        """ Validate *subscription* and return a new, not yet started,
            :class:`Scheduled` for the absolute *path*.
        """

        mode, sample, heartbeat = self.validate(subscription)

        scheduled = Scheduled(path, subscription, mode, sample, heartbeat, self.emit)
        self.scheduled.append(scheduled)

        logger.debug("scheduled %s: sample=%d heartbeat=%d", scheduled, sample, heartbeat)
        return scheduled


    def start(self):
        for scheduled in self.scheduled:
            scheduled.start()


    def retire(self):
        """ Retire every subscription; all ticker threads have exited when
            this method returns.
        """

        for scheduled in self.scheduled:
            scheduled.retire()

        self.scheduled = list()


# end of class NotificationScheduler


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

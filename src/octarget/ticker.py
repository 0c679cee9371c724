""" Background timers. A :class:`Ticker` invokes a method on a fixed period
    from its own thread; the notification scheduler uses one per sampled
    subscription, and the daemon uses them to refresh its built-in state.
    A :class:`Watchdog` invokes a method only after a period of inactivity,
    which is how a session keeps its heartbeat promise.
"""

import logging
import threading
import time
import weakref

logger = logging.getLogger(__name__)

active = weakref.WeakSet()


def start(method, period):
    """ Return a new :class:`Ticker` calling *method* every *period*
        seconds. Returns None if *period* is None or zero, meaning there is
        nothing to schedule.
    """

    if period is None or period == 0:
        return None

    ticker = Ticker(method)
    ticker.period(period)
    return ticker



class Ticker:
    """ Background thread to invoke *method* on an interval. A dedicated
        thread is used for each ticker; it is possible to exhaust the
        available system resources with a high enough quantity of them.

        The thread waits for the first call to :func:`period` before
        invoking anything. The method is called with no arguments; any
        exception it raises is logged and does not stop the ticker.
    """

    def __init__(self, method):

        self.interval = None
        self.method = method
        self.shutdown = False
        self.calls = 0

        self.alarm = threading.Event()
        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()

        active.add(self)


    def period(self, period):
        """ Update the interval to *period* seconds, starting a new cadence
            from the moment of the call.
        """

        period = float(period)

        if period <= 0:
            raise ValueError('ticker period must be positive, not %r' % (period))

        self.interval = period
        self.wake()


    def run(self):

        interval = None
        next = time.monotonic()

        while True:
            begin = time.monotonic()

            if self.shutdown == True:
                break

            if self.alarm.is_set() == True:
                self.alarm.clear()

                # The interval only changes when the alarm is set, including
                # when it is set upon startup. That's our cue to load a new
                # interval for this loop, and start an entirely new cadence;
                # the first call comes one full interval later.

                interval = self.interval
                next = begin + interval

            elif interval is None:
                self.alarm.wait(1)
                continue

            else:
                # Regardless of when we woke up we want to honor the
                # requested cadence, and set the next wakeup according to
                # the previous value, incremented solely by the interval.

                self.calls += 1

                try:
                    self.method()
                except Exception:
                    logger.exception("ticker callback %r failed", self.method)

                next += interval

            end = time.monotonic()

            delay = next - end
            if delay > 0:
                self.alarm.wait(delay)


    def stop(self, wait=True, timeout=5):
        """ Discontinue calling the method. If *wait* is True, block until
            the background thread exits, so that the caller is assured the
            method will not be invoked again; a call from within the ticker
            thread itself never waits.
        """

        self.shutdown = True
        self.wake()

        if wait == True and threading.current_thread() is not self.thread:
            self.thread.join(timeout)

            if self.thread.is_alive():
                logger.warning("ticker for %r did not stop within %.1f seconds", self.method, timeout)

        active.discard(self)


    def wake(self):
        self.alarm.set()


# end of class Ticker



class Watchdog:
    """ Background thread to invoke *method* whenever *interval* seconds
        have passed since the time returned by *last*, a callable returning
        a :func:`time.monotonic` timestamp. The method is expected to do
        something that refreshes that timestamp; if it does not, it will be
        invoked again one full interval later.
    """

    def __init__(self, method, last, interval):

        interval = float(interval)

        if interval <= 0:
            raise ValueError('watchdog interval must be positive, not %r' % (interval))

        self.method = method
        self.last = last
        self.interval = interval
        self.shutdown = False
        self.calls = 0

        self.alarm = threading.Event()
        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()


    def run(self):

        while self.shutdown == False:
            delay = self.last() + self.interval - time.monotonic()

            if delay > 0:
                self.alarm.wait(delay)
                continue

            self.calls += 1

            try:
                self.method()
            except Exception:
                logger.exception("watchdog callback %r failed", self.method)

            if self.last() + self.interval <= time.monotonic():
                self.alarm.wait(self.interval)


    def stop(self, wait=True, timeout=5):

        self.shutdown = True
        self.alarm.set()

        if wait == True and threading.current_thread() is not self.thread:
            self.thread.join(timeout)


# end of class Watchdog


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

""" The per-stream state machine behind a Subscribe call. A
    :class:`StreamSession` accepts :class:`protocol.message.SubscribeRequest`
    instances via :func:`StreamSession.put` and produces
    :class:`protocol.message.SubscribeResponse` instances via
    :func:`StreamSession.get`, or by iterating over the session.

    Requests, and batches of tree changes dispatched by the target, are
    processed in order by a background thread dedicated to the session; the
    thread committing a change never blocks on a session. Responses are
    queued in a bounded :class:`outbound.Outbound` queue.
"""

import enum
import itertools
import logging
import queue
import threading

from . import errors
from . import path as pathlib
from . import ticker
from .alias import CLIENT, TARGET
from .index import SubscriptionIndex
from .outbound import Outbound
from .protocol import message
from .protocol.message import Mode, Notification, SubscribeResponse, Update
from .scheduler import NotificationScheduler, second

logger = logging.getLogger(__name__)

# Heartbeats share a single coalescing key: one queued heartbeat is as good
# as several. Sampled leaves coalesce on their path, which is a tuple; this
# key must never compare equal to one.

heartbeat_key = object()


class State(enum.Enum):
    INIT = 'init'
    SUBSCRIBED = 'subscribed'
    STREAMING = 'streaming'
    WAIT_POLL = 'wait_poll'
    SENDING = 'sending'
    CLOSED = 'closed'



class StreamSession:
    """ A single subscription stream against *target*. The *client* is the
        identity used to partition aliases; if it is not specified the
        session is its own identity. When the session closes, :attr:`error`
        is set to the :class:`errors.TargetError` that caused it, or None
        for an orderly close.
    """

    def __init__(self, target, client=None):

        if client is None:
            client = self

        self.target = target
        self.config = target.config
        self.client = client

        self.mode = None
        self.prefix = pathlib.root
        self.use_aliases = False
        self.qos = None
        self.state = State.INIT
        self.error = None

        self.subscriptions = list()
        self.scheduler = None
        self.index = SubscriptionIndex()
        self.watchdog = None
        self.sender = None

        self.lock = threading.RLock()
        self.outbound = Outbound(self.config['queue_capacity'], self.config['overflow_policy'], self.config['overflow_timeout'])

        self._alias_numbers = itertools.count(1)

        # Available in Python 3.7+.
        self.inbound = queue.SimpleQueue()

        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()


    def __repr__(self):
        return 'StreamSession(%s, %s)' % (self.mode, self.state.name)


    def __iter__(self):

        while True:
            response = self.outbound.get()

            if response is None:
                return

            yield response


    @property
    def closed(self):
        return self.state == State.CLOSED


    def get(self, timeout=None):
        """ Return the next :class:`protocol.message.SubscribeResponse`,
            waiting up to *timeout* seconds for one to arrive. None is
            returned if the timeout expires, or if the session is closed and
            all queued responses have been retrieved.
        """

        return self.outbound.get(timeout)


    def put(self, request):
        """ Queue an inbound request for processing. The *request* can be a
            :class:`protocol.message.SubscribeRequest` or any of its variants.
            Return False if the session is already closed.
        """

        if self.state == State.CLOSED:
            return False

        self.inbound.put(('request', request))
        return True


    def offer(self, batch):
        """ Queue a list of (:class:`tree.Change`, :class:`scheduler.Scheduled`)
            pairs for delivery. This method never blocks.
        """

        if self.state == State.CLOSED:
            return

        self.inbound.put(('changes', batch))


    def run(self):
        """ The main loop for the inbound thread.
        """

        while True:
            kind, item = self.inbound.get()

            if kind is None:
                break

            if self.state == State.CLOSED:
                continue

            try:
                if kind == 'request':
                    self._handle(item)
                else:
                    self._changes(item)

            except errors.TargetError as e:
                logger.debug("closing %r: %r", self, e)
                self.close(e)

            except Exception as e:
                logger.exception("unexpected failure in %r", self)
                self.close(errors.TargetError(str(e), errors.Code.INTERNAL))


    def _handle(self, request):

        if isinstance(request, message.SubscribeRequest):
            if request.proxy is not None:
                logger.debug("%r request arrived via %r", request.type, request.proxy)
            request = request.request

        type = request.type

        if type == 'subscribe':
            self._subscribe(request)
        elif type == 'heartbeat':
            self._heartbeat(request)
        elif type == 'poll':
            self._poll()
        elif type == 'aliases':
            self._aliases(request)
        else:
            raise errors.MalformedValue('unhandled subscribe request type: ' + repr(type))


    def _changes(self, batch):

        for change, scheduled in batch:
            scheduled.offer(change)


    def _subscribe(self, request):
        """ Install the :class:`protocol.message.SubscriptionList` *request*,
            replacing any previous subscriptions on this session.
        """

        try:
            mode = Mode(request.mode)
        except ValueError:
            raise errors.UnsupportedSubscriptionMode('unsupported stream mode: ' + repr(request.mode))

        if mode == Mode.POLL and self.config['poll_supported'] == False:
            raise errors.UnsupportedSubscriptionMode('POLL subscriptions are not supported')

        if self.mode is not None and self.mode != mode:
            raise errors.TargetError('cannot change a %s stream to %s' % (self.mode.name, mode.name), errors.Code.FAILED_PRECONDITION)

        client = self.client
        aliases = self.target.aliases

        prefix = pathlib.normalize(request.prefix)

        # Validate everything before touching the existing subscriptions;
        # a rejected request closes the stream before any data flows.

        resolved = list()

        for subscription in request.subscriptions:
            path = pathlib.normalize(subscription.path)
            path = aliases.resolve(prefix + path, client)
            resolved.append((path, subscription))

        if mode == Mode.STREAM:
            scheduler = NotificationScheduler(self._emit, self.config)
        else:
            scheduler = None

        installed = list()

        for path, subscription in resolved:
            if scheduler is None:
                scheduled = None
            else:
                scheduled = scheduler.schedule(path, subscription)

            installed.append((path, subscription, scheduled))

        self._retire_subscriptions()

        with self.lock:
            if self.state == State.CLOSED:
                return

            self.mode = mode
            self.prefix = aliases.resolve(prefix, client)
            self.use_aliases = bool(request.use_aliases)
            self.qos = request.qos
            self.subscriptions = installed
            self.scheduler = scheduler
            self.state = State.SUBSCRIBED

        logger.debug("%r subscribed to %d paths, qos=%r", self, len(installed), self.qos)

        if self.use_aliases and self.config['target_aliases']:
            self._define_aliases()

        if mode == Mode.STREAM:
            self._stream()
        elif mode == Mode.ONCE:
            snapshot = self.target.tree.snapshot()
            if self._send_snapshot(snapshot) and self._enqueue(SubscribeResponse('sync')):
                self.close()
        else:
            with self.lock:
                if self.state == State.SUBSCRIBED:
                    self.state = State.WAIT_POLL


    def _stream(self):

        tree = self.target.tree
        index = self.target.index
        local = SubscriptionIndex()

        # Registration and the initial snapshot happen under the commit lock,
        # so every change is either in the snapshot or dispatched afterwards.

        with tree.lock:
            for path, subscription, scheduled in self.subscriptions:
                index.add(path, self, scheduled)
                local.add(path, self, scheduled)

            snapshot = tree.snapshot()

        self.index = local

        for path, subscription, scheduled in self.subscriptions:
            for leaf_path, node in snapshot.leaves(path):

                # Each leaf is sent once, under the most specific
                # subscription that governs it.

                if local.owner(leaf_path, self) is not scheduled:
                    continue

                scheduled.record(leaf_path, node.value, node.timestamp)

                if self._emit(leaf_path, node.value, node.timestamp) == False:
                    return

        if self._enqueue(SubscribeResponse('sync')) == False:
            return

        with self.lock:
            if self.state != State.SUBSCRIBED:
                return

            self.state = State.STREAMING
            scheduler = self.scheduler

        scheduler.start()


    def _send_snapshot(self, snapshot):
        """ Emit every subscribed leaf in *snapshot* exactly once. The caller
            is responsible for the sync response that follows. Return False
            if the session closed partway.
        """

        sent = set()

        for path, subscription, scheduled in self.subscriptions:
            for leaf_path, node in snapshot.leaves(path):
                if leaf_path in sent:
                    continue

                sent.add(leaf_path)

                if self._emit(leaf_path, node.value, node.timestamp) == False:
                    return False

        return True


    def _poll(self):

        with self.lock:
            if self.mode != Mode.POLL:
                raise errors.TargetError('poll request on a stream that is not in POLL mode', errors.Code.FAILED_PRECONDITION)

            if self.state == State.SENDING:
                raise errors.OverlappingPoll('poll request arrived while the previous poll was still being answered')

            self.state = State.SENDING

        snapshot = self.target.tree.snapshot()

        self.sender = threading.Thread(target=self._poll_sender, args=(snapshot,))
        self.sender.daemon = True
        self.sender.start()


    def _poll_sender(self, snapshot):

        if self._send_snapshot(snapshot) == False:
            return

        # The next poll may arrive as soon as the client sees the sync.

        with self.lock:
            if self.state != State.SENDING:
                return

            self.state = State.WAIT_POLL

        self._enqueue(SubscribeResponse('sync'))


    def _heartbeat(self, request):

        interval = request.interval

        if self.watchdog is not None:
            self.watchdog.stop()
            self.watchdog = None

        if not interval:
            self._enqueue(SubscribeResponse('heartbeat'), heartbeat_key)
            return

        minimum = self.config['minimum_heartbeat_interval']
        if interval < minimum:
            raise errors.UnsatisfiableInterval('heartbeat interval %d ns is below the minimum of %d ns' % (interval, minimum))

        last = lambda: self.outbound.last_put
        send = lambda: self._enqueue(SubscribeResponse('heartbeat'), heartbeat_key)

        self.watchdog = ticker.Watchdog(send, last, interval / second)


    def _aliases(self, request):

        if self.config['accept_client_aliases'] == False:
            logger.debug("ignoring %d client aliases for %r", len(request.aliases), self)
            return

        aliases = self.target.aliases

        for alias in request.aliases:
            if alias.path:
                aliases.define(alias.alias, alias.path, self.client, CLIENT)
            else:
                aliases.undefine(alias.alias, self.client, CLIENT)


    def _define_aliases(self):
        """ Define a target alias for each multi-element subscription path
            that does not already have one, announcing each new alias before
            any data is sent.
        """

        aliases = self.target.aliases
        existing = aliases.aliases(self.client)
        expansions = set(existing.values())

        for path, subscription, scheduled in self.subscriptions:
            if len(path) < 2 or path in expansions:
                continue

            while True:
                alias = ('@%d' % (next(self._alias_numbers)),)

                # Another session sharing this client identity may already
                # have claimed the name.

                if alias in aliases.aliases(self.client):
                    continue

                try:
                    aliases.define(alias, path, self.client, TARGET)
                except errors.AliasConflict:
                    continue

                break

            expansions.add(path)

            notification = Notification(self.target.tree.clock(), path, alias[0])

            if self._enqueue(SubscribeResponse('update', notification)) == False:
                return


    def _notification(self, path, value, timestamp):
        """ Build a :class:`protocol.message.Notification` for the leaf at
            the absolute *path*, with the prefix compressed via the
            session's aliases where possible.
        """

        parent = path[:-1]
        relative = path[-1:]

        compressed = self.target.aliases.compress(parent, self.client)

        if compressed is not None:
            alias, remainder = compressed
            prefix = alias + remainder
        elif pathlib.contains(self.prefix, parent):
            prefix = self.prefix
            relative = pathlib.relative(prefix, path)
        else:
            prefix = pathlib.root
            relative = path

        if value is None:
            return Notification(timestamp, prefix, deletes=[relative])

        return Notification(timestamp, prefix, updates=[Update(relative, value)])


    def _emit(self, path, value, timestamp, key=None):
        """ Queue a notification for a single leaf. This is the emit
            callable for the :class:`scheduler.NotificationScheduler`.
        """

        notification = self._notification(path, value, timestamp)
        return self._enqueue(SubscribeResponse('update', notification), key)


    def _enqueue(self, response, key=None):

        try:
            return self.outbound.put(response, key)
        except errors.QueueOverflow as e:
            logger.warning("closing %r: %s", self, e.message)
            self.close(e)
            return False


    def _retire_subscriptions(self):

        with self.lock:
            scheduler = self.scheduler
            subscriptions = self.subscriptions
            self.scheduler = None
            self.subscriptions = list()

        if scheduler is not None:
            scheduler.retire()

        paths = [subscription[0] for subscription in subscriptions]
        self.target.index.discard(self, paths)
        self.index = SubscriptionIndex()


    def close(self, error=None):
        """ Close the session, optionally because of *error*. Subscriptions,
            timers, and aliases are torn down; responses already queued
            remain available unless the close is due to a poll violation, in
            which case they are discarded.
        """

        with self.lock:
            if self.state == State.CLOSED:
                return

            self.state = State.CLOSED
            self.error = error

        purge = isinstance(error, errors.OverlappingPoll)
        self.outbound.close(purge)

        if self.watchdog is not None:
            self.watchdog.stop()
            self.watchdog = None

        self._retire_subscriptions()
        self.inbound.put((None, None))
        self.target._retire(self)

        if error is None:
            logger.debug("%r closed", self)
        else:
            logger.info("%r closed: %r", self, error)


# end of class StreamSession


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

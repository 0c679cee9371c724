""" Classes and methods implemented here implement the request/response
    aspects of the client/server API, over a ZeroMQ ROUTER socket on the
    server side and a DEALER socket on the client side.

    Every message is a multi-part ZeroMQ message of four parts:

        (version, id, type, payload)

    where the payload is JSON. A client issues GET, SET, MODELS, SUBSCRIBE
    and CANCEL requests; the server acknowledges every request with an ACK,
    answers GET, SET, and MODELS with a single REP, and answers SUBSCRIBE
    with a sequence of STREAM messages terminated by an END. Further
    SUBSCRIBE requests with the same id feed the same stream, which is how a
    client polls, requests heartbeats, or replaces its subscriptions.
"""

import atexit
import itertools
import logging
import queue
import socket
import threading
import time
import zmq

from .. import errors
from .. import json
from . import message

logger = logging.getLogger(__name__)

minimum_port = 10079
maximum_port = 13679
zmq_context = zmq.Context()

request_types = set(('GET', 'SET', 'MODELS', 'SUBSCRIBE', 'CANCEL'))


def _frames(id, type, payload=None):

    payload = json.pack(payload)

    if isinstance(type, str):
        type = type.encode()

    return (message.version, id, type, payload)



def error_payload(exception):
    """ Package an exception as the error dictionary returned to a client:
        the exception class name, the message text, and the canonical code.
    """

    error = dict()
    error['type'] = exception.__class__.__name__

    if isinstance(exception, errors.TargetError):
        error['text'] = exception.message
        error['code'] = int(exception.code)
    else:
        error['text'] = str(exception)
        error['code'] = int(errors.Code.INTERNAL)

    return error



def raise_error(error):
    """ Raise the exception described by an error dictionary produced by
        :func:`error_payload`.
    """

    code = error.get('code', errors.Code.UNKNOWN)
    text = error.get('text', '')

    exception = errors.TargetError.from_dict({'code': code, 'message': text})
    raise exception



class Pending:
    """ Client-side bookkeeping for a single outstanding request.
    """

    def __init__(self, id):
        self.id = id
        self.acknowledged = threading.Event()
        self.completed = threading.Event()
        self.payload = None


    def _complete_ack(self):
        self.acknowledged.set()


    def _complete(self, payload):
        self.payload = payload
        self.acknowledged.set()
        self.completed.set()


    def wait_ack(self, timeout):
        return self.acknowledged.wait(timeout)


    def wait(self, timeout=None):
        return self.completed.wait(timeout)


# end of class Pending



class Stream(Pending):
    """ Client-side representation of a subscription stream. Responses are
        available via :func:`get`, or by iterating over the stream; when the
        server ends the stream, :attr:`error` is set to the exception that
        ended it, if any.
    """

    def __init__(self, client, id):
        Pending.__init__(self, id)

        self.client = client
        self.error = None
        self.ended = False
        self.responses = queue.SimpleQueue()


    def __iter__(self):

        while True:
            response = self.get()

            if response is None:
                return

            yield response


    def _complete_stream(self, payload):
        response = message.SubscribeResponse.from_dict(payload)
        self.responses.put(response)


    def _complete_end(self, payload):

        if payload is not None:
            error = payload.get('error')
            if error is not None:
                try:
                    raise_error(error)
                except errors.TargetError as e:
                    self.error = e

        self.ended = True
        self.responses.put(None)


    def put(self, request):
        """ Send a :class:`message.SubscribeRequest` (or any of its variants)
            on this stream.
        """

        if not isinstance(request, message.SubscribeRequest):
            request = message.SubscribeRequest(request)

        self.client.send(self, 'SUBSCRIBE', request)


    def get(self, timeout=None):
        """ Return the next :class:`message.SubscribeResponse`, or None if
            the stream has ended or the *timeout* expires.
        """

        if self.ended == True and self.responses.empty():
            return None

        try:
            return self.responses.get(timeout=timeout)
        except queue.Empty:
            return None


    def _complete(self, payload):
        self._complete_end(payload)


    def cancel(self):
        self.client.send(self, 'CANCEL')


# end of class Stream



class Client:
    """ Issue requests via a ZeroMQ DEALER socket and receive responses.
        Maintains a persistent connection to a single server; the *address*
        and *port* number must be specified.
    """

    timeout = 0.5

    def __init__(self, address, port):

        port = int(port)
        self.port = port
        self.address = address

        server = "tcp://%s:%d" % (address, port)
        identity = "request.Client.%d" % (id(self))

        self.socket = zmq_context.socket(zmq.DEALER)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.identity = identity.encode()
        self.socket.connect(server)
        self.socket_lock = threading.Lock()

        self.ids = itertools.count(1)
        self.pending = dict()
        self.pending_thread = threading.Thread(target=self.run)
        self.pending_thread.daemon = True
        self.pending_thread.start()


    def _rep_incoming(self, parts):
        """ A client receives four types of messages from the remote side:
            an ACK, a REP, a STREAM, or an END. The payload is handed back to
            the relevant :class:`Pending` or :class:`Stream` instance.
        """

        their_version = parts[0]
        response_id = parts[1]

        try:
            pending = self.pending[response_id]
        except KeyError:
            # The original caller's request is gone, no further processing
            # is possible.
            return

        if their_version != message.version:
            error = dict()
            error['type'] = 'RuntimeError'
            error['text'] = "message is octarget protocol %s, recipient expects %s" % (repr(their_version), repr(message.version))
            error['code'] = int(errors.Code.FAILED_PRECONDITION)
            pending._complete({'error': error})
            del self.pending[response_id]
            return

        response_type = parts[2]
        payload = json.unpack(parts[3])

        if response_type == b'ACK':
            pending._complete_ack()
        elif response_type == b'STREAM':
            pending._complete_stream(payload)
        elif response_type == b'END':
            pending._complete_end(payload)
            del self.pending[response_id]
        else:
            pending._complete(payload)
            del self.pending[response_id]


    def run(self):

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)

        while True:
            sockets = poller.poll(10000)
            for active, flag in sockets:
                if self.socket == active:
                    parts = self.socket.recv_multipart()
                    self._rep_incoming(parts)


    def send(self, pending, type, payload=None):
        """ Send a request of the given *type*, tracked by the *pending*
            instance. This method blocks until the request is acknowledged;
            the caller is free to decide whether to wait for the full
            response.
        """

        parts = _frames(pending.id, type, payload)
        pending.acknowledged.clear()
        self.pending[pending.id] = pending

        # The lock around the ZeroMQ socket is necessary in a multithreaded
        # application; otherwise, if two different threads both invoke
        # send_multipart(), the message parts can and will get mixed together.

        with self.socket_lock:
            self.socket.send_multipart(parts)

        ack = pending.wait_ack(self.timeout)

        if ack == False:
            raise zmq.ZMQError("no response received in %.2fs" % (self.timeout))


    def _next_id(self):
        return str(next(self.ids)).encode()


    def request(self, type, payload=None, timeout=None):
        """ Send a request and block until the REP arrives; return the
            response payload, raising the corresponding exception if the
            server reported an error.
        """

        pending = Pending(self._next_id())
        self.send(pending, type, payload)

        if pending.wait(timeout) == False:
            raise zmq.ZMQError("no %s response received in %.2fs" % (type, timeout))

        payload = pending.payload

        if payload is not None and 'error' in payload:
            raise_error(payload['error'])

        return payload


    def get(self, prefix=(), paths=(), type=message.GetType.ALL, cache_interval=0, timeout=None):
        request = message.GetRequest(prefix, list(paths), type, cache_interval)
        payload = self.request('GET', request, timeout)
        return message.GetResponse.from_dict(payload)


    def set(self, prefix=(), deletes=(), replaces=(), updates=(), timeout=None):
        request = message.SetRequest(prefix, list(deletes), list(replaces), list(updates))
        payload = self.request('SET', request, timeout)
        return message.SetResponse.from_dict(payload)


    def models(self, request=None, timeout=None):
        if request is None:
            request = message.GetModelsRequest()

        payload = self.request('MODELS', request, timeout)
        return message.GetModelsResponse.from_dict(payload).models


    def subscribe(self, request=None):
        """ Open a new subscription :class:`Stream`, sending *request* as the
            first message on it if one is provided.
        """

        stream = Stream(self, self._next_id())

        if request is not None:
            stream.put(request)
        else:
            self.pending[stream.id] = stream

        return stream


# end of class Client



class Server:
    """ Receive requests via a ZeroMQ ROUTER socket, and respond to them on
        behalf of a :class:`octarget.target.Target`. The default behavior is
        to listen for incoming requests on all interfaces, on the first
        available port in the default range. The *avoid* set enumerates port
        numbers that should not be automatically assigned; this is ignored
        if a fixed *port* is specified.

        :ivar hostname: The hostname on which this server can be contacted.
        :ivar port: The port on which this server is listening for connections.
    """

    def __init__(self, target, hostname=None, port=None, avoid=set(), worker_count=10):

        # The hostname is set and stored, but not used, as we are going to
        # listen on every available interface.

        if hostname is None:
            hostname = socket.getfqdn()

        self.target = target
        self.hostname = hostname
        self.socket = zmq_context.socket(zmq.ROUTER)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket_lock = threading.Lock()

        # If the port is set, use it; otherwise, look for the first available
        # port within the default range.

        if port is None:
            minimum = minimum_port
            maximum = maximum_port
        else:
            port = int(port)
            minimum = port
            maximum = port

        trial = minimum
        while trial <= maximum:
            if port is None and trial in avoid:
                trial += 1
                continue

            listen_address = 'tcp://*:' + str(trial)
            try:
                self.socket.bind(listen_address)
            except zmq.error.ZMQError:
                # Assume this port is in use.
                trial += 1
            else:
                break

        if trial > maximum:
            if port is None:
                error = "no ports available in range %d:%d" % (minimum, maximum)
            else:
                error = 'port already in use: ' + str(port)
            raise zmq.error.ZMQError(error)

        self.port = trial

        # Subscription streams, keyed by (ident, id).

        self.streams = dict()
        self.streams_lock = threading.Lock()

        # Multiple worker threads allow for a request to block until
        # completion without holding up the others. Stream requests are
        # handled directly by the receiving thread, since their order
        # matters and handing them to a session never blocks.

        self.queue = queue.SimpleQueue()

        self.shutdown = False
        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()

        self.workers = list()
        for thread_number in range(worker_count):
            thread = threading.Thread(target=self._worker_main)
            thread.daemon = True
            thread.start()
            self.workers.append(thread)


    def send(self, ident, id, type, payload=None):
        """ Fire off a single message to the client identified by *ident*.
        """

        parts = (ident,) + _frames(id, type, payload)

        # The lock around the ZeroMQ socket is necessary in a multithreaded
        # application; otherwise, if two different threads both invoke
        # send_multipart(), the message parts can and will get mixed together.

        with self.socket_lock:
            self.socket.send_multipart(parts)


    def req_ack(self, ident, id):
        """ Acknowledge the incoming request. The client is expecting an
            immediate ACK for all request types, including errors; this is
            how a client knows whether a target is online to respond to its
            request.
        """

        ack = dict()
        ack['time'] = time.time()

        self.send(ident, id, 'ACK', ack)


    def req_handler(self, ident, type, payload):
        """ Inspect the incoming request type and return the response
            payload.
        """

        target = self.target

        # Aliases belong to a subscription stream; Get and Set requests
        # arriving over the wire only ever see fully expanded paths.

        if type == 'GET':
            request = message.GetRequest.from_dict(payload)
            response = target.get(request.prefix, request.paths, request.type, request.cache_interval)
        elif type == 'SET':
            request = message.SetRequest.from_dict(payload)
            response = target.set(request.prefix, request.deletes, request.replaces, request.updates)
        elif type == 'MODELS':
            request = message.GetModelsRequest.from_dict(payload)
            response = message.GetModelsResponse(target.get_models(request))
        else:
            raise ValueError('unhandled request type: ' + type)

        return response.to_dict()


    def req_incoming(self, parts):
        """ All inbound requests are filtered through this method. It will
            parse the request, acknowledge it, and hand it off to
            :func:`req_handler` or :func:`stream_incoming` for further
            processing. Error handling is managed here; if the handler
            raises an exception it will be packaged up and returned to the
            client as an error.
        """

        ident = parts[0]
        their_version = parts[1]
        req_id = parts[2]

        if their_version != message.version:
            error = RuntimeError("message is octarget protocol %s, recipient is %s" % (repr(their_version), repr(message.version)))
            self.send(ident, req_id, 'REP', {'error': error_payload(error)})
            return

        req_type = parts[3].decode()
        payload = parts[4]

        self.req_ack(ident, req_id)

        try:
            if req_type not in request_types:
                raise ValueError('unknown request type: ' + repr(req_type))

            payload = json.unpack(payload)

            if payload is None:
                payload = dict()

            if req_type == 'SUBSCRIBE' or req_type == 'CANCEL':
                self.stream_incoming(ident, req_id, req_type, payload)
                return

            response = self.req_handler(ident, req_type, payload)

        except Exception as e:
            if isinstance(e, errors.TargetError):
                logger.debug("%s request failed: %r", req_type, e)
            else:
                logger.exception("%s request failed", req_type)

            response = dict()
            response['error'] = error_payload(e)

            if req_type == 'SUBSCRIBE':
                self._stream_failed(ident, req_id, e, response)
                return

        self.send(ident, req_id, 'REP', response)


    def stream_incoming(self, ident, id, type, payload):
        """ Feed a SUBSCRIBE request to the stream identified by *ident* and
            *id*, creating it if necessary; a CANCEL request closes it.
        """

        key = (ident, id)

        with self.streams_lock:
            session = self.streams.get(key)

            if type == 'CANCEL':
                if session is not None:
                    session.close(errors.Cancelled('stream cancelled by the client'))
                return

            request = message.SubscribeRequest.from_dict(payload)

            if session is None:
                session = self.target.subscribe(client=key)
                self.streams[key] = session

                thread = threading.Thread(target=self._forward, args=(ident, id, session))
                thread.daemon = True
                thread.start()

        session.put(request)


    def _forward(self, ident, id, session):
        """ Relay every response from *session* to the client, followed by
            an END message once the session closes.
        """

        for response in session:
            self.send(ident, id, 'STREAM', response)

        if session.error is None:
            payload = None
        else:
            payload = {'error': error_payload(session.error)}

        self._end(ident, id, payload)

        with self.streams_lock:
            if self.streams.get((ident, id)) is session:
                del self.streams[(ident, id)]


    def _end(self, ident, id, payload):
        self.send(ident, id, 'END', payload)


    def _stream_failed(self, ident, id, exception, response):
        """ A SUBSCRIBE request could not be handed to its session. If the
            stream is established, close it, and its forwarder will send the
            END; otherwise send the END directly.
        """

        with self.streams_lock:
            session = self.streams.get((ident, id))

        if session is None:
            self._end(ident, id, response)
            return

        if not isinstance(exception, errors.TargetError):
            exception = errors.TargetError(str(exception), errors.Code.INTERNAL)

        session.close(exception)


    def run(self):

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)

        while self.shutdown == False:
            sockets = poller.poll(1000)
            for active, flag in sockets:
                if self.socket == active:
                    parts = self.socket.recv_multipart()

                    # Stream requests are handled in arrival order.

                    if len(parts) == 5 and parts[3] in (b'SUBSCRIBE', b'CANCEL'):
                        self._safe_incoming(parts)
                    else:
                        self.queue.put(parts)


    def _safe_incoming(self, parts):
        try:
            self.req_incoming(parts)
        except Exception:
            logger.exception("failed to handle request")


    def _worker_main(self):
        """ This is the 'main' method for the worker threads responsible for
            handling incoming requests. The task of a worker thread is limited:
            receive a request, and feed it to :func:`req_incoming` for
            processing.
        """

        while self.shutdown == False:
            # The distribution of jobs is handled via a simple queue rather
            # than a ZeroMQ construct, as the overall throughput was higher.

            try:
                dequeued = self.queue.get(timeout=300)
            except queue.Empty:
                continue

            if dequeued is None:
                continue

            self._safe_incoming(dequeued)

        # self.shutdown is True. Ensure the queue has something in it to wake
        # up the other worker threads, having None in the queue too many times
        # is better than not having it there enough times.

        self.queue.put(None)


    def stop(self):

        self.shutdown = True
        self.queue.put(None)

        with self.streams_lock:
            sessions = list(self.streams.values())

        for session in sessions:
            session.close(errors.Cancelled('server is shutting down'))


# end of class Server



client_connections = dict()

def client(address, port):
    """ Factory function for a :class:`Client` instance. Use of this method is
        encouraged to streamline re-use of established connections.
    """

    try:
        instance = client_connections[(address, port)]
    except KeyError:
        instance = Client(address, port)
        client_connections[(address, port)] = instance

    return instance



def shutdown():
    client_connections.clear()


atexit.register(shutdown)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:

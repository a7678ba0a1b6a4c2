"""
Shares a single connection to the ECU between any number of callers.

The serial line to the ECU can only be opened once. The broker makes sure that the line is opened
and configured exactly once, and that every caller asking for the connection - before, during
or after that happens - receives the same connection, or the same error.

    connector = configure({'serial_path': '/dev/ttyUSB0', 'serial_opts': {'baudrate': 38400}})
    connection = connector(configure_elm327).result(timeout=10)
"""
import enum
import logging
import threading
from collections import deque
from collections.abc import Mapping
from concurrent.futures import Future

from obdserial.support.events import EventSource
from obdserial.transport.serial_transport import SerialTransport

logger = logging.getLogger(__name__)


class ConnectionBrokerError(Exception):
    """ base class for errors raised by the connection broker. """


class ConfigurationError(ConnectionBrokerError, ValueError):
    """ The broker was given invalid options or an invalid configure function. """


class EcuConnectionError(ConnectionBrokerError):
    """
    The connection to the ECU could not be established, either because the transport failed to open
    or because the configure function failed. The underlying error is available as __cause__.
    """

    def __init__(self, cause, message='failed to connect to ecu'):
        super().__init__("%s: %s" % (message, cause))
        self.__cause__ = cause


class BrokerResetError(ConnectionBrokerError):
    """ The broker was reset while a request was still waiting for the connection. """


class BrokerState(enum.Enum):
    IDLE = 'idle'
    OPENING = 'opening'
    CONFIGURING = 'configuring'
    READY = 'ready'
    FAILED = 'failed'


class Connection:
    """
    The connection shared by all callers of the broker.

    Data and errors reported by the transport once it is open are forwarded to the `data` and `errors`
    events. Errors on an open connection do not close it.
    """

    def __init__(self, transport):
        self.transport = transport
        self.ready = False
        self.data = EventSource('data')
        self.errors = EventSource('errors')

    def write(self, payload):
        self.transport.write(payload)

    def __repr__(self):
        return "Connection(%r, ready=%s)" % (self.transport, self.ready)


class PendingRequest:
    """ A caller waiting for the connection. """

    def __init__(self):
        self.future = Future()
        self.future.set_running_or_notify_cancel()

    def resolve(self, connection):
        self.future.set_result(connection)

    def reject(self, error):
        self.future.set_exception(error)


class RequestQueue:
    """ The requests waiting on the current connection attempt, in arrival order. """

    def __init__(self):
        self._requests = deque()

    def push(self, request: PendingRequest):
        self._requests.append(request)

    def drain(self):
        """
        Removes all waiting requests.
        :return: the requests in the order they arrived
        """
        requests = list(self._requests)
        self._requests.clear()
        return requests

    def __len__(self):
        return len(self._requests)


def validate_options(opts):
    """
    Checks the connection options.
    :raises ConfigurationError: naming the first field that is missing or has the wrong type.
    """
    if not isinstance(opts, Mapping):
        raise ConfigurationError("an options mapping must be provided to the connection broker")
    if not isinstance(opts.get('serial_path'), str):
        raise ConfigurationError("opts.serial_path should be a string provided to the connection broker")
    if not isinstance(opts.get('serial_opts'), Mapping):
        raise ConfigurationError("opts.serial_opts should be a mapping provided to the connection broker")


class ConnectionBroker:
    """
    Owns the connection, the requests waiting for it and the attempt to open and configure it.

    States move IDLE -> OPENING -> CONFIGURING -> READY. A failed attempt ends in FAILED, and the
    next request starts over with a new transport. No more than one attempt is in flight at a time.

    Transports may signal from a background thread, and connectors may be called from any thread.
    State changes happen under a lock; futures are completed after the lock is released.

    :param transport_factory: called with (serial_path, serial_opts) to create a Transport.
    """

    def __init__(self, transport_factory=SerialTransport, log=logger):
        self.transport_factory = transport_factory
        self.logger = log
        self._lock = threading.Lock()
        self._state = BrokerState.IDLE
        self._connection = None
        self._transport = None
        self._queue = RequestQueue()

    @property
    def state(self) -> BrokerState:
        return self._state

    @property
    def connection(self):
        """ the ready connection, or None. """
        conn = self._connection
        return conn if conn is not None and conn.ready else None

    @property
    def pending(self) -> int:
        return len(self._queue)

    def configure(self, opts):
        """
        Validates the connection options.
        :return: a connector function that takes a configure function and returns a Future for the connection.
        """
        validate_options(opts)
        serial_path = opts['serial_path']
        serial_opts = dict(opts['serial_opts'])

        def connector(configure_fn):
            return self.connect(serial_path, serial_opts, configure_fn)
        return connector

    def connect(self, serial_path, serial_opts, configure_fn) -> Future:
        """
        Requests the connection.

        :param configure_fn: called once with the connection after the transport opens. Must return a
            Future that completes when the connection is ready to use.
        :return: a Future resolved with the shared Connection, or failed with EcuConnectionError.
        """
        if not callable(configure_fn):
            raise ConfigurationError("you must provide a configure_fn that returns a Future")

        request = PendingRequest()
        with self._lock:
            conn = self._connection
            if conn is not None and conn.ready:
                self.logger.debug("returning existing connection instance")
                request.resolve(conn)
                return request.future

            self._queue.push(request)
            if self._state in (BrokerState.OPENING, BrokerState.CONFIGURING):
                self.logger.debug("connection attempt in progress, %d requests waiting" % len(self._queue))
                return request.future

            self.logger.debug("opening a serial connection to %s" % serial_path)
            try:
                transport = self.transport_factory(serial_path, serial_opts)
            except Exception as e:
                self._state = BrokerState.FAILED
                requests = self._queue.drain()
                error = EcuConnectionError(e)
            else:
                self._state = BrokerState.OPENING
                self._transport = transport
                self._connection = Connection(transport)
                requests = None

        if requests is not None:
            self.logger.error("error creating the transport for %s: %s" % (serial_path, error))
            for r in requests:
                r.reject(error)
            return request.future

        transport.opened.add(lambda: self._transport_opened(transport, configure_fn))
        transport.errors.add(self._open_error_handler(transport))
        try:
            transport.open()
        except Exception as e:
            self._attempt_failed(transport, e)
            return request.future
        if transport is not self._transport:
            # reset or failed while opening
            self._close(transport)
        return request.future

    def reset(self):
        """
        Returns the broker to IDLE, closing the transport and discarding the connection.
        Requests still waiting are failed with BrokerResetError.
        """
        with self._lock:
            transport = self._transport
            self._transport = None
            self._connection = None
            self._state = BrokerState.IDLE
            requests = self._queue.drain()

        if transport is not None:
            self._close(transport)
        for request in requests:
            request.reject(BrokerResetError("the connection broker was reset"))

    def _open_error_handler(self, transport):
        def on_open_error(e):
            transport.errors.remove(on_open_error)
            self._attempt_failed(transport, e)
        return on_open_error

    def _transport_opened(self, transport, configure_fn):
        with self._lock:
            if transport is not self._transport or self._state is not BrokerState.OPENING:
                return
            self._state = BrokerState.CONFIGURING
            conn = self._connection
            transport.errors.clear()
            transport.data.add(lambda payload: self._on_data(conn, payload))
            transport.errors.add(lambda e: self._on_error(conn, e))

        self.logger.debug("serial connection established, running configuration function")
        try:
            configured = configure_fn(conn)
            if not isinstance(configured, Future):
                raise ConfigurationError("configure_fn returned %r instead of a Future" % (configured,))
        except Exception as e:
            self._attempt_failed(transport, e)
            return
        configured.add_done_callback(lambda f: self._configuration_done(transport, f))

    def _configuration_done(self, transport, future):
        error = future.exception() if not future.cancelled() else ConnectionBrokerError("configuration cancelled")
        if error is not None:
            self._attempt_failed(transport, error)
            return

        with self._lock:
            if transport is not self._transport:
                return
            conn = self._connection
            conn.ready = True
            self._state = BrokerState.READY
            requests = self._queue.drain()

        self.logger.info("finished running configuration function, returning connection")
        for request in requests:
            request.resolve(conn)

    def _attempt_failed(self, transport, cause):
        with self._lock:
            if transport is not self._transport:
                return
            self._transport = None
            self._connection = None
            self._state = BrokerState.FAILED
            requests = self._queue.drain()

        error = EcuConnectionError(cause)
        self.logger.error("error establishing a serial connection: %s" % error)
        self._close(transport)
        for request in requests:
            request.reject(error)

    def _close(self, transport):
        try:
            transport.close()
        except Exception as e:
            self.logger.error("error closing %s: %s" % (transport, e))

    def _on_data(self, conn, payload):
        self.logger.debug("received obd data %s" % (payload,))
        conn.data.fire(payload)

    def _on_error(self, conn, e):
        self.logger.error("serial emitted an error %s" % e)
        conn.errors.fire(e)


_default_broker = ConnectionBroker()


def default_broker() -> ConnectionBroker:
    """ the broker shared by the whole process. """
    return _default_broker


def configure(opts):
    """
    Validates the connection options against the process-wide broker.
    :return: a connector function, see ConnectionBroker.configure
    """
    return default_broker().configure(opts)

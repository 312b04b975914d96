"""
The outbound stream to the listener: a TCP client socket with a simple lifecycle.

    NONE --start()--> CONNECTING --connected--> OPEN --close_write()--> CLOSED
                          |
                          +------ failed / close_write() ---------> CLOSED

The connect is performed on its own thread so that whoever starts the connection is never blocked.
ConnectionOpenedEvent or ConnectionFailedEvent is fired from that thread when the attempt completes.
"""
import logging
import socket
import threading
from enum import Enum

from debuglink.errors import ConnectionNotOpenError, ConnectionWriteError, ConnectionWriteTimeout, ConnectorError
from debuglink.support.events import EventSource

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5
WRITE_TIMEOUT = 5


class ConnectionState(Enum):
    NONE = 'none'
    CONNECTING = 'connecting'
    OPEN = 'open'
    CLOSED = 'closed'


class ConnectionEvent:
    """ base class for connection events. """
    def __init__(self, connection):
        self.connection = connection


class ConnectionOpenedEvent(ConnectionEvent):
    """ The connection was established and can be written to. """


class ConnectionFailedEvent(ConnectionEvent):
    """ The connection could not be established. """
    def __init__(self, connection, error):
        super().__init__(connection)
        self.error = error


class SocketConnection:
    """
    A TCP connection to a single address.
    Writes are made with a fixed timeout. The connection does not read from the socket.
    """

    def __init__(self, address, connect_timeout=CONNECT_TIMEOUT, write_timeout=WRITE_TIMEOUT):
        """
        :param address: the (host, port) tuple to connect to
        """
        self.address = address
        self.connect_timeout = connect_timeout
        self.write_timeout = write_timeout
        self.events = EventSource()
        self._state = ConnectionState.NONE
        self._sock = None
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def open(self) -> bool:
        return self._state is ConnectionState.OPEN

    def start(self):
        """ begins connecting on a background thread. """
        with self._lock:
            if self._state is not ConnectionState.NONE:
                return
            self._state = ConnectionState.CONNECTING
        t = threading.Thread(target=self._connect_in_background,
                             name='debuglink-connect-%s:%s' % self.address, daemon=True)
        t.start()

    def _connect_in_background(self):
        try:
            self._connect()
        except ConnectorError as e:
            self.events.fire(ConnectionFailedEvent(self, e))
        else:
            self.events.fire(ConnectionOpenedEvent(self))

    def _connect(self):
        try:
            sock = socket.create_connection(self.address, timeout=self.connect_timeout)
        except OSError as e:
            with self._lock:
                self._state = ConnectionState.CLOSED
            raise ConnectorError("error opening socket to %s:%s: %s" % (self.address + (e,))) from e

        with self._lock:
            if self._state is not ConnectionState.CONNECTING:
                _close_socket(sock)
                raise ConnectionNotOpenError("connection to %s:%s was closed while connecting" % self.address)
            sock.settimeout(self.write_timeout)
            self._sock = sock
            self._state = ConnectionState.OPEN
        logger.info("opened socket to %s:%s" % self.address)

    def write(self, frame: bytes):
        """
        Writes all of the frame to the socket, or raises ConnectionWriteError.
        """
        sock = self._sock
        if sock is None or not self.open:
            raise ConnectionNotOpenError("connection to %s:%s is %s" % (self.address + (self._state.value,)))
        try:
            sock.sendall(frame)
        except socket.timeout as e:
            raise ConnectionWriteTimeout("write to %s:%s timed out after %ss" %
                                         (self.address + (self.write_timeout,))) from e
        except OSError as e:
            raise ConnectionWriteError("write to %s:%s failed: %s" % (self.address + (e,))) from e

    def close_write(self):
        """
        Closes the write side of the socket and releases it. A connection still connecting is abandoned;
        its socket is closed as soon as the connect completes.
        """
        with self._lock:
            sock = self._sock
            self._sock = None
            self._state = ConnectionState.CLOSED
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_WR)
            except OSError:
                pass    # the peer may have closed the socket
            finally:
                sock.close()

    def __repr__(self):
        return "SocketConnection(%s:%s, %s)" % (self.address + (self._state.value,))


def _close_socket(sock):
    try:
        sock.close()
    except OSError as e:
        logger.debug("error closing socket: %s" % e)

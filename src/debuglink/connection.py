import logging

from debuglink.codec import encode_frame
from debuglink.connector.socketconn import ConnectionFailedEvent, ConnectionOpenedEvent, SocketConnection
from debuglink.errors import ConnectionWriteError, ConnectorError, SerializationError
from debuglink.package import serialize

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns the single outbound connection to the listener and the writes made through it.

    Opening a connection to a newly resolved service replaces the current one: the write side of the
    previous connection is closed before the new connection is started, so there is never more than one
    writer. Once the new connection opens, the pending queue is drained through it.

    Writes are best effort. A package that cannot be serialized is dropped quietly. A failed or timed out
    write loses its package and ends the connection: a timed out write may have sent part of its frame,
    and nothing more can be written after it. Packages sent afterwards wait in the pending queue for
    the next connection. Neither kind of failure is retried.

    Every method is expected to run on the executor's thread. Connection events, which arrive on the
    connect thread, are handed to the executor before they are acted on.

    :param pending: the PendingQueue drained when a connection opens
    :param executor: the SerialExecutor that owns this manager's state
    :param connection_factory: a callable taking an address and returning an unstarted connection
    """

    def __init__(self, pending, executor, connection_factory=SocketConnection):
        self.pending = pending
        self.executor = executor
        self._connection_factory = connection_factory
        self._connection = None

    @property
    def connection(self):
        return self._connection

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.open

    def open_connection(self, record):
        """
        Replaces the current connection with a new one to the record's address.
        :param record: a resolved ServiceRecord
        :return: the new connection, or None if the record has no address
        """
        address = record.address
        if address is None:
            logger.warning("service %s has no resolved address, not connecting" % record.name)
            return None
        self.close()
        connection = self._connection_factory(address)
        connection.events.add(self._connection_event)
        self._connection = connection
        logger.info("connecting to %s at %s:%s" % ((record.name,) + tuple(address)))
        connection.start()
        return connection

    def _connection_event(self, event):
        """ receives events from the connect thread. """
        self.executor.submit(self._handle_connection_event, event)

    def _handle_connection_event(self, event):
        connection = event.connection
        if connection is not self._connection:
            logger.debug("ignoring %s from replaced connection %r" % (type(event).__name__, connection))
            connection.close_write()
            return
        if isinstance(event, ConnectionOpenedEvent):
            count = self.drain()
            logger.info("connected to %s:%s, drained %d pending packages" % (tuple(connection.address) + (count,)))
        elif isinstance(event, ConnectionFailedEvent):
            logger.error("unable to connect: %s" % event.error)
            self._release()

    def drain(self):
        """
        writes every package in the pending queue. If the connection is lost part way through,
        the packages not yet written go back to the queue, in order.
        """
        return self.pending.drain_into(self._write_or_requeue)

    def _write_or_requeue(self, package):
        if self.connected:
            self.write(package)
        else:
            self.pending.enqueue(package)

    def write(self, package):
        """
        Serializes and writes a single package as one frame.
        :return: True if the frame was written
        """
        try:
            payload = serialize(package)
        except SerializationError as e:
            logger.debug("dropping package: %s" % e)
            return False

        connection = self._connection
        if connection is None:
            logger.error("no connection, package %r lost" % (package,))
            return False
        try:
            connection.write(encode_frame(payload))
        except ConnectionWriteError as e:
            logger.error("package %r lost, closing connection: %s" % (package, e))
            self.close()
            return False
        except ConnectorError as e:
            logger.error("package %r lost: %s" % (package, e))
            return False
        logger.debug("wrote %d byte payload" % len(payload))
        return True

    def close(self):
        """ closes the write side of the active connection, if any, and releases it. """
        connection = self._release()
        if connection is not None:
            connection.close_write()
            logger.info("closed connection to %s:%s" % tuple(connection.address))

    def _release(self):
        connection = self._connection
        self._connection = None
        if connection is not None:
            connection.events.remove(self._connection_event)
        return connection

"""
The public face of the transport.

    transport = NetServiceTransport()
    transport.start(Configuration('session-id', project_name='app', device_name='phone'))
    transport.send(RawPackage(b'...'))
    ...
    transport.stop()

start(), send() and stop() can be called from any thread and never raise.
"""
import logging
from abc import abstractmethod
from enum import Enum

from debuglink.connection import ConnectionManager
from debuglink.connector.socketconn import SocketConnection
from debuglink.discovery import SearchFailedEvent, SearchStartedEvent, SearchStoppedEvent, ServiceDiscovery, \
    ServiceEvent, ServiceFoundEvent, ServiceNotPublishedEvent, ServiceNotResolvedEvent, ServiceRemovedEvent, \
    ServiceResolvedEvent
from debuglink.package import Configuration, Serializable, build_connection_message
from debuglink.pending import PendingQueue
from debuglink.support.worker import SerialExecutor

logger = logging.getLogger(__name__)


class Transporter:
    """ Delivers packages to a listener for the duration of a session. """

    @abstractmethod
    def start(self, config: Configuration):
        raise NotImplementedError

    @abstractmethod
    def stop(self):
        raise NotImplementedError

    @abstractmethod
    def send(self, package: Serializable):
        raise NotImplementedError


class TransportState(Enum):
    STOPPED = 'stopped'
    SEARCHING = 'searching'
    CONNECTED = 'connected'


class NetServiceTransport(Transporter):
    """
    Finds the listener with zeroconf and streams packages to it over TCP.

    On start(), the handshake package for the session is placed at the head of the pending queue before the
    search begins, so it is the first frame written on whichever connection opens. Packages sent before a
    connection is open wait in the queue, in the order they were sent.

    Each newly resolved listener replaces the current connection. A listener that stops advertising itself
    does not close the connection; the listener process may still be running.
    A connection that fails a write is closed, and later packages wait in the queue for the next listener.

    Packages left in the pending queue when the transport is stopped are kept and delivered, after the new
    handshake, on the next connection. The unsent handshake of the stopped session is replaced.

    :param discovery the ServiceDiscovery used to find listeners
    :param handshake_factory a callable taking the Configuration and returning the handshake package
    :param connection_factory a callable taking an address and returning an unstarted connection
    """

    def __init__(self, discovery: ServiceDiscovery=None, handshake_factory=build_connection_message,
                 connection_factory=SocketConnection, executor: SerialExecutor=None):
        self.executor = executor or SerialExecutor()
        self.discovery = discovery or ServiceDiscovery()
        self.pending = PendingQueue()
        self.connections = ConnectionManager(self.pending, self.executor, connection_factory)
        self._handshake_factory = handshake_factory

    @property
    def state(self) -> TransportState:
        if self.connections.connected:
            return TransportState.CONNECTED
        if self.discovery.searching:
            return TransportState.SEARCHING
        return TransportState.STOPPED

    def start(self, config: Configuration):
        """
        Starts a new session, resetting any session in progress.
        Returns once the handshake is queued. The search continues in the background.
        """
        self.stop()
        self.executor.call(self._seed_handshake, config)
        self.executor.submit(self._start_discovery)

    def _seed_handshake(self, config):
        handshake = self._handshake_factory(config)
        self.pending.seed_handshake(handshake)
        logger.debug("queued handshake for session %s" % config.id)

    def _start_discovery(self):
        self.discovery.listeners.add(self._discovery_event)
        self.discovery.start()

    def send(self, package: Serializable):
        """ queues the package to be written, in order, once a connection is available. """
        self.executor.submit(self._send, package)

    def _send(self, package):
        if self.connections.connected and self.pending:
            self.connections.drain()
        if not self.connections.connected:
            logger.debug("not connected, queueing %r" % (package,))
            self.pending.enqueue(package)
            return
        self.connections.write(package)

    def stop(self):
        """ stops searching, forgets all discovered services and closes the connection. """
        self.executor.call(self._stop)

    def _stop(self):
        self.discovery.stop()
        self.discovery.listeners.remove(self._discovery_event)
        self.connections.close()

    def dispose(self):
        """ stops the transport and ends its background threads. The transport cannot be started again. """
        self.stop()
        self.discovery.dispose()
        self.executor.stop()

    def _discovery_event(self, event):
        """ receives events from the discovery threads """
        self.executor.submit(self._handle_discovery_event, event)

    def _handle_discovery_event(self, event):
        discovery = self.discovery
        if not discovery.current(event) or (isinstance(event, ServiceEvent) and not discovery.searching):
            logger.debug("ignoring %s from a previous search" % type(event).__name__)
            return

        if isinstance(event, ServiceFoundEvent):
            discovery.track(event.record)
            discovery.resolve(event.record)
        elif isinstance(event, ServiceResolvedEvent):
            if discovery.tracked(event.record):
                discovery.track(event.record)
                self.connections.open_connection(event.record)
            else:
                logger.debug("service %s was removed before it resolved" % event.record.name)
        elif isinstance(event, ServiceRemovedEvent):
            discovery.discard(event.record.name)
        elif isinstance(event, ServiceNotResolvedEvent):
            logger.error("did not resolve %s: %s" % (event.record.name, event.error))
        elif isinstance(event, ServiceNotPublishedEvent):
            logger.error("did not publish %s: %s" % (event.record.name, event.error))
        elif isinstance(event, SearchFailedEvent):
            logger.error("did not search: %s" % event.error)
        elif isinstance(event, (SearchStartedEvent, SearchStoppedEvent)):
            logger.debug("%s" % type(event).__name__)

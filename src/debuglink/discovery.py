"""
Discovery of the listener on the local network.

The listener advertises itself over multicast DNS as an instance of a well-known service type. The zeroconf
service browser reports instances as they appear and disappear; each one is then resolved to the addresses and
port it listens on.

Changes are posted as DiscoveryEvent instances through ServiceDiscovery.listeners:

- SearchStartedEvent, SearchStoppedEvent, SearchFailedEvent - the browse operation itself
- ServiceFoundEvent, ServiceRemovedEvent - a service instance appeared or disappeared
- ServiceResolvedEvent, ServiceNotResolvedEvent - the outcome of resolving an instance
- ServiceNotPublishedEvent - a service could not be published

Events are fired on zeroconf's browser thread or on a resolver thread. Listeners are expected to hand them
over to the thread that owns their state rather than act on them directly.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

from zeroconf import ServiceBrowser, Zeroconf

from debuglink.errors import DiscoveryError, ResolveError
from debuglink.support.events import EventSource
from debuglink.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

SERVICE_TYPE = '_debuglink._tcp'
SERVICE_DOMAIN = ''     # the default domain, i.e. the local network
RESOLVE_TIMEOUT = 30


def qualify_service_type(service_type, domain=''):
    """
    Builds the fully qualified name zeroconf browses for.

    >>> qualify_service_type('_debuglink._tcp')
    '_debuglink._tcp.local.'
    >>> qualify_service_type('_debuglink._tcp', 'example.')
    '_debuglink._tcp.example.'
    """
    domain = domain or 'local.'
    if not domain.endswith('.'):
        domain += '.'
    return service_type + '.' + domain


class ServiceRecord(CommonEqualityMixin, StringerMixin):
    """
    A service instance found on the network.
    Until it is resolved, a record has no addresses or port.
    """

    def __init__(self, name, type, domain, addresses=(), port=None, server=None):
        self.name = name
        self.type = type
        self.domain = domain
        self.addresses = list(addresses)
        self.port = port
        self.server = server

    @property
    def address(self):
        """ the (host, port) to connect to, or None if the record is not resolved. """
        if not self.addresses or self.port is None:
            return None
        return self.addresses[0], self.port

    def resolved(self, addresses, port, server=None):
        """ returns a copy of this record with the given resolved addresses and port. """
        return ServiceRecord(self.name, self.type, self.domain, addresses, port, server)


class DiscoveryState(Enum):
    IDLE = 'idle'
    SEARCHING = 'searching'


class DiscoveryEvent(CommonEqualityMixin, StringerMixin):
    """
    Notification from a ServiceDiscovery.
    :param source   the ServiceDiscovery that posted the event
    :param search   the number of the search that produced the event. Each call to start() begins a new search.
    """
    def __init__(self, source, search):
        self.source = source
        self.search = search


class SearchStartedEvent(DiscoveryEvent):
    """ The browser is about to search for services. """


class SearchStoppedEvent(DiscoveryEvent):
    """ The browser has stopped searching. """


class SearchFailedEvent(DiscoveryEvent):
    """ The browser could not search for services. """
    def __init__(self, source, search, error):
        super().__init__(source, search)
        self.error = error


class ServiceEvent(DiscoveryEvent):
    """ Notification about a single service instance. """
    def __init__(self, source, search, record, more_coming=False):
        super().__init__(source, search)
        self.record = record
        self.more_coming = more_coming


class ServiceFoundEvent(ServiceEvent):
    """ A service instance was found. """


class ServiceRemovedEvent(ServiceEvent):
    """ A service instance is no longer advertised. """


class ServiceResolvedEvent(ServiceEvent):
    """ A service instance was resolved. The record carries the addresses and port. """


class ServiceNotResolvedEvent(ServiceEvent):
    """ A service instance could not be resolved. """
    def __init__(self, source, search, record, error):
        super().__init__(source, search, record)
        self.error = error


class ServiceNotPublishedEvent(ServiceEvent):
    """ A service instance could not be published. """
    def __init__(self, source, search, record, error):
        super().__init__(source, search, record)
        self.error = error


class SearchListener:
    """
    Receives notifications from the zeroconf service browser for one search
    and translates them into discovery events.
    """
    def __init__(self, discovery, search):
        self.discovery = discovery
        self.search = search

    def _record(self, type_, name):
        return ServiceRecord(name, type_, self.discovery.domain)

    def add_service(self, zeroconf, type_, name):
        """ notification from the service browser that a service has been added """
        logger.info("service available: %s" % name)
        self.discovery.listeners.fire(ServiceFoundEvent(self.discovery, self.search, self._record(type_, name)))

    def remove_service(self, zeroconf, type_, name):
        """ notification from the service browser that a service has been removed """
        logger.info("service unavailable: %s" % name)
        self.discovery.listeners.fire(ServiceRemovedEvent(self.discovery, self.search, self._record(type_, name)))

    def update_service(self, zeroconf, type_, name):
        logger.debug("service updated: %s" % name)


class ServiceDiscovery:
    """
    Browses the local network for the listener's service and resolves the instances found.

    The set of known services is kept in `services`, keyed by service name. It is maintained by the owner
    of the discovery (through track() and discard()) on the owner's thread, in response to events.
    """

    def __init__(self, resolver_threads=2):
        self.service_type = SERVICE_TYPE
        self.domain = SERVICE_DOMAIN or 'local.'
        self.listeners = EventSource()
        self.services = {}
        self.state = DiscoveryState.IDLE
        self.search = 0
        self.zeroconf = None
        self.browser = None
        self._resolver_threads = resolver_threads
        self._resolver = None

    @property
    def searching(self) -> bool:
        return self.state is DiscoveryState.SEARCHING

    def _fire(self, event):
        self.listeners.fire(event)

    def start(self):
        """
        Starts searching for services. A failure to start is reported as a SearchFailedEvent and is not retried.
        :return: True if the search started
        """
        if self.searching:
            return True
        self.search += 1
        search = self.search
        fqn = qualify_service_type(self.service_type, SERVICE_DOMAIN)
        try:
            zeroconf = Zeroconf()
        except Exception as e:
            return self._search_failed(search, fqn, e)

        self.zeroconf = zeroconf
        self.state = DiscoveryState.SEARCHING
        logger.info("searching for zeroconf services of type %s" % fqn)
        self._fire(SearchStartedEvent(self, search))
        try:
            self.browser = ServiceBrowser(zeroconf, fqn, SearchListener(self, search))
        except Exception as e:
            self.zeroconf = None
            self.state = DiscoveryState.IDLE
            _close_zeroconf(zeroconf)
            return self._search_failed(search, fqn, e)
        return True

    def _search_failed(self, search, fqn, e):
        logger.error("could not search for services of type %s: %s" % (fqn, e))
        error = DiscoveryError("could not search for %s: %s" % (fqn, e))
        error.__cause__ = e
        self._fire(SearchFailedEvent(self, search, error))
        return False

    def stop(self):
        """ stops searching and discards all known services. """
        self.services.clear()
        if not self.searching:
            return
        browser, zeroconf = self.browser, self.zeroconf
        self.browser = self.zeroconf = None
        self.state = DiscoveryState.IDLE
        try:
            if browser is not None:
                browser.cancel()
        except Exception as e:
            logger.error("error cancelling service browser: %s" % e)
        finally:
            _close_zeroconf(zeroconf)
        logger.info("stopped searching for services of type %s" % self.service_type)
        self._fire(SearchStoppedEvent(self, self.search))

    def dispose(self):
        self.stop()
        if self._resolver is not None:
            self._resolver.shutdown(wait=False)
            self._resolver = None

    def track(self, record):
        """ adds or replaces a service in the set of known services. """
        self.services[record.name] = record

    def discard(self, name):
        """ removes a service from the set of known services, returning it, or None if it was unknown. """
        return self.services.pop(name, None)

    def tracked(self, record) -> bool:
        return record.name in self.services

    def current(self, event) -> bool:
        """ determines if the event belongs to the most recent search """
        return event.source is self and event.search == self.search

    def resolve(self, record, timeout=RESOLVE_TIMEOUT):
        """
        Resolves the addresses of a service on a resolver thread.
        The outcome is posted as a ServiceResolvedEvent or a ServiceNotResolvedEvent.
        :return: a Future for the resolution, or None if not searching
        """
        zeroconf = self.zeroconf
        if zeroconf is None:
            self._fire(ServiceNotResolvedEvent(self, self.search, record, ResolveError("not searching")))
            return None
        if self._resolver is None:
            self._resolver = ThreadPoolExecutor(max_workers=self._resolver_threads,
                                                thread_name_prefix='debuglink-resolve')
        return self._resolver.submit(self._resolve, zeroconf, self.search, record, timeout)

    def _resolve(self, zeroconf, search, record, timeout):
        try:
            info = zeroconf.get_service_info(record.type, record.name, timeout=int(timeout * 1000))
            addresses = info.parsed_addresses() if info is not None else []
        except Exception as e:
            error = ResolveError("error resolving %s: %s" % (record.name, e))
            error.__cause__ = e
            self._fire(ServiceNotResolvedEvent(self, search, record, error))
            return None

        if not addresses or not info.port:
            error = ResolveError("%s was not resolved within %ss" % (record.name, timeout))
            self._fire(ServiceNotResolvedEvent(self, search, record, error))
            return None
        resolved = record.resolved(addresses, info.port, info.server)
        logger.info("resolved %s to %s:%s" % (record.name, addresses[0], info.port))
        self._fire(ServiceResolvedEvent(self, search, resolved))
        return resolved


def _close_zeroconf(zeroconf):
    try:
        zeroconf.close()
    except Exception as e:
        logger.error("error closing zeroconf: %s" % e)

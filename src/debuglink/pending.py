import logging

logger = logging.getLogger(__name__)


class PendingQueue:
    """
    Packages waiting for a connection, in the order they are to be written.

    The head of the queue is reserved for the handshake package. Whenever one is seeded it is delivered
    before every other package, whatever the order in which packages were added.

    The queue is not thread-safe. It is owned by the transport's worker thread.
    """

    def __init__(self):
        self._handshake = None
        self._packages = []

    @property
    def handshake(self):
        """ the handshake package waiting to be sent, or None """
        return self._handshake

    def seed_handshake(self, package):
        """
        Places a handshake package at the head of the queue.
        A handshake still waiting from an earlier session is replaced.
        """
        if self._handshake is not None:
            logger.debug("replacing unsent handshake %r" % (self._handshake,))
        self._handshake = package

    def enqueue(self, package):
        """ appends a package to the tail of the queue. """
        self._packages.append(package)

    def clear(self):
        self._handshake = None
        self._packages = []

    def drain_into(self, sink):
        """
        Removes every queued package and passes each one to the sink, in delivery order.
        The queue is emptied before the first package is passed on, so packages enqueued by the sink
        wait for the next drain. An exception raised by the sink for one package is logged and the
        remaining packages are still delivered.
        :param sink a callable taking a single package
        :return: the number of packages passed to the sink
        """
        packages = self._take()
        for package in packages:
            try:
                sink(package)
            except Exception as e:
                logger.error("failed to deliver queued package %r: %s" % (package, e))
        return len(packages)

    def _take(self):
        packages = self._ordered()
        self._handshake = None
        self._packages = []
        return packages

    def _ordered(self):
        head = [self._handshake] if self._handshake is not None else []
        return head + self._packages

    def __iter__(self):
        return iter(self._ordered())

    def __len__(self):
        return len(self._packages) + (self._handshake is not None)

    def __bool__(self):
        return len(self) > 0

import unittest
from unittest.mock import Mock

from hamcrest import assert_that, contains_exactly, empty, is_, none

from debuglink.codec import encode_frame
from debuglink.connection import ConnectionManager
from debuglink.connector.socketconn import ConnectionFailedEvent, ConnectionOpenedEvent
from debuglink.discovery import ServiceRecord
from debuglink.errors import ConnectionNotOpenError, ConnectionWriteError, ConnectionWriteTimeout
from debuglink.package import RawPackage
from debuglink.pending import PendingQueue
from debuglink.support.events import EventSource


class FakeConnection:
    """ records the frames written and the calls made to it. """

    def __init__(self, address, log):
        self.address = address
        self.events = EventSource()
        self.open = False
        self.started = False
        self.closed = False
        self.frames = []
        self.log = log
        self.fail_with = None

    def start(self):
        self.started = True
        self.log.append(('start', self.address))

    def write(self, frame):
        if self.fail_with:
            raise self.fail_with
        self.frames.append(frame)

    def close_write(self):
        self.open = False
        self.closed = True
        self.log.append(('close_write', self.address))


class InlineExecutor:
    def submit(self, fn, *args, **kwargs):
        return fn(*args, **kwargs)


def record(name='svc', host='10.0.0.1', port=9090):
    return ServiceRecord(name, '_debuglink._tcp.local.', 'local.', [host], port)


class ConnectionManagerTest(unittest.TestCase):
    def setUp(self):
        self.log = []
        self.created = []
        self.pending = PendingQueue()
        self.sut = ConnectionManager(self.pending, InlineExecutor(), self.factory)

    def factory(self, address):
        connection = FakeConnection(address, self.log)
        self.created.append(connection)
        return connection

    def opened(self, connection):
        connection.open = True
        connection.events.fire(ConnectionOpenedEvent(connection))

    def test_not_connected_initially(self):
        assert_that(self.sut.connected, is_(False))
        assert_that(self.sut.connection, is_(none()))

    def test_open_connection_starts_connection(self):
        connection = self.sut.open_connection(record())
        assert_that(connection.address, is_(('10.0.0.1', 9090)))
        assert_that(connection.started, is_(True))
        assert_that(self.sut.connection, is_(connection))
        assert_that(self.sut.connected, is_(False))

    def test_unresolved_record_is_skipped(self):
        unresolved = ServiceRecord('svc', '_debuglink._tcp.local.', 'local.')
        assert_that(self.sut.open_connection(unresolved), is_(none()))
        assert_that(self.created, is_(empty()))

    def test_open_drains_pending_queue_in_order(self):
        self.pending.enqueue(RawPackage(b'p1'))
        self.pending.seed_handshake(RawPackage(b'H'))
        self.pending.enqueue(RawPackage(b'p2'))
        connection = self.sut.open_connection(record())
        assert_that(connection.frames, is_(empty()))

        self.opened(connection)
        assert_that(self.sut.connected, is_(True))
        assert_that(connection.frames, contains_exactly(encode_frame(b'H'), encode_frame(b'p1'), encode_frame(b'p2')))
        assert_that(len(self.pending), is_(0))

    def test_new_connection_closes_previous_write_side_first(self):
        first = self.sut.open_connection(record('a', '10.0.0.1'))
        self.opened(first)
        second = self.sut.open_connection(record('b', '10.0.0.2'))
        assert_that(self.log, contains_exactly(
            ('start', ('10.0.0.1', 9090)),
            ('close_write', ('10.0.0.1', 9090)),
            ('start', ('10.0.0.2', 9090))))
        assert_that(first.closed, is_(True))
        assert_that(self.sut.connection, is_(second))

    def test_replacing_a_connecting_connection(self):
        first = self.sut.open_connection(record('a', '10.0.0.1'))
        self.sut.open_connection(record('b', '10.0.0.2'))
        assert_that(first.closed, is_(True))

    def test_stale_open_event_is_ignored(self):
        first = self.sut.open_connection(record('a', '10.0.0.1'))
        second = self.sut.open_connection(record('b', '10.0.0.2'))
        self.pending.enqueue(RawPackage(b'p1'))
        self.sut._handle_connection_event(ConnectionOpenedEvent(first))
        assert_that(first.frames, is_(empty()))
        assert_that(len(self.pending), is_(1))
        self.opened(second)
        assert_that(second.frames, contains_exactly(encode_frame(b'p1')))

    def test_failed_connection_is_released(self):
        connection = self.sut.open_connection(record())
        connection.events.fire(ConnectionFailedEvent(connection, IOError("refused")))
        assert_that(self.sut.connection, is_(none()))
        assert_that(self.sut.connected, is_(False))

    def test_write_sends_one_frame(self):
        connection = self.sut.open_connection(record())
        self.opened(connection)
        assert_that(self.sut.write(RawPackage(b'payload')), is_(True))
        assert_that(connection.frames, contains_exactly(encode_frame(b'payload')))

    def test_write_drops_unserializable_package(self):
        connection = self.sut.open_connection(record())
        self.opened(connection)
        bad = Mock()
        bad.to_data.return_value = None
        assert_that(self.sut.write(bad), is_(False))
        assert_that(self.sut.write(RawPackage(b'next')), is_(True))
        assert_that(connection.frames, contains_exactly(encode_frame(b'next')))

    def test_write_timeout_ends_connection(self):
        connection = self.sut.open_connection(record())
        self.opened(connection)
        connection.fail_with = ConnectionWriteTimeout("timed out")
        assert_that(self.sut.write(RawPackage(b'lost')), is_(False))
        assert_that(connection.closed, is_(True))
        assert_that(self.sut.connection, is_(none()))
        assert_that(self.sut.connected, is_(False))
        assert_that(connection.events.handlers(), is_(empty()))

    def test_write_error_ends_connection(self):
        connection = self.sut.open_connection(record())
        self.opened(connection)
        connection.fail_with = ConnectionWriteError("broken pipe")
        assert_that(self.sut.write(RawPackage(b'lost')), is_(False))
        assert_that(connection.closed, is_(True))
        assert_that(self.sut.connected, is_(False))
        assert_that(connection.frames, is_(empty()))

    def test_write_not_open_keeps_connection(self):
        connection = self.sut.open_connection(record())
        connection.fail_with = ConnectionNotOpenError("connecting")
        assert_that(self.sut.write(RawPackage(b'early')), is_(False))
        assert_that(self.sut.connection, is_(connection))
        assert_that(connection.closed, is_(False))

    def test_drain_requeues_packages_after_lost_connection(self):
        connection = self.sut.open_connection(record())
        connection.fail_with = ConnectionWriteError("connection reset")
        self.pending.seed_handshake(RawPackage(b'H'))
        self.pending.enqueue(RawPackage(b'p1'))
        self.pending.enqueue(RawPackage(b'p2'))
        self.opened(connection)
        assert_that(self.sut.connected, is_(False))
        assert_that(list(self.pending), contains_exactly(RawPackage(b'p1'), RawPackage(b'p2')))

        replacement = self.sut.open_connection(record('b', '10.0.0.2'))
        self.opened(replacement)
        assert_that(replacement.frames, contains_exactly(encode_frame(b'p1'), encode_frame(b'p2')))

    def test_write_without_connection(self):
        assert_that(self.sut.write(RawPackage(b'x')), is_(False))

    def test_close(self):
        connection = self.sut.open_connection(record())
        self.opened(connection)
        self.sut.close()
        assert_that(connection.closed, is_(True))
        assert_that(self.sut.connection, is_(none()))
        assert_that(connection.events.handlers(), is_(empty()))

    def test_close_without_connection(self):
        self.sut.close()
        assert_that(self.sut.connection, is_(none()))


if __name__ == '__main__':
    unittest.main()

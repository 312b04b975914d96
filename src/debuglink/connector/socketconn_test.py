import socket
import threading
import unittest
from queue import Queue
from unittest.mock import Mock, patch

import timeout_decorator
from hamcrest import assert_that, calling, instance_of, is_, raises

from debuglink.codec import encode_frame
from debuglink.connector.socketconn import ConnectionFailedEvent, ConnectionOpenedEvent, ConnectionState, \
    SocketConnection
from debuglink.errors import ConnectionNotOpenError, ConnectionWriteError, ConnectionWriteTimeout, ConnectorError
from debuglink.support.worker_test import debug_timeout


def unused_address():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('127.0.0.1', 0))
    address = s.getsockname()
    s.close()
    return address


def read_all(sock):
    chunks = []
    while True:
        data = sock.recv(4096)
        if not data:
            return b''.join(chunks)
        chunks.append(data)


class SocketConnectionTest(unittest.TestCase):
    def setUp(self):
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.bind(('127.0.0.1', 0))
        self.server.listen(1)
        self.address = self.server.getsockname()

    def tearDown(self):
        self.server.close()

    def start(self, sut):
        events = Queue()
        sut.events.add(events.put)
        sut.start()
        return events.get(timeout=2)

    def test_new_connection(self):
        sut = SocketConnection(self.address)
        assert_that(sut.state, is_(ConnectionState.NONE))
        assert_that(sut.open, is_(False))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connect_write_and_close(self):
        sut = SocketConnection(self.address)
        event = self.start(sut)
        assert_that(event, is_(instance_of(ConnectionOpenedEvent)))
        assert_that(event.connection, is_(sut))
        assert_that(sut.state, is_(ConnectionState.OPEN))

        client, _ = self.server.accept()
        try:
            sut.write(encode_frame(b'first'))
            sut.write(encode_frame(b'second'))
            sut.close_write()
            assert_that(sut.state, is_(ConnectionState.CLOSED))
            assert_that(read_all(client), is_(encode_frame(b'first') + encode_frame(b'second')))
        finally:
            client.close()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connect_refused(self):
        sut = SocketConnection(unused_address())
        event = self.start(sut)
        assert_that(event, is_(instance_of(ConnectionFailedEvent)))
        assert_that(event.error, is_(instance_of(ConnectorError)))
        assert_that(sut.state, is_(ConnectionState.CLOSED))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_start_connects_once(self):
        sut = SocketConnection(self.address)
        self.start(sut)
        sut.start()
        assert_that(sut.state, is_(ConnectionState.OPEN))
        sut.close_write()

    def test_write_not_open(self):
        sut = SocketConnection(self.address)
        assert_that(calling(sut.write).with_args(b'data'), raises(ConnectionNotOpenError))

    def test_write_after_close(self):
        sut = SocketConnection(self.address)
        sut.close_write()
        assert_that(calling(sut.write).with_args(b'data'), raises(ConnectionNotOpenError))

    def open_with_socket(self, sock):
        sut = SocketConnection(self.address)
        sut._sock = sock
        sut._state = ConnectionState.OPEN
        return sut

    def test_write_timeout(self):
        sock = Mock()
        sock.sendall.side_effect = socket.timeout("timed out")
        sut = self.open_with_socket(sock)
        assert_that(calling(sut.write).with_args(b'data'), raises(ConnectionWriteTimeout))

    @timeout_decorator.timeout(debug_timeout(10))
    def test_write_times_out_when_peer_does_not_read(self):
        sut = SocketConnection(self.address, write_timeout=0.2)
        self.start(sut)
        client, _ = self.server.accept()
        try:
            assert_that(calling(sut.write).with_args(encode_frame(b'A' * 50000000)),
                        raises(ConnectionWriteTimeout, 'timed out after 0.2s'))
        finally:
            sut.close_write()
            client.close()

    def test_write_error(self):
        sock = Mock()
        sock.sendall.side_effect = BrokenPipeError("broken")
        sut = self.open_with_socket(sock)
        assert_that(calling(sut.write).with_args(b'data'), raises(ConnectionWriteError, "broken"))

    def test_close_write_shuts_down_write_side(self):
        sock = Mock()
        sut = self.open_with_socket(sock)
        sut.close_write()
        sock.shutdown.assert_called_once_with(socket.SHUT_WR)
        sock.close.assert_called_once()

    def test_close_write_when_peer_has_gone(self):
        sock = Mock()
        sock.shutdown.side_effect = OSError("not connected")
        sut = self.open_with_socket(sock)
        sut.close_write()
        sock.close.assert_called_once()
        assert_that(sut.state, is_(ConnectionState.CLOSED))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_close_while_connecting_abandons_socket(self):
        proceed = threading.Event()
        connecting = threading.Event()
        sock = Mock()

        def create_connection(address, timeout):
            connecting.set()
            proceed.wait(2)
            return sock

        sut = SocketConnection(self.address)
        events = Queue()
        sut.events.add(events.put)
        with patch('debuglink.connector.socketconn.socket.create_connection', side_effect=create_connection):
            sut.start()
            connecting.wait(2)
            assert_that(sut.state, is_(ConnectionState.CONNECTING))
            sut.close_write()
            proceed.set()
            event = events.get(timeout=2)

        assert_that(event, is_(instance_of(ConnectionFailedEvent)))
        assert_that(sut.state, is_(ConnectionState.CLOSED))
        sock.close.assert_called_once()
        sock.sendall.assert_not_called()


if __name__ == '__main__':
    unittest.main()

"""
The wire format: one frame per package.

    +----------------------------+------------------+
    | length: uint64 little-end. | payload (length) |
    +----------------------------+------------------+

There is no delimiter beyond the length. A receiver reads the 8 byte header, then exactly
`length` bytes of payload. No compression, no checksum.
"""
import struct

from debuglink.errors import FrameError

HEADER_FORMAT = '<Q'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


def encode_frame(payload) -> bytes:
    """
    Encodes a payload as a length-prefixed frame of exactly HEADER_SIZE + len(payload) bytes.

    >>> encode_frame(b'abc')
    b'\\x03\\x00\\x00\\x00\\x00\\x00\\x00\\x00abc'
    >>> encode_frame(b'')
    b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x00'
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise TypeError("frame payload must be bytes-like, not %s" % type(payload).__name__)
    payload = bytes(payload)
    return struct.pack(HEADER_FORMAT, len(payload)) + payload


def decode_header(header: bytes) -> int:
    """
    Decodes the payload length from a frame header.

    >>> decode_header(b'\\x05\\x01\\x00\\x00\\x00\\x00\\x00\\x00')
    261
    """
    if len(header) != HEADER_SIZE:
        raise FrameError("frame header must be %d bytes, got %d" % (HEADER_SIZE, len(header)))
    return struct.unpack(HEADER_FORMAT, header)[0]


def _read_exactly(stream, count):
    chunks = []
    remaining = count
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b''.join(chunks)


def read_frame(stream):
    """
    Reads one frame from a binary stream and returns the payload.
    This is the receiving side of encode_frame(), for listeners written in Python.
    :param stream: a file-like object opened for binary reading, e.g. from socket.makefile('rb')
    :return: the payload bytes, or None when the stream ends cleanly before a new frame
    """
    header = _read_exactly(stream, HEADER_SIZE)
    if not header:
        return None
    length = decode_header(header)
    payload = _read_exactly(stream, length)
    if len(payload) != length:
        raise FrameError("truncated frame: expected %d payload bytes, got %d" % (length, len(payload)))
    return payload

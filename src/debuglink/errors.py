"""
Exceptions raised inside the transport. None of these reach callers of the transport facade;
they are caught and logged where the component that raised them meets the worker thread.
"""


class TransportError(Exception):
    """ Base class for transport errors. """


class FrameError(TransportError):
    """ A frame could not be encoded or read from a stream. """


class SerializationError(TransportError):
    """ A package could not be converted to bytes. """


class ConnectorError(TransportError):
    """ Indicates an error condition with a connection. """


class ConnectionNotOpenError(ConnectorError):
    """ Indicates a connection is not open when an open connection is required. """


class ConnectionWriteError(ConnectorError):
    """ Writing a frame to the connection failed. """


class ConnectionWriteTimeout(ConnectionWriteError):
    """ Writing a frame did not complete within the write timeout. """


class DiscoveryError(TransportError):
    """ Browsing for or resolving a network service failed. """


class ResolveError(DiscoveryError):
    """ A discovered service could not be resolved to an address. """

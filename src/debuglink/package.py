"""
The units of data carried by the transport.

The transport does not look inside a package; it only asks it for its bytes. The one package the transport
builds itself is the handshake, which identifies the session to the listener and is always the first frame
written on a new connection.
"""
import json
import logging
from abc import abstractmethod

from debuglink import __version__
from debuglink.errors import SerializationError
from debuglink.support.mixins import CommonEqualityMixin

logger = logging.getLogger(__name__)


class Serializable:
    """ Anything that can be sent through the transport. """

    @abstractmethod
    def to_data(self):
        """
        Converts this package to the bytes sent as a frame payload.
        :return: the payload bytes, or None if the package cannot be serialized.
            Raising an exception is also treated as a serialization failure.
        """
        raise NotImplementedError


class RawPackage(Serializable, CommonEqualityMixin):
    """ a package whose payload is already encoded. """

    def __init__(self, data):
        self.data = bytes(data)

    def to_data(self):
        return self.data

    def __repr__(self):
        # the payload can be large and is never logged
        return "RawPackage(%d bytes)" % len(self.data)


def serialize(package: Serializable) -> bytes:
    """
    Retrieves the payload for a package.
    Raises SerializationError if the package returns None, something other than bytes, or raises.
    """
    try:
        data = package.to_data()
    except Exception as e:
        raise SerializationError("could not serialize %r: %s" % (package, e)) from e
    if data is None:
        raise SerializationError("%r produced no data" % (package,))
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise SerializationError("%r produced %s, expected bytes" % (package, type(data).__name__))
    return bytes(data)


class Configuration(CommonEqualityMixin):
    """
    Identifies a client session: a session identifier plus the project and device it runs on.
    The values are fixed when the configuration is created.
    """

    def __init__(self, id, project_name=None, device_name=None, metadata=None):
        if not id:
            raise ValueError("a configuration requires a session id")
        self._id = str(id)
        self._project_name = project_name
        self._device_name = device_name
        self._metadata = dict(metadata or {})

    @property
    def id(self) -> str:
        return self._id

    @property
    def project_name(self):
        return self._project_name

    @property
    def device_name(self):
        return self._device_name

    @property
    def metadata(self) -> dict:
        """ a copy of the free-form metadata describing the session """
        return dict(self._metadata)

    def __repr__(self):
        return "Configuration(id=%r, project_name=%r, device_name=%r)" % (
            self._id, self._project_name, self._device_name)


class ConnectionPackage(Serializable):
    """ The project and device description carried by the handshake. """

    def __init__(self, config: Configuration):
        self.config = config

    def to_dict(self):
        config = self.config
        return {
            'project': {'name': config.project_name},
            'device': {'name': config.device_name},
            'metadata': config.metadata,
        }

    def to_data(self):
        return json.dumps(self.to_dict(), sort_keys=True).encode('utf-8')


class Message(Serializable):
    """
    The JSON envelope understood by the listener.
    """
    CONNECTION = 'connection'

    def __init__(self, id, message_type, content, build_version=__version__):
        """
        :param id the session identifier the message belongs to
        :param message_type the kind of message, e.g. Message.CONNECTION
        :param content a ConnectionPackage or any other object providing to_dict()
        """
        self.id = id
        self.message_type = message_type
        self.content = content
        self.build_version = build_version

    def to_dict(self):
        return {
            'id': self.id,
            'messageType': self.message_type,
            'content': self.content.to_dict(),
            'buildVersion': self.build_version,
        }

    def to_data(self):
        try:
            return json.dumps(self.to_dict(), sort_keys=True).encode('utf-8')
        except (TypeError, ValueError) as e:
            logger.debug("cannot encode %s message %s: %s" % (self.message_type, self.id, e))
            return None

    def __repr__(self):
        return "Message(id=%r, message_type=%r)" % (self.id, self.message_type)


def build_connection_message(config: Configuration) -> Message:
    """ builds the handshake package for a session. """
    return Message(config.id, Message.CONNECTION, ConnectionPackage(config))

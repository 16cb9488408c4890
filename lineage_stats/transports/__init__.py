"""Transports - sinks receiving emitted lineage events."""

from .base import NoopTransport, SendResult, Transport
from .console import ConsoleTransport
from .file import FileTransport
from .http import HttpTransport
from .mongo import MongoTransport
from .registry import TransportRegistry, create_transport

__all__ = [
    "SendResult",
    "Transport",
    "NoopTransport",
    "ConsoleTransport",
    "FileTransport",
    "HttpTransport",
    "MongoTransport",
    "TransportRegistry",
    "create_transport",
]

"""Local transports of the state server: hook ingest and snapshot queries."""

from .errors import TransportError
from .http import HttpResponse, SnapshotServer
from .ingest import EventIngestListener, decode_event

__all__ = [
    "EventIngestListener",
    "HttpResponse",
    "SnapshotServer",
    "TransportError",
    "decode_event",
]

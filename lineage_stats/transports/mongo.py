"""MongoDB transport - stores events in a collection, one document per eventId."""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, PyMongoError

from ..models import Event
from .base import SendResult, Transport

__all__ = ["MongoTransport"]

logger = logging.getLogger(__name__)


class MongoTransport(Transport):
    """
    Upserts events keyed by eventId.

    Redelivery of the same event is a no-op thanks to ``$setOnInsert``, so
    the at-least-once sender never produces duplicate documents.
    Connection failures (including AutoReconnect and server selection
    timeouts) are retryable; any other driver error is fatal.
    """

    def __init__(
        self,
        connection_string: str,
        database: str,
        collection: str = "lineage_events",
        client: Optional[MongoClient] = None,
    ):
        self.connection_string = connection_string
        self.database = database
        self.collection_name = collection
        self._injected_client = client

    @cached_property
    def _client(self) -> MongoClient:
        if self._injected_client is not None:
            return self._injected_client
        return MongoClient(self.connection_string)

    def _get_collection(self) -> Collection:
        return self._client[self.database][self.collection_name]

    def send(self, event: Event) -> SendResult:
        document = event.to_wire()
        try:
            self._get_collection().update_one(
                {"eventId": document["eventId"]},
                {"$setOnInsert": document},
                upsert=True,
            )
        except ConnectionFailure as exc:
            logger.warning(f"MongoDB unavailable for event {event.event_id}: {exc}")
            return SendResult.RETRYABLE
        except PyMongoError as exc:
            logger.error(f"MongoDB rejected event {event.event_id}: {exc}")
            return SendResult.FATAL
        return SendResult.OK

    def close(self) -> None:
        if self._injected_client is None and "_client" in self.__dict__:
            self._client.close()

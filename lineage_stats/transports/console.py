"""Console transport - one log line per event."""

import json
import logging

from ..models import Event
from .base import SendResult, Transport

__all__ = ["ConsoleTransport"]


class ConsoleTransport(Transport):
    """
    Writes each event as a JSON log line.

    Attributes:
        logger_name: Logger the events are written to
        level: Log level of the event lines
    """

    def __init__(self, logger_name: str = "lineage_stats.events", level: int = logging.INFO):
        self.logger_name = logger_name
        self.level = level
        self._logger = logging.getLogger(logger_name)

    def send(self, event: Event) -> SendResult:
        self._logger.log(self.level, json.dumps(event.to_wire(), sort_keys=True))
        return SendResult.OK

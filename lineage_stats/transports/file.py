"""File transport - appends events to a JSON lines file."""

import json
import logging
import threading
from pathlib import Path
from typing import Union

from ..models import Event
from .base import SendResult, Transport

__all__ = ["FileTransport"]

logger = logging.getLogger(__name__)


class FileTransport(Transport):
    """
    Appends each event as one JSON line.

    The parent directory is created on first write. Write errors are
    retryable (disk full, transient mount failures).
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def send(self, event: Event) -> SendResult:
        line = json.dumps(event.to_wire(), sort_keys=True)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as exc:
            logger.warning(f"Failed to append event {event.event_id} to {self.path}: {exc}")
            return SendResult.RETRYABLE
        return SendResult.OK

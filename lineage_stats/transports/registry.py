# =============================================================================
# Transport Registry
# =============================================================================
# Scheme-based lookup from a transport target URI to a Transport instance.
# =============================================================================

from typing import Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..errors import TransportConfigError
from ..models import TransportSettings
from .base import NoopTransport, Transport
from .console import ConsoleTransport
from .file import FileTransport
from .http import HttpTransport
from .mongo import MongoTransport

__all__ = ["TransportRegistry", "create_transport"]


def _http(target: str, settings: TransportSettings) -> Transport:
    parts = urlsplit(target)
    if not parts.netloc:
        raise TransportConfigError(f"HTTP transport target has no host: '{target}'")
    return HttpTransport(
        url=target,
        api_key=settings.api_key,
        timeout=settings.timeout_seconds,
    )


def _file(target: str, settings: TransportSettings) -> Transport:
    parts = urlsplit(target)
    path = parts.path
    if parts.netloc and parts.netloc != "localhost":
        # file://relative/dir/events.jsonl
        path = f"{parts.netloc}{path}"
    if not path or path.endswith("/"):
        raise TransportConfigError(f"File transport target has no file name: '{target}'")
    return FileTransport(path)


def _mongodb(target: str, settings: TransportSettings) -> Transport:
    parts = urlsplit(target)
    database = parts.path.lstrip("/")
    if not parts.netloc or not database:
        raise TransportConfigError(
            f"MongoDB transport target must be 'mongodb://host/database': '{target}'"
        )

    options = parse_qsl(parts.query)
    collection = "lineage_events"
    driver_options = []
    for key, value in options:
        if key == "collection":
            collection = value
        else:
            driver_options.append((key, value))

    connection_string = urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(driver_options), "")
    )
    return MongoTransport(
        connection_string=connection_string,
        database=database,
        collection=collection,
    )


class TransportRegistry:
    """
    Registry of transport factories by target scheme.

    Factories receive the raw target and the transport settings and return a
    ready Transport, raising TransportConfigError for targets they cannot use.
    """

    _factories: dict[str, Callable[[str, TransportSettings], Transport]] = {
        "console": lambda target, settings: ConsoleTransport(),
        "noop": lambda target, settings: NoopTransport(),
        "http": _http,
        "https": _http,
        "file": _file,
        "mongodb": _mongodb,
        "mongodb+srv": _mongodb,
    }

    @classmethod
    def register(cls, scheme: str, factory: Callable[[str, TransportSettings], Transport]) -> None:
        cls._factories[scheme.lower()] = factory

    @classmethod
    def schemes(cls) -> list[str]:
        return sorted(cls._factories)

    @classmethod
    def create(cls, settings: TransportSettings) -> Transport:
        """
        Build the transport a target URI names.

        Bare words ("console", "noop") are accepted without "://".

        Raises:
            TransportConfigError: If the target is empty, unparseable or uses
                an unsupported scheme
        """
        target = (settings.target or "").strip()
        if not target:
            raise TransportConfigError("Transport target is empty")

        try:
            scheme = urlsplit(target).scheme.lower() if ":" in target else target.lower()
        except ValueError as exc:
            raise TransportConfigError(f"Cannot parse transport target '{target}': {exc}") from exc

        factory = cls._factories.get(scheme)
        if factory is None:
            raise TransportConfigError(
                f"Unsupported transport target '{target}'. "
                f"Supported schemes: {', '.join(cls.schemes())}"
            )
        return factory(target, settings)


def create_transport(settings: TransportSettings) -> Transport:
    """Build the transport configured by ``settings.target``."""
    return TransportRegistry.create(settings)

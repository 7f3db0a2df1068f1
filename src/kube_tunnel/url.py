"""Connection URL derivation and publication."""

import os
from collections.abc import MutableMapping

from .common.logging import get_logger
from .config import ENV_CONNECTION_URL
from .events import EventKind, EventSink, emit_event, make_event

logger = get_logger(__name__)


def derive_url(port: int) -> str:
    """Return the local URL a client should use for ``port``."""
    return f"http://localhost:{port}"


def publish_if_absent(existing_url: str | None, committed_port: int) -> str | None:
    """Return the URL to publish, or None when one is already configured."""
    if existing_url:
        return None
    return derive_url(committed_port)


class UrlPublisher:
    """Writes the derived connection URL into a shared mapping.

    A URL already present when the publisher is created, or written by
    anyone else afterwards, is explicit and is never overwritten.
    """

    def __init__(
        self,
        surface: MutableMapping[str, str] | None = None,
        key: str = ENV_CONNECTION_URL,
        sink: EventSink | None = None,
        configured_url: str | None = None,
    ):
        """Initialize the publisher.

        Args:
            surface: Mapping clients read the URL from; ``os.environ`` when None
            key: Name of the URL entry
            sink: Optional event sink
            configured_url: URL already present in the configuration snapshot,
                treated as explicit even when ``surface`` lacks it
        """
        self._surface: MutableMapping[str, str] = (
            os.environ if surface is None else surface
        )
        self.key = key
        self._sink = sink
        self._published: str | None = None
        self._configured = configured_url or None
        self._explicit = bool(self._configured or self._surface.get(key))

    @property
    def url(self) -> str | None:
        """The URL currently visible to clients."""
        return self._surface.get(self.key) or self._configured

    @property
    def published_url(self) -> str | None:
        """The last URL this publisher wrote, if any."""
        return self._published

    @property
    def is_explicit(self) -> bool:
        return self._explicit

    def publish(self, committed_port: int) -> str | None:
        """Publish the URL for ``committed_port`` unless an explicit one exists.

        Returns:
            The URL written, or None when nothing changed
        """
        current = self._surface.get(self.key)
        if current and current != self._published:
            if not self._explicit:
                logger.info("Connection URL set externally, not overriding", key=self.key)
            self._explicit = True
        if self._explicit:
            return None

        url = derive_url(committed_port)
        if url == current:
            return None

        self._surface[self.key] = url
        self._published = url
        emit_event(
            self._sink,
            make_event(
                EventKind.URL_PUBLISHED,
                f"Published connection URL {url}",
                key=self.key,
                url=url,
                port=committed_port,
            ),
        )
        return url

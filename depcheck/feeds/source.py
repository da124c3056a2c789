"""Feed sources: where the raw feed bytes for a feed id come from."""

from __future__ import annotations

import gzip
import re
import tempfile
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, BinaryIO, Callable, ContextManager, Iterator, List, Optional

import requests

from ..config import FeedSettings
from ..errors import FeedSourceError
from ..logging import get_logger

MODIFIED_FEED_ID = "modified"
_GZIP_MAGIC = b"\x1f\x8b"
_CHUNK_SIZE = 1 << 16


class FeedSource(ABC):
    """Contract for collaborators that supply raw feed documents."""

    @abstractmethod
    def feed_ids(self) -> List[str]:
        """Return the feed ids available from this source."""

    @abstractmethod
    def has_prior(self, feed_id: str) -> bool:
        """Return True when a prior-schema document exists for ``feed_id``."""

    @abstractmethod
    def open(self, feed_id: str, *, prior: bool = False) -> ContextManager[BinaryIO]:
        """Open the (decompressed) feed document as a binary stream."""


class HttpFeedSource(FeedSource):
    """Downloads feeds over HTTP into temporary files before parsing."""

    def __init__(
        self,
        settings: FeedSettings,
        *,
        session: Optional[requests.Session] = None,
        today: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.logger = get_logger("feeds.source")
        self._http = session or requests.Session()
        self._today = today or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep

    def feed_ids(self) -> List[str]:
        if self.settings.feeds:
            return list(self.settings.feeds)
        current_year = self._today().year
        years = [str(year) for year in range(self.settings.start_year, current_year + 1)]
        return years + [MODIFIED_FEED_ID]

    def url_for(self, feed_id: str, *, prior: bool = False) -> Optional[str]:
        if prior:
            if feed_id in self.settings.prior_feeds:
                return self.settings.prior_feeds[feed_id]
            if self.settings.feeds and feed_id in self.settings.feeds:
                return None
            template = self.settings.prior_url_template
            return template.format(feed_id=feed_id) if template else None
        if feed_id in self.settings.feeds:
            return self.settings.feeds[feed_id]
        return self.settings.url_template.format(feed_id=feed_id)

    def has_prior(self, feed_id: str) -> bool:
        return self.url_for(feed_id, prior=True) is not None

    @contextmanager
    def open(self, feed_id: str, *, prior: bool = False) -> Iterator[BinaryIO]:
        url = self.url_for(feed_id, prior=prior)
        if url is None:
            raise FeedSourceError(f"No {'prior ' if prior else ''}feed URL for '{feed_id}'")
        with tempfile.TemporaryFile(prefix="depcheck-feed-") as buffer:
            self._download(url, buffer)
            buffer.seek(0)
            with _decompressed(buffer) as stream:
                yield stream

    def _download(self, url: str, buffer: IO[bytes]) -> None:
        attempts = self.settings.retries + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            buffer.seek(0)
            buffer.truncate()
            try:
                self.logger.debug("Downloading %s (attempt %d/%d)", url, attempt, attempts)
                with self._http.get(url, stream=True, timeout=self.settings.timeout) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            buffer.write(chunk)
                return
            except requests.RequestException as exc:
                last_error = exc
                self.logger.warning(
                    "Download of %s failed (attempt %d/%d): %s", url, attempt, attempts, exc
                )
                if attempt < attempts:
                    self._sleep(min(2 ** attempt, 30))
        raise FeedSourceError(f"Unable to download {url}: {last_error}") from last_error


class DirectoryFeedSource(FeedSource):
    """Reads feeds from a local mirror directory.

    Current-schema files are named ``nvdcve-2.0-<id>.xml`` and prior-schema
    files ``nvdcve-<id>.xml``; either may be gzip compressed (``.gz``).
    """

    _CURRENT = re.compile(r"^nvdcve-2\.0-(?P<feed_id>[A-Za-z0-9_-]+)\.xml(?:\.gz)?$")

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def feed_ids(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        found = {
            match.group("feed_id")
            for match in (self._CURRENT.match(path.name) for path in self.directory.iterdir())
            if match
        }
        return sorted(found, key=lambda value: (value == MODIFIED_FEED_ID, value))

    def has_prior(self, feed_id: str) -> bool:
        return self._locate(f"nvdcve-{feed_id}.xml") is not None

    @contextmanager
    def open(self, feed_id: str, *, prior: bool = False) -> Iterator[BinaryIO]:
        stem = f"nvdcve-{feed_id}.xml" if prior else f"nvdcve-2.0-{feed_id}.xml"
        path = self._locate(stem)
        if path is None:
            raise FeedSourceError(f"Feed file {stem} not found in {self.directory}")
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise FeedSourceError(f"Unable to open {path}: {exc}") from exc
        with handle:
            with _decompressed(handle) as stream:
                yield stream

    def _locate(self, stem: str) -> Optional[Path]:
        for candidate in (self.directory / stem, self.directory / f"{stem}.gz"):
            if candidate.is_file():
                return candidate
        return None


@contextmanager
def _decompressed(handle: IO[bytes]) -> Iterator[BinaryIO]:
    start = handle.tell()
    magic = handle.read(2)
    handle.seek(start)
    if magic == _GZIP_MAGIC:
        with gzip.GzipFile(fileobj=handle, mode="rb") as stream:
            yield stream  # type: ignore[misc]
    else:
        yield handle  # type: ignore[misc]


__all__ = ["DirectoryFeedSource", "FeedSource", "HttpFeedSource", "MODIFIED_FEED_ID"]

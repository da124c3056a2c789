"""Periodic check for a newer depcheck release."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests

from ..errors import StoreError
from ..logging import get_logger
from ..stores.vulnerability_store import VulnerabilityStore
from ..versions import DependencyVersion, compare

VERSION_CHECK_PROPERTY = "VersionCheckOn"
CURRENT_RELEASE_PROPERTY = "CurrentEngineRelease"
KNOWN_RELEASE_INTERVAL = timedelta(days=30)
UNKNOWN_RELEASE_INTERVAL = timedelta(days=7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineVersionCheck:
    """Looks up the latest published release at most every few days.

    Bookkeeping lives in the properties table. Network and store failures
    are logged and never interrupt ingestion.
    """

    def __init__(
        self,
        store: VulnerabilityStore,
        current_version: str,
        url: Optional[str],
        *,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = _utcnow,
        timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.current_version = current_version
        self.url = url
        self.timeout = timeout
        self._http = session or requests.Session()
        self._clock = clock
        self.logger = get_logger("feeds.version_check")

    def check(self) -> bool:
        """Return False when a newer release than the running one is known."""
        try:
            release = self.store.get_property(CURRENT_RELEASE_PROPERTY)
            last_checked = _parse_epoch(self.store.get_property(VERSION_CHECK_PROPERTY))
            now = self._clock()
            interval = KNOWN_RELEASE_INTERVAL if release else UNKNOWN_RELEASE_INTERVAL
            if last_checked is None or now - last_checked > interval:
                fetched = self._fetch_release()
                if fetched:
                    release = fetched
                    self.store.save_property(CURRENT_RELEASE_PROPERTY, fetched)
                self.store.save_property(VERSION_CHECK_PROPERTY, str(int(now.timestamp())))
        except StoreError as exc:
            self.logger.debug("Skipping release check: %s", exc)
            return True

        if release and compare(self.current_version, release) < 0:
            self.logger.warning(
                "depcheck %s is available; you are running %s", release, self.current_version
            )
            return False
        return True

    def _fetch_release(self) -> Optional[str]:
        if not self.url:
            return None
        try:
            response = self._http.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            self.logger.debug("Unable to retrieve current release from %s: %s", self.url, exc)
            return None
        text = response.text.strip()
        if len(DependencyVersion.parse(text)) >= 3:
            return text
        self.logger.debug("Ignoring unexpected release text %r", text[:40])
        return None


def _parse_epoch(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


__all__ = [
    "CURRENT_RELEASE_PROPERTY",
    "EngineVersionCheck",
    "VERSION_CHECK_PROPERTY",
]

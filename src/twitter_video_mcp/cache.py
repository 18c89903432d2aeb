"""Per-account environment cache with bundle-version staleness checks.

Only the bundle URL, the auth token and the query-id map are persisted. The
live fields are always re-read, whether the record came from the store or
from a fresh scrape.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from .models import CachedEnvironmentRecord, Environment
from .scraper import EnvironmentScraper
from .store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "TWITTER_ENVIRONMENT"
VERSION_KEY = "__store_version__"


def record_key(identity: str) -> str:
    return KEY_PREFIX + identity


class EnvironmentCache:
    def __init__(self, store: KeyValueStore, scraper: EnvironmentScraper) -> None:
        self._store = store
        self._scraper = scraper

    async def load(self, identity: str) -> Optional[CachedEnvironmentRecord]:
        """Return the stored record for ``identity`` or None when absent.

        A record that no longer validates counts as absent so the caller
        rebuilds it from the live page. The discard is logged.
        """
        raw = await self._store.get(record_key(identity))
        if raw is None:
            return None
        try:
            return CachedEnvironmentRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable environment record for %s: %s", identity, e)
            return None

    async def persist(self, identity: str, record: CachedEnvironmentRecord) -> None:
        await self._store.set(record_key(identity), record.model_dump_json(by_alias=True))

    async def is_stale(self, record: CachedEnvironmentRecord) -> bool:
        """Compare the live bundle URL against the record (DOM probe only)."""
        return await self._scraper.locate_bundle_url() != record.bundle_url

    async def _rebuild(self, identity: str) -> Environment:
        env = await self._scraper.build()
        await self.persist(identity, env.record())
        return env

    async def ensure_fresh(self, identity: str) -> Environment:
        record = await self.load(identity)
        if record is None:
            logger.info("Environment under user ID %s not found; creating new environment", identity)
            return await self._rebuild(identity)
        if await self.is_stale(record):
            logger.info("Environment for %s is stale; new version of the web app was found", identity)
            return await self._rebuild(identity)
        logger.debug("Reusing stored environment for %s", identity)
        return await self._scraper.with_live_fields(record)


async def clear_on_upgrade(store: KeyValueStore, version: str) -> bool:
    """Clear the whole store when it was written by a different version.

    A store without a version marker is a fresh install and is kept. Returns
    True when the store was cleared.
    """
    previous = await store.get(VERSION_KEY)
    cleared = False
    if previous is not None and previous != version:
        logger.info("Version changed from %s to %s; clearing cached environments", previous, version)
        await store.clear()
        cleared = True
    if previous != version:
        await store.set(VERSION_KEY, version)
    return cleared

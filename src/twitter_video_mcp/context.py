"""Process-wide wiring of the privileged side.

:class:`BackgroundService` owns the scraper, the cache and the video query and
opens one :class:`SessionProtocol` per UI connection. :class:`ServerContext`
holds the lazily created singletons the MCP tools share.
"""

from __future__ import annotations

import logging
from typing import Optional

import anyio
import httpx

from .cache import EnvironmentCache, clear_on_upgrade
from .config import Settings, get_settings
from .popup import PopupClient, PopupResult
from .probe import PageProbe, PlaywrightPageProbe
from .protocol import Port, SessionProtocol, open_channel, status_url_pattern
from .scraper import EnvironmentScraper
from .store import JsonFileStore, KeyValueStore
from .video_query import VideoQuery

logger = logging.getLogger(__name__)


class BackgroundService:
    def __init__(
        self,
        probe: PageProbe,
        store: KeyValueStore,
        http: httpx.AsyncClient,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.probe = probe
        self.store = store
        self.http = http
        self.scraper = EnvironmentScraper(probe, http, self.settings)
        self.cache = EnvironmentCache(store, self.scraper)
        self.query = VideoQuery(http, self.settings)

    async def on_installed(self) -> bool:
        """Upgrade hook: drop every cached environment after a version change."""
        return await clear_on_upgrade(self.store, self.settings.EXTENSION_VERSION)

    def session(self, port: Port) -> SessionProtocol:
        return SessionProtocol(port, self.probe, self.scraper, self.cache, self.query, self.settings)

    async def run_popup(self, fetch_videos: bool = True) -> PopupResult:
        """Open a channel and run a full popup session against it."""
        ui_port, core_port = open_channel()
        async with anyio.create_task_group() as tg:
            tg.start_soon(self.session(core_port).serve)
            result = await PopupClient(ui_port, fetch_videos=fetch_videos).run()
        return result

    async def action_clicked(self, tab_url: str) -> Optional[PopupResult]:
        """Action icon entry point: same sequence as the popup, logged."""
        logger.info("clicked while on url: %s", tab_url)
        if status_url_pattern(self.settings.TWITTER_HOST).match(tab_url or "") is None:
            return None
        result = await self.run_popup()
        if result.error is not None:
            logger.error("Error %s: %s", result.error_name or "", result.error)
        elif result.info is not None:
            logger.info("%s", result.info)
        else:
            for video in result.videos:
                logger.info("%d bps %s", video.bitrate_bps, video.url)
        return result


class ServerContext:
    """Lazily created, shared resources for the MCP server."""

    _http: Optional[httpx.AsyncClient] = None
    _probe: Optional[PlaywrightPageProbe] = None
    _service: Optional[BackgroundService] = None
    _lock: Optional[anyio.Lock] = None

    @classmethod
    async def get_http(cls) -> httpx.AsyncClient:
        if cls._http is None:
            cls._http = httpx.AsyncClient(follow_redirects=True)
        return cls._http

    @classmethod
    async def get_service(cls) -> BackgroundService:
        if cls._lock is None:
            cls._lock = anyio.Lock()
        async with cls._lock:
            if cls._service is None:
                settings = get_settings()
                cls._probe = PlaywrightPageProbe()
                service = BackgroundService(
                    probe=cls._probe,
                    store=JsonFileStore(settings.STORE_PATH),
                    http=await cls.get_http(),
                    settings=settings,
                )
                await service.on_installed()
                cls._service = service
        return cls._service

    @classmethod
    async def close(cls) -> None:
        if cls._probe is not None:
            await cls._probe.close()
            cls._probe = None
        if cls._http is not None:
            await cls._http.aclose()
            cls._http = None
        cls._service = None
        cls._lock = None

"""Page probe: read-only access to the user's logged-in browser.

The scraper only needs three things from the browser: which tab is active on
the target site, which script URLs that tab loaded, and the cookie jar for the
target domain. :class:`PageProbe` is that boundary; :class:`PlaywrightPageProbe`
implements it by attaching to a running Chrome over the DevTools protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Browser, Page, Playwright, async_playwright

from .config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tab:
    id: str
    url: str


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str


class PageProbe(Protocol):
    async def active_tab(self) -> Optional[Tab]:
        """Return the active tab on the target domain, or None."""
        ...

    async def script_sources(self, tab: Tab) -> List[str]:
        """Return absolute ``src`` URLs of every script element in ``tab``."""
        ...

    async def cookies(self) -> List[Cookie]:
        """Return the cookies scoped to the target domain."""
        ...


def script_sources_from_html(html: str, base_url: str = "") -> List[str]:
    """Collect script ``src`` attributes from an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    return [urljoin(base_url, tag["src"]) for tag in soup.find_all("script", src=True)]


def host_matches(url: str, host: str) -> bool:
    """True for ``host`` itself and any of its subdomains (``*.host``)."""
    hostname = urlparse(url).hostname or ""
    return hostname == host or hostname.endswith("." + host)


_FOCUS_SCRIPT = "() => ({visible: document.visibilityState === 'visible', focused: document.hasFocus()})"


class PlaywrightPageProbe:
    """PageProbe over a Chrome instance exposed at ``BROWSER_CDP_URL``."""

    def __init__(self, cdp_url: Optional[str] = None, host: Optional[str] = None) -> None:
        settings = get_settings()
        self._cdp_url = cdp_url or settings.BROWSER_CDP_URL
        self._host = host or settings.TWITTER_HOST
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._pages: Dict[str, Page] = {}

    async def _ensure_playwright(self) -> Playwright:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    async def get_browser(self) -> Browser:
        """Attach to the user's browser, reusing a live connection."""
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        if self._browser is not None:
            logger.info("Browser at %s disconnected, reattaching", self._cdp_url)
            self._browser = None
            self._pages.clear()

        playwright = await self._ensure_playwright()
        logger.info("Attaching to browser at %s", self._cdp_url)
        self._browser = await playwright.chromium.connect_over_cdp(self._cdp_url)
        return self._browser

    async def active_tab(self) -> Optional[Tab]:
        browser = await self.get_browser()
        visible: Optional[Tab] = None
        for ci, context in enumerate(browser.contexts):
            for pi, page in enumerate(context.pages):
                if page.is_closed() or not host_matches(page.url, self._host):
                    continue
                tab = Tab(id=f"{ci}:{pi}", url=page.url)
                self._pages[tab.id] = page
                state = await page.evaluate(_FOCUS_SCRIPT)
                if state.get("focused"):
                    return tab
                if visible is None and state.get("visible"):
                    visible = tab
        if visible is None:
            logger.debug("No visible %s tab in attached browser", self._host)
        return visible

    async def script_sources(self, tab: Tab) -> List[str]:
        page = self._pages.get(tab.id)
        if page is None or page.is_closed():
            return []
        return script_sources_from_html(await page.content(), page.url)

    async def cookies(self) -> List[Cookie]:
        browser = await self.get_browser()
        if not browser.contexts:
            return []
        raw = await browser.contexts[0].cookies([f"https://{self._host}"])
        return [Cookie(name=c["name"], value=c["value"]) for c in raw]

    async def close(self) -> None:
        """Detach from the browser and stop Playwright.

        Closing a CDP-attached browser only drops the connection; the user's
        tabs stay open.
        """
        self._pages.clear()
        if self._browser is not None:
            try:
                await self._browser.close()
            finally:
                self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            finally:
                self._playwright = None

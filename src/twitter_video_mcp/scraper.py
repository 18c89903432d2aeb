"""Reconstruct a request-capable :class:`Environment` from the live web app.

The auth token and the GraphQL query ids are not published anywhere; they are
string literals inside the versioned ``main.<build>.js`` bundle. The CSRF token
and the cookie header come from the browser's cookie jar at use time.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

import httpx

from .config import Settings, get_settings
from .errors import TwitterFailure
from .models import CachedEnvironmentRecord, Environment
from .probe import PageProbe

logger = logging.getLogger(__name__)

AUTH_TOKEN_RE = re.compile(r'"Bearer (AAAAAAA[\w%]+)"')
QUERY_ID_RE = re.compile(r'queryId:"([a-zA-Z0-9\-_]+)",operationName:"(\w+)"')

IDENTITY_COOKIE = "twid"
CSRF_COOKIE = "ct0"


def bundle_url_pattern(cdn: str) -> re.Pattern[str]:
    return re.compile(
        "^" + re.escape(cdn.rstrip("/")) + r"/responsive-web/client-web/main\.([0-9a-z]+)\.js$"
    )


def extract_auth_token(bundle_contents: str) -> str:
    m = AUTH_TOKEN_RE.search(bundle_contents)
    if m is None:
        raise TwitterFailure.app_structure_changed("failure to find auth token in main.xxxxx.js")
    return m.group(1)


def extract_query_ids(bundle_contents: str) -> Dict[str, str]:
    """Map operation name -> query id; a later declaration of a name wins."""
    return {op: qid for qid, op in QUERY_ID_RE.findall(bundle_contents)}


class EnvironmentScraper:
    """Scrapes an :class:`Environment` through a page probe and one bundle GET."""

    def __init__(
        self,
        probe: PageProbe,
        http: httpx.AsyncClient,
        settings: Optional[Settings] = None,
    ) -> None:
        self._probe = probe
        self._http = http
        self._settings = settings or get_settings()
        self._bundle_re = bundle_url_pattern(self._settings.TWITTER_BUNDLE_CDN)

    async def locate_bundle_url(self) -> str:
        tab = await self._probe.active_tab()
        if tab is None:
            raise TwitterFailure.tab_not_found("locate_bundle_url")
        for src in await self._probe.script_sources(tab):
            if self._bundle_re.match(src):
                logger.debug("Bundle located in tab %s: %s", tab.id, src)
                return src
        raise TwitterFailure.app_structure_changed(
            'Failure to locate the DOM script element anchoring the "main.xxxxxxx.js"'
        )

    async def fetch_bundle_contents(self, bundle_url: str) -> str:
        # Unauthenticated: no cookies, only the referrer the page would send.
        resp = await self._http.get(
            bundle_url,
            headers={"referer": self._settings.twitter_origin + "/"},
        )
        if resp.status_code // 100 != 2:
            raise TwitterFailure.network(
                f"Fetch of main.js fails with status {resp.status_code}: {resp.reason_phrase}"
            )
        return resp.text

    def parse_bundle_version(self, bundle_url: str) -> str:
        m = self._bundle_re.match(bundle_url)
        if m is None:
            logger.warning('failure to parse out version number from main.js url "%s"', bundle_url)
            raise TwitterFailure.app_structure_changed(
                "Regex to parse out version from main.(xxxxxxx).js fails."
            )
        return m.group(1)

    async def _cookie(self, name: str) -> Optional[str]:
        for cookie in await self._probe.cookies():
            if cookie.name == name:
                return cookie.value
        return None

    async def fetch_identity(self) -> str:
        """Return the account identity (the ``twid`` cookie)."""
        twid = await self._cookie(IDENTITY_COOKIE)
        if not twid:
            raise TwitterFailure.not_logged_in()
        return twid

    async def fetch_csrf_token(self) -> str:
        token = await self._cookie(CSRF_COOKIE)
        if not token:
            raise TwitterFailure.not_logged_in()
        return token

    async def fetch_cookie_header(self) -> str:
        cookies = await self._probe.cookies()
        if not any(c.name == CSRF_COOKIE for c in cookies):
            raise TwitterFailure.not_logged_in()
        return "; ".join(f"{c.name}={c.value}" for c in cookies)

    async def with_live_fields(self, record: CachedEnvironmentRecord) -> Environment:
        """Attach freshly read CSRF token and cookie header to a stored record."""
        csrf_token = await self.fetch_csrf_token()
        cookie_header = await self.fetch_cookie_header()
        return Environment(
            bundle_url=record.bundle_url,
            auth_token=record.auth_token,
            query_ids_by_operation=dict(record.query_ids_by_operation),
            csrf_token=csrf_token,
            cookie_header=cookie_header,
        )

    async def build(self) -> Environment:
        """Scrape a complete environment; any failing step propagates."""
        bundle_url = await self.locate_bundle_url()
        logger.info("Building environment from bundle version %s", self.parse_bundle_version(bundle_url))
        contents = await self.fetch_bundle_contents(bundle_url)
        auth_token = extract_auth_token(contents)
        query_ids = extract_query_ids(contents)
        logger.info("Found %d GraphQL operations in bundle", len(query_ids))
        record = CachedEnvironmentRecord(
            bundle_url=bundle_url,
            auth_token=auth_token,
            query_ids_by_operation=query_ids,
        )
        return await self.with_live_fields(record)

"""Pytest configuration and fixtures.

Nothing here touches the network or a browser: HTTP goes through
``httpx.MockTransport`` and the page probe is an in-memory fake.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from twitter_video_mcp.config import Settings
from twitter_video_mcp.context import BackgroundService
from twitter_video_mcp.probe import Cookie, Tab, host_matches
from twitter_video_mcp.store import MemoryStore

pytest_plugins = ("pytest_asyncio",)

BUNDLE_URL = "https://abs.twimg.com/responsive-web/client-web/main.4722fff5.js"
NEW_BUNDLE_URL = "https://abs.twimg.com/responsive-web/client-web/main.9c0ffee1.js"
AUTH_TOKEN = "AAAAAAAAAAAAAAAAAAAAANRILgAAAAAAnNwIzUejRCOuH5E6I8xnZz4puTs%3D1Zv7ttfk8LF81IUq16cHjhLTvJu4FA33AGWWjCpTnA"
TWEET_DETAIL_QID = "xOhkmRac04YFZmOzU9PJHg"
STATUS_URL = "https://twitter.com/jack/status/20"

BUNDLE_BODY = (
    '(()=>{var e={};e.exports={queryId:"'
    + TWEET_DETAIL_QID
    + '",operationName:"TweetDetail",operationType:"query",metadata:{}};'
    + 'const n="Bearer '
    + AUTH_TOKEN
    + '";e.exports={queryId:"G3KGOASz96M-Qu0nwmGXNg",operationName:"UserByScreenName",'
    + 'operationType:"query"};})();'
)

DEFAULT_COOKIES = {"twid": "u%3D123456", "ct0": "csrf-abc", "auth_token": "sess-xyz"}


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "TWITTER_HOST": "twitter.com",
        "TWITTER_BUNDLE_CDN": "https://abs.twimg.com",
        "USER_AGENT": "pytest-agent",
    }
    values.update(overrides)
    return Settings(**values)


class FakePageProbe:
    """PageProbe over a single tab and a cookie dict."""

    def __init__(
        self,
        tab_url: Optional[str] = STATUS_URL,
        scripts: Optional[List[str]] = None,
        cookies: Optional[Dict[str, str]] = None,
        host: str = "twitter.com",
    ) -> None:
        self.tab_url = tab_url
        self.scripts = [BUNDLE_URL] if scripts is None else scripts
        self.cookie_values = dict(DEFAULT_COOKIES if cookies is None else cookies)
        self.host = host
        self.script_calls = 0

    async def active_tab(self) -> Optional[Tab]:
        if not self.tab_url or not host_matches(self.tab_url, self.host):
            return None
        return Tab(id="0:0", url=self.tab_url)

    async def script_sources(self, tab: Tab) -> List[str]:
        self.script_calls += 1
        return [
            "https://abs.twimg.com/responsive-web/client-web/vendor.1a2b3c4d.js",
            *self.scripts,
        ]

    async def cookies(self) -> List[Cookie]:
        return [Cookie(name=k, value=v) for k, v in self.cookie_values.items()]


def video_node(variants: List[Dict[str, Any]], aspect=(16, 9), poster="https://pbs.twimg.com/poster.jpg") -> Dict[str, Any]:
    return {
        "type": "video",
        "media_url_https": poster,
        "video_info": {"aspect_ratio": list(aspect), "duration_millis": 1000, "variants": variants},
    }


def tweet_detail_payload(media: List[Dict[str, Any]]) -> Dict[str, Any]:
    """A TweetDetail response shaped like the web client receives it."""
    legacy: Dict[str, Any] = {"full_text": "look", "id_str": "20"}
    if media:
        legacy["extended_entities"] = {"media": media}
    return {
        "data": {
            "threaded_conversation_with_injections_v2": {
                "instructions": [
                    {
                        "type": "TimelineAddEntries",
                        "entries": [
                            {
                                "entryId": "tweet-20",
                                "content": {
                                    "entryType": "TimelineTimelineItem",
                                    "itemContent": {
                                        "itemType": "TimelineTweet",
                                        "tweet_results": {
                                            "result": {
                                                "__typename": "Tweet",
                                                "rest_id": "20",
                                                "legacy": legacy,
                                            }
                                        },
                                    },
                                },
                            }
                        ],
                    }
                ]
            }
        }
    }


class FakeTwitter:
    """Routes bundle and GraphQL requests; records every request it sees."""

    def __init__(self) -> None:
        self.bundles: Dict[str, str] = {BUNDLE_URL: BUNDLE_BODY, NEW_BUNDLE_URL: BUNDLE_BODY}
        self.bundle_status = 200
        self.graphql_status = 200
        self.graphql_body: Any = tweet_detail_payload(
            [video_node([{"content_type": "video/mp4", "bitrate": 832000, "url": "https://video.twimg.com/v/832.mp4?tag=12"}])]
        )
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.url.host == "abs.twimg.com":
            body = self.bundles.get(url)
            if body is None or self.bundle_status != 200:
                return httpx.Response(404 if body is None else self.bundle_status, text="")
            return httpx.Response(200, text=body)
        if "/i/api/graphql/" in url:
            if isinstance(self.graphql_body, str):
                return httpx.Response(self.graphql_status, text=self.graphql_body)
            return httpx.Response(self.graphql_status, content=json.dumps(self.graphql_body).encode())
        if request.url.host == "video.twimg.com":
            return httpx.Response(200, content=b"\x00\x00\x00\x18ftypmp42")
        return httpx.Response(404)

    def count(self, predicate: Callable[[httpx.Request], bool]) -> int:
        return sum(1 for r in self.requests if predicate(r))

    @property
    def bundle_fetches(self) -> int:
        return self.count(lambda r: r.url.host == "abs.twimg.com")


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def probe() -> FakePageProbe:
    return FakePageProbe()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def twitter() -> FakeTwitter:
    return FakeTwitter()


@pytest_asyncio.fixture
async def http(twitter: FakeTwitter):
    async with httpx.AsyncClient(transport=httpx.MockTransport(twitter)) as client:
        yield client


@pytest.fixture
def service(probe, store, http, settings) -> BackgroundService:
    return BackgroundService(probe=probe, store=store, http=http, settings=settings)

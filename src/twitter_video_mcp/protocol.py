"""Message channel between the UI and the privileged service, and the
per-connection state machine that serves it.

The environment is never kept server-side between messages: setup hands the
record back to the UI, which sends it again with its video request.
"""

from __future__ import annotations

import logging
import math
import re
from enum import StrEnum
from typing import Any, Dict, Optional, Tuple, Union

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import BaseModel, ValidationError

from .cache import EnvironmentCache
from .config import Settings, get_settings
from .errors import FailureKind, TwitterFailure
from .models import (
    CachedEnvironmentRecord,
    InfoName,
    RequestTwitterVideos,
    SessionMessage,
    SetupTwitterEnvironment,
    dump_message,
    error_message,
    info_message,
    is_known_type,
    parse_message,
    setup_complete,
    videos_received,
)
from .probe import PageProbe
from .scraper import EnvironmentScraper
from .video_query import VideoQuery

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class Port:
    """One end of a bidirectional message channel.

    Iterating a port yields raw ``{type, payload}`` dicts until the peer
    disconnects. Posting to a disconnected peer is dropped.
    """

    def __init__(
        self,
        name: str,
        send: MemoryObjectSendStream,
        receive: MemoryObjectReceiveStream,
    ) -> None:
        self.name = name
        self._send = send
        self._receive = receive

    async def post(self, message: Union[BaseModel, Dict[str, Any]]) -> None:
        data = dump_message(message) if isinstance(message, BaseModel) else message
        try:
            await self._send.send(data)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug("%s: peer disconnected, dropping %s", self.name, data.get("type"))

    async def disconnect(self) -> None:
        await self._send.aclose()
        await self._receive.aclose()

    def __aiter__(self) -> "Port":
        return self

    async def __anext__(self) -> Dict[str, Any]:
        try:
            return await self._receive.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            raise StopAsyncIteration


def open_channel() -> Tuple[Port, Port]:
    """Return a connected ``(ui_port, core_port)`` pair."""
    to_core_send, to_core_receive = anyio.create_memory_object_stream(math.inf)
    to_ui_send, to_ui_receive = anyio.create_memory_object_stream(math.inf)
    ui_port = Port("ui", to_core_send, to_ui_receive)
    core_port = Port("core", to_ui_send, to_core_receive)
    return ui_port, core_port


# ---------------------------------------------------------------------------
# Failure -> signal translation
# ---------------------------------------------------------------------------

_INFO_BY_KIND = {
    FailureKind.TAB_NOT_FOUND: InfoName.TAB_NOT_FOUND,
    FailureKind.NOT_LOGGED_IN: InfoName.NOT_LOGGED_IN,
}


def signal_for(exc: Exception) -> SessionMessage:
    """Map any failure to the info/error signal the UI understands."""
    if isinstance(exc, TwitterFailure):
        info_name = _INFO_BY_KIND.get(exc.kind)
        if info_name is not None:
            return info_message(info_name)
        if exc.kind is FailureKind.APP_STRUCTURE_CHANGED:
            return error_message(exc.kind.value, exc.message)
    return error_message(None, str(exc) or type(exc).__name__)


def status_url_pattern(host: str) -> re.Pattern[str]:
    return re.compile(r"^https://(?:[\w-]+\.)*" + re.escape(host) + r"/(\w+)/status/(\d+).*")


# ---------------------------------------------------------------------------
# Session state machine
# ---------------------------------------------------------------------------


class SessionState(StrEnum):
    IDLE = "idle"
    AWAITING_ENVIRONMENT = "awaiting_environment"
    AWAITING_VIDEOS = "awaiting_videos"
    DONE = "done"


class SessionProtocol:
    """Serves one UI connection: setup, then one video request.

    A message arriving out of order is answered with an error and leaves the
    state unchanged.
    """

    def __init__(
        self,
        port: Port,
        probe: PageProbe,
        scraper: EnvironmentScraper,
        cache: EnvironmentCache,
        query: VideoQuery,
        settings: Optional[Settings] = None,
    ) -> None:
        self._port = port
        self._probe = probe
        self._scraper = scraper
        self._cache = cache
        self._query = query
        self._status_re = status_url_pattern((settings or get_settings()).TWITTER_HOST)
        self.state = SessionState.IDLE

    async def serve(self) -> None:
        """Handle messages until the UI disconnects or the session is done."""
        async for raw in self._port:
            await self.handle(raw)
            if self.state is SessionState.DONE:
                break
        await self._port.disconnect()

    async def handle(self, raw: Any) -> None:
        if not is_known_type(raw):
            logger.warning("Unrecognized message passed to background: %r", raw)
            return
        try:
            message = parse_message(raw)
        except ValidationError as e:
            logger.warning("Malformed %s message: %s", raw.get("type"), e)
            await self._emit(error_message("InvalidMessage", f"Malformed {raw.get('type')} payload"))
            return

        if isinstance(message, SetupTwitterEnvironment):
            if self.state is not SessionState.IDLE:
                await self._reject(message.type)
                return
            await self._on_setup()
        elif isinstance(message, RequestTwitterVideos):
            if self.state not in (SessionState.IDLE, SessionState.AWAITING_VIDEOS):
                await self._reject(message.type)
                return
            await self._on_request_videos(message.payload.environment)
        else:
            logger.warning("Message %s is not accepted by the background", message.type)

    async def _emit(self, message: SessionMessage) -> None:
        logger.debug("-> %s", message.type)
        await self._port.post(message)

    async def _reject(self, message_type: str) -> None:
        logger.warning("Rejecting %s in state %s", message_type, self.state)
        await self._emit(error_message("UnexpectedMessage", f"{message_type} is not accepted in state {self.state}"))

    async def _fail(self, exc: Exception, during: str) -> None:
        signal = signal_for(exc)
        if isinstance(exc, TwitterFailure):
            logger.info("%s failed: %r", during, exc)
        else:
            logger.error("%s fails: %s", during, exc)
        await self._emit(signal)

    async def _on_setup(self) -> None:
        self.state = SessionState.AWAITING_ENVIRONMENT
        try:
            identity = await self._scraper.fetch_identity()
            env = await self._cache.ensure_fresh(identity)
        except Exception as e:
            await self._fail(e, "Lookup for Twitter environment")
            self.state = SessionState.DONE
            return
        await self._emit(setup_complete(env.record()))
        self.state = SessionState.AWAITING_VIDEOS

    async def active_status(self) -> Tuple[str, str]:
        """Return ``(author_handle, tweet_id)`` of the active status tab."""
        tab = await self._probe.active_tab()
        if tab is None or not tab.url:
            raise TwitterFailure.tab_not_found()
        m = self._status_re.match(tab.url)
        if m is None:
            raise TwitterFailure.tab_not_found(f"{tab.url} is not a status page")
        return m.group(1), m.group(2)

    async def _on_request_videos(self, record: CachedEnvironmentRecord) -> None:
        try:
            author_handle, tweet_id = await self.active_status()
            env = await self._scraper.with_live_fields(record)
            videos = await self._query.fetch(env, tweet_id, author_handle)
        except Exception as e:
            await self._fail(e, "Video request")
        else:
            if videos:
                await self._emit(videos_received(videos))
            else:
                await self._emit(info_message(InfoName.VIDEOS_NOT_FOUND, "No videos found on this post"))
        finally:
            self.state = SessionState.DONE

"""UI side of the channel: drives setup -> request and turns the answer into
something a caller can render."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from .models import (
    CachedEnvironmentRecord,
    CompleteTwitterEnvironmentSetup,
    InfoName,
    InfoPayload,
    ReceiveErrorMessage,
    ReceiveInfoMessage,
    ReceiveTwitterVideos,
    VideoVariant,
    parse_message,
    setup_request,
    videos_request,
)
from .protocol import Port

logger = logging.getLogger(__name__)

INFO_TEXTS = {
    InfoName.TAB_NOT_FOUND: "This tab isn't a Twitter post",
    InfoName.NOT_LOGGED_IN: "Log in to Twitter first",
    InfoName.VIDEOS_NOT_FOUND: "No videos found here",
}


def info_text(payload: InfoPayload) -> str:
    text = INFO_TEXTS.get(payload.name)
    if text is None:
        logger.warning("unrecognized info message: %s", payload.name)
        return payload.message or payload.name
    return text


def bitrate_label(bitrate_bps: int) -> Optional[str]:
    """Human quality label, ``None`` when the bitrate is unknown (0)."""
    if bitrate_bps <= 0:
        return None
    if bitrate_bps < 1_000_000:
        return f"{bitrate_bps / 1000:g} kb/s"
    return f"{bitrate_bps / 1_000_000:g} mb/s"


def video_filename(url: str) -> str:
    return urlparse(url).path.rsplit("/", 1)[-1]


@dataclass
class PopupResult:
    videos: List[VideoVariant] = field(default_factory=list)
    environment: Optional[CachedEnvironmentRecord] = None
    info_name: Optional[str] = None
    info: Optional[str] = None
    error_name: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.info is None


class PopupClient:
    """Runs one popup session over ``port`` and disconnects at the first answer.

    With ``fetch_videos=False`` the session stops after setup and only the
    environment record is returned.
    """

    def __init__(self, port: Port, fetch_videos: bool = True) -> None:
        self._port = port
        self._fetch_videos = fetch_videos

    async def run(self) -> PopupResult:
        await self._port.post(setup_request())
        try:
            async for raw in self._port:
                result = await self._on_message(raw)
                if result is not None:
                    return result
        finally:
            await self._port.disconnect()
        return PopupResult(error="Channel closed before a result was received")

    async def _on_message(self, raw: dict) -> Optional[PopupResult]:
        try:
            msg = parse_message(raw)
        except ValidationError:
            logger.error("Unrecognized message passed to popup: %r", raw)
            return None

        if isinstance(msg, CompleteTwitterEnvironmentSetup):
            record = msg.payload.environment
            if not self._fetch_videos:
                return PopupResult(environment=record)
            await self._port.post(videos_request(record))
            return None
        if isinstance(msg, ReceiveTwitterVideos):
            return PopupResult(videos=msg.payload.videos)
        if isinstance(msg, ReceiveErrorMessage):
            p = msg.payload
            logger.error("Error %s: %s", p.error_name or "", p.error_message or "")
            return PopupResult(error_name=p.error_name, error=p.error_message or "Unknown error")
        if isinstance(msg, ReceiveInfoMessage):
            return PopupResult(info_name=msg.payload.name, info=info_text(msg.payload))

        logger.error("Unexpected message passed to popup: %s", msg.type)
        return None


async def download_video(http: httpx.AsyncClient, url: str, dest_dir: str | Path) -> Path:
    """Stream one variant to ``dest_dir`` and return the written path."""
    dest = Path(dest_dir).expanduser()
    dest.mkdir(parents=True, exist_ok=True)
    target = dest / (video_filename(url) or "video.mp4")
    async with http.stream("GET", url) as resp:
        resp.raise_for_status()
        with target.open("wb") as fh:
            async for chunk in resp.aiter_bytes():
                fh.write(chunk)
    logger.info("Downloaded %s -> %s", url, target)
    return target

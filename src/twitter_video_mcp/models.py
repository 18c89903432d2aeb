"""Wire and domain models.

Field names are snake_case in Python and camelCase on the channel, so a
message dumped with ``by_alias=True`` matches what the popup exchanges.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

VIDEO_MIME_TYPE = "video/mp4"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class CachedEnvironmentRecord(WireModel):
    """Persistable part of an :class:`Environment`, scoped to one account."""

    bundle_url: str
    auth_token: str
    query_ids_by_operation: Dict[str, str]


class Environment(CachedEnvironmentRecord):
    """Everything needed to issue one authenticated API call.

    ``csrf_token`` and ``cookie_header`` are live-only: they are excluded from
    every dump so they can never reach the store or the channel.
    """

    csrf_token: str = Field(exclude=True, repr=False)
    cookie_header: str = Field(exclude=True, repr=False)

    def record(self) -> CachedEnvironmentRecord:
        return CachedEnvironmentRecord(
            bundle_url=self.bundle_url,
            auth_token=self.auth_token,
            query_ids_by_operation=dict(self.query_ids_by_operation),
        )


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------


class AspectRatio(WireModel):
    x: int
    y: int


class VideoVariant(WireModel):
    """One playable encoding of a media item."""

    bitrate_bps: int = Field(ge=0)
    url: str
    content_type: Literal["video/mp4"] = VIDEO_MIME_TYPE
    poster_url: str = ""
    aspect_ratio: AspectRatio


# ---------------------------------------------------------------------------
# Session messages
# ---------------------------------------------------------------------------


class MessageType(StrEnum):
    SETUP_TWITTER_ENVIRONMENT = "SETUP_TWITTER_ENVIRONMENT"
    COMPLETE_TWITTER_ENVIRONMENT_SETUP = "COMPLETE_TWITTER_ENVIRONMENT_SETUP"
    REQUEST_TWITTER_VIDEOS = "REQUEST_TWITTER_VIDEOS"
    RECEIVE_TWITTER_VIDEOS = "RECEIVE_TWITTER_VIDEOS"
    RECEIVE_INFO_MESSAGE = "RECEIVE_INFO_MESSAGE"
    RECEIVE_ERROR_MESSAGE = "RECEIVE_ERROR_MESSAGE"


class InfoName(StrEnum):
    TAB_NOT_FOUND = "TabNotFoundError"
    NOT_LOGGED_IN = "TwitterNotLoggedInError"
    VIDEOS_NOT_FOUND = "VideosNotFound"


class SetupPayload(WireModel):
    pass


class EnvironmentPayload(WireModel):
    environment: CachedEnvironmentRecord


class VideosPayload(WireModel):
    videos: List[VideoVariant]


class InfoPayload(WireModel):
    # Kept open: the popup falls back to `message` for names it does not know.
    name: str
    message: Optional[str] = None


class ErrorPayload(WireModel):
    error_name: Optional[str] = None
    error_message: Optional[str] = None


class SetupTwitterEnvironment(WireModel):
    type: Literal["SETUP_TWITTER_ENVIRONMENT"] = "SETUP_TWITTER_ENVIRONMENT"
    payload: SetupPayload


class CompleteTwitterEnvironmentSetup(WireModel):
    type: Literal["COMPLETE_TWITTER_ENVIRONMENT_SETUP"] = "COMPLETE_TWITTER_ENVIRONMENT_SETUP"
    payload: EnvironmentPayload


class RequestTwitterVideos(WireModel):
    type: Literal["REQUEST_TWITTER_VIDEOS"] = "REQUEST_TWITTER_VIDEOS"
    payload: EnvironmentPayload


class ReceiveTwitterVideos(WireModel):
    type: Literal["RECEIVE_TWITTER_VIDEOS"] = "RECEIVE_TWITTER_VIDEOS"
    payload: VideosPayload


class ReceiveInfoMessage(WireModel):
    type: Literal["RECEIVE_INFO_MESSAGE"] = "RECEIVE_INFO_MESSAGE"
    payload: InfoPayload


class ReceiveErrorMessage(WireModel):
    type: Literal["RECEIVE_ERROR_MESSAGE"] = "RECEIVE_ERROR_MESSAGE"
    payload: ErrorPayload


SessionMessage = Annotated[
    Union[
        SetupTwitterEnvironment,
        CompleteTwitterEnvironmentSetup,
        RequestTwitterVideos,
        ReceiveTwitterVideos,
        ReceiveInfoMessage,
        ReceiveErrorMessage,
    ],
    Field(discriminator="type"),
]

_session_message_adapter: TypeAdapter[SessionMessage] = TypeAdapter(SessionMessage)


def is_known_type(raw: Any) -> bool:
    return isinstance(raw, dict) and raw.get("type") in set(MessageType)


def parse_message(raw: Any) -> SessionMessage:
    """Validate a raw ``{type, payload}`` dict; raises ``pydantic.ValidationError``."""
    return _session_message_adapter.validate_python(raw)


def dump_message(message: SessionMessage) -> Dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True)


# Constructors for the outbound messages


def setup_request() -> SetupTwitterEnvironment:
    return SetupTwitterEnvironment(payload=SetupPayload())


def setup_complete(record: CachedEnvironmentRecord) -> CompleteTwitterEnvironmentSetup:
    return CompleteTwitterEnvironmentSetup(payload=EnvironmentPayload(environment=record))


def videos_request(record: CachedEnvironmentRecord) -> RequestTwitterVideos:
    return RequestTwitterVideos(payload=EnvironmentPayload(environment=record))


def videos_received(videos: List[VideoVariant]) -> ReceiveTwitterVideos:
    return ReceiveTwitterVideos(payload=VideosPayload(videos=videos))


def info_message(name: str, message: Optional[str] = None) -> ReceiveInfoMessage:
    return ReceiveInfoMessage(payload=InfoPayload(name=name, message=message))


def error_message(error_name: Optional[str], error_message_text: Optional[str]) -> ReceiveErrorMessage:
    return ReceiveErrorMessage(
        payload=ErrorPayload(error_name=error_name, error_message=error_message_text)
    )

"""TweetDetail GraphQL call and video variant extraction."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import TwitterFailure
from .models import VIDEO_MIME_TYPE, AspectRatio, Environment, VideoVariant
from .structure import find_structure, is_tweet_node, is_video_node

logger = logging.getLogger(__name__)

OPERATION_NAME = "TweetDetail"

# Flags the web client sends with TweetDetail; the API rejects requests that
# omit any of them.
TWEET_DETAIL_FEATURES: Dict[str, bool] = {
    "responsive_web_graphql_exclude_directive_enabled": True,
    "verified_phone_label_enabled": False,
    "responsive_web_home_pinned_timelines_enabled": True,
    "creator_subscriptions_tweet_preview_api_enabled": True,
    "responsive_web_graphql_timeline_navigation_enabled": True,
    "responsive_web_graphql_skip_user_profile_image_extensions_enabled": False,
    "c9s_tweet_anatomy_moderator_badge_enabled": True,
    "tweetypie_unmention_optimization_enabled": True,
    "responsive_web_edit_tweet_api_enabled": True,
    "graphql_is_translatable_rweb_tweet_is_translatable_enabled": True,
    "view_counts_everywhere_api_enabled": True,
    "longform_notetweets_consumption_enabled": True,
    "responsive_web_twitter_article_tweet_consumption_enabled": False,
    "tweet_awards_web_tipping_enabled": False,
    "freedom_of_speech_not_reach_fetch_enabled": True,
    "standardized_nudges_misinfo": True,
    "tweet_with_visibility_results_prefer_gql_limited_actions_policy_enabled": True,
    "longform_notetweets_rich_text_read_enabled": True,
    "longform_notetweets_inline_media_enabled": True,
    "responsive_web_media_download_video_enabled": False,
    "responsive_web_enhance_cards_enabled": False,
}


def tweet_detail_variables(tweet_id: str) -> Dict[str, Any]:
    return {
        "focalTweetId": str(tweet_id),
        "with_rux_injections": False,
        "includePromotedContent": True,
        "withCommunity": True,
        "withQuickPromoteEligibilityTweetFields": True,
        "withBirdwatchNotes": True,
        "withVoice": True,
        "withV2Timeline": True,
    }


def _compact(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))


def parse_out_videos(payload: Any) -> List[VideoVariant]:
    """Extract mp4 variants from a TweetDetail response, highest bitrate first.

    A response with tweets but no ``type == "video"`` node yields ``[]``.
    Raises AppStructureChanged when neither video nor tweet nodes can be
    found (the envelope changed), or when a video node has an unexpected shape.
    """
    try:
        nodes = find_structure(payload, is_video_node)
        if nodes is None:
            # A renamed "type" field under intact tweet nodes reads as no videos.
            if find_structure(payload, is_tweet_node) is not None:
                return []
            raise TwitterFailure.app_structure_changed(
                "failure to parse video details properly anymore"
            )
        videos: List[VideoVariant] = []
        for node in nodes:
            if "video_info" not in node:
                continue
            info = node["video_info"]
            ratio = info["aspect_ratio"]
            aspect_ratio = AspectRatio(x=ratio[0], y=ratio[1])
            poster_url = node.get("media_url_https") or ""
            for variant in info["variants"]:
                if variant.get("content_type") != VIDEO_MIME_TYPE:
                    continue
                videos.append(
                    VideoVariant(
                        bitrate_bps=variant.get("bitrate", 0),
                        url=variant["url"],
                        content_type=VIDEO_MIME_TYPE,
                        poster_url=poster_url,
                        aspect_ratio=aspect_ratio,
                    )
                )
    except (TypeError, KeyError, IndexError, AttributeError, ValidationError) as e:
        logger.error("Unexpected TweetDetail shape: %r", e)
        raise TwitterFailure.app_structure_changed(
            f"Failure to parse out videos from TweetDetail payload: {e!r}"
        ) from e
    # sorted() is stable, so equal bitrates keep their encounter order
    return sorted(videos, key=lambda v: v.bitrate_bps, reverse=True)


class VideoQuery:
    def __init__(self, http: httpx.AsyncClient, settings: Optional[Settings] = None) -> None:
        self._http = http
        self._settings = settings or get_settings()

    def _headers(self, env: Environment, tweet_id: str, author_handle: str) -> Dict[str, str]:
        origin = self._settings.twitter_origin
        return {
            "accept": "*/*",
            "accept-language": "en-US,en;q=0.9",
            "authorization": "Bearer " + env.auth_token,
            "cache-control": "no-cache",
            "content-type": "application/json",
            "pragma": "no-cache",
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "same-origin",
            "x-csrf-token": env.csrf_token,
            "x-twitter-active-user": "yes",
            "x-twitter-auth-type": "OAuth2Session",
            "x-twitter-client-language": "en",
            "cookie": env.cookie_header,
            "user-agent": self._settings.USER_AGENT,
            "referer": f"{origin}/{author_handle}/status/{tweet_id}",
        }

    async def fetch(self, env: Environment, tweet_id: str, author_handle: str) -> List[VideoVariant]:
        query_id = env.query_ids_by_operation.get(OPERATION_NAME)
        if query_id is None:
            raise TwitterFailure.app_structure_changed(
                f'Unable to find "{OPERATION_NAME}" in Graph QL query list.'
            )

        url = f"{self._settings.twitter_origin}/i/api/graphql/{query_id}/{OPERATION_NAME}"
        params = {
            "variables": _compact(tweet_detail_variables(tweet_id)),
            "features": _compact(TWEET_DETAIL_FEATURES),
        }
        resp = await self._http.get(url, params=params, headers=self._headers(env, tweet_id, author_handle))
        logger.info("%s for %s/%s -> %d", OPERATION_NAME, author_handle, tweet_id, resp.status_code)
        if resp.status_code // 100 != 2:
            raise TwitterFailure.app_structure_changed(
                f"{OPERATION_NAME} request fails with {resp.status_code}"
            )

        videos = parse_out_videos(resp.json())
        logger.info("Extracted %d video variants from tweet %s", len(videos), tweet_id)
        return videos

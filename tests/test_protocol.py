"""Tests for the channel and the per-connection session state machine."""

from __future__ import annotations

import anyio
import pytest

from twitter_video_mcp.errors import TwitterFailure
from twitter_video_mcp.models import InfoName
from twitter_video_mcp.protocol import SessionState, open_channel, signal_for, status_url_pattern

from .conftest import BUNDLE_URL, FakePageProbe, tweet_detail_payload


async def exchange(service, *messages, expect=1):
    """Send raw messages to a fresh session and collect its first replies."""
    ui_port, core_port = open_channel()
    session = service.session(core_port)
    replies = []
    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(session.serve)
            for message in messages:
                await ui_port.post(message)
            async for reply in ui_port:
                replies.append(reply)
                if len(replies) >= expect:
                    break
            await ui_port.disconnect()
    return session, replies


SETUP = {"type": "SETUP_TWITTER_ENVIRONMENT", "payload": {}}


class TestSignals:
    def test_translation(self):
        assert signal_for(TwitterFailure.tab_not_found()).payload.name == InfoName.TAB_NOT_FOUND
        assert signal_for(TwitterFailure.not_logged_in()).payload.name == InfoName.NOT_LOGGED_IN

        changed = signal_for(TwitterFailure.app_structure_changed("bundle moved"))
        assert changed.type == "RECEIVE_ERROR_MESSAGE"
        assert changed.payload.error_name == "AppStructureChanged"
        assert changed.payload.error_message == "bundle moved"

        generic = signal_for(RuntimeError("boom"))
        assert generic.payload.error_name is None
        assert generic.payload.error_message == "boom"

    def test_status_url_pattern(self):
        pattern = status_url_pattern("twitter.com")
        assert pattern.match("https://twitter.com/jack/status/20?s=20").groups() == ("jack", "20")
        assert pattern.match("https://mobile.twitter.com/jack/status/20").groups() == ("jack", "20")
        assert pattern.match("https://twitter.com/jack") is None
        assert pattern.match("https://nottwitter.com/jack/status/20") is None


class TestPopupFlow:
    @pytest.mark.asyncio
    async def test_videos_end_to_end(self, service, store):
        result = await service.run_popup()

        assert result.error is None and result.info is None
        assert [v.bitrate_bps for v in result.videos] == [832000]
        assert any(k.startswith("TWITTER_ENVIRONMENT") for k in store.data)

    @pytest.mark.asyncio
    async def test_setup_only_returns_record(self, service):
        result = await service.run_popup(fetch_videos=False)
        assert result.environment is not None
        assert result.environment.bundle_url == BUNDLE_URL
        assert result.videos == []

    @pytest.mark.asyncio
    async def test_tab_not_matching_domain_is_info(self, service, probe, twitter):
        probe.tab_url = "https://example.com/jack/status/20"
        result = await service.run_popup()
        assert result.info_name == "TabNotFoundError"
        assert result.error is None
        assert twitter.requests == []

    @pytest.mark.asyncio
    async def test_request_from_non_status_tab_is_info(self, service, probe):
        await service.run_popup(fetch_videos=False)
        probe.tab_url = "https://twitter.com/home"
        record = (await service.cache.load("u%3D123456")).model_dump(by_alias=True)
        _, replies = await exchange(service, {"type": "REQUEST_TWITTER_VIDEOS", "payload": {"environment": record}})
        assert replies == [{"type": "RECEIVE_INFO_MESSAGE", "payload": {"name": "TabNotFoundError", "message": None}}]

    @pytest.mark.asyncio
    async def test_logged_out_is_info(self, service, probe):
        probe.cookie_values = {"guest_id": "v1"}
        result = await service.run_popup()
        assert result.info_name == "TwitterNotLoggedInError"
        assert result.info == "Log in to Twitter first"

    @pytest.mark.asyncio
    async def test_zero_videos_is_info(self, service, twitter):
        twitter.graphql_body = tweet_detail_payload([{"type": "photo"}])
        result = await service.run_popup()
        assert result.info_name == "VideosNotFound"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_changed_envelope_is_error(self, service, twitter):
        twitter.graphql_body = {"data": {"tweetResult": {"kind": "Post", "media": [{"kind": "clip"}]}}}
        result = await service.run_popup()
        assert result.error_name == "AppStructureChanged"
        assert result.info is None

    @pytest.mark.asyncio
    async def test_bundle_fetch_failure_is_generic_error(self, service, twitter):
        twitter.bundle_status = 502
        result = await service.run_popup()
        assert result.error_name is None
        assert "502" in result.error

    @pytest.mark.asyncio
    async def test_invalid_json_is_generic_error(self, service, twitter):
        twitter.graphql_body = "<html>rate limited</html>"
        result = await service.run_popup()
        assert result.error is not None
        assert result.info is None


class TestSessionProtocol:
    @pytest.mark.asyncio
    async def test_state_transitions(self, service):
        session, replies = await exchange(service, SETUP)
        assert [r["type"] for r in replies] == ["COMPLETE_TWITTER_ENVIRONMENT_SETUP"]
        assert session.state is SessionState.AWAITING_VIDEOS
        env = replies[0]["payload"]["environment"]
        assert set(env) == {"bundleUrl", "authToken", "queryIdsByOperation"}

    @pytest.mark.asyncio
    async def test_failed_setup_is_terminal(self, service, probe):
        probe.tab_url = None
        session, replies = await exchange(service, SETUP)
        assert replies[0]["payload"]["name"] == "TabNotFoundError"
        assert session.state is SessionState.DONE

    @pytest.mark.asyncio
    async def test_unknown_message_is_ignored(self, service):
        session, replies = await exchange(service, {"type": "PING", "payload": {}}, SETUP)
        assert [r["type"] for r in replies] == ["COMPLETE_TWITTER_ENVIRONMENT_SETUP"]

    @pytest.mark.asyncio
    async def test_malformed_payload_is_answered(self, service):
        session, replies = await exchange(service, {"type": "REQUEST_TWITTER_VIDEOS", "payload": {}})
        assert replies[0]["type"] == "RECEIVE_ERROR_MESSAGE"
        assert session.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_repeated_setup_is_answered(self, service):
        session, replies = await exchange(service, SETUP, SETUP, expect=2)
        assert [r["type"] for r in replies] == ["COMPLETE_TWITTER_ENVIRONMENT_SETUP", "RECEIVE_ERROR_MESSAGE"]
        assert replies[1]["payload"]["errorName"] == "UnexpectedMessage"
        assert session.state is SessionState.AWAITING_VIDEOS

    @pytest.mark.asyncio
    async def test_post_after_disconnect_is_dropped(self):
        ui_port, core_port = open_channel()
        await ui_port.disconnect()
        await core_port.post({"type": "RECEIVE_INFO_MESSAGE", "payload": {"name": "VideosNotFound"}})
        assert [m async for m in core_port] == []

    @pytest.mark.asyncio
    async def test_independent_sessions(self, store, http, settings, twitter):
        from twitter_video_mcp.context import BackgroundService

        video_tab = BackgroundService(FakePageProbe(), store, http, settings)
        other_tab = BackgroundService(FakePageProbe(tab_url="https://twitter.com/home"), store, http, settings)
        results = {}

        async def run(name, svc):
            results[name] = await svc.run_popup()

        async with anyio.create_task_group() as tg:
            tg.start_soon(run, "video", video_tab)
            tg.start_soon(run, "other", other_tab)

        assert results["video"].videos
        assert results["other"].info_name == "TabNotFoundError"

    @pytest.mark.asyncio
    async def test_action_clicked(self, service):
        assert await service.action_clicked("https://twitter.com/home") is None
        result = await service.action_clicked("https://twitter.com/jack/status/20")
        assert result is not None and result.videos

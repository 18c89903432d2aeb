"""MCP tools exposing the popup flow."""
from __future__ import annotations

from typing import Any, Optional

from mcp.server.fastmcp import Context, FastMCP

from .config import settings
from .context import ServerContext
from .popup import PopupResult, bitrate_label, download_video
from .utils import error_response, handle_mcp_errors, ok_response, safe_ctx_info


def popup_result_response(tool: str, input: dict[str, Any], result: PopupResult) -> dict[str, Any]:
    """Render a popup result as a tool response.

    Info signals are not errors: they come back ``ok`` with an ``info`` field.
    """
    if result.error is not None:
        return error_response(
            tool=tool,
            input=input,
            error_type="app_error",
            code="E2102" if result.error_name else "E9000",
            message=result.error,
            details={"errorName": result.error_name},
        )
    if result.info is not None:
        return ok_response(
            tool=tool,
            input=input,
            output={"info": {"name": result.info_name, "message": result.info}, "videos": []},
        )
    if result.environment is not None:
        return ok_response(
            tool=tool,
            input=input,
            output={"environment": result.environment.model_dump(by_alias=True)},
        )
    return ok_response(
        tool=tool,
        input=input,
        output={
            "videos": [
                {**v.model_dump(mode="json", by_alias=True), "quality": bitrate_label(v.bitrate_bps)}
                for v in result.videos
            ]
        },
    )


def register(mcp: FastMCP) -> None:
    """Register the twitter.* tools."""

    @mcp.tool(name="twitter.videos", description="List playable mp4 variants of the post in the active tab")
    @handle_mcp_errors
    async def twitter_videos(ctx: Optional[Context] = None) -> dict[str, Any]:
        """Extract video variants from the Twitter post open in the attached browser.

        Variants are ordered from the highest bitrate down.
        """
        service = await ServerContext.get_service()
        await safe_ctx_info(ctx, "Setting up Twitter environment")
        result = await service.run_popup()
        return popup_result_response("twitter.videos", {}, result)

    @mcp.tool(name="twitter.environment", description="Scrape (or reuse) the Twitter API environment")
    @handle_mcp_errors
    async def twitter_environment(ctx: Optional[Context] = None) -> dict[str, Any]:
        """Return the cached bundle URL, auth token and GraphQL query ids.

        Live session values (CSRF token, cookies) are never returned.
        """
        service = await ServerContext.get_service()
        result = await service.run_popup(fetch_videos=False)
        return popup_result_response("twitter.environment", {}, result)

    @mcp.tool(name="twitter.download", description="Download one video variant URL")
    @handle_mcp_errors
    async def twitter_download(url: str, dest_dir: Optional[str] = None) -> dict[str, Any]:
        http = await ServerContext.get_http()
        path = await download_video(http, url, dest_dir or settings.DOWNLOAD_DIR)
        return ok_response(
            tool="twitter.download",
            input={"url": url, "dest_dir": dest_dir},
            output={"path": str(path)},
        )

"""Twitter Video MCP server.

Exposes the video extraction flow via the Model Context Protocol (MCP) and a
one-shot ``action`` command that mimics clicking the extension's action icon.

Usage:
    twitter-video-mcp serve [--transport stdio|streamable-http]
    twitter-video-mcp action --url https://twitter.com/<user>/status/<id>
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

import anyio
from mcp.server.fastmcp import FastMCP

from twitter_video_mcp.config import settings
from twitter_video_mcp.context import ServerContext
from twitter_video_mcp.tools import register

logger = logging.getLogger("twitter_video_mcp")


def create_server() -> FastMCP:
    mcp = FastMCP("Twitter Video")
    register(mcp)
    return mcp


async def _action(url: str) -> int:
    try:
        service = await ServerContext.get_service()
        result = await service.action_clicked(url)
    finally:
        await ServerContext.close()
    if result is None:
        logger.info("Not a status URL, nothing to do")
        return 0
    return 1 if result.error is not None else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="twitter-video-mcp")
    sub = parser.add_subparsers(dest="command")
    serve = sub.add_parser("serve", help="Run the MCP server (default)")
    serve.add_argument("--transport", choices=["stdio", "sse", "streamable-http"], default="stdio")
    action = sub.add_parser("action", help="Run setup and video request for one tab URL")
    action.add_argument("--url", required=True, help="URL of the active tab")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "action":
        return anyio.run(_action, args.url)

    create_server().run(transport=getattr(args, "transport", "stdio"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

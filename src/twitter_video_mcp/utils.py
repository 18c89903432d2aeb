"""Common helpers for the MCP tools."""
from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Optional

import httpx

from .errors import FailureKind, TwitterFailure

logger = logging.getLogger("twitter_video_mcp")


# ---------------------------------------------------------------------------
# Safe Context helpers (for HTTP mode compatibility)
# ---------------------------------------------------------------------------

async def safe_ctx_info(ctx: Optional[Any], message: str) -> None:
    """Safely call ctx.info() if context is available and valid.

    In HTTP mode, ctx may exist but not be a valid MCP Context.
    """
    if ctx is None:
        return
    try:
        await ctx.info(message)
    except (ValueError, AttributeError):
        pass


# ---------------------------------------------------------------------------
# Structured response helpers
# ---------------------------------------------------------------------------

def ok_response(*, tool: str, input: dict[str, Any], output: Any) -> dict[str, Any]:
    return {"ok": True, "tool": tool, "input": input, "output": output}


def error_response(
    *,
    tool: str,
    input: dict[str, Any],
    error_type: str,
    message: str,
    details: Any | None = None,
    code: str = "E0000",
) -> dict[str, Any]:
    """Return a standardized error dict with machine-readable code."""
    return {
        "ok": False,
        "tool": tool,
        "input": input,
        "error": {"type": error_type, "code": code, "message": message, "details": details},
    }


_FAILURE_CODES: dict[FailureKind, tuple[str, str]] = {
    FailureKind.TAB_NOT_FOUND: ("tab_not_found", "E1101"),
    FailureKind.NOT_LOGGED_IN: ("not_logged_in", "E1102"),
    FailureKind.APP_STRUCTURE_CHANGED: ("app_structure_changed", "E2102"),
    FailureKind.NETWORK: ("network_error", "E2002"),
}


def failure_code(kind: FailureKind) -> tuple[str, str]:
    return _FAILURE_CODES[kind]


# ---------------------------------------------------------------------------
# Decorator to convert failures to structured output
# ---------------------------------------------------------------------------

def handle_mcp_errors(func: Callable) -> Callable:  # noqa: D401
    """Wrap a tool so it always returns dict instead of raising."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):  # type: ignore[return-value]
        tool_input = {k: v for k, v in kwargs.items() if k != "ctx"}
        try:
            return await func(*args, **kwargs)
        except TwitterFailure as e:
            logger.error("%s in %s: %s", e.kind.value, func.__name__, e.message)
            error_type, code = failure_code(e.kind)
            return error_response(
                tool=func.__name__,
                input=tool_input,
                error_type=error_type,
                code=code,
                message=e.message,
            )
        except httpx.HTTPError as e:
            logger.error("Network error in %s: %s", func.__name__, e)
            return error_response(
                tool=func.__name__,
                input=tool_input,
                error_type="network_error",
                code="E2002",
                message="Network error: could not reach the remote host.",
                details=str(e),
            )
        except Exception as e:  # pragma: no cover
            logger.error("Unexpected error in %s: %s", func.__name__, str(e), exc_info=False)
            return error_response(
                tool=func.__name__,
                input=tool_input,
                error_type="unexpected_error",
                code="E9000",
                message=str(e),
            )

    return wrapper

"""
Mapping of gateway failures onto the MCP error channel.

Validator and parse failures become JSON-RPC errors with the INVALID_PARAMS
code. Backend failures of the tools that do not produce their own
"unsuccessful" result are turned into a ToolError carrying sanitized text.

FastMCP reports every exception raised by a tool as a tool result with
isError set, which would drop the INVALID_PARAMS code and data. The tool call
handler of the server is therefore wrapped (install_error_channel) so that an
McpError raised by a tool is answered as a JSON-RPC error instead.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional, Union

from fastmcp.exceptions import ToolError
from mcp.shared.exceptions import McpError
from mcp.types import INVALID_PARAMS, CallToolRequest, ErrorData

from .ca_client import CAClientError
from .sanitizer import sanitize

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "The request could not be processed."

# McpErrors raised by tools during the current tool call request
_tool_call_errors: ContextVar[Optional[List[McpError]]] = ContextVar(
    "mcpki_tool_call_errors", default=None
)


def invalid_params_error(
    message: str, data: Optional[Union[Dict[str, Any], str]] = None
) -> McpError:
    """
    Returns an MCP error of type INVALID_PARAMS (-32602).

    Args:
        message: The error message.
        data: The detail payload, usually {field: rejected_value}.

    Returns:
        The MCP error, ready to be raised.
    """
    return McpError(ErrorData(code=INVALID_PARAMS, message=message, data=data))


def describe_exception(exc: BaseException) -> str:
    """
    Concatenates the message of an exception with its cause and root cause,
    separated by ' --- '. Missing links are rendered as 'None'.
    """
    cause = exc.__cause__ or exc.__context__
    root = cause
    while root is not None and (root.__cause__ or root.__context__) is not None:
        root = root.__cause__ or root.__context__
    return f"{exc} --- {cause} --- {root}"


@contextmanager
def translate_errors(base_url: str) -> Iterator[None]:
    """
    Runs a tool call and converts whatever escapes it into an MCP-level error.

    McpError (invalid parameters) passes through unchanged. Backend failures
    become a ToolError whose message no longer contains the backend URL.
    Anything else becomes a ToolError without details.
    """
    try:
        yield
    except McpError as e:
        errors = _tool_call_errors.get()
        if errors is not None:
            errors.append(e)
        raise
    except ToolError:
        raise
    except CAClientError as e:
        message = sanitize(str(e), base_url)
        logger.warning(f"Backend call failed: {message}")
        raise ToolError(message) from None
    except Exception as e:
        logger.error(
            f"Unexpected error while executing tool: {sanitize(str(e), base_url)}"
        )
        raise ToolError(GENERIC_ERROR_MESSAGE) from None


def install_error_channel(server) -> None:
    """
    Wraps the tool call request handler of a FastMCP server so that an
    McpError raised inside translate_errors reaches the client as a JSON-RPC
    error with its code and data.
    """
    handlers = server._mcp_server.request_handlers
    call_tool = handlers.get(CallToolRequest)
    if call_tool is None:
        logger.warning("Server has no tool call handler; MCP errors stay tool results.")
        return

    async def handle_call_tool(request: CallToolRequest):
        errors: List[McpError] = []
        token = _tool_call_errors.set(errors)
        try:
            result = await call_tool(request)
        finally:
            _tool_call_errors.reset(token)
        if errors:
            raise errors[0]
        return result

    handlers[CallToolRequest] = handle_call_tool

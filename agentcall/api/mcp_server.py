"""MCP tool server exposing the call operations to an AI assistant."""
import logging
from typing import Annotated, Callable, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from agentcall.api.tools import (
    ContinueCallResponse,
    EndCallResponse,
    InitiateCallResponse,
    SpeakToUserResponse,
)
from agentcall.core.config import settings
from agentcall.services.call_session.errors import CallError
from agentcall.services.call_session.manager import CallManager

logger = logging.getLogger(__name__)

INITIATE_CALL_DESCRIPTION = (
    "Call the user on the phone to discuss something. Use this when you need to "
    "report task completion, request input, discuss decisions, or escalate blockers. "
    "The call will ring the user's phone, and when they answer, your message will be "
    "spoken. Then you'll receive their spoken response."
)
CONTINUE_CALL_DESCRIPTION = (
    "Continue an active phone call by speaking another message and listening for the "
    "user's response. Use this for multi-turn conversations within the same call."
)
SPEAK_TO_USER_DESCRIPTION = (
    "Speak a message to the user without waiting for a response. Use this for "
    "acknowledgments before performing time-consuming operations, or for status "
    "updates during a call."
)
END_CALL_DESCRIPTION = (
    "End an active phone call. Optionally speak a final message before hanging up. "
    "The message will be spoken and then the call will be terminated."
)

CallId = Annotated[str, Field(description="The ID of the active call (returned from initiate_call).")]
Message = Annotated[str, Field(description="The message to speak to the user.")]


def _tool_error(tool: str, error: CallError) -> ToolError:
    logger.warning(f"[MCP] {tool} failed - {type(error).__name__}: {error.message}")
    return ToolError(f"failed to {tool}: {error.message}")


def create_mcp_server(get_manager: Callable[[], CallManager]) -> FastMCP:
    """
    Build the MCP server with the four call tools.

    Args:
        get_manager: Returns the process-wide call manager when a tool runs

    Returns:
        FastMCP server; mount `streamable_http_app()` to serve it
    """
    server = FastMCP(
        "agentcall",
        host=settings.host,
        stateless_http=True,
        json_response=True,
        streamable_http_path="/",
    )

    @server.tool(name="initiate_call", description=INITIATE_CALL_DESCRIPTION)
    async def initiate_call(
        message: Annotated[
            str,
            Field(
                description="The message to speak to the user when they answer. "
                "Should be conversational and clear."
            ),
        ],
    ) -> InitiateCallResponse:
        try:
            call_id, response = await get_manager().initiate_call(message)
        except CallError as e:
            raise _tool_error("initiate call", e) from e
        return InitiateCallResponse(call_id=call_id, response=response)

    @server.tool(name="continue_call", description=CONTINUE_CALL_DESCRIPTION)
    async def continue_call(call_id: CallId, message: Message) -> ContinueCallResponse:
        try:
            response = await get_manager().continue_call(call_id, message)
        except CallError as e:
            raise _tool_error("continue call", e) from e
        return ContinueCallResponse(response=response)

    @server.tool(name="speak_to_user", description=SPEAK_TO_USER_DESCRIPTION)
    async def speak_to_user(call_id: CallId, message: Message) -> SpeakToUserResponse:
        try:
            await get_manager().speak_to_user(call_id, message)
        except CallError as e:
            raise _tool_error("speak", e) from e
        return SpeakToUserResponse(success=True)

    @server.tool(name="end_call", description=END_CALL_DESCRIPTION)
    async def end_call(
        call_id: CallId,
        message: Annotated[
            Optional[str],
            Field(description="Optional final message to speak before ending the call."),
        ] = None,
    ) -> EndCallResponse:
        try:
            duration = await get_manager().end_call(call_id, message)
        except CallError as e:
            raise _tool_error("end call", e) from e
        return EndCallResponse(duration_seconds=duration)

    return server

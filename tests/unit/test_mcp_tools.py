"""Unit tests for the MCP tool server."""
import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from agentcall.api.mcp_server import create_mcp_server
from agentcall.services.telephony.base import CallStatus


def connect(manager):
    server = create_mcp_server(lambda: manager)
    return create_connected_server_and_client_session(server._mcp_server)


class TestMCPTools:
    """Test the call tools as an assistant sees them."""

    @pytest.mark.asyncio
    async def test_lists_call_tools(self, make_manager):
        """Test the four tools are advertised with their descriptions."""
        async with connect(make_manager()) as client:
            result = await client.list_tools()

        tools = {tool.name: tool for tool in result.tools}
        assert set(tools) == {"initiate_call", "continue_call", "speak_to_user", "end_call"}
        assert "ring the user's phone" in tools["initiate_call"].description
        assert tools["end_call"].inputSchema["required"] == ["call_id"]
        assert set(tools["continue_call"].inputSchema["required"]) == {"call_id", "message"}

    @pytest.mark.asyncio
    async def test_conversation_through_tools(self, fakes, make_manager):
        """Test initiate, continue, speak and end through MCP tool calls."""
        recognizer = fakes.Recognizer(scripts=[[fakes.final("yes go ahead")], [fakes.final("sure")]])
        manager = make_manager(recognizer=recognizer)

        async with connect(manager) as client:
            result = await client.call_tool("initiate_call", {"message": "Hi, ready?"})
            assert result.isError is False
            call_id = result.structuredContent["call_id"]
            assert result.structuredContent["response"] == "yes go ahead"

            result = await client.call_tool(
                "continue_call", {"call_id": call_id, "message": "Deploy now?"}
            )
            assert result.structuredContent == {"response": "sure"}

            result = await client.call_tool(
                "speak_to_user", {"call_id": call_id, "message": "Deploying."}
            )
            assert result.structuredContent == {"success": True}

            result = await client.call_tool("end_call", {"call_id": call_id})
            assert result.structuredContent["duration_seconds"] >= 0

        assert await manager.active_call_ids() == []

    @pytest.mark.asyncio
    async def test_call_errors_become_tool_errors(self, fakes, make_manager):
        """Test call failures are reported as tool errors, not crashes."""
        call = fakes.Call(statuses=[CallStatus.BUSY])
        manager = make_manager(call_system=fakes.CallSystem(call))

        async with connect(manager) as client:
            not_answered = await client.call_tool("initiate_call", {"message": "Hello?"})
            not_found = await client.call_tool(
                "continue_call", {"call_id": "call-404-0", "message": "Hello?"}
            )

        assert not_answered.isError is True
        assert "call not answered" in not_answered.content[0].text
        assert not_found.isError is True
        assert "call not found" in not_found.content[0].text

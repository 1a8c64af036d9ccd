#!/usr/bin/env python3
"""
MCP Server (stdio) - Ask a remote coding agent about a dependency's source.

Install:
    pip install depquery

Add to your MCP client config (e.g. ~/.config/claude/claude_desktop_config.json):
    {
      "mcpServers": {
        "depquery": {
          "command": "depquery-mcp",
          "env": {"AGENT_URL": "http://localhost:4096"}
        }
      }
    }

Tool: query_dependency
  - Resolves the dependency's repository (local directory or cached clone)
  - Asks the remote agent the question, in a new or continued session
  - Returns {"response": ..., "sessionId": ...}
"""

import asyncio
import json
import logging
import sys
from typing import Any

try:
    from mcp.server import Server
    from mcp.server.stdio import stdio_server
    from mcp.types import TextContent, Tool
except ImportError as e:
    print("Error: MCP package not installed. Install with: pip install mcp>=1.0.0", file=sys.stderr)
    print(f"Details: {e}", file=sys.stderr)
    sys.exit(1)

from pydantic import ValidationError

from depquery.api.middleware.error_handler import AppException
from depquery.core.config import get_settings
from depquery.core.dependencies import (
    get_orchestrator,
    get_repo_service,
    get_summary_store,
    shutdown_services,
)
from depquery.models.requests import QueryRequest
from depquery.services.query_builder import build_query

logger = logging.getLogger("depquery.mcp")

TOOL_NAME = "query_dependency"

TOOL_DESCRIPTION = """Ask how to use a dependency by having a coding agent read its source code.

Use this for usage questions (e.g. "How do I validate forms with zod?"), not
for dependency metadata. Ask one question per call; pass the returned
sessionId to ask a follow-up in the same conversation.

Returns: JSON with the answer text ("response") and the "sessionId"."""

TOOL_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "repository": {
            "type": "string",
            "description": "Local path of the dependency's repository"
        },
        "storage_kind": {
            "type": "string",
            "enum": ["local", "cloned"],
            "default": "local",
            "description": "'local' for an existing directory, 'cloned' to clone git_url"
        },
        "git_url": {
            "type": "string",
            "description": "Git remote URL (required when storage_kind is 'cloned')"
        },
        "revision": {
            "type": "string",
            "description": "Tag or branch to check out before asking (cloned only)"
        },
        "question": {
            "type": "string",
            "description": "The question to ask about how to use the dependency"
        },
        "session_id": {
            "type": "string",
            "description": "Session ID from a previous answer, to ask a follow-up"
        },
        "model": {
            "type": "object",
            "properties": {
                "provider_id": {"type": "string"},
                "model_id": {"type": "string"}
            },
            "required": ["provider_id", "model_id"],
            "description": "Model to answer with; the service default when omitted"
        },
        "summary": {
            "type": "string",
            "description": "Repository summary to seed a new session with"
        },
        "summary_key": {
            "type": "string",
            "description": "Key of the stored repository summary (defaults to git_url or repository)"
        },
        "timeout_seconds": {
            "type": "number",
            "description": "Overall timeout in seconds. Only change when the user agreed to it."
        }
    },
    "required": ["repository", "question"]
}


# =============================================================================
# MCP SERVER IMPLEMENTATION
# =============================================================================


def create_mcp_server() -> Server:
    """Create and configure the MCP server."""
    server = Server("depquery")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name=TOOL_NAME,
                description=TOOL_DESCRIPTION,
                inputSchema=TOOL_INPUT_SCHEMA,
            )
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        if name != TOOL_NAME:
            raise ValueError(f"Unknown tool: {name}")
        return await handle_query_dependency(arguments)

    return server


async def handle_query_dependency(arguments: dict[str, Any]) -> list[TextContent]:
    """Handle the query_dependency tool call."""
    try:
        request = QueryRequest(**arguments)
    except ValidationError as e:
        return [TextContent(type="text", text=f"Invalid input: {e.errors()}")]

    logger.info(f"Querying dependency at: {request.repository}")

    try:
        query = await build_query(request, get_repo_service(), get_summary_store())
        answer = await get_orchestrator().query(query, summary_key=request.resolved_summary_key)
    except AppException as e:
        logger.error(f"Error querying dependency: {e.message}")
        return [TextContent(type="text", text=f"Error querying dependency: {e.message}")]

    payload = {"response": answer.response_text, "sessionId": answer.session_id}
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


async def main():
    """Main async entry point for the MCP server."""
    settings = get_settings()

    logger.info(f"Starting {settings.app_name} MCP Server v{settings.app_version}")
    logger.info(f"Remote agent service: {settings.agent_url}")

    server = create_mcp_server()

    logger.info("MCP Server ready, waiting for connections...")

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )
    finally:
        await shutdown_services()


def run():
    """Synchronous entry point for console script."""
    # Configure logging to stderr (stdout is for MCP protocol)
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    asyncio.run(main())


if __name__ == "__main__":
    run()

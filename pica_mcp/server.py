#!/usr/bin/env python3
"""Pica MCP Server - search, document and execute actions on hundreds of platforms through Pica."""

import asyncio
import json
import logging
import sys
from typing import Any

import jsonschema
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, TextContent, Tool

from . import __version__
from .client import PicaClient
from .config import Settings
from .exceptions import AuthorizationError, ConfigurationError, PicaError, ValidationError
from .formatting import (
    NO_SEARCH_RESULTS,
    build_action_knowledge_with_guidance,
    build_available_actions_message,
    build_integrations_status_message,
    format_available_actions_info,
    format_available_platforms_info,
    format_connections_info,
)
from .models import PassthroughArgs
from .permissions import (
    filter_by_allowlist,
    filter_by_permissions,
    is_action_allowed,
    is_method_allowed,
    is_wildcard,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "pica-mcp-server"
EXECUTE_TOOL = "execute_pica_action"

# Each tool has: title, description, params (required), optional_params (optional)
TOOLS = {
    "list_pica_integrations": {
        "title": "List Pica Integrations",
        "description": (
            "List all available Pica integrations and platforms. ALWAYS call this tool first in any "
            "workflow to discover what platforms and connections are available. This returns the "
            "connections that the user has and all available Pica platforms in kebab-case format "
            "(e.g., 'ship-station', 'shopify') which you'll need for subsequent tool calls."
        ),
    },
    "search_pica_platform_actions": {
        "title": "Search Platform Actions",
        "description": (
            "Search for relevant actions on a specific platform using a query. Call this after "
            "list_pica_integrations to find actions that match your intent. Returns the top 5 most "
            "relevant actions based on your search query. Use the exact kebab-case platform name "
            "from the integrations list."
        ),
        "params": ["platform", "query"],
        "optional_params": ["agentType"],
    },
    "get_pica_platform_actions": {
        "title": "Get Platform Actions",
        "description": (
            "List every available action for a platform. Prefer search_pica_platform_actions when "
            "you know what you want to do; use this to browse a platform's full catalog."
        ),
        "params": ["platform"],
    },
    "get_pica_action_knowledge": {
        "title": "Get Action Knowledge",
        "description": (
            "Get comprehensive documentation for a specific action including parameters, "
            "requirements, and usage examples. MANDATORY: You MUST call this tool before "
            "execute_pica_action to understand the action's requirements, parameter structure, "
            "caveats, and proper usage."
        ),
        "params": ["actionId", "platform"],
    },
    EXECUTE_TOOL: {
        "title": "Execute Pica Action",
        "description": (
            "⚠️ WRITE OPERATION for non-GET actions - Confirm with user before calling. Execute a "
            "Pica action to perform actual operations on third-party platforms. Only call this when "
            "the user's intent is to EXECUTE an action (e.g., 'read my last Gmail email', 'create a "
            "task in Asana'). REQUIRED WORKFLOW: Must call get_pica_action_knowledge first. "
            "Provide either actionId or action."
        ),
        "params": ["platform", "connectionKey"],
        "optional_params": [
            "actionId",
            "action",
            "data",
            "pathVariables",
            "queryParams",
            "headers",
            "isFormData",
            "isFormUrlEncoded",
        ],
    },
}

PLATFORM_DESCRIPTION = (
    "The platform name (e.g., 'ship-station', 'shopify'). This is the kebab-case platform name "
    "from the list_pica_integrations AVAILABLE PLATFORMS section."
)

PARAM_DEFINITIONS = {
    "platform": {"type": "string", "description": PLATFORM_DESCRIPTION},
    "query": {
        "type": "string",
        "description": "The search query to find relevant actions (e.g., 'search contacts', 'create customer', 'send email').",
    },
    "agentType": {
        "type": "string",
        "enum": ["execute", "knowledge"],
        "description": "'execute' if the user wants to execute an action, 'knowledge' if they want information or to write code. Defaults to 'knowledge'.",
    },
    "actionId": {"type": "string", "description": "The action ID from search_pica_platform_actions"},
    "action": {
        "type": "object",
        "description": "Action object from search results; its _id is used as the action ID",
        "properties": {
            "_id": {"type": "string"},
            "path": {"type": "string"},
            "method": {"type": "string"},
        },
        "required": ["_id"],
    },
    "connectionKey": {"type": "string", "description": "Key of the connection to use"},
    "data": {"description": "Request data (for POST, PUT, etc.)"},
    "pathVariables": {
        "type": "object",
        "description": "Variables to replace in the path",
        "additionalProperties": {"type": ["string", "number", "boolean"]},
    },
    "queryParams": {"type": "object", "description": "Query parameters"},
    "headers": {
        "type": "object",
        "description": "Additional headers",
        "additionalProperties": {"type": "string"},
    },
    "isFormData": {"type": "boolean", "description": "Whether to send data as multipart/form-data"},
    "isFormUrlEncoded": {
        "type": "boolean",
        "description": "Whether to send data as application/x-www-form-urlencoded",
    },
}


def build_tool_schema(tool_name: str, tool_config: dict) -> Tool:
    """Build a Tool object from its registry entry."""
    properties = {}
    required = []

    for param in tool_config.get("params", []):
        properties[param] = PARAM_DEFINITIONS[param].copy()
        required.append(param)
    for param in tool_config.get("optional_params", []):
        properties[param] = PARAM_DEFINITIONS[param].copy()

    return Tool(
        name=tool_name,
        title=tool_config["title"],
        description=tool_config["description"],
        inputSchema={
            "type": "object",
            "properties": properties,
            "required": required,
        },
    )


def _text_result(text: str, structured: dict[str, Any] | None = None) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], structuredContent=structured)


def _error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=f"Error: {message}")], isError=True)


class PicaTools:
    """Tool handlers bound to one client and one set of settings."""

    def __init__(self, settings: Settings, client: PicaClient):
        self.settings = settings
        self.client = client
        self.tools = {
            name: build_tool_schema(name, config)
            for name, config in TOOLS.items()
            if not (settings.knowledge_agent and name == EXECUTE_TOOL)
        }

    async def list_tools(self) -> list[Tool]:
        """List available Pica tools."""
        return list(self.tools.values())

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> CallToolResult:
        """Validate, authorize and run a tool call. Failures become error results."""
        arguments = arguments or {}
        try:
            if name not in self.tools:
                raise ValidationError(f"Unknown tool: {name}")
            self.validate_arguments(name, arguments)
            self.authorize(name, arguments)
            await self.client.initialize()
            return await self.execute_tool(name, arguments)
        except PicaError as e:
            logger.error("Tool %s failed: %s", name, e)
            return _error_result(str(e))
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return _error_result(f"{type(e).__name__}: {e}")

    def validate_arguments(self, name: str, arguments: dict[str, Any]) -> None:
        try:
            jsonschema.validate(arguments, self.tools[name].inputSchema)
        except jsonschema.ValidationError as e:
            raise ValidationError(f"Invalid arguments for {name}: {e.message}") from e

        if name == EXECUTE_TOOL and not _execute_action_id(arguments):
            raise ValidationError("Either actionId or action._id is required")

    def authorize(self, name: str, arguments: dict[str, Any]) -> None:
        """Checks that need no upstream data: action allowlist and connection scope."""
        if name == "get_pica_action_knowledge":
            self._check_action_allowed(arguments["actionId"])
        elif name == EXECUTE_TOOL:
            self._check_action_allowed(_execute_action_id(arguments))
            keys = self.settings.connection_keys
            if not is_wildcard(keys) and arguments["connectionKey"] not in keys:
                raise AuthorizationError(
                    f"Connection key '{arguments['connectionKey']}' is not in the allowed connection keys."
                )

    def _check_action_allowed(self, action_id: str) -> None:
        if not is_action_allowed(action_id, self.settings.action_ids):
            raise AuthorizationError(
                f"Action '{action_id}' is not in the allowed action list. "
                "Set PICA_ACTION_IDS to include it."
            )

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        if name == "list_pica_integrations":
            return self.list_integrations()
        if name == "search_pica_platform_actions":
            return await self.search_platform_actions(
                arguments["platform"], arguments["query"], arguments.get("agentType")
            )
        if name == "get_pica_platform_actions":
            return await self.get_platform_actions(arguments["platform"])
        if name == "get_pica_action_knowledge":
            return await self.get_action_knowledge(arguments["actionId"], arguments["platform"])
        if name == EXECUTE_TOOL:
            return await self.execute_action(arguments)
        raise ValidationError(f"Unknown tool: {name}")

    def list_integrations(self) -> CallToolResult:
        connections = [conn for conn in self.client.get_user_connections() if conn.active]
        platforms = [d for d in self.client.get_available_connectors() if d.active and not d.deprecated]

        structured = {
            "connections": [{"platform": conn.platform, "key": conn.key} for conn in connections],
            "availablePlatforms": [
                {"platform": d.platform, "name": d.name, "category": d.category} for d in platforms
            ],
            "summary": {"connectedCount": len(connections), "availableCount": len(platforms)},
        }
        text = build_integrations_status_message(
            format_connections_info(connections),
            format_available_platforms_info(platforms),
            len(connections),
            len(platforms),
        )
        return _text_result(text, structured)

    def _visible(self, actions):
        actions = filter_by_permissions(actions, self.settings.permission_level)
        return filter_by_allowlist(actions, self.settings.action_ids)

    async def search_platform_actions(
        self, platform: str, query: str, agent_type: str | None = None
    ) -> CallToolResult:
        actions = self._visible(await self.client.search_actions(platform, query, agent_type))

        if not actions:
            return _text_result(NO_SEARCH_RESULTS.format(platform=platform, query=query))

        structured = {
            "actions": [action.summary() for action in actions],
            "metadata": {"platform": platform, "query": query, "count": len(actions)},
        }
        text = (
            f"Found {len(actions)} action(s) for platform '{platform}' matching query '{query}':\n\n"
            f"{json.dumps(structured, indent=2)}\n\n"
            "NEXT STEP: Use get_pica_action_knowledge with an actionId to get detailed documentation "
            "before building requests or executing actions."
        )
        return _text_result(text, structured)

    async def get_platform_actions(self, platform: str) -> CallToolResult:
        actions = self._visible(await self.client.list_platform_actions(platform))
        text = build_available_actions_message(
            format_available_actions_info(actions, platform), platform, len(actions)
        )
        return _text_result(text, {"actions": [action.summary() for action in actions]})

    async def get_action_knowledge(self, action_id: str, platform: str) -> CallToolResult:
        result = await self.client.get_action_knowledge(action_id)
        text = build_action_knowledge_with_guidance(
            result["knowledge"], result["method"], self.client.base_url, platform, action_id
        )
        return _text_result(text)

    async def execute_action(self, arguments: dict[str, Any]) -> CallToolResult:
        action = await self.client.get_action_details(_execute_action_id(arguments))

        level = self.settings.permission_level
        if not is_method_allowed(action.method, level):
            raise AuthorizationError(
                f"Method {action.method} is not allowed at permission level '{level.value}'. "
                "Set PICA_PERMISSIONS to a higher level to enable it."
            )

        args = PassthroughArgs(
            action_id=action.id,
            connection_key=arguments["connectionKey"],
            data=arguments.get("data"),
            path_variables=arguments.get("pathVariables"),
            query_params=arguments.get("queryParams"),
            headers=arguments.get("headers"),
            is_form_data=bool(arguments.get("isFormData")),
            is_form_urlencoded=bool(arguments.get("isFormUrlEncoded")),
        )
        result = await self.client.execute_passthrough_request(args, action)
        return _text_result(json.dumps(result.to_dict(), indent=2, default=str))


def _execute_action_id(arguments: dict[str, Any]) -> str | None:
    return arguments.get("actionId") or (arguments.get("action") or {}).get("_id")


def create_server(settings: Settings, client: PicaClient | None = None) -> Server:
    """Create the MCP server with the Pica tools registered."""
    tools = PicaTools(settings, client or PicaClient(settings))
    server = Server(SERVER_NAME, version=__version__)
    server.list_tools()(tools.list_tools)
    server.call_tool()(tools.call_tool)
    return server


async def main(settings: Settings) -> None:
    """Run the MCP server."""
    server = create_server(settings)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run() -> None:
    # stdout carries the MCP protocol; logs go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        logger.error("%s", e)
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)
    asyncio.run(main(settings))


if __name__ == "__main__":
    run()

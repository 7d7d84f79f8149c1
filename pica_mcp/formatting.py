"""Text blocks returned to the agent alongside structured tool results."""

from collections import defaultdict

from .models import Action, Connection, ConnectionDefinition

NO_SEARCH_RESULTS = """No actions found for platform '{platform}' matching query '{query}'.

SUGGESTIONS:
- Try a more general query (e.g., 'list', 'get', 'search', 'create')
- Verify the platform name is correct
- Check that actions exist for this platform using list_pica_integrations

EXAMPLES OF GOOD QUERIES:
- "search contacts"
- "send email"
- "create customer"
- "list orders\""""


def format_connections_info(connections: list[Connection]) -> str:
    """Group connection keys by platform, one line per platform."""
    if not connections:
        return "No active connections found. User needs to connect to platforms first."

    grouped: dict[str, list[str]] = defaultdict(list)
    for conn in connections:
        grouped[conn.platform].append(conn.key)
    return "\n".join(f"- {platform}: {', '.join(keys)}" for platform, keys in grouped.items())


def format_available_platforms_info(definitions: list[ConnectionDefinition]) -> str:
    if not definitions:
        return "No available platform information found."

    lines = [f"- {d.platform}: {d.description}" for d in definitions if d.active and not d.deprecated]
    return "\n".join(lines) or "No active platforms available."


def build_integrations_status_message(
    connections_info: str,
    platforms_info: str,
    connected_count: int,
    available_count: int,
) -> str:
    return f"""PICA INTEGRATIONS STATUS

CONNECTED INTEGRATIONS:
{connections_info}

AVAILABLE PLATFORMS:
{platforms_info}

SUMMARY:
- Connected: {connected_count} integration(s)
- Available: {available_count} platform(s)

To manage connections, visit: https://app.picaos.com

NEXT STEP: Use search_pica_platform_actions with a platform name to find actions."""


def format_available_actions_info(actions: list[Action], platform: str) -> str:
    if not actions:
        return f"No available actions found for platform: {platform}"
    return "\n".join(f"- {action.title} (ID: {action.id})" for action in actions)


def build_available_actions_message(actions_info: str, platform: str, action_count: int) -> str:
    return f"""AVAILABLE ACTIONS FOR {platform.upper()}

ACTIONS:
{actions_info}

SUMMARY:
- Platform: {platform}
- Available actions: {action_count}

These actions can be used to interact with your {platform} integration through Pica.

NEXT STEP: Use get_pica_action_knowledge with an action ID to get detailed documentation before building requests."""


def build_action_knowledge_with_guidance(
    knowledge: str,
    method: str,
    base_url: str,
    platform: str,
    action_id: str,
) -> str:
    """Append passthrough request-construction guidance to an action's documentation."""
    base_url = base_url.rstrip("/")
    env_platform = platform.upper().replace("-", "_")

    return f"""{knowledge}

API REQUEST STRUCTURE
======================
URL: {base_url}/v1/passthrough/{{{{PATH}}}}

IMPORTANT: When constructing the URL, only include the API endpoint path after the base URL.
Do NOT include the full third-party API URL.

Examples:
Correct: {base_url}/v1/passthrough/crm/v3/objects/contacts/search
Incorrect: {base_url}/v1/passthrough/https://api.hubapi.com/crm/v3/objects/contacts/search

METHOD: {method}

HEADERS:
- x-pica-secret: {{{{process.env.PICA_SECRET}}}}
- x-pica-connection-key: {{{{process.env.PICA_{env_platform}_CONNECTION_KEY}}}}
- x-pica-action-id: {action_id}
- ... (other headers)

BODY: {{{{BODY}}}}

QUERY PARAMS: {{{{QUERY_PARAMS}}}}"""

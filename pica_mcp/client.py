"""Client for the Pica API.

Owns the secret and base URL, caches the user's connections and the platform
catalog, and builds and sends passthrough requests.
"""

import asyncio
import copy
import json
import logging
import secrets
from enum import Enum
from typing import Any

import httpx

from .config import Settings
from .exceptions import ActionNotFoundError, ConfigurationError, UpstreamError, ValidationError
from .models import (
    ACTION_ID_HEADER,
    CONNECTION_KEY_HEADER,
    SECRET_HEADER,
    Action,
    Connection,
    ConnectionDefinition,
    PassthroughArgs,
    PassthroughResult,
    RequestConfig,
)
from .pagination import fetch_paginated
from .paths import resolve_path
from .permissions import is_wildcard

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5

JSON_CONTENT_TYPE = "application/json"
FORM_URLENCODED_CONTENT_TYPE = "application/x-www-form-urlencoded"
MULTIPART_CONTENT_TYPE = "multipart/form-data"


class InitState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def _upstream_error(context: str, exc: Exception) -> UpstreamError:
    """Wrap an httpx failure without leaking request headers."""
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        return UpstreamError(
            f"{context}: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            status_text=response.reason_phrase,
        )
    return UpstreamError(f"{context}: {type(exc).__name__}")


def _form_value(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _form_fields(data: Any) -> dict[str, str]:
    if not isinstance(data, dict):
        return {}
    return {key: _form_value(value) for key, value in data.items()}


def _merge_headers(base: dict[str, str], overrides: dict[str, Any] | None) -> dict[str, str]:
    """Apply ``overrides`` on top of ``base``, matching header names case-insensitively."""
    merged = dict(base)
    for name, value in (overrides or {}).items():
        for existing in [key for key in merged if key.lower() == name.lower()]:
            del merged[existing]
        merged[name] = str(value)
    return merged


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class PicaClient:
    def __init__(self, settings: Settings):
        if not settings.secret or not settings.secret.strip():
            raise ConfigurationError("Pica secret is required and cannot be empty")
        self._settings = settings
        self._secret = settings.secret
        self.base_url = settings.base_url.rstrip("/")
        self._timeout = settings.timeout

        self._connections: list[Connection] = []
        self._connectors: list[ConnectionDefinition] = []
        self._state = InitState.UNINITIALIZED
        self._init_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Initialization and caches
    # ------------------------------------------------------------------

    @property
    def state(self) -> InitState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is InitState.READY

    def generate_headers(self) -> dict[str, str]:
        return {
            "Content-Type": JSON_CONTENT_TYPE,
            SECRET_HEADER: self._secret,
        }

    async def initialize(self) -> None:
        """Load connections and the platform catalog once.

        Concurrent callers share a single in-flight load. After a failed load
        the next call starts a new one.
        """
        if self._state is InitState.READY:
            return

        if self._init_task is None:
            self._state = InitState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._run_initialization())

        await asyncio.shield(self._init_task)

    async def _run_initialization(self) -> None:
        try:
            await self._load_caches()
        except BaseException:
            logger.exception("Failed to initialize Pica client")
            self._state = InitState.FAILED
            self._init_task = None
            raise
        self._state = InitState.READY
        logger.info(
            "Pica client initialized: %d connection(s), %d connector(s)",
            len(self._connections),
            len(self._connectors),
        )

    async def refresh(self) -> None:
        """Re-fetch connections and the catalog, whatever the current state."""
        await self._load_caches()

    async def _load_caches(self) -> None:
        connections, connectors = await asyncio.gather(
            self._fetch_connections(),
            self._fetch_connection_definitions(),
            return_exceptions=True,
        )

        if isinstance(connections, BaseException):
            logger.warning("Failed to fetch connections: %s", connections)
            connections = []
        if isinstance(connectors, BaseException):
            logger.warning("Failed to fetch connectors: %s", connectors)
            connectors = []

        self._connections = connections
        self._connectors = connectors

    async def _fetch_connections(self) -> list[Connection]:
        keys = self._settings.connection_keys
        if not is_wildcard(keys) and not keys:
            return []

        params: dict[str, Any] = {}
        if self._settings.identity:
            params["identity"] = self._settings.identity
        if self._settings.identity_type:
            params["identityType"] = self._settings.identity_type
        if not is_wildcard(keys):
            params["key"] = ",".join(keys)

        try:
            rows = await fetch_paginated(
                f"{self.base_url}/v1/vault/connections",
                self.generate_headers(),
                params or None,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise _upstream_error("Failed to fetch connections", e) from e
        return [Connection.from_dict(row) for row in rows]

    async def _fetch_connection_definitions(self) -> list[ConnectionDefinition]:
        try:
            rows = await fetch_paginated(
                f"{self.base_url}/v1/available-connectors",
                self.generate_headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise _upstream_error("Failed to fetch connection definitions", e) from e
        return [ConnectionDefinition.from_dict(row) for row in rows]

    def get_user_connections(self) -> list[Connection]:
        return copy.deepcopy(self._connections)

    def get_available_connectors(self) -> list[ConnectionDefinition]:
        return copy.deepcopy(self._connectors)

    # ------------------------------------------------------------------
    # Action lookups
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: dict[str, Any], context: str) -> Any:
        """GET a Pica endpoint and return the decoded body, wrapping failures."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self.base_url}{path}",
                    headers=self.generate_headers(),
                    params=params,
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error("%s: %s", context, e)
            raise _upstream_error(context, e) from e

    async def search_actions(
        self, platform: str, query: str, agent_context: str | None = "knowledge"
    ) -> list[Action]:
        """Return up to five actions for ``platform`` ranked by relevance to ``query``."""
        if not platform or not platform.strip():
            raise ValidationError("Platform name is required")
        if not query or not query.strip():
            raise ValidationError("Search query is required")

        params: dict[str, Any] = {"query": query, "limit": str(SEARCH_LIMIT)}
        if agent_context == "execute":
            params["executeAgent"] = "true"
        else:
            params["knowledgeAgent"] = "true"

        rows = await self._get_json(
            f"/v1/available-actions/search/{platform}",
            params,
            "Failed to search available actions",
        )
        return [Action.from_summary(row) for row in (rows or [])[:SEARCH_LIMIT]]

    async def list_platform_actions(self, platform: str) -> list[Action]:
        """Return every supported action catalogued for ``platform``."""
        if not platform or not platform.strip():
            raise ValidationError("Platform name is required")
        try:
            rows = await fetch_paginated(
                f"{self.base_url}/v1/knowledge",
                self.generate_headers(),
                {"supported": "true", "connectionPlatform": platform},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise _upstream_error("Failed to fetch platform actions", e) from e
        return [Action.from_details(row) for row in rows]

    async def get_action_details(self, action_id: str) -> Action:
        """Look up one action by id.

        If upstream returns several rows for the id, the first one wins.
        """
        if not action_id or not action_id.strip():
            raise ValidationError("Action ID is required")

        body = await self._get_json("/v1/knowledge", {"_id": action_id}, "Failed to fetch action details")
        rows = (body or {}).get("rows") or []
        if not rows:
            raise ActionNotFoundError(action_id)
        return Action.from_details(rows[0])

    async def get_action_knowledge(self, action_id: str) -> dict[str, str]:
        action = await self.get_action_details(action_id)
        if not action.knowledge or not action.method:
            return {"knowledge": "No knowledge was found", "method": "No method was found"}
        return {"knowledge": action.knowledge, "method": action.method}

    # ------------------------------------------------------------------
    # Passthrough
    # ------------------------------------------------------------------

    def build_passthrough_request(self, args: PassthroughArgs, action: Action) -> tuple[RequestConfig, dict[str, Any]]:
        """Assemble the outbound request for ``action``.

        Returns the config to echo back and the keyword arguments for the
        httpx body (``json``, ``data`` or ``files``).
        """
        method = (action.method or "GET").upper()

        if args.is_form_data:
            boundary = secrets.token_hex(16)
            content_type = f"{MULTIPART_CONTENT_TYPE}; boundary={boundary}"
        elif args.is_form_urlencoded:
            content_type = FORM_URLENCODED_CONTENT_TYPE
        else:
            content_type = JSON_CONTENT_TYPE

        path = resolve_path(action.path, args.path_variables or {})
        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self.base_url}/v1/passthrough{path}"

        headers = _merge_headers(
            self.generate_headers(),
            {
                CONNECTION_KEY_HEADER: args.connection_key,
                ACTION_ID_HEADER: action.id,
                "Content-Type": content_type,
            },
        )
        headers = _merge_headers(headers, args.headers)
        headers = _merge_headers(headers, {SECRET_HEADER: self._secret})
        if args.is_form_data:
            # httpx writes the body with the boundary named in this header.
            headers = _merge_headers(headers, {"Content-Type": content_type})

        data = args.data
        if action.is_custom and method != "GET":
            if data is not None and not isinstance(data, dict):
                raise ValidationError(
                    f"Action {action.id} is a custom action and needs an object body, got {type(data).__name__}"
                )
            data = {**(data or {}), "connectionKey": args.connection_key}

        config = RequestConfig(url=url, method=method, headers=headers, params=args.query_params or None)
        body: dict[str, Any] = {}

        if method != "GET":
            if args.is_form_data:
                config.data = _form_fields(data)
                body["files"] = [(key, (None, value)) for key, value in config.data.items()]
            elif args.is_form_urlencoded:
                config.data = _form_fields(data)
                body["data"] = config.data
            else:
                config.data = data
                if data is not None:
                    body["json"] = data

        return config, body

    async def execute_passthrough_request(
        self, args: PassthroughArgs, action: Action | None = None
    ) -> PassthroughResult:
        """Send a passthrough request and return the sanitized config and response body."""
        if action is None:
            action = await self.get_action_details(args.action_id)

        config, body = self.build_passthrough_request(args, action)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    config.method,
                    config.url,
                    headers=config.headers,
                    params=config.params,
                    **body,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Passthrough request for action %s failed: %s", action.id, type(e).__name__)
            raise _upstream_error("Failed to execute passthrough request", e) from e

        return PassthroughResult(request_config=config.sanitized(), response_data=_decode_body(response))

"""Records read from and sent to the Pica API."""

import copy
from dataclasses import asdict, dataclass, field
from typing import Any

SECRET_HEADER = "x-pica-secret"
CONNECTION_KEY_HEADER = "x-pica-connection-key"
ACTION_ID_HEADER = "x-pica-action-id"
REDACTED = "***REDACTED***"


@dataclass
class Connection:
    key: str
    platform: str
    tags: list[str] = field(default_factory=list)
    active: bool = False

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "Connection":
        return cls(
            key=row.get("key", ""),
            platform=row.get("platform", ""),
            tags=list(row.get("tags") or []),
            active=bool(row.get("active", False)),
        )


@dataclass
class ConnectionDefinition:
    """A platform that can be connected, whether or not the user has connected it."""

    platform: str
    name: str = ""
    key: str = ""
    category: str = ""
    description: str = ""
    active: bool = False
    deprecated: bool = False
    tags: list[str] = field(default_factory=list)
    oauth: bool = False
    platform_version: str | None = None
    version: str | None = None

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "ConnectionDefinition":
        return cls(
            platform=row.get("platform", ""),
            name=row.get("name", ""),
            key=row.get("key", ""),
            category=row.get("category", ""),
            description=row.get("description", ""),
            active=bool(row.get("active", False)),
            deprecated=bool(row.get("deprecated", False)),
            tags=list(row.get("tags") or []),
            oauth=bool(row.get("oauth", False)),
            platform_version=row.get("platformVersion"),
            version=row.get("version"),
        )


@dataclass
class Action:
    """One catalogued operation on a platform, addressed by ``id``.

    The search endpoint calls the id ``systemId`` and the knowledge endpoint
    calls it ``_id``; both are folded into ``id`` here.
    """

    id: str
    title: str = ""
    method: str | None = None
    path: str = ""
    tags: list[str] = field(default_factory=list)
    knowledge: str | None = None

    @classmethod
    def from_summary(cls, row: dict[str, Any]) -> "Action":
        return cls(
            id=row.get("systemId", ""),
            title=row.get("title", ""),
            method=row.get("method"),
            path=row.get("path") or "",
            tags=list(row.get("tags") or []),
        )

    @classmethod
    def from_details(cls, row: dict[str, Any]) -> "Action":
        return cls(
            id=row.get("_id", ""),
            title=row.get("title", ""),
            method=row.get("method"),
            path=row.get("path") or "",
            tags=list(row.get("tags") or []),
            knowledge=row.get("knowledge"),
        )

    @property
    def is_custom(self) -> bool:
        return "custom" in self.tags

    def summary(self) -> dict[str, Any]:
        return {"actionId": self.id, "title": self.title, "method": self.method, "path": self.path}


@dataclass
class RequestConfig:
    """The exact outbound passthrough call."""

    url: str
    method: str
    headers: dict[str, str]
    params: dict[str, Any] | None = None
    data: Any = None

    def sanitized(self) -> "RequestConfig":
        """Deep copy with the secret header value redacted. ``self`` is not modified."""
        clean = copy.deepcopy(self)
        for name in clean.headers:
            if name.lower() == SECRET_HEADER:
                clean.headers[name] = REDACTED
        return clean

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        if self.params is None:
            del result["params"]
        if self.data is None:
            del result["data"]
        return result


@dataclass
class PassthroughArgs:
    action_id: str
    connection_key: str
    data: Any = None
    path_variables: dict[str, Any] | None = None
    query_params: dict[str, Any] | None = None
    headers: dict[str, Any] | None = None
    is_form_data: bool = False
    is_form_urlencoded: bool = False


@dataclass
class PassthroughResult:
    request_config: RequestConfig
    response_data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"requestConfig": self.request_config.to_dict(), "responseData": self.response_data}

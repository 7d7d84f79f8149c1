"""Errors raised by the Pica MCP server."""


class PicaError(Exception):
    """Base class for every error this package raises."""


class ConfigurationError(PicaError):
    """Invalid or missing startup configuration. The server does not start."""


class ValidationError(PicaError):
    """Tool input is missing or malformed."""


class MissingPathVariableError(ValidationError):
    def __init__(self, variable: str):
        super().__init__(f"Missing value for path variable: {variable}")
        self.variable = variable


class AuthorizationError(PicaError):
    """The configured permission level or allowlist forbids the call."""


class UpstreamError(PicaError):
    """The Pica API answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, status_text: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text


class ActionNotFoundError(PicaError):
    def __init__(self, action_id: str):
        super().__init__(f"Action with ID {action_id} not found")
        self.action_id = action_id

"""Path template substitution for passthrough action paths."""

import re
from typing import Any, Mapping
from urllib.parse import quote

from .exceptions import MissingPathVariableError

DOUBLE_BRACE = re.compile(r"\{\{([^}]+)\}\}")
SINGLE_BRACE = re.compile(r"\{([^}]+)\}")

# Same unreserved set as encodeURIComponent.
_SAFE_CHARS = "-_.!~*'()"


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _substitute(pattern: re.Pattern, template: str, variables: Mapping[str, Any]) -> str:
    def replace(match: re.Match) -> str:
        name = match.group(1).strip()
        value = variables.get(name)
        if value is None or value == "":
            raise MissingPathVariableError(name)
        return quote(_stringify(value), safe=_SAFE_CHARS)

    return pattern.sub(replace, template)


def resolve_path(template: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` and ``{name}`` tokens with URL-encoded values.

    Double-brace tokens are resolved first, then single-brace tokens on the
    result. ``0`` and ``False`` are valid values; absent, ``None`` and empty
    strings raise :class:`MissingPathVariableError`.
    """
    if not template:
        return template
    result = _substitute(DOUBLE_BRACE, template, variables)
    return _substitute(SINGLE_BRACE, result, variables)

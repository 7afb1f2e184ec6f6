"""
Result helpers shared by the dimension registry, stance calculator and consensus analyzer.

Expected empty states ("nothing configured yet", "no such comment") are
returned as ``{"success": False, ...}`` dicts instead of raised, so callers
can render them as benign empty states.
"""

import uuid
from typing import Any, Dict, Optional, Union

NOT_FOUND = "not_found"
NOT_CONFIGURED = "not_configured"
NO_DATA = "no_data"


def parse_uuid(value: Union[str, uuid.UUID], field_name: str = "id") -> uuid.UUID:
    """Parse a string to UUID, raising ``ValueError`` with a clear message."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid UUID for {field_name}: {value}") from exc


def lookup_uuid(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    """Parse an id used for a lookup. A malformed id matches nothing, so return ``None``."""
    try:
        return parse_uuid(value)
    except ValueError:
        return None


def failure(reason: str, message: str, **extra: Any) -> Dict[str, Any]:
    """Build an unsuccessful (non-exceptional) result."""
    result = {"success": False, "reason": reason, "message": message}
    result.update(extra)
    return result

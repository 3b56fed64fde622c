"""
JSON encoding for values stored in Redis.

The cache and the session store keep JSON documents. Values may contain
types the standard encoder rejects (UUIDs, datetimes, pydantic models, sets),
so encoding goes through :class:`StoreJSONEncoder`. Any failure in either
direction is raised as :class:`~rediscoord.exceptions.SerializationError`.

Example:
    >>> from rediscoord.serialization import json_dumps, json_loads
    >>> from uuid import uuid4
    >>>
    >>> payload = json_dumps({"id": uuid4(), "tags": {"a"}})
    >>> json_loads(payload)["tags"]
    ['a']
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from rediscoord.exceptions import SerializationError


class StoreJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for values written to Redis.

    Handles:
    - UUID: string form
    - datetime / date: ISO 8601 string
    - Decimal: string form (no precision loss)
    - set / frozenset: sorted list when sortable, list otherwise
    - pydantic models: ``model_dump(mode="json")``
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID | Decimal):
            return str(obj)
        if isinstance(obj, datetime | date):
            return obj.isoformat()
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if isinstance(obj, set | frozenset):
            try:
                return sorted(obj)
            except TypeError:
                return list(obj)
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """
    Serialize a value to a JSON string.

    Args:
        obj: Value to serialize

    Returns:
        JSON string

    Raises:
        SerializationError: If the value contains an unsupported type
    """
    try:
        return json.dumps(obj, cls=StoreJSONEncoder, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to encode value as JSON: {e}") from e


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize a JSON string.

    UUID and datetime strings are not converted back; callers that need typed
    values validate the result (the session store uses a pydantic model).

    Raises:
        SerializationError: If the input is not valid JSON
    """
    try:
        return json.loads(s)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to decode JSON value: {e}") from e


__all__ = [
    "StoreJSONEncoder",
    "json_dumps",
    "json_loads",
]

"""
Serialization utilities for rediscoord.

Example:
    >>> from rediscoord.serialization import json_dumps
    >>> json_dumps({"when": datetime.now(UTC)})
"""

from rediscoord.serialization.json import (
    StoreJSONEncoder,
    json_dumps,
    json_loads,
)

__all__ = [
    "StoreJSONEncoder",
    "json_dumps",
    "json_loads",
]

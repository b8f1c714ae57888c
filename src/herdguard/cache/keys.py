"""
Cache key construction.

Callers own their key layout; this helper only makes sure every parameter
that affects a result ends up in the key in a stable form.
"""

import json
from typing import Any

SEPARATOR = ":"
ALL = "all"


def _render(part: Any) -> str:
    if part is None or part == "":
        return ALL
    if isinstance(part, bool):
        return "1" if part else "0"
    if isinstance(part, (list, tuple, set, frozenset)):
        items = sorted(part, key=str) if isinstance(part, (set, frozenset)) else part
        return ",".join(_render(item) for item in items) or ALL
    if isinstance(part, dict):
        return json.dumps(part, sort_keys=True, separators=(",", ":"), default=str)
    return str(part)


def build_key(prefix: str, *parts: Any) -> str:
    """
    Join a prefix and parameters into a deterministic cache key.

    Missing filters render as ``all``, sets are sorted, dicts are encoded
    with sorted keys.

    Example:
        build_key("nearby_hotels", 12.97, 77.59, 5, 20, None)
        -> "nearby_hotels:12.97:77.59:5:20:all"
    """
    if not prefix:
        raise ValueError("Cache key prefix must be non-empty")
    return SEPARATOR.join([prefix, *(_render(p) for p in parts)])

"""Dotted-path lookups into arbitrary nested JSON.

Paths look like ``attributes.body.processed``, ``items[2].title`` or
``_embedded.author.0.name``. Lookups never raise: anything that cannot be
resolved yields ``None``.
"""

import re
from typing import Any, Optional

_INDEXED_SEGMENT = re.compile(r'^([^\[\]]+)\[(\d+)\]$')


def _step(current: Any, key: str) -> Any:
    if isinstance(current, dict):
        return current.get(key)
    if isinstance(current, (list, tuple)) and key.isdigit():
        index = int(key)
        return current[index] if index < len(current) else None
    return None


def extract_by_path(root: Any, path: Optional[str]) -> Any:
    """Resolve ``path`` against ``root``.

    Args:
        root: Parsed JSON (dicts, lists, scalars)
        path: Dot-separated path; a segment may carry one ``[n]`` index

    Returns:
        The value at the path, or None as soon as any step is missing
    """
    if not path:
        return root

    current = root
    for part in path.split('.'):
        if current is None:
            return None

        match = _INDEXED_SEGMENT.match(part)
        if match:
            current = _step(current, match.group(1))
            if current is None:
                return None
            current = _step(current, match.group(2))
        else:
            current = _step(current, part)

    return current

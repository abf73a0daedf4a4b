"""Version ordering used to classify package changes.

Versions made only of dot-separated decimal components (``1.10``,
``2.0.3``) are compared component by component as integers. Anything else
(``1.2-rc1``, ``1:2.36-9``, ``""``) is compared byte-wise as UTF-8. When
either side is not numeric, both are compared byte-wise.
"""

import re
from typing import Optional

NUMERIC_VERSION = re.compile(r"[0-9]+(\.[0-9]+)*")


def parse_numeric(version: str) -> Optional[tuple[int, ...]]:
    """Split a dotted numeric version into integer components.

    Args:
        version: Version string to parse

    Returns:
        Tuple of integers, None if the version is not purely numeric
    """
    if not NUMERIC_VERSION.fullmatch(version):
        return None
    return tuple(int(part) for part in version.split("."))


def _lexical(a: str, b: str) -> int:
    a_bytes, b_bytes = a.encode(), b.encode()
    return (a_bytes > b_bytes) - (a_bytes < b_bytes)


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings.

    Returns:
        Negative if ``a`` sorts before ``b``, zero if the strings are
        identical, positive otherwise
    """
    if a == b:
        return 0

    a_parts, b_parts = parse_numeric(a), parse_numeric(b)
    if a_parts is not None and b_parts is not None and a_parts != b_parts:
        return (a_parts > b_parts) - (a_parts < b_parts)

    # Non-numeric versions, or numerically equal spellings like "1.01"/"1.1"
    return _lexical(a, b)


def is_newer(new: str, old: str) -> bool:
    return compare_versions(new, old) > 0

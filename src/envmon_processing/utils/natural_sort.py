"""Natural ordering for sample ids, analyte names and other mixed text.

"WS2" sorts before "WS10" and "NH3-N" before "NH10"; text without any digits
sorts after text that has them.
"""

import re
from typing import Callable, List, Optional

_DIGITS = re.compile(r"([0-9]+)")


def natural_sort_key(text: str) -> tuple:
    """Key that orders embedded digit runs numerically.

    Examples:
        - "WS20240102" after "WS20240101"; "WS10" after "WS2".
        - "pH" (no digits) after "BOD5".

    Args:
        text: Input string.

    Returns:
        Tuple (has_digit, parts) usable as a ``sorted`` key.
    """
    has_digit = bool(_DIGITS.search(text))
    parts = [
        (0, int(part)) if part.isdigit() else (1, part.lower())
        for part in _DIGITS.split(text)
        if part
    ]
    return (0 if has_digit else 1, parts)


def natural_sort(
    items: List[str],
    key_func: Optional[Callable[[str], tuple]] = None,
) -> List[str]:
    """Return ``items`` as a new list in natural order."""
    return sorted(items, key=key_func or natural_sort_key)

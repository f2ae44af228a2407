"""
General-purpose helpers shared across the package.
"""

from .natural_sort import natural_sort, natural_sort_key

__all__ = [
    "natural_sort",
    "natural_sort_key",
]

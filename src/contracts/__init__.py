"""
Canonical page contracts shared across pipeline stages.

Corpus discovery produces `PageSource`; the bounds estimator produces
`BoundsEstimate`; normalization consumes both read-only. Stage code should
consume/produce these contract objects (not ad-hoc dicts).
"""

from .pages import BoundsEstimate, PageSource, PixelBox

__all__ = [
    "BoundsEstimate",
    "PageSource",
    "PixelBox",
]

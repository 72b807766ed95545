"""
Algorithm implementations for tiny-hist.
"""

from tiny_hist.algorithms.streamhist import StreamHist, fast_hist

__all__ = [
    "StreamHist",
    "fast_hist",
]

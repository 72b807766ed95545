"""
Core functionality for tiny-hist.
"""

from tiny_hist.core.base import DistributionSummary, StreamSummary
from tiny_hist.core.bins import Bin, BinStore, combine_bins, diff_bins

__all__ = [
    # Base classes
    "StreamSummary",
    "DistributionSummary",
    # Bin storage
    "Bin",
    "BinStore",
    # Bin arithmetic
    "combine_bins",
    "diff_bins",
]

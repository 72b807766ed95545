"""
tiny-hist - Streaming Approximate Histograms

tiny-hist is a Python library for summarizing numeric data streams with a
small, fixed number of weighted bins, supporting quantile, cumulative count
and density estimates without keeping the original data.
"""

__version__ = "0.1.0"

# Import main classes to make them available at the top level
from tiny_hist.algorithms.streamhist import StreamHist, fast_hist
from tiny_hist.core.base import DistributionSummary, StreamSummary
from tiny_hist.core.bins import Bin, BinStore, combine_bins, diff_bins

__all__ = [
    # Core base classes
    "StreamSummary",
    "DistributionSummary",
    # Bins
    "Bin",
    "BinStore",
    "combine_bins",
    "diff_bins",
    # Algorithm implementations
    "StreamHist",
    "fast_hist",
]

# tiny_hist/core/bins.py

"""
Histogram bins and the ordered store that keeps them sorted by mean.

A bin is a weighted point mass (mean, count) plus a running sum of squared
deviations (tss). The store keeps bins ordered by mean with logarithmic
insertion, removal and neighbour lookup, and caches the cumulative counts
used by quantile queries.
"""

import bisect
import math
from operator import attrgetter
from typing import Dict, Iterator, List, Optional, Tuple

from sortedcontainers import SortedKeyList


class Bin:
    """A cluster of observations summarized by its mean and total weight."""

    __slots__ = ["mean", "count", "tss", "cumn"]

    def __init__(self, mean: float, count: float = 1.0, tss: float = 0.0):
        if count <= 0:
            raise ValueError("Bin count must be positive")
        if tss < 0:
            raise ValueError("Bin tss cannot be negative")
        self.mean = float(mean)
        self.count = float(count)
        self.tss = float(tss)
        self.cumn = 0.0

    def __repr__(self) -> str:
        return f"Bin(mean={self.mean:.4g}, count={self.count:.4g})"

    def copy(self) -> "Bin":
        """Return an independent copy of this bin."""
        return Bin(self.mean, self.count, self.tss)

    def to_dict(self) -> Dict[str, float]:
        """Serialize the bin to a dictionary."""
        return {"mean": self.mean, "count": self.count, "tss": self.tss}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Bin":
        """Deserialize a bin from a dictionary."""
        if "mean" not in data or "count" not in data:
            raise ValueError("Bin dictionary missing 'mean' or 'count'")
        if data["count"] <= 0:
            raise ValueError(
                f"Invalid serialized data: Bin count must be positive ({data['count']})"
            )
        return cls(mean=data["mean"], count=data["count"], tss=data.get("tss", 0.0))


def diff_bins(a: Bin, b: Bin, weighted: bool = False) -> float:
    """
    Cost of merging two adjacent bins.

    The squared gap between the means, scaled by ln(e + min(count)) when gap
    weighting is on so that dense bins are merged less eagerly.
    """
    diff = (b.mean - a.mean) ** 2
    if weighted:
        diff *= math.log(math.e + min(a.count, b.count))
    return diff


def combine_bins(a: Bin, b: Bin) -> Bin:
    """
    Merge two bins into a new one.

    The count-weighted mean and the parallel-variance update of tss keep the
    first and second moments of both point masses. Neither input is modified.
    """
    count = a.count + b.count
    mean = (a.mean * a.count + b.mean * b.count) / count
    tss = (
        a.tss
        + b.tss
        + (a.mean - mean) ** 2 * a.count
        + (b.mean - mean) ** 2 * b.count
    )
    return Bin(mean, count, tss)


class BinStore:
    """
    Bins ordered by mean.

    Backed by a SortedKeyList, so add, remove and positional lookups are
    O(log B). Bins must not have their mean changed while stored; merged bins
    are swapped in with replace().

    The cumulative counts (Bin.cumn) are refreshed by cumulate(), which also
    fills a parallel list searched by bisect_cumn(). Since cumn grows with the
    mean order, the two lists share positions.
    """

    def __init__(self) -> None:
        self._bins = SortedKeyList(key=attrgetter("mean"))
        self._cumns: List[float] = []

    def __len__(self) -> int:
        return len(self._bins)

    def __iter__(self) -> Iterator[Bin]:
        return iter(self._bins)

    def __reversed__(self) -> Iterator[Bin]:
        return reversed(self._bins)

    def __getitem__(self, index: int) -> Bin:
        return self._bins[index]

    def add(self, b: Bin) -> Bin:
        self._bins.add(b)
        return b

    def remove(self, b: Bin) -> None:
        """Remove a stored bin. Raises ValueError if it is not present."""
        self._bins.remove(b)

    def replace(self, a: Bin, b: Bin, merged: Bin) -> Bin:
        """Swap a pair of stored bins for their merged bin."""
        self._bins.remove(a)
        self._bins.remove(b)
        self._bins.add(merged)
        return merged

    def clear(self) -> None:
        self._bins.clear()
        self._cumns = []

    def min(self) -> Optional[Bin]:
        """Bin with the smallest mean."""
        return self._bins[0] if self._bins else None

    def max(self) -> Optional[Bin]:
        """Bin with the largest mean."""
        return self._bins[-1] if self._bins else None

    def bisect_left(self, mean: float) -> int:
        """Position of the first bin whose mean is >= the given mean."""
        return self._bins.bisect_key_left(mean)

    def find(self, mean: float) -> Optional[Bin]:
        """Bin with exactly this mean, if any."""
        i = self.bisect_left(mean)
        if i < len(self._bins) and self._bins[i].mean == mean:
            return self._bins[i]
        return None

    def nearest(self, value: float) -> Optional[Bin]:
        """
        Bin whose mean is closest to value.

        The successor (first mean >= value) wins unless the predecessor is
        strictly closer.
        """
        n = len(self._bins)
        if n == 0:
            return None
        i = self.bisect_left(value)
        if i == n:
            return self._bins[-1]
        successor = self._bins[i]
        if successor.mean == value or i == 0:
            return successor
        predecessor = self._bins[i - 1]
        if abs(predecessor.mean - value) < abs(successor.mean - value):
            return predecessor
        return successor

    def pairs(self) -> Iterator[Tuple[Bin, Bin]]:
        """Adjacent bin pairs in mean order."""
        it = iter(self._bins)
        prev = next(it, None)
        for cur in it:
            yield prev, cur
            prev = cur

    def cumulate(self) -> float:
        """
        Refresh every bin's cumulative count.

        Each bin gets the total weight of all bins before it plus half of its
        own weight. Returns the total weight.
        """
        cumns = []
        total = 0.0
        for b in self._bins:
            b.cumn = total + b.count / 2
            cumns.append(b.cumn)
            total += b.count
        self._cumns = cumns
        return total

    def bisect_cumn(self, s: float) -> int:
        """Position of the first bin whose cumulative count is > s."""
        return bisect.bisect_right(self._cumns, s)

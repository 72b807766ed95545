# tiny_hist/algorithms/streamhist.py

import decimal
import logging
import math
import numbers
import sys
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Type, TypeVar, Union

from tiny_hist.core.base import DistributionSummary
from tiny_hist.core.bins import Bin, BinStore, combine_bins, diff_bins

logger = logging.getLogger(__name__)

# Type variable for the class itself (for from_dict)
StreamHistType = TypeVar("StreamHistType", bound="StreamHist")

Values = Union[float, Iterable[float]]


def _is_number(x: Any) -> bool:
    """True for real scalars (numpy scalars and Decimal included) but not bool."""
    return isinstance(x, (numbers.Real, decimal.Decimal)) and not isinstance(x, bool)


class StreamHist(DistributionSummary):
    """
    Streaming approximate histogram (Ben-Haim & Tom-Tov, 2010).

    The histogram approximates the distribution of a numeric stream with at
    most `max_bins` weighted bins. Each new value becomes its own bin (or
    joins a bin with exactly the same mean); whenever that pushes the bin
    count over the limit, the two adjacent bins with the smallest merge cost
    are combined. Key properties:

    1. Memory is bounded by `max_bins`, independent of the stream length
    2. Insertion is O(log B) plus one O(B) scan when bins must be merged
    3. Mergeable: histograms built on separate streams can be combined
    4. Quantiles, cumulative counts and densities are interpolated between
       bins, so results are approximate with no guaranteed error bound

    Optional behaviours:

    - weighted: the merge cost is scaled by ln(e + min(count)) so dense
      regions keep more bins and the tails are merged more aggressively.
    - freeze: once more than `freeze` observations have been seen, values
      that do not match a bin exactly are added to the nearest bin without
      moving it, which skips the merge scan.
    - warm_up: when an insertion brings the total count to exactly
      `warm_up`, every bin count is reset to 1 (and tss to 0), keeping the
      shape learned so far but discarding its volume. A weighted insertion
      that jumps past the threshold does not trigger the reset.

    The exact minimum and maximum of the stream are tracked separately from
    the bins.
    """

    DEFAULT_MAX_BINS: int = 100
    SNAPSHOT_VERSION: int = 1
    # Offset used to evaluate the density on either side of a bin mean
    DENSITY_EPSILON: float = 10 * sys.float_info.epsilon

    def __init__(
        self,
        max_bins: Optional[int] = DEFAULT_MAX_BINS,
        weighted: bool = False,
        freeze: Optional[int] = 0,
        warm_up: Optional[int] = 0,
    ):
        """
        Initialize a streaming histogram.

        Args:
            max_bins: Maximum number of bins used to approximate the data.
                More bins give a more accurate sketch at the cost of memory
                and insertion time. Must be a positive integer. Default: 100.
            weighted: Use gap weighting when choosing bins to merge.
            freeze: Number of observations after which bin positions are
                locked. 0 disables freezing.
            warm_up: Number of observations after which bin counts are reset
                once. 0 disables the warm-up reset.

        Raises:
            ValueError: If max_bins is not a positive integer, or freeze or
                warm_up is not a non-negative integer.
        """
        super().__init__()
        self._bins = BinStore()
        self._max_bins: int = self._validate_max_bins(max_bins)
        self._weighted: bool = bool(weighted)
        self._freeze: int = self._validate_threshold("freeze", freeze)
        self._warm_up: int = self._validate_threshold("warm_up", warm_up)
        self.reset()

    @classmethod
    def _validate_max_bins(cls, max_bins: Optional[int]) -> int:
        if max_bins is None:
            return cls.DEFAULT_MAX_BINS
        if isinstance(max_bins, bool) or not isinstance(max_bins, int) or max_bins <= 0:
            raise ValueError(f"max_bins must be a positive integer, got {max_bins!r}")
        return max_bins

    @staticmethod
    def _validate_threshold(name: str, value: Optional[int]) -> int:
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        return value

    #
    # Configuration
    #
    @property
    def max_bins(self) -> int:
        """Maximum number of bins kept after each update."""
        return self._max_bins

    @property
    def weighted(self) -> bool:
        """Whether gap weighting is used when merging bins."""
        return self._weighted

    @property
    def freeze(self) -> int:
        """Observation count after which bins are locked (0 = never)."""
        return self._freeze

    @property
    def warm_up(self) -> int:
        """Observation count at which bin counts are reset (0 = never)."""
        return self._warm_up

    def set_max_bins(self, max_bins: int) -> "StreamHist":
        """
        Change the maximum number of bins.

        Shrinking the limit below the current number of bins merges bins
        immediately.
        """
        self._max_bins = self._validate_max_bins(max_bins)
        if len(self._bins) > self._max_bins:
            logger.debug(
                "Compressing %d bins down to new max_bins=%d",
                len(self._bins),
                self._max_bins,
            )
            self._compress()
        return self

    def set_weighted(self, weighted: bool) -> "StreamHist":
        self._weighted = bool(weighted)
        return self

    def set_freeze(self, freeze: int) -> "StreamHist":
        self._freeze = self._validate_threshold("freeze", freeze)
        return self

    def set_warm_up(self, warm_up: int) -> "StreamHist":
        self._warm_up = self._validate_threshold("warm_up", warm_up)
        return self

    #
    # Updates
    #
    def insert(self, value: Values, weight: float = 1.0) -> "StreamHist":
        """
        Add a value or an iterable of values to the histogram.

        Args:
            value: A number or an iterable of numbers. Non-finite values
                (NaN, +/-Inf) and non-numeric items are ignored.
            weight: Weight (count) given to each value. Must be positive.

        Returns:
            This histogram, so calls can be chained.

        Raises:
            ValueError: If weight is not a positive finite number.
        """
        if (
            not _is_number(weight)
            or not math.isfinite(weight)
            or weight <= 0
        ):
            raise ValueError(f"Weight must be a positive finite number, got {weight!r}")

        # A bool is a single non-numeric item, skipped below
        values = [value] if _is_number(value) or isinstance(value, bool) else value
        for x in values:
            if not _is_number(x) or not math.isfinite(x):
                logger.debug("Ignoring non-finite value %r", x)
                continue

            # Count the item in the base class
            super().update(x)

            previous = self._count
            self._insert(float(x), float(weight))
            self._compress()
            self._check_warm_up(previous)
        return self

    push = insert

    def update(self, item: float) -> None:
        """Add a single value with unit weight."""
        self.insert(item)

    def _insert(self, x: float, weight: float) -> None:
        if self._min is None or x < self._min:
            self._min = x
        if self._max is None or x > self._max:
            self._max = x

        previous = self._count
        self._count += weight
        self._cumn_stale = True
        if self._freeze and previous <= self._freeze < self._count:
            logger.debug(
                "Histogram frozen after %s observations (%d bins)",
                self._count,
                len(self._bins),
            )

        nearest = self._bins.nearest(x)
        if nearest is not None and (
            nearest.mean == x
            or (self.is_frozen and len(self._bins) >= self._max_bins)
        ):
            # Same position in the ordering, so no re-keying is needed
            nearest.count += weight
        else:
            self._bins.add(Bin(x, weight))

    def _compress(self) -> None:
        """
        Merge adjacent bins until at most max_bins remain.

        Each pass scans all adjacent pairs for the one with the smallest
        merge cost and replaces it with the combined bin.
        """
        while len(self._bins) > self._max_bins:
            best: Optional[Tuple[Bin, Bin]] = None
            min_diff = math.inf
            for a, b in self._bins.pairs():
                diff = diff_bins(a, b, self._weighted)
                if best is None or diff < min_diff:
                    min_diff = diff
                    best = (a, b)

            a, b = best
            self._bins.replace(a, b, combine_bins(a, b))
            self._cumn_stale = True

    def _check_warm_up(self, previous: float) -> None:
        if not self._warm_up or self._warmed_up:
            return
        # Only the insertion that lands exactly on warm_up triggers the reset
        if not (previous < self._warm_up and self._count == self._warm_up):
            return

        for b in self._bins:
            b.count = 1.0
            b.tss = 0.0
        self._count = float(len(self._bins))
        self._warmed_up = True
        self._cumn_stale = True
        logger.debug("Warm-up reached, reset counts of %d bins", len(self._bins))

    def merge(
        self, other: "StreamHist", max_bins: Optional[int] = None
    ) -> "StreamHist":
        """
        Merge another histogram into this one.

        The bins of `other` are copied into this histogram, which is then
        compressed. The resulting bin limit is `max_bins` if given, otherwise
        the smaller of the two limits, and never more than their sum.

        Args:
            other: Another StreamHist. It is not modified.
            max_bins: Optional bin limit for the merged histogram.

        Returns:
            This histogram, so merges can be chained or reduced.

        Raises:
            TypeError: If 'other' is not a StreamHist.
            ValueError: If max_bins is given and not a positive integer.
        """
        self._check_same_type(other)

        if max_bins is None:
            limit = min(self._max_bins, other._max_bins)
        else:
            limit = self._validate_max_bins(max_bins)
        limit = min(limit, self._max_bins + other._max_bins)

        # Copy first: other may be this histogram
        incoming = [b.copy() for b in other._bins]

        self._count += other._count
        self._items_processed = self._combine_items_processed(other)
        if other._min is not None:
            self._min = other._min if self._min is None else min(self._min, other._min)
        if other._max is not None:
            self._max = other._max if self._max is None else max(self._max, other._max)
        self._max_bins = limit

        for b in incoming:
            existing = self._bins.find(b.mean)
            if existing is not None:
                existing.count += b.count
                existing.tss += b.tss
            else:
                self._bins.add(b)
        self._cumn_stale = True
        self._compress()

        logger.debug(
            "Merged %d bins, histogram now has %d bins (max_bins=%d)",
            len(incoming),
            len(self._bins),
            self._max_bins,
        )
        return self

    def reset(self) -> "StreamHist":
        """
        Return the histogram to its empty state, keeping the configuration.
        """
        super().clear()
        self._bins.clear()
        self._count: float = 0.0
        self._min: Optional[float] = None
        self._max: Optional[float] = None
        self._warmed_up: bool = False
        self._cumn_stale: bool = True
        return self

    def clear(self) -> None:
        self.reset()

    #
    # Queries
    #
    def _cumulate(self) -> None:
        """Refresh the cumulative bin counts if bins changed since last time."""
        if self._cumn_stale:
            self._bins.cumulate()
            self._cumn_stale = False

    def _bound(self, x: float) -> Tuple[Bin, Bin]:
        """
        Bins bracketing x by mean.

        Returns (lower, upper) with lower.mean < x <= upper.mean for x inside
        the bins. When x is at or below the first mean the first bin is the
        lower bound, and when x is past the last mean (or exactly on the first
        one) both bounds are the same bin. Callers handle x outside [min, max].
        """
        n = len(self._bins)
        i = self._bins.bisect_left(x)
        lo = i - 1 if i > 0 else 0
        lower = self._bins[lo]
        if lower.mean == x or lo == n - 1:
            return lower, lower
        return lower, self._bins[lo + 1]

    def quantile(
        self, q: Values
    ) -> Union[Optional[float], List[Optional[float]]]:
        """
        Estimate the value at the given quantile(s).

        Args:
            q: A quantile in [0, 1] or an iterable of them. Values at or
               below 0 return the minimum, at or above 1 the maximum.

        Returns:
            The estimated value, or a list of them for an iterable input.
            None if the histogram is empty.
        """
        if _is_number(q):
            return self._quantile(float(q))
        return [self._quantile(float(p)) for p in q]

    def _quantile(self, q: float) -> Optional[float]:
        if len(self._bins) == 0:
            return None
        if q <= 0.0:
            return self._min
        if q >= 1.0:
            return self._max

        s = self._count * q
        self._cumulate()
        i = self._bins.bisect_cumn(s)

        if i == 0:
            # Before the first bin's midpoint: interpolate from the minimum
            first = self._bins[0]
            return self._min + (first.mean - self._min) * (s / first.cumn)

        lower = self._bins[i - 1]
        if i == len(self._bins):
            # Past the last bin's midpoint: interpolate towards the maximum
            tail = self._count - lower.cumn
            if tail <= 0:
                return lower.mean
            return lower.mean + (self._max - lower.mean) * ((s - lower.cumn) / tail)

        upper = self._bins[i]
        d = lower.cumn - s
        a = upper.count - lower.count
        if a == 0:
            width = upper.cumn - lower.cumn
            z = (s - lower.cumn) / width if width != 0 else 0.0
        else:
            # Solve a*z^2 + b*z + c = 0 for the trapezoid between the bins
            b = 2 * lower.count
            c = 2 * d
            z = (-b + math.sqrt(max(b * b - 4 * a * c, 0.0))) / (2 * a)
        z = max(0.0, min(1.0, z))
        return lower.mean + (upper.mean - lower.mean) * z

    def sum(
        self, value: Values
    ) -> Union[Optional[float], List[Optional[float]]]:
        """
        Estimate the number of observations at or below the given value(s).

        This is the cumulative distribution on the count scale: 0 below the
        minimum and the total count at or above the maximum.

        Returns:
            The estimated count, or a list of them for an iterable input.
            None if the histogram is empty.
        """
        if _is_number(value):
            return self._sum(float(value))
        return [self._sum(float(b)) for b in value]

    def _sum(self, b: float) -> Optional[float]:
        if len(self._bins) == 0:
            return None
        if b < self._min:
            return 0.0
        if b >= self._max:
            return self._count

        self._cumulate()
        lower, upper = self._bound(b)
        if b == lower.mean:
            return lower.cumn
        if b < lower.mean:
            # Between the minimum and the first bin
            return lower.cumn * (b - self._min) / (lower.mean - self._min)
        if upper is lower:
            # Between the last bin and the maximum
            return lower.cumn + (self._count - lower.cumn) * (b - lower.mean) / (
                self._max - lower.mean
            )

        pdiff = upper.mean - lower.mean
        bdiff = b - lower.mean
        mb = lower.count + (upper.count - lower.count) / pdiff * bdiff
        return lower.cumn + ((lower.count + mb) / 2) * (bdiff / pdiff)

    def cdf(
        self, value: Values
    ) -> Union[Optional[float], List[Optional[float]]]:
        """Estimate the fraction of observations at or below the value(s)."""
        if _is_number(value):
            return self._cdf(float(value))
        return [self._cdf(float(b)) for b in value]

    def _cdf(self, b: float) -> Optional[float]:
        s = self._sum(b)
        if s is None:
            return None
        return s / self._count

    def density(self, b: float) -> Optional[float]:
        """
        Estimate the probability density at b.

        The density is interpolated linearly between the counts of the bins
        bracketing b and normalized by the total count. Exactly on a bin
        mean where both brackets coincide, the densities just left and right
        of it are averaged. Treat this estimate as experimental.

        Returns:
            The density (0 outside [min, max], infinity for a single point
            mass), or None if the histogram is empty.
        """
        if len(self._bins) == 0:
            return None
        b = float(b)
        if b < self._min or b > self._max:
            return 0.0
        if b == self._min and b == self._max:
            return math.inf

        lower, upper = self._bound(b)
        if lower.mean == b and upper.mean == b:
            eps = self.DENSITY_EPSILON * max(1.0, abs(b))
            return (self._density(b - eps) + self._density(b + eps)) / 2
        return self._density(b)

    def _density(self, b: float) -> float:
        if b < self._min or b > self._max:
            return 0.0
        lower, upper = self._bound(b)
        pdiff = upper.mean - lower.mean
        if pdiff == 0:
            return 0.0
        ratio = (b - lower.mean) / pdiff
        res = (lower.count + (upper.count - lower.count) * ratio) / pdiff
        return res / self._count if res >= 0 else 0.0

    def mean(self) -> Optional[float]:
        """Estimated mean of the underlying distribution."""
        if self._count == 0:
            return None
        return sum(b.mean * b.count for b in self._bins) / self._count

    def variance(self) -> Optional[float]:
        """
        Estimated (population) variance of the underlying distribution.

        Computed over the bins as point masses; None for fewer than two
        observations.
        """
        if self._count < 2:
            return None
        mean = self.mean()
        return sum((b.mean - mean) ** 2 * b.count for b in self._bins) / self._count

    def std(self) -> Optional[float]:
        """Estimated standard deviation of the underlying distribution."""
        variance = self.variance()
        return math.sqrt(variance) if variance is not None else None

    def tss(self) -> float:
        """Total sum of squared deviations accumulated in all bins."""
        return sum(b.tss for b in self._bins)

    def median(self) -> Optional[float]:
        """
        Estimated median of the underlying distribution.

        While every observation still has its own bin the median is exact;
        afterwards it is the 0.5 quantile estimate.
        """
        n = len(self._bins)
        if n == 0:
            return None
        if self._count != n or any(b.count != 1 for b in self._bins):
            return self.quantile(0.5)

        k = n // 2
        if n % 2 == 0:
            return combine_bins(self._bins[k - 1], self._bins[k]).mean
        return self._bins[k].mean

    def summary(self) -> Dict[str, Optional[float]]:
        """
        Summary statistics: count, mean, std, min, quartiles and max.
        """
        return {
            "count": self._count,
            "mean": self.mean(),
            "std": self.std(),
            "min": self._min,
            "Q1": self.quantile(0.25),
            "Q2": self.median(),
            "Q3": self.quantile(0.75),
            "max": self._max,
        }

    #
    # Inspection
    #
    @property
    def count(self) -> float:
        """Total weight inserted (the sum of all bin counts)."""
        return self._count

    @property
    def min(self) -> Optional[float]:
        """Smallest value seen, or None if empty."""
        return self._min

    @property
    def max(self) -> Optional[float]:
        """Largest value seen, or None if empty."""
        return self._max

    @property
    def size(self) -> int:
        """Current number of bins."""
        return len(self._bins)

    @property
    def is_empty(self) -> bool:
        return len(self._bins) == 0

    @property
    def is_frozen(self) -> bool:
        """Whether more than `freeze` observations have been seen."""
        return self._freeze != 0 and self._count > self._freeze

    def __len__(self) -> int:
        """Return the number of bins."""
        return len(self._bins)

    def limits(self) -> Tuple[Optional[float], Optional[float]]:
        """The (min, max) of the values seen."""
        return self._min, self._max

    def bins(self) -> Iterator[Bin]:
        """Iterate over the bins in mean order. Do not modify them."""
        return iter(self._bins)

    def find_nearest(self, value: float) -> Optional[Bin]:
        """Bin whose mean is closest to value, or None if empty."""
        return self._bins.nearest(value)

    def to_array(self) -> List[Dict[str, float]]:
        """Bins as a list of {'mean', 'count', 'tss'} dicts, ordered by mean."""
        return [b.to_dict() for b in self._bins]

    def __str__(self) -> str:
        total = self._count
        lines = []
        for b in self._bins:
            dots = "." * int(b.count / total * 200) if total else ""
            lines.append(f"{b.mean:.4f}\t{dots}\n")
        return "".join(lines)

    def __repr__(self) -> str:
        return (
            f"StreamHist(max_bins={self._max_bins}, weighted={self._weighted}, "
            f"size={len(self._bins)}, count={self._count:.4g})"
        )

    #
    # Serialization
    #
    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the histogram to a dictionary.

        The cumulative counts are not included; they are recomputed on the
        first query after restoring.

        Returns:
            Dictionary containing the configuration, running totals and bins.
        """
        state = self._base_dict()
        state.update(
            {
                "version": self.SNAPSHOT_VERSION,
                "max_bins": self._max_bins,
                "weighted": self._weighted,
                "freeze": self._freeze,
                "warm_up": self._warm_up,
                "warmed_up": self._warmed_up,
                "count": self._count,
                "min": self._min,
                "max": self._max,
                "bins": self.to_array(),
            }
        )
        return state

    @classmethod
    def from_dict(cls: Type[StreamHistType], data: Dict[str, Any]) -> StreamHistType:
        """
        Deserialize a histogram from a dictionary representation.

        Args:
            data: Dictionary created by to_dict().

        Returns:
            A reconstructed StreamHist instance.

        Raises:
            ValueError: If the dictionary has the wrong type or version,
                misses required keys or contains invalid bins.
        """
        cls._check_dict_type(data)

        if data.get("version") != cls.SNAPSHOT_VERSION:
            raise ValueError(
                f"Unsupported {cls.__name__} snapshot version: {data.get('version')!r}"
            )

        required_keys = {
            "items_processed",
            "max_bins",
            "weighted",
            "freeze",
            "warm_up",
            "count",
            "min",
            "max",
            "bins",
        }
        missing_keys = required_keys - data.keys()
        if missing_keys:
            raise ValueError(
                f"Invalid dictionary format for {cls.__name__}. Missing keys: {missing_keys}"
            )

        instance = cls(
            max_bins=data["max_bins"],
            weighted=data["weighted"],
            freeze=data["freeze"],
            warm_up=data["warm_up"],
        )
        instance._items_processed = data["items_processed"]
        instance._count = float(data["count"])
        instance._min = data["min"]
        instance._max = data["max"]
        instance._warmed_up = bool(data.get("warmed_up", False))

        try:
            for bin_data in data["bins"]:
                instance._bins.add(Bin.from_dict(bin_data))
        except (ValueError, KeyError, TypeError) as e:
            raise ValueError(f"Error deserializing bins: {e}") from e

        return instance

    to_snapshot = to_dict
    from_snapshot = from_dict

    #
    # Benchmarking hooks
    #
    def estimate_size(self) -> int:
        """
        Estimate the memory footprint of the histogram in bytes.
        """
        size = super().estimate_size()
        size += sys.getsizeof(self._bins)
        for b in self._bins:
            size += sys.getsizeof(b)
            size += sys.getsizeof(b.mean) + sys.getsizeof(b.count) + sys.getsizeof(b.tss)
        return size

    def get_stats(self) -> Dict[str, Any]:
        """
        Get detailed statistics about the current state of the histogram.

        Returns:
            A dictionary with the configuration, bin structure statistics and
            the base summary statistics.
        """
        stats = super().get_stats()

        stats.update(
            {
                "max_bins": self._max_bins,
                "weighted": self._weighted,
                "freeze": self._freeze,
                "warm_up": self._warm_up,
                "is_frozen": self.is_frozen,
                "count": self._count,
                "num_bins": len(self._bins),
                "bin_utilization": len(self._bins) / self._max_bins,
            }
        )

        if self._min is not None:
            stats["min_value"] = self._min
            stats["max_value"] = self._max

        if len(self._bins) > 0:
            counts = [b.count for b in self._bins]
            stats.update(
                {
                    "min_bin_count": min(counts),
                    "max_bin_count": max(counts),
                    "avg_bin_count": sum(counts) / len(counts),
                }
            )

        if len(self._bins) > 1:
            spacings = [b.mean - a.mean for a, b in self._bins.pairs()]
            stats.update(
                {
                    "min_spacing": min(spacings),
                    "max_spacing": max(spacings),
                    "avg_spacing": sum(spacings) / len(spacings),
                }
            )

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Describe the accuracy characteristics of this histogram.

        The merge heuristic gives no guaranteed error bound, so this reports
        the model and how much of the value range each bin covers on average.
        """
        bounds: Dict[str, Any] = {}

        if len(self._bins) == 0:
            bounds["state"] = "empty"
            return bounds

        bounds["accuracy_model"] = "heuristic (no guaranteed error bound)"
        bounds["actual_bins"] = len(self._bins)

        value_range = self._max - self._min
        if len(self._bins) > 1 and value_range > 0:
            span = self._bins.max().mean - self._bins.min().mean
            bounds["avg_spacing_ratio"] = span / (len(self._bins) - 1) / value_range

        return bounds


def fast_hist(values: Iterable[float], max_bins: int = StreamHist.DEFAULT_MAX_BINS) -> List[Dict[str, float]]:
    """
    Build a histogram from values in one call and return its bins.

    Returns:
        The bins as a list of {'mean', 'count', 'tss'} dicts.
    """
    return StreamHist(max_bins).insert(values).to_array()

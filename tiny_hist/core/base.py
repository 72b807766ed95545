"""
Base classes and interfaces for tiny-hist streaming summaries.

This module defines the abstract base classes that streaming summaries
implement to provide a consistent interface: updating with new items,
querying, merging, serialization and a few inspection hooks used for
benchmarking and monitoring.
"""

import abc
import json
import sys
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")  # Type for the items being processed
R = TypeVar("R")  # Type for the result of queries


class StreamSummary(Generic[T, R], abc.ABC):
    """
    Abstract base class for all streaming data structures.

    Subclasses implement updating with new items, querying results, merging
    with other summaries of the same type and dictionary conversion. JSON
    serialization, size estimation and statistics reporting are built on top
    of those.
    """

    def __init__(self) -> None:
        self._items_processed = 0

    @abc.abstractmethod
    def update(self, item: T) -> None:
        """
        Update the summary with a new item from the stream.

        Args:
            item: The new item to process.
        """
        self._items_processed += 1

    @abc.abstractmethod
    def query(self, *args: Any, **kwargs: Any) -> R:
        """
        Query the current state of the summary.

        The parameters and return value depend on the specific algorithm.
        """
        pass

    @abc.abstractmethod
    def merge(self, other: "StreamSummary[T, R]") -> "StreamSummary[T, R]":
        """
        Merge another summary of the same type into this one.

        Args:
            other: Another stream summary of the same type.

        Returns:
            The merged summary.

        Raises:
            TypeError: If other is not of the same type.
        """
        pass

    def _check_same_type(self, other: "StreamSummary[T, R]") -> None:
        """
        Helper method to check if another summary is of the same type.

        Raises:
            TypeError: If other is not of the same type.
        """
        if not isinstance(other, self.__class__):
            raise TypeError(f"Cannot merge with {other.__class__.__name__}")

    def _combine_items_processed(self, other: "StreamSummary[T, R]") -> int:
        """Combined count of processed items for merging."""
        return self._items_processed + other._items_processed

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the summary to a dictionary for serialization.

        Returns:
            A dictionary representation of the summary.
        """
        pass

    def _base_dict(self) -> Dict[str, Any]:
        """Dictionary with the attributes common to all summaries."""
        return {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
        }

    @classmethod
    @abc.abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamSummary[T, R]":
        """
        Create a summary from a dictionary representation.

        Args:
            data: The dictionary containing the summary state.

        Returns:
            A new stream summary initialized with the given state.
        """
        pass

    @classmethod
    def _check_dict_type(cls, data: Dict[str, Any]) -> None:
        """
        Validate the 'type' tag of a serialized summary.

        Raises:
            ValueError: If the tag is missing or names another class.
        """
        if "type" not in data:
            raise ValueError(
                f"Invalid dictionary format for {cls.__name__}. Missing 'type'"
            )
        if data["type"] != cls.__name__:
            raise ValueError(
                f"Dictionary represents class '{data['type']}' but expected '{cls.__name__}'"
            )

    def serialize(self, format: str = "json") -> Union[str, bytes]:
        """
        Serialize the summary to a string or bytes.

        Args:
            format: The serialization format ('json' or 'binary').

        Returns:
            The serialized representation of the summary.

        Raises:
            ValueError: If the format is not supported.
        """
        if format == "json":
            return json.dumps(self.to_dict())
        elif format == "binary":
            # UTF-8 encoded JSON
            return json.dumps(self.to_dict()).encode("utf-8")
        else:
            raise ValueError(f"Unsupported serialization format: {format}")

    @classmethod
    def deserialize(
        cls, data: Union[str, bytes], format: str = "json"
    ) -> "StreamSummary[T, R]":
        """
        Deserialize a summary from a string or bytes.

        Args:
            data: The serialized summary.
            format: The serialization format ('json' or 'binary').

        Returns:
            A new stream summary.

        Raises:
            ValueError: If the format is not supported.
        """
        if format == "json":
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            return cls.from_dict(json.loads(data))
        elif format == "binary":
            if isinstance(data, str):
                data = data.encode("utf-8")
            return cls.from_dict(json.loads(data.decode("utf-8")))
        else:
            raise ValueError(f"Unsupported serialization format: {format}")

    def estimate_size(self) -> int:
        """
        Estimate the current memory usage of this summary in bytes.

        This is a rough figure covering the object and its instance dictionary.
        Derived classes add the size of their own data structures.

        Returns:
            Estimated memory usage in bytes.
        """
        size = sys.getsizeof(self)
        if hasattr(self, "__dict__"):
            size += sys.getsizeof(self.__dict__)
        return size

    def clear(self) -> None:
        """
        Reset the summary to its initial empty state.

        Derived classes clear their own data structures and call
        super().clear() so the base counters are reset too.
        """
        self._items_processed = 0

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the summary.

        Derived classes extend this with algorithm-specific information.

        Returns:
            A dictionary containing various statistics about the summary state.
        """
        stats: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_bytes": self.estimate_size(),
        }

        error_bounds = self.error_bounds()
        if error_bounds:
            stats.update(error_bounds)

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Get the theoretical error characteristics of this summary.

        The base implementation returns an empty dictionary.
        """
        return {}

    @property
    def items_processed(self) -> int:
        """Get the total number of items processed by this summary."""
        return self._items_processed


class DistributionSummary(StreamSummary[float, Optional[float]], abc.ABC):
    """
    Abstract base class for summaries of a numeric value distribution.

    Examples include streaming histograms. Besides the generic interface,
    these answer quantile and cumulative distribution queries; both accept
    either a single value or an iterable of values.
    """

    @abc.abstractmethod
    def quantile(
        self, q: Union[float, Iterable[float]]
    ) -> Union[Optional[float], List[Optional[float]]]:
        """
        Estimate the value(s) at the given quantile(s) in [0, 1].

        Returns None for an empty summary.
        """
        pass

    @abc.abstractmethod
    def cdf(
        self, value: Union[float, Iterable[float]]
    ) -> Union[Optional[float], List[Optional[float]]]:
        """
        Estimate the fraction of the stream at or below the given value(s).

        Returns None for an empty summary.
        """
        pass

    def query(self, q: float) -> Optional[float]:
        """Estimate the value at quantile q."""
        return self.quantile(q)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the distribution summary.

        Adds the quartile estimates to the base statistics when available.
        """
        stats = super().get_stats()

        quartiles = self.quantile([0.25, 0.5, 0.75])
        if quartiles[0] is not None:
            stats["q25"], stats["q50"], stats["q75"] = quartiles

        return stats

from __future__ import annotations

import numbers
from abc import ABC, abstractmethod
from collections.abc import Hashable
from typing import Any, Callable, Iterable

from .common import MISSING
from .exceptions import EloquentValidationException


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Number):
        return False
    # NaN never equals itself
    return value == value


def _pick(choose, current, value):
    try:
        return choose(current, value)
    except TypeError as e:
        raise EloquentValidationException(message=f'Can not compare {current!r} with {value!r}') from e


class AggregatorFunction(ABC):
    """
    Abstract base class for aggregator functions.

    Aggregators reduce the values extracted from a collection (by key path or
    callback) to a single scalar. Values that can not take part in the
    aggregation (missing paths, None, non numbers for arithmetic aggregators)
    are skipped rather than raising.
    """

    @abstractmethod
    def compute(self, values: Iterable):
        """
        Compute the aggregation over a list of values.

        :param values: the extracted values.
        :return: the aggregated scalar.
        """


class SumAggregator(AggregatorFunction):
    """
    Sum of the numeric values. An empty input sums to 0.
    """

    def compute(self, values: Iterable):
        total = 0
        for value in values:
            if _is_number(value):
                total += value
        return total


class AvgAggregator(AggregatorFunction):
    def compute(self, values: Iterable):
        total = 0
        count = 0
        for value in values:
            if _is_number(value):
                total += value
                count += 1
        if count == 0:
            return None
        return total / count


class CountAggregator(AggregatorFunction):
    def compute(self, values: Iterable):
        return sum(1 for _ in values)


class MinAggregator(AggregatorFunction):
    """
    Minimum of the values, or None if there is nothing to compare. Values
    must be mutually comparable; mixing numbers and strings raises
    EloquentValidationException.
    """

    def compute(self, values: Iterable):
        minimum = None
        for value in values:
            if value is None or value is MISSING:
                continue
            minimum = value if minimum is None else _pick(min, minimum, value)
        return minimum


class MaxAggregator(AggregatorFunction):
    """
    Maximum of the values, or None if there is nothing to compare. Same
    comparability rule as MinAggregator.
    """

    def compute(self, values: Iterable):
        max_value = None
        for value in values:
            if value is None or value is MISSING:
                continue
            max_value = value if max_value is None else _pick(max, max_value, value)
        return max_value


def bucket_key(value: Any) -> str:
    """Group keys are strings; a missing value buckets with None."""
    if value is MISSING:
        value = None
    return str(value)


def group_by(items: list, key_fn: Callable[[Any, int], Any]) -> dict[str, list]:
    """
    Bucket `items` by the string form of ``key_fn(item, index)``.

    Buckets keep first-seen order, and items keep their relative order inside
    each bucket.
    """
    groups: dict[str, list] = {}
    for index, item in enumerate(items):
        groups.setdefault(bucket_key(key_fn(item, index)), []).append(item)
    return groups


def count_by(items: list, key_fn: Callable[[Any, int], Any]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for index, item in enumerate(items):
        key = bucket_key(key_fn(item, index))
        counts[key] = counts.get(key, 0) + 1
    return counts


def key_by(items: list, key_fn: Callable[[Any, int], Any]) -> dict[Any, Any]:
    """Map each key to its item. When keys repeat, the later item wins."""
    keyed: dict[Any, Any] = {}
    for index, item in enumerate(items):
        key = key_fn(item, index)
        if key is MISSING:
            key = None
        if not isinstance(key, Hashable):
            key = str(key)
        keyed[key] = item
    return keyed


def partition(items: list, predicate: Callable[[Any, int], bool]) -> tuple[list, list]:
    matching, non_matching = [], []
    for index, item in enumerate(items):
        (matching if predicate(item, index) else non_matching).append(item)
    return matching, non_matching


def reduce(items: list, fn: Callable[[Any, Any, int], Any], initial: Any) -> Any:
    accumulator = initial
    for index, item in enumerate(items):
        accumulator = fn(accumulator, item, index)
    return accumulator

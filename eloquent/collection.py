from __future__ import annotations

import functools
import json
import logging
import pprint
import sys
from collections.abc import Iterable, Mapping, MutableMapping
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

from . import aggregates
from .aggregates import AggregatorFunction, AvgAggregator, CountAggregator, MaxAggregator, MinAggregator, SumAggregator
from .common import MISSING, Number, adapt_callback, positional_arity
from .config import DEFAULT_POLICY, SORT_DIRECTIONS, Policy
from .exceptions import EloquentValidationException
from .macros import MacroMethod, MacroRegistry
from .paths import VALUE_PATH, has, omit, resolve
from .queries import NOT_KEY, Expression, Validators, normalize_where

_logger = logging.getLogger(__name__)

T = TypeVar('T')
U = TypeVar('U')

KeyOrCallback = Optional[str | Callable[..., Any]]


def _initial_items(items: Any) -> list:
    if items is None:
        return []
    if isinstance(items, Collection):
        return list(items._items)
    if isinstance(items, (str, bytes, Mapping)) or not isinstance(items, Iterable):
        return [items]
    return list(items)


def _key_function(key_or_fn: KeyOrCallback) -> Callable[[Any, int], Any]:
    """Turn a key path (or None for the item itself) or a callback into ``fn(item, index)``."""
    if callable(key_or_fn):
        return adapt_callback(key_or_fn, 2)
    path = VALUE_PATH if key_or_fn is None else key_or_fn
    return lambda item, index: resolve(item, path, MISSING)


def _merge(item: Any, patch: Mapping) -> Any:
    if isinstance(item, MutableMapping):
        item.update(patch)
        return item
    if isinstance(item, Mapping):
        return {**item, **patch}
    if hasattr(item, '__dict__'):
        for key, value in patch.items():
            setattr(item, key, value)
        return item
    raise EloquentValidationException(
        message=f'Can not merge a patch into an item of type {type(item).__name__}')


def to_plain(value: Any) -> Any:
    if isinstance(value, Collection):
        return [to_plain(item) for item in value._items]
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


class Collection(Generic[T]):
    """
    Ordered, chainable wrapper around a list of items.

    Pure methods (``filter``, ``where``, ``map``, ``sort_by`` ...) leave the
    receiver untouched and return a new Collection. Mutating methods
    (``delete``, ``update``, ``forget``, ``sort``, ``shuffle``, ``push`` ...)
    change the receiver in place and return it for further chaining.

    Queries given to ``filter``/``where``/``first``... follow a MongoDB like
    grammar, see :mod:`eloquent.queries`. Extra operators can be supplied per
    collection through `validators`, and extra methods through macros.
    """

    static_macros: MacroRegistry = MacroRegistry()
    macro = MacroMethod()

    def __init__(self,
                 items: Iterable[T] | T | None = None,
                 validators: Optional[Validators] = None,
                 macros: Optional[MacroRegistry] = None,
                 policy: Optional[Policy] = None):
        self._items: list = _initial_items(items)
        self._validators: dict = dict(validators) if validators else {}
        self._policy = policy or DEFAULT_POLICY
        if macros is not None:
            macros.reserve(BUILTIN_NAMES)
        self._macros = (macros if macros is not None else self.static_macros).child(reserved=BUILTIN_NAMES)
        self._random = self._policy.new_random()

    def _derive(self, items: Iterable) -> Collection:
        """New collection over `items` sharing validators, policy and macros with this one."""
        derived = self.__class__.__new__(self.__class__)
        derived._items = list(items)
        derived._validators = self._validators
        derived._policy = self._policy
        derived._macros = self._macros
        derived._random = self._random
        return derived

    def _compile(self, spec: Any) -> Callable[..., bool]:
        return Expression.compile(spec, self._validators).match

    # Macro dispatch: only reached when no built-in attribute matches
    def __getattr__(self, name: str):
        if name.startswith('_'):
            raise AttributeError(name)
        registry = self.__dict__.get('_macros')
        fn = registry.get(name) if registry is not None else None
        if fn is None:
            raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")
        return functools.partial(fn, self)

    @property
    def macros(self) -> MacroRegistry:
        return self._macros

    @property
    def validators(self) -> dict:
        return self._validators

    @property
    def policy(self) -> Policy:
        return self._policy

    # Sequence protocol
    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __reversed__(self) -> Iterator[T]:
        return reversed(self._items)

    def __contains__(self, item: Any) -> bool:
        return item in self._items

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self._derive(self._items[index])
        return self._items[index]

    def __setitem__(self, index, value) -> None:
        self._items[index] = value

    def __delitem__(self, index) -> None:
        del self._items[index]

    def __eq__(self, other):
        if isinstance(other, Collection):
            return self._items == other._items
        if isinstance(other, (list, tuple)):
            return self._items == list(other)
        return NotImplemented

    __hash__ = None

    def __add__(self, other) -> Collection:
        return self.concat(other)

    def __repr__(self):
        return f'{self.__class__.__name__}({self._items!r})'

    @property
    def length(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def is_not_empty(self) -> bool:
        return bool(self._items)

    # Branching
    def collect(self, items: Optional[Iterable] = None) -> Collection:
        """
        New collection sharing this one's macros, validators and policy.

        Without `items` the new collection holds a shallow copy of this one's
        items: element references are shared, the list is not.
        """
        return self._derive(self._items if items is None else _initial_items(items))

    def clone(self) -> Collection[T]:
        return self.collect()

    # Filtering
    def filter(self, spec: Any) -> Collection[T]:
        """
        Items matching a query or a predicate.

        >>> Collection([{'age': 17}, {'age': 20}]).filter({'age': {'$gte': 18}})
        Collection([{'age': 20}])
        """
        predicate = self._compile(spec)
        return self._derive(item for index, item in enumerate(self._items) if predicate(item, index))

    def where(self, *args) -> Collection[T]:
        """
        ``where(key, value)`` or ``where(key, operator, value)`` with operator
        one of ``= != > < >= <= in includes``. Keys may be dotted paths.
        """
        return self.filter(normalize_where(*args))

    def where_not(self, *args) -> Collection[T]:
        return self.filter({NOT_KEY: normalize_where(*args)})

    def not_(self, spec: Any) -> Collection[T]:
        """Items that do NOT match the query or predicate."""
        return self.filter({NOT_KEY: spec})

    def first(self, spec: Any = None) -> Optional[T]:
        if spec is None:
            return self._items[0] if self._items else None
        predicate = self._compile(spec)
        for index, item in enumerate(self._items):
            if predicate(item, index):
                return item
        return None

    def last(self, spec: Any = None) -> Optional[T]:
        if spec is None:
            return self._items[-1] if self._items else None
        predicate = self._compile(spec)
        for index in range(len(self._items) - 1, -1, -1):
            if predicate(self._items[index], index):
                return self._items[index]
        return None

    def find(self, spec: Any) -> Optional[T]:
        return self.first(spec)

    def every(self, *args) -> bool:
        """
        True when every item passes the test. Accepted forms:

        - ``every(predicate)`` or ``every(query)``
        - ``every('key')``: every item has the path
        - ``every('key', value)`` and ``every('key', operator, value)``
        """
        if len(args) == 1:
            (test,) = args
            if isinstance(test, str):
                return all(has(item, test) for item in self._items)
            predicate = self._compile(test)
        elif len(args) in (2, 3):
            predicate = self._compile(normalize_where(*args))
        else:
            raise EloquentValidationException(message=f'every() got {len(args)} arguments, expected 1 to 3')
        return all(predicate(item, index) for index, item in enumerate(self._items))

    # Transformations
    def map(self, fn: Callable[..., U]) -> Collection[U]:
        call = adapt_callback(fn, 2)
        return self._derive(call(item, index) for index, item in enumerate(self._items))

    def each(self, fn: Callable[..., Any]) -> Collection[T]:
        """Call `fn(item, index)` for every item; returning False stops the loop."""
        call = adapt_callback(fn, 2)
        for index, item in enumerate(list(self._items)):
            if call(item, index) is False:
                break
        return self

    def unique(self, key_or_fn: KeyOrCallback = None) -> Collection[T]:
        """Drop items whose key was already seen; the first occurrence wins."""
        key_fn = _key_function(key_or_fn)
        seen: set = set()
        seen_unhashable: list = []
        result = []
        for index, item in enumerate(self._items):
            key = key_fn(item, index)
            try:
                if key in seen:
                    continue
                seen.add(key)
            except TypeError:
                if key in seen_unhashable:
                    continue
                seen_unhashable.append(key)
            result.append(item)
        return self._derive(result)

    def chunk(self, size: int) -> Collection[Collection[T]]:
        if not isinstance(size, int) or isinstance(size, bool) or size < 1:
            raise EloquentValidationException(message=f'chunk size must be a positive integer, got {size!r}')
        return self._derive(self._derive(self._items[start:start + size])
                            for start in range(0, len(self._items), size))

    def slice(self, start: Optional[int] = None, end: Optional[int] = None) -> Collection[T]:
        return self._derive(self._items[start:end])

    def reverse(self) -> Collection[T]:
        return self._derive(reversed(self._items))

    def concat(self, *others: Iterable) -> Collection[T]:
        items = list(self._items)
        for other in others:
            items.extend(_initial_items(other))
        return self._derive(items)

    def union(self, other: Iterable) -> Collection[T]:
        """This collection followed by the items of `other` it does not already hold."""
        items = list(self._items)
        for item in _initial_items(other):
            if item not in items:
                items.append(item)
        return self._derive(items)

    def paginate(self, page: int = 1, per_page: Optional[int] = None) -> dict:
        """
        One page of items plus the neighbour page numbers.

        :return: ``{'items': Collection, 'prev': int | False, 'next': int | False}``
        """
        if per_page is None:
            per_page = self._policy.per_page
        if page < 1 or per_page < 1:
            raise EloquentValidationException(message=f'paginate() needs page >= 1 and per_page >= 1, got {page}, {per_page}')
        return {
            'items': self._derive(self._items[(page - 1) * per_page:page * per_page]),
            'prev': False if page <= 1 else page - 1,
            'next': page + 1 if len(self._items) > page * per_page else False,
        }

    def random(self, count: Optional[int] = None):
        """
        A random item (None when empty), or with `count` a collection of up
        to `count` distinct random items.
        """
        if count is None:
            return self._random.choice(self._items) if self._items else None
        return self._derive(self._random.sample(self._items, max(0, min(count, len(self._items)))))

    # Aggregation
    def group_by(self, key_or_fn: KeyOrCallback) -> dict[str, Collection[T]]:
        groups = aggregates.group_by(self._items, _key_function(key_or_fn))
        return {key: self._derive(items) for key, items in groups.items()}

    def count_by(self, key_or_fn: KeyOrCallback = None) -> dict[str, int]:
        return aggregates.count_by(self._items, _key_function(key_or_fn))

    def key_by(self, key_or_fn: KeyOrCallback) -> dict[Any, T]:
        return aggregates.key_by(self._items, _key_function(key_or_fn))

    def partition(self, spec: Any) -> tuple[Collection[T], Collection[T]]:
        matching, non_matching = aggregates.partition(self._items, self._compile(spec))
        return self._derive(matching), self._derive(non_matching)

    def reduce(self, fn: Callable[..., Any], initial: Any = None) -> Any:
        return aggregates.reduce(self._items, adapt_callback(fn, 3), initial)

    def _aggregate(self, aggregator: AggregatorFunction, key_or_fn: KeyOrCallback):
        key_fn = _key_function(key_or_fn)
        return aggregator.compute(key_fn(item, index) for index, item in enumerate(self._items))

    def sum(self, key_or_fn: KeyOrCallback = None) -> Number:
        return self._aggregate(SumAggregator(), key_or_fn)

    def avg(self, key_or_fn: KeyOrCallback = None) -> Optional[Number]:
        return self._aggregate(AvgAggregator(), key_or_fn)

    def min(self, key_or_fn: KeyOrCallback = None):
        return self._aggregate(MinAggregator(), key_or_fn)

    def max(self, key_or_fn: KeyOrCallback = None):
        return self._aggregate(MaxAggregator(), key_or_fn)

    def count(self, spec: Any = None) -> int:
        """Number of items, or of the items matching `spec` when given."""
        items = self._items if spec is None else self.filter(spec)._items
        return CountAggregator().compute(items)

    # Ordering
    def sort(self, key_or_cmp: KeyOrCallback = None, direction: Optional[str] = None) -> Collection[T]:
        """
        Stable in place sort.

        `key_or_cmp` is a key path, a one argument key function, or a two
        argument comparator returning a negative, zero or positive number.
        Items without a value for the key always go last. The remaining keys
        must be mutually comparable (all numbers, all strings ...), otherwise
        EloquentValidationException is raised and the order is left unchanged.
        The default direction comes from the policy.
        """
        if direction is not None and direction.lower() not in SORT_DIRECTIONS:
            raise EloquentValidationException(message=f'direction must be one of {SORT_DIRECTIONS}, got {direction!r}')
        descending = (direction or self._policy.sort_direction).lower() == 'desc'
        if callable(key_or_cmp) and positional_arity(key_or_cmp) >= 2:
            self._items.sort(key=functools.cmp_to_key(key_or_cmp), reverse=descending)
            return self

        if callable(key_or_cmp):
            call = adapt_callback(key_or_cmp, 1)
            key_fn = lambda item: call(item)
        else:
            path = VALUE_PATH if key_or_cmp is None else key_or_cmp
            key_fn = lambda item: resolve(item, path, MISSING)

        keyed, missing = [], []
        for item in self._items:
            key = key_fn(item)
            if key is None or key is MISSING:
                missing.append(item)
            else:
                keyed.append((key, item))
        try:
            keyed.sort(key=lambda pair: pair[0], reverse=descending)
        except TypeError as e:
            raise EloquentValidationException(message=f'sort() keys are not mutually comparable: {e}') from e
        self._items[:] = [item for _, item in keyed] + missing
        return self

    def sort_by(self, key_or_fn: KeyOrCallback = None) -> Collection[T]:
        return self.clone().sort(key_or_fn, 'asc')

    def sort_by_desc(self, key_or_fn: KeyOrCallback = None) -> Collection[T]:
        return self.clone().sort(key_or_fn, 'desc')

    def shuffle(self) -> Collection[T]:
        self._random.shuffle(self._items)
        return self

    # Mutations
    def delete(self, spec: Any) -> Collection[T]:
        """Remove, in place, every item matching `spec`."""
        predicate = self._compile(spec)
        kept = [item for index, item in enumerate(self._items) if not predicate(item, index)]
        _logger.debug(f"delete() removed {len(self._items) - len(kept)} item(s)")
        self._items[:] = kept
        return self

    def update(self, *args) -> Collection[T]:
        """
        Update, in place, the items matching a query.

        ``update(patch)`` touches every item, ``update(spec, patch)`` only the
        matching ones. A callable patch ``fn(item, index)`` replaces the item
        with its result. A mapping patch is shallow merged:

        - mutable mappings (dicts) are updated in place, so collections sharing
          the same item (clones, filter results) see the change;
        - read only mappings are replaced in this collection by a new dict;
        - other objects get the patch keys set as attributes.
        """
        if len(args) == 1:
            spec, patch = None, args[0]
        elif len(args) == 2:
            spec, patch = args
        else:
            raise EloquentValidationException(message=f'update() expects (patch) or (spec, patch), got {len(args)} arguments')
        if not callable(patch) and not isinstance(patch, Mapping):
            raise EloquentValidationException(message=f'update() patch must be a mapping or a callable, got {type(patch).__name__}')

        predicate = self._compile(spec) if spec is not None else None
        apply = adapt_callback(patch, 2) if callable(patch) else None
        updated = 0
        for index, item in enumerate(self._items):
            if predicate is not None and not predicate(item, index):
                continue
            self._items[index] = apply(item, index) if apply is not None else _merge(item, patch)
            updated += 1
        _logger.debug(f"update() changed {updated} item(s)")
        return self

    def forget(self, *keys) -> Collection[T]:
        """Remove the named fields (dotted paths allowed) from every item."""
        paths = []
        for key in keys:
            if isinstance(key, (list, tuple)):
                paths.extend(key)
            else:
                paths.append(key)
        items = []
        for item in self._items:
            for path in paths:
                item = omit(item, path)
            items.append(item)
        self._items[:] = items
        return self

    def push(self, *items: T) -> Collection[T]:
        self._items.extend(items)
        return self

    def unshift(self, *items: T) -> Collection[T]:
        self._items[0:0] = items
        return self

    def pop(self) -> Optional[T]:
        return self._items.pop() if self._items else None

    def shift(self) -> Optional[T]:
        return self._items.pop(0) if self._items else None

    def splice(self, start: int, delete_count: Optional[int] = None, *items: T) -> Collection[T]:
        """Remove `delete_count` items from `start`, insert `items` there and return the removed ones."""
        length = len(self._items)
        if start < 0:
            start = max(length + start, 0)
        start = min(start, length)
        end = length if delete_count is None else start + max(delete_count, 0)
        removed = self._items[start:end]
        self._items[start:end] = items
        return self._derive(removed)

    # Output
    def to_list(self) -> list[T]:
        return list(self._items)

    def all(self) -> list[T]:
        return self.to_list()

    def to_json(self) -> list:
        """Plain list view; nested collections become lists too."""
        return to_plain(self)

    def stringify(self, default: Optional[Callable[[Any], Any]] = None, indent: Optional[int | str] = None) -> str:
        return json.dumps(self.to_json(), default=default, indent=indent)

    def join(self, key: KeyOrCallback = None, separator: Optional[str] = None,
             last_separator: Optional[str] = None) -> str:
        """
        Join the values found at `key` (the items themselves by default).

        >>> Collection(['a', 'b', 'c']).join(None, ', ', ' and ')
        'a, b and c'
        """
        separator = self._policy.separator if separator is None else separator
        key_fn = _key_function(key)
        values = [str(value) for value in (key_fn(item, index) for index, item in enumerate(self._items))
                  if value is not MISSING]
        if last_separator is None or len(values) < 2:
            return separator.join(values)
        return separator.join(values[:-1]) + last_separator + values[-1]

    def dump(self) -> Collection[T]:
        """Print the collection and keep chaining."""
        pprint.pprint(self.to_json())
        return self

    def dd(self):
        """Print the collection and terminate the process."""
        self.dump()
        sys.exit(1)


BUILTIN_NAMES = frozenset(name for name in dir(Collection) if not name.startswith('_'))
Collection.static_macros.reserve(BUILTIN_NAMES)


def collect(items: Iterable[T] | T | None = None, validators: Optional[Validators] = None,
            policy: Optional[Policy] = None) -> Collection[T]:
    """Entry point to build a Collection from any iterable."""
    return Collection(items, validators=validators, policy=policy)

"""
Deferred query builder.

An AsyncCollection never touches data. Each chain call records one operation
``(method_name, *args)`` in a new builder, and awaiting a builder hands the
whole log to an executor, which translates it for its own data source (an ORM,
a REST API, or :class:`eloquent.executors.InMemoryExecutor` for plain lists).

    users = AsyncCollection(executor)
    adults = users.where('age', '>=', 18)
    first_adult = await adults.sort('name').first()

Builders are immutable, so ``users`` and ``adults`` above can both be reused
and awaited independently.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from .common import MISSING
from .exceptions import EloquentValidationException
from .queries import Validators

_logger = logging.getLogger(__name__)

T = TypeVar('T')

Operation = tuple
OperationLog = tuple[Operation, ...]


@dataclass(frozen=True)
class ExecutionMetadata:
    created_at: datetime
    operation_count: int
    chain_depth: int


@dataclass(frozen=True)
class ExecutorContext:
    """Everything an executor receives: the operation log, the custom validators and metadata."""
    operations: OperationLog
    validators: Optional[Validators] = None
    metadata: Optional[ExecutionMetadata] = None


Executor = Callable[[ExecutorContext], Any | Awaitable[Any]]


def _trim(args: tuple) -> tuple:
    """Drop trailing unset arguments; an unset argument followed by a set one becomes None."""
    args = list(args)
    while args and args[-1] is MISSING:
        args.pop()
    return tuple(None if arg is MISSING else arg for arg in args)


class AsyncCollection(Generic[T]):
    """
    Immutable builder recording chain calls for a later executor run.

    :param executor: ``executor(context)`` returning the result or an awaitable of it.
    :param validators: custom operators forwarded to the executor in the context.
    :param operations: initial operation log, normally left empty.
    """

    def __init__(self, executor: Executor, validators: Optional[Validators] = None,
                 operations: OperationLog = ()):
        if not callable(executor):
            raise EloquentValidationException(message=f'executor must be callable, got {type(executor).__name__}')
        self._executor = executor
        self._validators = validators
        self._operations: OperationLog = tuple(tuple(op) for op in operations)
        self._future: Optional[asyncio.Future] = None

    @property
    def executor(self) -> Executor:
        return self._executor

    @property
    def validators(self) -> Optional[Validators]:
        return self._validators

    @property
    def operations(self) -> OperationLog:
        return self._operations

    def _chain(self, name: str, *args) -> AsyncCollection[T]:
        return self.__class__(self._executor, self._validators,
                              self._operations + ((name,) + _trim(args),))

    def __repr__(self):
        return f'{self.__class__.__name__}({" -> ".join(op[0] for op in self._operations) or "<empty>"})'

    # Filtering
    def where(self, *args) -> AsyncCollection[T]:
        return self._chain('where', *args)

    def where_not(self, *args) -> AsyncCollection[T]:
        return self._chain('where_not', *args)

    def filter(self, spec) -> AsyncCollection[T]:
        return self._chain('filter', spec)

    def not_(self, spec) -> AsyncCollection[T]:
        return self._chain('not', spec)

    def first(self, spec=MISSING) -> AsyncCollection[T]:
        return self._chain('first', spec)

    def last(self, spec=MISSING) -> AsyncCollection[T]:
        return self._chain('last', spec)

    def find(self, spec) -> AsyncCollection[T]:
        return self._chain('find', spec)

    def every(self, *args) -> AsyncCollection[T]:
        return self._chain('every', *args)

    # Transformations
    def each(self, fn) -> AsyncCollection[T]:
        return self._chain('each', fn)

    def map(self, fn) -> AsyncCollection:
        return self._chain('map', fn)

    def chunk(self, size: int) -> AsyncCollection:
        return self._chain('chunk', size)

    def group_by(self, key_or_fn) -> AsyncCollection:
        return self._chain('group_by', key_or_fn)

    def count_by(self, key_or_fn=MISSING) -> AsyncCollection:
        return self._chain('count_by', key_or_fn)

    def sort(self, key_or_cmp=MISSING, direction=MISSING) -> AsyncCollection[T]:
        return self._chain('sort', key_or_cmp, direction)

    def reverse(self) -> AsyncCollection[T]:
        return self._chain('reverse')

    def shuffle(self) -> AsyncCollection[T]:
        return self._chain('shuffle')

    def random(self, count=MISSING) -> AsyncCollection[T]:
        return self._chain('random', count)

    def slice(self, start=MISSING, end=MISSING) -> AsyncCollection[T]:
        return self._chain('slice', start, end)

    def unique(self, key_or_fn=MISSING) -> AsyncCollection[T]:
        return self._chain('unique', key_or_fn)

    # Aggregates
    def sum(self, key_or_fn=MISSING) -> AsyncCollection:
        return self._chain('sum', key_or_fn)

    def max(self, key_or_fn=MISSING) -> AsyncCollection:
        return self._chain('max', key_or_fn)

    def min(self, key_or_fn=MISSING) -> AsyncCollection:
        return self._chain('min', key_or_fn)

    def count(self, spec=MISSING) -> AsyncCollection:
        return self._chain('count', spec)

    def paginate(self, page=MISSING, per_page=MISSING) -> AsyncCollection:
        return self._chain('paginate', page, per_page)

    # Mutations
    def update(self, *args) -> AsyncCollection[T]:
        return self._chain('update', *args)

    def delete(self, spec) -> AsyncCollection[T]:
        return self._chain('delete', spec)

    def forget(self, *keys) -> AsyncCollection[T]:
        return self._chain('forget', *keys)

    def collect(self, items=MISSING) -> AsyncCollection[T]:
        return self._chain('collect', items)

    # Output
    def dump(self) -> AsyncCollection[T]:
        return self._chain('dump')

    def dd(self) -> AsyncCollection[T]:
        return self._chain('dd')

    def stringify(self, default=MISSING, indent=MISSING) -> AsyncCollection:
        return self._chain('stringify', default, indent)

    def macro(self, name: str, fn) -> AsyncCollection[T]:
        return self._chain('macro', name, fn)

    def explain(self, format: str = "text") -> str | dict:
        """
        Describe the recorded operations without running anything.

        :param format: "text" for a one line summary, "json" for a dict.
        """
        if format == 'json':
            return {
                "executor": getattr(self._executor, '__qualname__', self._executor.__class__.__qualname__),
                "validators": sorted(self._validators) if self._validators else [],
                "operations": [
                    {"op": op[0], "args": [repr(a) for a in op[1:]]}
                    for op in self._operations
                ],
            }
        if not self._operations:
            return "ops: <none>"
        return "ops:" + " -> ".join(op[0] for op in self._operations)

    # Execution
    def _build_context(self) -> ExecutorContext:
        return ExecutorContext(
            operations=self._operations,
            validators=self._validators,
            metadata=ExecutionMetadata(
                created_at=datetime.now(timezone.utc),
                operation_count=len(self._operations),
                chain_depth=len(self._operations),
            ),
        )

    def _start(self) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        context = self._build_context()
        _logger.debug(f"Executing {context.metadata.operation_count} operation(s): {self.explain()}")
        try:
            result = self._executor(context)
        except Exception as e:
            _logger.debug(f"Executor failed: {e!r}")
            future = loop.create_future()
            future.set_exception(e)
            return future

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            task.add_done_callback(_log_outcome)
            return task

        future = loop.create_future()
        future.set_result(result)
        return future

    async def run(self) -> Any:
        """
        Run the executor over the recorded operations and return its result.

        The executor is invoked at most once per builder: later calls (and
        awaits) return the same value or raise the same exception. Cancelling
        one awaiter does not cancel the shared execution.
        """
        if self._future is None:
            self._future = self._start()
        return await asyncio.shield(self._future)

    def __await__(self):
        return self.run().__await__()


def _log_outcome(task: asyncio.Future) -> None:
    if task.cancelled():
        _logger.debug("Executor cancelled")
    elif task.exception() is not None:
        _logger.debug(f"Executor failed: {task.exception()!r}")
    else:
        _logger.debug("Executor settled")

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Optional

from .async_collection import ExecutorContext
from .collection import Collection, to_plain
from .config import Policy
from .exceptions import EloquentNotSupportedException, EloquentValidationException

_logger = logging.getLogger(__name__)

# Operation names whose Collection method carries a different Python name
METHOD_NAMES = {
    'not': 'not_',
}


class InMemoryExecutor:
    """
    Executor replaying an operation log over an in-memory list.

    Every run starts from a fresh Collection over a deep copy of `items`, so the
    same executor can serve any number of AsyncCollection builders. Operations
    returning a Collection keep the chain going; the first operation returning
    anything else is terminal and nothing may follow it.

    Example::

        users = AsyncCollection(InMemoryExecutor([{"age": 17}, {"age": 30}]))
        await users.where("age", ">=", 18).first()   # {"age": 30}
    """

    def __init__(self, items: Optional[Iterable] = None, policy: Optional[Policy] = None):
        self.items = list(items or [])
        self.policy = policy

    def __call__(self, context: ExecutorContext) -> Any:
        current: Any = Collection(copy.deepcopy(self.items), validators=context.validators, policy=self.policy)
        terminal: Optional[str] = None
        for operation in context.operations:
            name, args = operation[0], operation[1:]
            if terminal is not None:
                raise EloquentValidationException(
                    message=f'{name}() can not follow {terminal}(), which does not return a collection')
            method = getattr(current, METHOD_NAMES.get(name, name), None)
            if method is None or not callable(method):
                raise EloquentNotSupportedException(message=f'Operation {name} is not supported')
            current = method(*args)
            if not isinstance(current, Collection):
                terminal = name

        _logger.debug(f"Replayed {len(context.operations)} operation(s) over {len(self.items)} item(s)")
        return to_plain(current)

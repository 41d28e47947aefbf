"""
Basic definitions shared by every module
"""
from __future__ import annotations

import inspect
from typing import Any, Callable

Number = float | int


class _Missing:
    """Marker for "there is no value at this path", distinct from a stored None."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return '<MISSING>'

    def __reduce__(self):
        return (_Missing, ())


MISSING = _Missing()


def positional_arity(fn: Callable) -> int:
    """
    Number of positional arguments `fn` accepts.

    Callables with *args report a large arity, callables whose signature
    can not be inspected (some builtins) are assumed to take one argument.
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return 1
    count = 0
    for parameter in signature.parameters.values():
        if parameter.kind == inspect.Parameter.VAR_POSITIONAL:
            return 255
        if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY,
                              inspect.Parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


def adapt_callback(fn: Callable, max_args: int) -> Callable[..., Any]:
    """
    Wrap `fn` so it can always be called with `max_args` positional arguments.

    Callbacks like `lambda item: ...` and `lambda item, index: ...` are both
    accepted where the collection passes `(item, index)`.
    """
    arity = min(positional_arity(fn), max_args)
    if arity >= max_args:
        return fn

    def _adapted(*args):
        return fn(*args[:arity])

    return _adapted

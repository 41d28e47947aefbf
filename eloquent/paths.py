"""
Dot separated key paths over arbitrary item shapes.

A path like ``"address.city"`` walks mappings by key, lists and tuples by
integer position and any other object by attribute. Resolution never raises:
the first absent segment yields the caller supplied default.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .common import MISSING

VALUE_PATH = '$value'


def split_path(path: Any) -> tuple:
    if path is None or path == '' or path == VALUE_PATH:
        return ()
    if isinstance(path, str):
        return tuple(path.split('.'))
    return (path,)


def _step(current: Any, segment: Any) -> Any:
    if isinstance(current, Mapping):
        if segment in current:
            return current[segment]
        return MISSING
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        try:
            return current[int(segment)]
        except (ValueError, TypeError, IndexError):
            return MISSING
    if current is None or current is MISSING or not isinstance(segment, str):
        return MISSING
    try:
        return getattr(current, segment)
    except AttributeError:
        return MISSING


def resolve(item: Any, path: Any, default: Any = None) -> Any:
    """
    Get the value stored at `path` inside `item`.

    :param item: record, sequence or plain object.
    :param path: dot separated path, or ``"$value"`` for the item itself.
    :param default: returned when any segment is absent.
    """
    current = item
    for segment in split_path(path):
        current = _step(current, segment)
        if current is MISSING:
            return default
    return current


def has(item: Any, path: Any) -> bool:
    return resolve(item, path, MISSING) is not MISSING


def omit(item: Any, path: Any) -> Any:
    """
    Copy of a mapping item without the field at `path`.

    Every mapping on the way to the field is shallow copied, so the original
    item is left untouched. Non mapping items are returned as they are.
    """
    segments = split_path(path)
    if not segments or not isinstance(item, Mapping):
        return item
    head, rest = segments[0], segments[1:]
    if head not in item:
        return item
    copy = dict(item)
    if rest:
        copy[head] = omit(item[head], '.'.join(str(s) for s in rest))
    else:
        del copy[head]
    return copy

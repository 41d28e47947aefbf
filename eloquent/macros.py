from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from .exceptions import EloquentValidationException, MacroCollisionException

_logger = logging.getLogger(__name__)


class MacroRegistry:
    """
    Named extra callables attached to collections.

    Registries form a chain: lookups try the local table first and then the
    parent. Names in `reserved` (the built-in methods) can never be registered.
    """

    def __init__(self, parent: Optional[MacroRegistry] = None, reserved: Iterable[str] = ()):
        self.parent = parent
        self._reserved: set[str] = set(reserved)
        self._macros: dict[str, Callable[..., Any]] = {}

    @property
    def reserved(self) -> frozenset[str]:
        names = set(self._reserved)
        if self.parent is not None:
            names |= self.parent.reserved
        return frozenset(names)

    def reserve(self, names: Iterable[str]) -> None:
        """Reserve `names`; fails if a macro already registered in the chain uses one of them."""
        names = set(names)
        clashes = names & self.names()
        if clashes:
            raise MacroCollisionException(
                message=f'Macros {sorted(clashes)} use built-in names and can not be used with this collection')
        self._reserved.update(names)

    def register(self, name: str, fn: Callable[..., Any]) -> None:
        if not isinstance(name, str) or not name.isidentifier() or name.startswith('_'):
            raise EloquentValidationException(message=f'Invalid macro name: {name!r}')
        if not callable(fn):
            raise EloquentValidationException(message=f'Macro {name} must be callable, got {type(fn).__name__}')
        if name in self.reserved:
            raise MacroCollisionException(message=f'{name} is a built-in method and can not be used as a macro')
        if name in self._macros:
            _logger.warning(f"Macro {name} redefined")
        self._macros[name] = fn
        _logger.debug(f"Registered macro {name}")

    def get(self, name: str) -> Optional[Callable[..., Any]]:
        if name in self._macros:
            return self._macros[name]
        if self.parent is not None:
            return self.parent.get(name)
        return None

    def child(self, reserved: Iterable[str] = ()) -> MacroRegistry:
        return MacroRegistry(parent=self, reserved=reserved)

    def names(self) -> frozenset[str]:
        names = set(self._macros)
        if self.parent is not None:
            names |= self.parent.names()
        return frozenset(names)


class MacroMethod:
    """
    Descriptor exposing ``macro(name, fn)`` on both the class and its instances.

    ``Collection.macro(...)`` registers in the class wide registry and returns
    the class; ``collection.macro(...)`` registers in the instance registry
    and returns the instance.
    """

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner):
        target = owner if instance is None else instance

        def macro(name: str, fn: Callable[..., Any]):
            registry = owner.static_macros if instance is None else instance.macros
            registry.register(name, fn)
            return target

        macro.__doc__ = self.__class__.__doc__
        return macro

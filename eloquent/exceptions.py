"""
Exception hierarchy for eloquent collections
"""
from __future__ import annotations


class EloquentBaseException(Exception):
    """
    Root of every exception raised by the library.

    :param code: Numeric code identifying the error family.
    :param message: Human readable description.
    """
    code: int = 1000

    def __init__(self, message: str | None = None, code: int | None = None):
        self.message = message or self.__class__.__name__
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def __str__(self):
        return f'{self.__class__.__name__}({self.code}): {self.message}'


class EloquentValidationException(EloquentBaseException):
    code = 1001


class QueryCompilationException(EloquentValidationException):
    """Raised when a query specification can not be compiled into a predicate."""
    code = 1002


class MacroCollisionException(EloquentValidationException):
    """Raised when a macro tries to take the name of a built-in method."""
    code = 1003


class EloquentNotSupportedException(EloquentBaseException):
    code = 1004

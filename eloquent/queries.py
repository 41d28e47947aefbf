from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Collection as AbcCollection, Iterable, Mapping
from typing import Any, Callable, Optional

from .common import MISSING, adapt_callback
from .exceptions import QueryCompilationException
from .paths import resolve

_logger = logging.getLogger(__name__)

Validators = Mapping[str, Callable[[Any, Any], Callable[[Any], bool]]]

# Shorthand operator symbols accepted by where(key, operator, value)
WHERE_OPERATORS: dict[str, str] = {
    '=': '$eq',
    '==': '$eq',
    '!=': '$not',
    '>': '$gt',
    '<': '$lt',
    '>=': '$gte',
    '<=': '$lte',
    'in': '$in',
    'includes': '$includes',
}

NOT_KEY = '$not'


class Expression(ABC):
    """
    Abstract base class for all expression types used to filter or match records.

    Expressions are compiled from a query specification: a mapping of field
    paths to clauses, a top level ``$not`` wrapping another specification, or
    a plain predicate. Compilation validates the whole specification up front,
    so a malformed query fails where it is written and never while iterating.
    """

    @staticmethod
    def compile(spec: Any, validators: Optional[Validators] = None) -> Expression:
        """
        Compile a query specification into an `Expression`.

        :param spec: mapping of field -> clause, or a callable predicate.
        :param validators: custom operators, name -> factory(path, operand) -> predicate(item).
        :return: the compiled expression.
        :raises QueryCompilationException: on unknown operators or malformed clauses.
        """
        if callable(spec) and not isinstance(spec, Mapping):
            return PredicateExpression(spec)
        if not isinstance(spec, Mapping):
            raise QueryCompilationException(
                message=f'Query must be a mapping or a callable, got {type(spec).__name__}')

        terms: list[Expression] = []
        for key, clause in spec.items():
            if key == NOT_KEY:
                if not isinstance(clause, Mapping) and not callable(clause):
                    raise QueryCompilationException(
                        message=f'{NOT_KEY} at query level expects a nested query, got {clause!r}')
                terms.append(NotExpression(Expression.compile(clause, validators)))
            elif isinstance(key, str) and key.startswith('$'):
                raise QueryCompilationException(message=f'Unknown query level operator: {key}!')
            else:
                terms.append(compile_clause(key, clause, validators))

        _logger.debug(f"Compiled query with {len(terms)} term(s)")
        if not terms:
            return TrueTerm()
        if len(terms) == 1:
            return terms[0]
        return AndExpression(terms).optimize()

    def optimize(self) -> Expression:
        """
        Recursively flatten nested AND nodes and double negations.
        """
        if isinstance(self, AndExpression):
            new_terms: list[Expression] = []
            for term in self.terms:
                optimized_term = term.optimize()
                if isinstance(optimized_term, AndExpression):
                    new_terms.extend(optimized_term.terms)
                else:
                    new_terms.append(optimized_term)
            return AndExpression(new_terms)
        if isinstance(self, NotExpression):
            inner = self.negated_expression.optimize()
            if isinstance(inner, NotExpression):
                return inner.negated_expression
            return NotExpression(inner)
        return self

    @abstractmethod
    def match(self, record, index: int = 0) -> bool:
        """
        Evaluate the expression against one record.

        :param record: the item being tested.
        :param index: position of the record inside its collection.
        :return: True when the record satisfies the expression.
        """

    def __call__(self, record, index: int = 0) -> bool:
        return self.match(record, index)


class AndExpression(Expression):
    """
    Logical 'AND' of several expressions.

    Attributes:
    - terms (list[Expression]): Sub-expressions that must all evaluate as True.
    """

    terms: list[Expression]

    def __init__(self, terms: list[Expression]):
        self.terms = terms

    def match(self, record, index: int = 0):
        for term in self.terms:
            if not term.match(record, index):
                return False
        return True


class NotExpression(Expression):
    negated_expression: Expression

    def __init__(self, negated_expression: Expression):
        self.negated_expression = negated_expression

    def match(self, record, index: int = 0):
        return not self.negated_expression.match(record, index)


class TrueTerm(Expression):
    def match(self, record, index: int = 0):
        return True


class PredicateExpression(Expression):
    """Wraps a user predicate taking ``(item)`` or ``(item, index)``."""

    def __init__(self, fn: Callable[..., Any]):
        self.fn = fn
        self._call = adapt_callback(fn, 2)

    def match(self, record, index: int = 0):
        return bool(self._call(record, index))


class Term(Expression):
    """Resolves `target_attribute` on the record and applies one operator to it."""
    target_attribute: str
    operation: Operator
    value: object

    def __init__(self, target_attribute: str, operation: Operator, value: object):
        self.target_attribute = target_attribute
        self.operation = operation
        self.value = value

    def match(self, record, index: int = 0):
        source_value = resolve(record, self.target_attribute, MISSING)
        return self.operation.match(source_value, self.value)

    def __repr__(self):
        return f'Term({self.target_attribute!r} {self.operation.symbol} {self.value!r})'


class ValidatorTerm(Expression):
    """Term built by a custom validator; the validator sees the whole record."""

    def __init__(self, target_attribute: str, symbol: str, predicate: Callable[[Any], Any]):
        self.target_attribute = target_attribute
        self.symbol = symbol
        self.predicate = predicate

    def match(self, record, index: int = 0):
        return bool(self.predicate(record))


class Operator(ABC):
    """
    Abstract base class for comparison operators.

    Operators compare the value resolved from a record (the source) with the
    operand written in the query. A source of MISSING means the path does not
    exist in the record; every built-in operator answers False for it.
    """

    symbol: str = ''

    @staticmethod
    def get_operator(symbol: str) -> Operator:
        """
        Factory method to get an operator instance from its query symbol.

        :param symbol: The operator symbol as written in a query (e.g. '$gte').
        :return: An instance of a subclass of `Operator`.
        :raises QueryCompilationException: if the symbol is not a built-in operator.
        """
        if symbol == '$eq':
            return Equal()
        elif symbol == '$gt':
            return Greater()
        elif symbol == '$gte':
            return GreaterOrEqual()
        elif symbol == '$lt':
            return Lower()
        elif symbol == '$lte':
            return LowerOrEqual()
        elif symbol == '$in':
            return In()
        elif symbol in ('$contains', '$includes'):
            return Contains()
        else:
            raise QueryCompilationException(message=f'Unknown operator: {symbol}!')

    @staticmethod
    def is_builtin(symbol: str) -> bool:
        return symbol in BUILTIN_OPERATORS

    def prepare(self, operand: Any) -> Any:
        """Validate the operand at compile time, returning the value to store in the Term."""
        return operand

    @abstractmethod
    def match(self, source, value=None) -> bool:
        """
        Compare the resolved `source` with the query operand `value`.
        """


def _strict_equal(source, value) -> bool:
    if source is MISSING:
        return False
    # True == 1 in Python; the query language keeps booleans and numbers apart
    if isinstance(source, bool) != isinstance(value, bool):
        return False
    try:
        return bool(source == value)
    except Exception:
        return False


def _ordered(source, value, compare: Callable[[Any, Any], bool]) -> bool:
    if source is MISSING or source is None or value is None:
        return False
    try:
        return bool(compare(source, value))
    except TypeError:
        return False


class Equal(Operator):
    symbol = '$eq'

    def match(self, source, value=None):
        return _strict_equal(source, value)


class Greater(Operator):
    symbol = '$gt'

    def match(self, source, value=None):
        return _ordered(source, value, lambda a, b: a > b)


class GreaterOrEqual(Operator):
    symbol = '$gte'

    def match(self, source, value=None):
        return _ordered(source, value, lambda a, b: a >= b)


class Lower(Operator):
    symbol = '$lt'

    def match(self, source, value=None):
        return _ordered(source, value, lambda a, b: a < b)


class LowerOrEqual(Operator):
    symbol = '$lte'

    def match(self, source, value=None):
        return _ordered(source, value, lambda a, b: a <= b)


class In(Operator):
    symbol = '$in'

    def prepare(self, operand: Any) -> Any:
        if isinstance(operand, (str, bytes, Mapping)) or not isinstance(operand, Iterable):
            raise QueryCompilationException(
                message=f'$in expects a list of values, got {type(operand).__name__}')
        return list(operand)

    def match(self, source, value=None):
        if source is MISSING:
            return False
        return any(_strict_equal(source, candidate) for candidate in value)


class Contains(Operator):
    """`$contains` and `$includes`: substring for strings, membership for sequences."""
    symbol = '$contains'

    def match(self, source, value=None):
        if isinstance(source, str):
            return isinstance(value, str) and value in source
        if isinstance(source, (bytes, Mapping)) or not isinstance(source, AbcCollection):
            return False
        try:
            return any(_strict_equal(element, value) for element in source)
        except TypeError:
            return False


class Matches(Operator):
    """Regular expression literal: searches string values."""
    symbol = '$regex'

    def match(self, source, value=None):
        return isinstance(source, str) and value.search(source) is not None


BUILTIN_OPERATORS = frozenset({'$eq', '$gt', '$gte', '$lt', '$lte', '$in', '$contains', '$includes', NOT_KEY})


def _find_validator(symbol: str, validators: Optional[Validators]):
    if not validators:
        return None
    if symbol in validators:
        return validators[symbol]
    return validators.get(symbol[1:])


def _is_operator_object(clause: Any) -> bool:
    if not isinstance(clause, Mapping) or not clause:
        return False
    dollar_keys = [k for k in clause if isinstance(k, str) and k.startswith('$')]
    if not dollar_keys:
        return False
    if len(dollar_keys) != len(clause):
        raise QueryCompilationException(
            message=f'Operator object mixes operators and plain fields: {list(clause)}')
    return True


def compile_clause(path: str, clause: Any, validators: Optional[Validators] = None) -> Expression:
    """
    Compile the clause written for one field into an expression over the record.

    A literal means equality, a compiled regular expression searches string
    values and an operator object AND-combines each of its operators.
    """
    if isinstance(clause, re.Pattern):
        return Term(path, Matches(), clause)
    if not _is_operator_object(clause):
        return Term(path, Equal(), clause)

    terms: list[Expression] = []
    for symbol, operand in clause.items():
        if symbol == NOT_KEY:
            terms.append(NotExpression(compile_clause(path, operand, validators)))
        elif Operator.is_builtin(symbol):
            operation = Operator.get_operator(symbol)
            terms.append(Term(path, operation, operation.prepare(operand)))
        else:
            factory = _find_validator(symbol, validators)
            if factory is None:
                raise QueryCompilationException(message=f'Unknown operator: {symbol}!')
            predicate = factory(path, operand)
            if not callable(predicate):
                raise QueryCompilationException(
                    message=f'Validator {symbol} must return a predicate, got {type(predicate).__name__}')
            terms.append(ValidatorTerm(path, symbol, predicate))
    return terms[0] if len(terms) == 1 else AndExpression(terms)


def normalize_where(*args) -> dict:
    """
    Translate ``where(key, value)`` and ``where(key, operator, value)`` into a query.

    >>> normalize_where('age', '>=', 18)
    {'age': {'$gte': 18}}
    """
    if len(args) == 2:
        key, value = args
        return {key: {'$eq': value}}
    if len(args) == 3:
        key, symbol, value = args
        operator = WHERE_OPERATORS.get(symbol) if isinstance(symbol, str) else None
        if operator is None:
            raise QueryCompilationException(
                message=f'{symbol!r} is not a valid operator, use one of: {", ".join(WHERE_OPERATORS)}')
        return {key: {operator: value}}
    raise QueryCompilationException(message=f'where() expects (key, value) or (key, operator, value), got {len(args)} arguments')


def compile_query(spec: Any, validators: Optional[Validators] = None) -> Callable[..., bool]:
    """Compile `spec` and return a predicate ``(item, index=0) -> bool``."""
    return Expression.compile(spec, validators).match

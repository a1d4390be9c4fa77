"""Choice conditions.

A condition is a predicate over a step's output payload. Conditions built here
read a value at a `$` path and compare it; a missing path never matches (except
for `is_present`). Any plain callable `payload -> bool` may also be used as a
choice predicate.
"""

from __future__ import annotations

import fnmatch
import operator
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .paths import PathNotFound, is_present as _path_present, parse_path, select

Predicate = Callable[[Any], bool]


@dataclass(frozen=True, slots=True)
class Condition:
    description: str
    test: Predicate

    def __call__(self, payload: Any) -> bool:
        return bool(self.test(payload))

    def __str__(self) -> str:
        return self.description


def describe(predicate: Predicate) -> str:
    if isinstance(predicate, Condition):
        return predicate.description
    return getattr(predicate, "__name__", repr(predicate))


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _value_test(
    variable: str, accepts: Callable[[object], bool], check: Callable[[Any], bool]
) -> Predicate:
    parse_path(variable)

    def _test(payload: Any) -> bool:
        try:
            value = select(payload, variable)
        except PathNotFound:
            return False
        return accepts(value) and check(value)

    return _test


def string_equals(variable: str, expected: str) -> Condition:
    return Condition(
        f"{variable} == {expected!r}",
        _value_test(variable, lambda v: isinstance(v, str), lambda v: v == expected),
    )


def string_matches(variable: str, pattern: str) -> Condition:
    return Condition(
        f"{variable} matches {pattern!r}",
        _value_test(
            variable,
            lambda v: isinstance(v, str),
            lambda v: fnmatch.fnmatchcase(v, pattern),
        ),
    )


_NUMERIC_OPS: dict[str, tuple[str, Callable[[Any, Any], bool]]] = {
    "equals": ("==", operator.eq),
    "less_than": ("<", operator.lt),
    "less_than_equals": ("<=", operator.le),
    "greater_than": (">", operator.gt),
    "greater_than_equals": (">=", operator.ge),
}


def _numeric(op: str, variable: str, expected: float) -> Condition:
    if not _is_number(expected):
        raise ValueError(f"Numeric condition needs a number, got {expected!r}")
    symbol, fn = _NUMERIC_OPS[op]
    return Condition(
        f"{variable} {symbol} {expected!r}",
        _value_test(variable, _is_number, lambda v: fn(v, expected)),
    )


def numeric_equals(variable: str, expected: float) -> Condition:
    return _numeric("equals", variable, expected)


def numeric_less_than(variable: str, expected: float) -> Condition:
    return _numeric("less_than", variable, expected)


def numeric_less_than_equals(variable: str, expected: float) -> Condition:
    return _numeric("less_than_equals", variable, expected)


def numeric_greater_than(variable: str, expected: float) -> Condition:
    return _numeric("greater_than", variable, expected)


def numeric_greater_than_equals(variable: str, expected: float) -> Condition:
    return _numeric("greater_than_equals", variable, expected)


def boolean_equals(variable: str, expected: bool) -> Condition:
    return Condition(
        f"{variable} is {expected!r}",
        _value_test(variable, lambda v: isinstance(v, bool), lambda v: v is expected),
    )


def is_present(variable: str) -> Condition:
    parse_path(variable)
    return Condition(f"{variable} is present", lambda payload: _path_present(payload, variable))


def is_null(variable: str) -> Condition:
    return Condition(
        f"{variable} is null", _value_test(variable, lambda _v: True, lambda v: v is None)
    )


def all_of(*conditions: Predicate) -> Condition:
    if not conditions:
        raise ValueError("all_of needs at least one condition")
    return Condition(
        "(" + " and ".join(describe(c) for c in conditions) + ")",
        lambda payload: all(c(payload) for c in conditions),
    )


def any_of(*conditions: Predicate) -> Condition:
    if not conditions:
        raise ValueError("any_of needs at least one condition")
    return Condition(
        "(" + " or ".join(describe(c) for c in conditions) + ")",
        lambda payload: any(c(payload) for c in conditions),
    )


def not_(condition: Predicate) -> Condition:
    return Condition(f"not {describe(condition)}", lambda payload: not condition(payload))


def from_spec(spec: dict[str, Any]) -> Condition:
    """Build a condition from its declarative form.

    Examples:
        {"variable": "$.state", "string_equals": "Yes"}
        {"and": [{...}, {...}]}
        {"not": {...}}
    """

    if not isinstance(spec, dict):
        raise ValueError(f"Condition must be an object, got {spec!r}")
    for key in ("and", "or"):
        if key in spec and not isinstance(spec[key], list):
            raise ValueError(f"Condition {key!r} must be a list of conditions: {spec!r}")

    if "and" in spec:
        return all_of(*(from_spec(s) for s in spec["and"]))
    if "or" in spec:
        return any_of(*(from_spec(s) for s in spec["or"]))
    if "not" in spec:
        return not_(from_spec(spec["not"]))

    variable = spec.get("variable")
    if not isinstance(variable, str):
        raise ValueError(f"Condition is missing 'variable': {spec!r}")

    operators = [key for key in spec if key != "variable"]
    if len(operators) != 1:
        raise ValueError(f"Condition must have exactly one operator: {spec!r}")
    op = operators[0]
    value = spec[op]

    if op in _BUILDERS:
        return _BUILDERS[op](variable, value)
    if op == "is_present":
        cond = is_present(variable)
        return cond if value else not_(cond)
    if op == "is_null":
        cond = is_null(variable)
        return cond if value else not_(cond)
    raise ValueError(f"Unknown condition operator: {op!r}")


_BUILDERS: dict[str, Callable[[str, Any], Condition]] = {
    "string_equals": string_equals,
    "string_matches": string_matches,
    "numeric_equals": numeric_equals,
    "numeric_less_than": numeric_less_than,
    "numeric_less_than_equals": numeric_less_than_equals,
    "numeric_greater_than": numeric_greater_than,
    "numeric_greater_than_equals": numeric_greater_than_equals,
    "boolean_equals": boolean_equals,
}

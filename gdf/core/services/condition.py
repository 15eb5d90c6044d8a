"""
Condition guards — ``when:`` expressions on dotfiles and apply hooks.

Format is ``<field> <op> <value>``::

    os == 'macos'
    distro != ubuntu
    hostname =~ "^work-"

Fields: ``os``, ``distro``, ``hostname``, ``arch``.
Operators: ``==``, ``!=``, ``=~`` (regex search).
"""

from __future__ import annotations

import re

from gdf.core.engine.errors import FieldError, InputValidationError
from gdf.core.models.platform import Platform

_OPERATORS = ("==", "!=", "=~")


def _field_value(field: str, platform: Platform) -> str | None:
    values = {
        "os": platform.os.value,
        "distro": platform.distro,
        "hostname": platform.hostname,
        "arch": platform.arch,
    }
    return values.get(field)


def evaluate_condition(expression: str, platform: Platform) -> bool:
    """True when *expression* holds on *platform*. An empty expression holds.

    Raises:
        InputValidationError: Malformed expression, unknown field or
            operator, or an invalid regular expression.
    """
    if not expression.strip():
        return True

    parts = expression.split()
    if len(parts) < 3:
        raise InputValidationError(
            "invalid condition",
            errors=[FieldError("when", f"expected '<field> <op> <value>', got '{expression}'")],
        )

    field, op = parts[0], parts[1]
    value = " ".join(parts[2:]).strip("'\"")

    actual = _field_value(field, platform)
    if actual is None:
        raise InputValidationError("invalid condition", errors=[FieldError("when", f"unknown field '{field}'")])
    if op not in _OPERATORS:
        raise InputValidationError("invalid condition", errors=[FieldError("when", f"unknown operator '{op}'")])

    if op == "==":
        return actual == value
    if op == "!=":
        return actual != value

    try:
        return re.search(value, actual) is not None
    except re.error as e:
        raise InputValidationError(
            "invalid condition",
            errors=[FieldError("when", f"bad regular expression '{value}': {e}")],
        ) from e

"""
Condition evaluation for the condition node.

A deliberately tiny expression language, checked in this order:
1. `!path`           -> true iff the resolved value is falsy / empty
2. `path == literal` -> string equality, quotes around the literal stripped
3. `path != literal` -> string inequality
4. `path`            -> truthiness of the resolved value

There is no operator precedence and no `&&` / `||`. Any error while
resolving makes the condition evaluate to False.
"""

import logging
from typing import Any

from .context import ExecutionContext
from .resolver import resolve, stringify

logger = logging.getLogger(__name__)


def _strip_quotes(literal: str) -> str:
    literal = literal.strip()
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in ("'", '"'):
        return literal[1:-1]
    return literal


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value != ""
    return bool(value)


def evaluate(expr: str, ctx: ExecutionContext) -> bool:
    """
    Evaluate a condition expression against the run context.

    Examples:
        >>> evaluate("!website", ctx)              # no website on file
        True
        >>> evaluate('category == "Restaurant"', ctx)
        True
        >>> evaluate("variables.aiResult", ctx)    # not generated yet
        False
    """
    try:
        expr = (expr or "").strip()
        if not expr:
            return False

        if expr.startswith("!") and not expr.startswith("!="):
            return not _is_truthy(resolve(expr[1:].strip(), ctx))

        if "==" in expr:
            left, right = expr.split("==", 1)
            return stringify(resolve(left.strip(), ctx)) == _strip_quotes(right)

        if "!=" in expr:
            left, right = expr.split("!=", 1)
            return stringify(resolve(left.strip(), ctx)) != _strip_quotes(right)

        return _is_truthy(resolve(expr, ctx))

    except Exception as e:
        logger.warning(f"Condition '{expr}' could not be evaluated: {e}")
        return False

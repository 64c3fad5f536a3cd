"""
Variable Resolver

Resolves `{business.x}` / `{variables.y}` tokens against an ExecutionContext.
Every node handler that touches user-authored text (prompts, URLs, bodies,
conditions) goes through `interpolate`.

Lookup rules for `resolve(path, ctx)`:
- a single pair of enclosing braces is stripped
- `business.<field>`              -> ctx.business_data[field]
- `variables.<name>` / `variable.<name>` -> ctx.variables[name]
- no prefix                        -> business_data[path], else variables[path]

Variable names may use dot notation to reach into nested values
(`variables.linkedinResults.0.name`). Unresolved paths yield None; nothing
here raises.
"""

import json
import re
from typing import Any, Dict, Optional

from .context import ExecutionContext

# Path-shaped tokens only: JSON objects in request bodies and headers are not tokens
TOKEN_PATTERN = re.compile(r"\{\s*([A-Za-z_][\w.\-]*)\s*\}")

_BUSINESS_PREFIX = "business."
_VARIABLE_PREFIXES = ("variables.", "variable.")


def get_nested_value(data: Any, field_path: str) -> Any:
    """
    Get a nested value using dot notation.

    Examples:
        >>> get_nested_value({"result": {"status": "ok"}}, "result.status")
        "ok"
        >>> get_nested_value({"items": [{"name": "a"}]}, "items.0.name")
        "a"
    """
    if data is None or not field_path:
        return None

    current = data
    for part in field_path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            return None
        if current is None:
            return None
    return current


def _lookup(data: Dict[str, Any], key: str) -> Any:
    # Exact key first so names containing dots still work
    if key in data:
        return data[key]
    if "." in key:
        return get_nested_value(data, key)
    return None


def resolve(path: str, ctx: ExecutionContext) -> Any:
    """
    Resolve a token path against the run context.

    Returns None when nothing matches.
    """
    if path is None:
        return None

    path = path.strip()
    if path.startswith("{") and path.endswith("}"):
        path = path[1:-1].strip()
    if not path:
        return None

    if path.startswith(_BUSINESS_PREFIX):
        return _lookup(ctx.business_data, path[len(_BUSINESS_PREFIX):])

    for prefix in _VARIABLE_PREFIXES:
        if path.startswith(prefix):
            return _lookup(ctx.variables, path[len(prefix):])

    value = _lookup(ctx.business_data, path)
    if value is None:
        value = _lookup(ctx.variables, path)
    return value


def resolve_value(raw: Optional[str], ctx: ExecutionContext) -> Any:
    """
    Resolve a node input that may be a path, a single token, a template or a literal.

        "website"                -> business website (or the literal if unresolved)
        "{variables.scrapedData}" -> the variable value, type preserved
        "Hi {business.name}"     -> interpolated string
        "https://example.com"    -> literal
    """
    raw = (raw or "").strip()
    if not raw:
        return None
    if "{" in raw:
        if TOKEN_PATTERN.fullmatch(raw):
            return resolve(raw, ctx)
        return interpolate(raw, ctx)
    value = resolve(raw, ctx)
    return value if value is not None else raw


def stringify(value: Any) -> str:
    """
    String form used for interpolation and condition comparison.

    None renders as "", booleans as "true"/"false", whole-number floats
    without the trailing ".0" (a rating of 5.0 reads "5") and containers as
    JSON so they can be dropped into request bodies unchanged.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(text: Optional[str], ctx: ExecutionContext) -> str:
    """
    Replace every `{...}` token in `text` with its resolved value.

    Example:
        >>> interpolate("Hi {business.name}, {variables.aiResult}", ctx)
        "Hi Luigi's, Loved your pizza"
        >>> interpolate("Hi {missing}!", ctx)
        "Hi !"
    """
    if not text:
        return ""
    return TOKEN_PATTERN.sub(lambda match: stringify(resolve(match.group(1), ctx)), text)

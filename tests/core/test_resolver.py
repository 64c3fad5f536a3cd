"""
Tests for the Variable Resolver

Tests cover:
- business./variables./variable. prefixes and unprefixed lookup
- Nested paths (dot notation into dicts and lists)
- Interpolation of templates, unresolved tokens
- resolve_value for node inputs
"""

import pytest

from autoloop.core.context import ExecutionContext
from autoloop.core.resolver import get_nested_value, interpolate, resolve, resolve_value, stringify


@pytest.fixture
def ctx():
    return ExecutionContext(
        business_id="b1",
        business_data={"name": "Luigi's", "rating": 4.8, "website": None, "emailSent": False},
        user_id="u1",
        workflow_id="w1",
        variables={
            "aiResult": "Loved your pizza",
            "linkedinResults": [{"name": "Mario"}],
            "dbResult": {"rowcount": 2},
            "name": "variable name",
        },
    )


# ============================================================================
# RESOLVE
# ============================================================================

@pytest.mark.unit
def test_resolve_business_prefix(ctx):
    assert resolve("business.name", ctx) == "Luigi's"
    assert resolve("business.rating", ctx) == 4.8


@pytest.mark.unit
def test_resolve_variable_prefixes(ctx):
    assert resolve("variables.aiResult", ctx) == "Loved your pizza"
    assert resolve("variable.aiResult", ctx) == "Loved your pizza"


@pytest.mark.unit
def test_resolve_strips_braces(ctx):
    assert resolve("{business.name}", ctx) == "Luigi's"
    assert resolve("  { variables.aiResult }  ", ctx) == "Loved your pizza"


@pytest.mark.unit
def test_unprefixed_prefers_business(ctx):
    """Without a prefix the business snapshot wins over variables"""
    assert resolve("name", ctx) == "Luigi's"
    assert resolve("aiResult", ctx) == "Loved your pizza"


@pytest.mark.unit
def test_resolve_nested(ctx):
    assert resolve("variables.linkedinResults.0.name", ctx) == "Mario"
    assert resolve("variables.dbResult.rowcount", ctx) == 2


@pytest.mark.unit
def test_resolve_missing_returns_none(ctx):
    assert resolve("business.missing", ctx) is None
    assert resolve("variables.linkedinResults.5.name", ctx) is None
    assert resolve("", ctx) is None
    assert resolve(None, ctx) is None


@pytest.mark.unit
def test_get_nested_value():
    data = {"result": {"status": "ok"}, "items": [{"name": "a"}]}

    assert get_nested_value(data, "result.status") == "ok"
    assert get_nested_value(data, "items.0.name") == "a"
    assert get_nested_value(data, "items.x") is None
    assert get_nested_value(None, "a") is None


# ============================================================================
# STRINGIFY / INTERPOLATE
# ============================================================================

@pytest.mark.unit
def test_stringify():
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(False) == "false"
    assert stringify(4.8) == "4.8"
    assert stringify(5.0) == "5"
    assert stringify(float("inf")) == "inf"
    assert stringify({"a": 1}) == '{"a": 1}'


@pytest.mark.unit
def test_interpolate(ctx):
    text = "Hi {business.name}, {variables.aiResult}!"
    assert interpolate(text, ctx) == "Hi Luigi's, Loved your pizza!"


@pytest.mark.unit
def test_interpolate_whole_number_float():
    ctx = ExecutionContext("b1", {"rating": 5.0}, "u1", "w1")
    assert interpolate("Rated {business.rating} stars", ctx) == "Rated 5 stars"


@pytest.mark.unit
def test_interpolate_unresolved_tokens_become_empty(ctx):
    assert interpolate("Visit {business.website} or {nothing}", ctx) == "Visit  or "


@pytest.mark.unit
def test_interpolate_leaves_json_objects(ctx):
    body = '{"name": "{business.name}", "source": "autoloop"}'
    assert interpolate(body, ctx) == '{"name": "Luigi\'s", "source": "autoloop"}'
    assert interpolate('{"X-Api-Key": "secret"}', ctx) == '{"X-Api-Key": "secret"}'


@pytest.mark.unit
def test_interpolate_empty(ctx):
    assert interpolate("", ctx) == ""
    assert interpolate(None, ctx) == ""


@pytest.mark.unit
def test_interpolate_without_tokens_is_unchanged(ctx):
    assert interpolate("No tokens here", ctx) == "No tokens here"


# ============================================================================
# RESOLVE_VALUE
# ============================================================================

@pytest.mark.unit
def test_resolve_value_single_token_keeps_type(ctx):
    assert resolve_value("{variables.linkedinResults}", ctx) == [{"name": "Mario"}]


@pytest.mark.unit
def test_resolve_value_template(ctx):
    assert resolve_value("About {business.name}", ctx) == "About Luigi's"


@pytest.mark.unit
def test_resolve_value_path_or_literal(ctx):
    assert resolve_value("business.rating", ctx) == 4.8
    assert resolve_value("https://example.com", ctx) == "https://example.com"
    assert resolve_value("   ", ctx) is None

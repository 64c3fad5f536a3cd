"""
Tests for condition evaluation

Tests cover:
- Negation (!path)
- Equality / inequality against quoted and bare literals
- Plain truthiness
- Malformed expressions evaluate to False
"""

import pytest

from autoloop.core.conditions import evaluate
from autoloop.core.context import ExecutionContext


@pytest.fixture
def ctx():
    return ExecutionContext(
        business_id="b1",
        business_data={
            "name": "Luigi's",
            "email": "hello@luigis.test",
            "website": "",
            "category": "Restaurant",
            "rating": 4.8,
            "emailSent": False,
        },
        user_id="u1",
        workflow_id="w1",
        variables={"aiResult": "", "count": 0},
    )


@pytest.mark.unit
def test_truthiness(ctx):
    assert evaluate("email", ctx) is True
    assert evaluate("business.email", ctx) is True
    assert evaluate("website", ctx) is False
    assert evaluate("variables.aiResult", ctx) is False


@pytest.mark.unit
def test_negation(ctx):
    assert evaluate("!website", ctx) is True
    assert evaluate("!email", ctx) is False
    assert evaluate("!variables.missing", ctx) is True


@pytest.mark.unit
def test_equality_with_quotes(ctx):
    assert evaluate('category == "Restaurant"', ctx) is True
    assert evaluate("category == 'Restaurant'", ctx) is True
    assert evaluate("category == Restaurant", ctx) is True
    assert evaluate('category == "Cafe"', ctx) is False


@pytest.mark.unit
def test_equality_compares_strings(ctx):
    """Booleans render as true/false and numbers as their str()"""
    assert evaluate('emailSent == "false"', ctx) is True
    assert evaluate("rating == 4.8", ctx) is True


@pytest.mark.unit
def test_inequality(ctx):
    assert evaluate('category != "Cafe"', ctx) is True
    assert evaluate('category != "Restaurant"', ctx) is False


@pytest.mark.unit
def test_zero_is_falsy(ctx):
    assert evaluate("variables.count", ctx) is False


@pytest.mark.unit
def test_empty_expression_is_false(ctx):
    assert evaluate("", ctx) is False
    assert evaluate("   ", ctx) is False
    assert evaluate(None, ctx) is False


@pytest.mark.unit
def test_unknown_path_is_false(ctx):
    assert evaluate("business.nothing", ctx) is False
    assert evaluate('business.nothing == "x"', ctx) is False


@pytest.mark.unit
def test_whole_number_rating_matches_integer_literal():
    ctx = ExecutionContext("b1", {"rating": 5.0}, "u1", "w1", variables={"score": 45.0})

    assert evaluate('rating == "5"', ctx) is True
    assert evaluate("rating == 5", ctx) is True
    assert evaluate("variables.score != 45", ctx) is False

"""Tests for condition operators and context path lookup."""

import logging
from datetime import datetime, timezone

import pytest

from shopflags.core.conditions import (
    Condition,
    ConditionOperator,
    coerce_operator,
    evaluate_date_condition,
    evaluate_operator,
    resolve_path,
)
from shopflags.core.context import EvaluationContext, SessionContext, UserContext
from shopflags.core.errors import ConfigurationError


class TestEvaluateOperator:
    """Tests for evaluate_operator."""

    def test_equals(self):
        assert evaluate_operator(ConditionOperator.EQUALS, "admin", "admin") is True
        assert evaluate_operator(ConditionOperator.EQUALS, "admin", "user") is False

    def test_equals_is_strict(self):
        """No coercion between types."""
        assert evaluate_operator("equals", 1, "1") is False
        assert evaluate_operator("equals", True, 1) is False
        assert evaluate_operator("equals", None, None) is True

    def test_in(self):
        assert evaluate_operator("in", "admin", ["admin", "user"]) is True
        assert evaluate_operator("in", "guest", ["admin", "user"]) is False
        assert evaluate_operator("in", None, ["admin"]) is False

    def test_in_requires_list(self):
        """A non-list comparison value fails rather than raising."""
        assert evaluate_operator("in", "a", "abc") is False

    def test_not_in(self):
        assert evaluate_operator("not_in", "user", ["guest"]) is True
        assert evaluate_operator("not_in", "guest", ["guest"]) is False
        assert evaluate_operator("not_in", None, ["guest"]) is True

    def test_not_in_requires_list(self):
        assert evaluate_operator("not_in", "user", "guest") is False

    def test_greater_than(self):
        assert evaluate_operator("greater_than", 60000, 50000) is True
        assert evaluate_operator("greater_than", 50000, 50000) is False
        assert evaluate_operator("greater_than", "10", 5) is True

    def test_less_than(self):
        assert evaluate_operator("less_than", 3, 5) is True
        assert evaluate_operator("less_than", 5, 3) is False

    def test_numeric_comparison_with_missing_value(self):
        """Missing or non-numeric values never compare."""
        assert evaluate_operator("greater_than", None, 0) is False
        assert evaluate_operator("less_than", None, 0) is False
        assert evaluate_operator("greater_than", "abc", 0) is False

    def test_contains(self):
        assert evaluate_operator("contains", "premium-user", "premium") is True
        assert evaluate_operator("contains", "basic", "premium") is False
        assert evaluate_operator("contains", ["beta", "vip"], "vip") is True

    def test_contains_with_missing_value(self):
        assert evaluate_operator("contains", None, "x") is False
        assert evaluate_operator("contains", "x", None) is False

    def test_unknown_operator(self):
        assert evaluate_operator("matches", "abc", "a.c") is False


class TestDateCondition:
    """Tests for evaluate_date_condition."""

    NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)

    def test_after(self):
        assert evaluate_date_condition("greater_than", self.NOW, "2025-01-01") is True
        assert evaluate_date_condition("greater_than", self.NOW, "2025-12-01") is False

    def test_before(self):
        assert evaluate_date_condition("less_than", self.NOW, "2025-12-01") is True

    def test_unsupported_operator(self):
        assert evaluate_date_condition("equals", self.NOW, "2025-06-01") is False

    def test_invalid_date(self):
        assert evaluate_date_condition("greater_than", self.NOW, "soon") is False
        assert evaluate_date_condition("greater_than", self.NOW, None) is False
        assert evaluate_date_condition("greater_than", self.NOW, 12) is False


class TestResolvePath:
    """Tests for resolve_path."""

    @pytest.fixture
    def context(self):
        return EvaluationContext(
            user=UserContext(id="u1", role="premium", attributes={"profile": {"age": 31}}),
            session=SessionContext(id="s1", device_type="mobile"),
            environment="staging",
            custom_properties={"cart_value": 60000, "promo": {"code": "SPRING"}},
        )

    def test_user_fields(self, context):
        assert resolve_path("user.role", context) == "premium"
        assert resolve_path("user.profile.age", context) == 31

    def test_session_fields(self, context):
        assert resolve_path("session.device_type", context) == "mobile"

    def test_top_level(self, context):
        assert resolve_path("environment", context) == "staging"

    def test_custom_properties(self, context):
        """Unqualified keys resolve inside custom properties."""
        assert resolve_path("cart_value", context) == 60000
        assert resolve_path("promo.code", context) == "SPRING"
        assert resolve_path("custom_properties.cart_value", context) == 60000

    def test_missing(self, context):
        assert resolve_path("user.missing", context) is None
        assert resolve_path("user.role.length", context) is None
        assert resolve_path("nothing", context) is None
        assert resolve_path("", context) is None

    def test_missing_user(self):
        assert resolve_path("user.role", EvaluationContext()) is None


class TestCondition:
    """Tests for Condition."""

    def test_evaluate(self):
        condition = Condition("cart_value", ConditionOperator.GREATER_THAN, 50000)
        assert condition.evaluate(EvaluationContext(custom_properties={"cart_value": 60000}))
        assert not condition.evaluate(EvaluationContext(custom_properties={"cart_value": 100}))
        assert not condition.evaluate(EvaluationContext())

    def test_from_dict(self):
        condition = Condition.from_dict({"key": "user.role", "operator": "in", "value": ["a"]})
        assert condition.operator is ConditionOperator.IN
        assert condition.to_dict() == {"key": "user.role", "operator": "in", "value": ["a"]}

    def test_from_dict_missing_key(self):
        with pytest.raises(ConfigurationError):
            Condition.from_dict({"operator": "in"})

    def test_unknown_operator_kept(self, caplog):
        """Unknown operators load with a warning and never match."""
        with caplog.at_level(logging.WARNING):
            condition = Condition.from_dict({"key": "x", "operator": "regex", "value": ".*"})
        assert condition.operator == "regex"
        assert "regex" in caplog.text
        assert condition.evaluate(EvaluationContext(custom_properties={"x": "abc"})) is False


def test_coerce_operator():
    assert coerce_operator("not_in") is ConditionOperator.NOT_IN
    assert coerce_operator(ConditionOperator.EQUALS) is ConditionOperator.EQUALS
    assert coerce_operator("between") == "between"

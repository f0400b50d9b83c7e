"""Tests for route condition evaluation."""

import json

import pytest

from eventrelay.services.condition_evaluator import evaluate_condition, strict_equals

EVENT = {
    "id": "e1",
    "eventName": "order.paid",
    "properties": {
        "userId": "u1",
        "plan": "pro",
        "amount": 500,
        "email": "buyer@example.com",
        "tags": ["vip", "beta"],
        "active": True,
        "items": [{"sku": "a", "qty": 1}, {"sku": "b", "qty": 3}],
    },
}


def prop(property_path, operator, value=None):
    return {"type": "property", "property": property_path, "operator": operator, "value": value}


def script(tree):
    return {"type": "script", "script": json.dumps(tree)}


class TestPropertyConditions:
    """Tests for property conditions."""

    @pytest.mark.parametrize("condition,expected", [
        (prop("properties.plan", "equals", "pro"), True),
        (prop("properties.plan", "equals", "free"), False),
        (prop("properties.amount", "equals", "500"), False),
        (prop("properties.amount", "greaterThan", 100), True),
        (prop("properties.amount", "lessThan", 100), False),
        (prop("properties.email", "contains", "@example"), True),
        (prop("properties.tags", "contains", "vip"), True),
        (prop("properties.tags", "contains", "gold"), False),
        (prop("properties.email", "startsWith", "buyer"), True),
        (prop("properties.email", "endsWith", ".org"), False),
        (prop("properties.plan", "in", ["pro", "team"]), True),
        (prop("properties.plan", "in", "pro"), False),
        (prop("properties.userId", "exists"), True),
        (prop("properties.missing", "exists"), False),
    ])
    def test_operators(self, condition, expected):
        assert evaluate_condition(EVENT, condition) is expected

    def test_missing_property_never_matches(self):
        assert evaluate_condition(EVENT, prop("properties.nope", "equals", None)) is False

    def test_incomparable_types_do_not_match(self):
        assert evaluate_condition(EVENT, prop("properties.plan", "greaterThan", 3)) is False

    def test_unknown_operator(self):
        assert evaluate_condition(EVENT, prop("properties.plan", "matches", "pro")) is False


class TestJsonPathConditions:
    """Tests for JSONPath conditions."""

    def test_exists_and_count(self):
        assert evaluate_condition(EVENT, {"type": "jsonpath", "path": "$.properties.items[*]", "operator": "exists"})
        assert evaluate_condition(
            EVENT, {"type": "jsonpath", "path": "$.properties.items[*]", "operator": "count", "value": 2}
        )

    def test_equals_requires_single_result(self):
        single = {"type": "jsonpath", "path": "$.properties.plan", "operator": "equals", "value": "pro"}
        many = {"type": "jsonpath", "path": "$.properties.items[*].sku", "operator": "equals", "value": "a"}
        assert evaluate_condition(EVENT, single) is True
        assert evaluate_condition(EVENT, many) is False

    def test_contains_any_result(self):
        condition = {"type": "jsonpath", "path": "$.properties.tags", "operator": "contains", "value": "beta"}
        assert evaluate_condition(EVENT, condition) is True

    def test_filter_expression(self):
        condition = {"type": "jsonpath", "path": "$.properties.items[?qty > 2].sku", "operator": "equals", "value": "b"}
        assert evaluate_condition(EVENT, condition) is True

    def test_invalid_path_is_no_match(self):
        assert evaluate_condition(EVENT, {"type": "jsonpath", "path": "$.[[[", "operator": "exists"}) is False


class TestScriptConditions:
    """Tests for declarative script conditions."""

    def test_and_or_not(self):
        tree = {
            "type": "and",
            "conditions": [
                {"type": "equals", "field": "properties.plan", "value": "pro"},
                {"type": "or", "conditions": [
                    {"type": "gt", "field": "properties.amount", "value": 1000},
                    {"type": "contains", "field": "properties.tags", "value": "vip"},
                ]},
                {"type": "not", "condition": {"type": "lt", "field": "properties.amount", "value": 10}},
            ],
        }
        assert evaluate_condition(EVENT, script(tree)) is True

    def test_regex_pattern_is_literal(self):
        """Patterns are escaped, so regex metacharacters match themselves."""
        literal = {"type": "regex", "field": "properties.email", "pattern": "buyer@example.com"}
        wildcard = {"type": "regex", "field": "properties.email", "pattern": "b.*@example"}
        assert evaluate_condition(EVENT, script(literal)) is True
        assert evaluate_condition(EVENT, script(wildcard)) is False

    def test_regex_flags(self):
        node = {"type": "regex", "field": "properties.email", "pattern": "BUYER", "flags": "i"}
        assert evaluate_condition(EVENT, script(node)) is True

    def test_script_as_object(self):
        condition = {"type": "script", "script": {"type": "equals", "field": "eventName", "value": "order.paid"}}
        assert evaluate_condition(EVENT, condition) is True

    def test_invalid_script_is_no_match(self):
        assert evaluate_condition(EVENT, {"type": "script", "script": "event.plan == 'pro'"}) is False

    def test_equals_on_missing_field(self):
        """A missing field equals only an omitted value, never an explicit null."""
        omitted = {"type": "equals", "field": "properties.coupon"}
        explicit_null = {"type": "equals", "field": "properties.coupon", "value": None}
        present_without_value = {"type": "equals", "field": "properties.plan"}
        assert evaluate_condition(EVENT, script(omitted)) is True
        assert evaluate_condition(EVENT, script(explicit_null)) is False
        assert evaluate_condition(EVENT, script(present_without_value)) is False

    def test_unknown_node_type(self):
        assert evaluate_condition(EVENT, script({"type": "exec", "field": "id"})) is False


class TestEvaluateCondition:
    @pytest.mark.parametrize("condition", [None, {}, {"type": None}])
    def test_absent_condition_matches(self, condition):
        assert evaluate_condition(EVENT, condition) is True

    def test_unknown_condition_type(self):
        assert evaluate_condition(EVENT, {"type": "sql", "query": "1=1"}) is False

    def test_strict_equals_keeps_booleans_apart(self):
        assert strict_equals(True, True)
        assert not strict_equals(True, 1)
        assert not strict_equals(0, False)
        assert strict_equals(1, 1.0)
        assert evaluate_condition(EVENT, prop("properties.active", "equals", 1)) is False

"""
Route condition evaluation.

Conditions are plain data; nothing here executes user-supplied code. Any
error while evaluating counts as "no match".
"""

import json
import re
from typing import Any, Optional

from jsonpath_ng.ext import parse as parse_jsonpath

from eventrelay.core.logger import get_logger
from eventrelay.enums import ConditionType, JsonPathOperator, PropertyOperator, ScriptOperator
from eventrelay.utils.object_paths import MISSING, get_path

logger = get_logger("condition_evaluator")

REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def strict_equals(left: Any, right: Any) -> bool:
    """Equality that does not treat booleans as numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return left == right


def _contains(container: Any, value: Any) -> bool:
    if isinstance(container, str):
        return isinstance(value, str) and value in container
    if isinstance(container, list):
        return any(strict_equals(item, value) for item in container)
    return False


def _compare(left: Any, right: Any, operator: str) -> bool:
    try:
        if operator in ("greaterThan", "gt"):
            return left > right
        return left < right
    except TypeError:
        return False


def _regex_flags(flags: Optional[str]) -> int:
    combined = 0
    for flag in flags or "":
        combined |= REGEX_FLAGS.get(flag, 0)
    return combined


def evaluate_property_condition(event: dict, condition: dict) -> bool:
    operator = condition.get("operator")
    expected = condition.get("value")
    actual = get_path(event, condition.get("property"))

    if actual is MISSING:
        return False

    if operator == PropertyOperator.EXISTS.value:
        return True
    if operator == PropertyOperator.EQUALS.value:
        return strict_equals(actual, expected)
    if operator == PropertyOperator.CONTAINS.value:
        return _contains(actual, expected)
    if operator == PropertyOperator.STARTS_WITH.value:
        return isinstance(actual, str) and isinstance(expected, str) and actual.startswith(expected)
    if operator == PropertyOperator.ENDS_WITH.value:
        return isinstance(actual, str) and isinstance(expected, str) and actual.endswith(expected)
    if operator in (PropertyOperator.GREATER_THAN.value, PropertyOperator.LESS_THAN.value):
        return _compare(actual, expected, operator)
    if operator == PropertyOperator.IN.value:
        return isinstance(expected, list) and any(strict_equals(actual, item) for item in expected)

    logger.warning(f"Unknown property operator: {operator}")
    return False


def evaluate_jsonpath_condition(event: dict, condition: dict) -> bool:
    operator = condition.get("operator")
    expected = condition.get("value")
    results = [match.value for match in parse_jsonpath(condition.get("path")).find(event)]

    if operator == JsonPathOperator.EXISTS.value:
        return len(results) > 0
    if operator == JsonPathOperator.EQUALS.value:
        return len(results) == 1 and strict_equals(results[0], expected)
    if operator == JsonPathOperator.CONTAINS.value:
        return any(_contains(result, expected) for result in results)
    if operator == JsonPathOperator.COUNT.value:
        return strict_equals(len(results), expected)
    if operator in (JsonPathOperator.GREATER_THAN.value, JsonPathOperator.LESS_THAN.value):
        return len(results) == 1 and _compare(results[0], expected, operator)

    logger.warning(f"Unknown JSONPath operator: {operator}")
    return False


def parse_script_condition(script: Any) -> dict:
    program = json.loads(script) if isinstance(script, str) else script
    if not isinstance(program, dict):
        raise ValueError("Script condition must be a JSON object")
    return program


def evaluate_script_node(event: dict, node: Any) -> bool:
    """Interpret one node of a script condition tree."""
    if not isinstance(node, dict):
        return False

    node_type = node.get("type")
    field_value = get_path(event, node.get("field")) if node.get("field") is not None else MISSING

    if node_type == ScriptOperator.EQUALS.value:
        if field_value is MISSING:
            # An absent field only equals an absent value
            return "value" not in node
        return "value" in node and strict_equals(field_value, node["value"])
    if node_type == ScriptOperator.CONTAINS.value:
        return _contains(field_value, node.get("value"))
    if node_type in (ScriptOperator.GT.value, ScriptOperator.LT.value):
        return field_value is not MISSING and _compare(field_value, node.get("value"), node_type)
    if node_type == ScriptOperator.REGEX.value:
        if not isinstance(field_value, str):
            return False
        pattern = re.escape(str(node.get("pattern") or ""))
        return re.search(pattern, field_value, _regex_flags(node.get("flags"))) is not None
    if node_type == ScriptOperator.AND.value:
        return all(evaluate_script_node(event, child) for child in node.get("conditions") or [])
    if node_type == ScriptOperator.OR.value:
        return any(evaluate_script_node(event, child) for child in node.get("conditions") or [])
    if node_type == ScriptOperator.NOT.value:
        return not evaluate_script_node(event, node.get("condition"))

    logger.warning(f"Unknown condition type: {node_type}")
    return False


def evaluate_script_condition(event: dict, condition: dict) -> bool:
    script = condition.get("script")
    if not script:
        return False
    return evaluate_script_node(event, parse_script_condition(script))


def evaluate_condition(event: dict, condition: Optional[dict]) -> bool:
    """True when ``condition`` is absent or holds for ``event``."""
    if not condition or not condition.get("type"):
        return True

    condition_type = condition.get("type")
    try:
        if condition_type == ConditionType.PROPERTY.value:
            return evaluate_property_condition(event, condition)
        if condition_type == ConditionType.JSONPATH.value:
            return evaluate_jsonpath_condition(event, condition)
        if condition_type == ConditionType.SCRIPT.value:
            return evaluate_script_condition(event, condition)
    except Exception as e:
        logger.error(f"Error evaluating condition: {e}", extra={"conditionType": condition_type})
        return False

    logger.warning(f"Unknown condition type: {condition_type}")
    return False

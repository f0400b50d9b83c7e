"""Tests for the transformation engine."""

import copy
import json

import pytest
from jinja2.exceptions import SecurityError

from eventrelay.services.transformer_service import TransformConfigError, transformer_service
from eventrelay.utils.date_format import format_date

EVENT = {
    "id": "e1",
    "eventName": "order.paid",
    "timestamp": "2024-01-01T00:00:00.000Z",
    "properties": {"userId": "u1", "amount": 500, "plan": "pro", "items": [{"name": "a"}, {"name": "b"}]},
}


def compile_transform(transform_type, config=None):
    return transformer_service.create_transformer({"type": transform_type, "config": config or {}})


class TestFactory:
    """Tests for create_transformer dispatch."""

    def test_identity_returns_event(self):
        assert compile_transform("identity")(EVENT) is EVENT

    def test_missing_spec_is_identity(self):
        assert transformer_service.create_transformer(None)(EVENT) is EVENT
        assert transformer_service.create_transformer("identity")(EVENT) is EVENT

    def test_unknown_type_falls_back_to_identity(self):
        assert compile_transform("does-not-exist")(EVENT) is EVENT

    def test_register_custom_transformer(self):
        transformer_service.register_transformer("upper-name", lambda options: lambda event: event["eventName"].upper())
        try:
            assert compile_transform("upper-name")(EVENT) == "ORDER.PAID"
        finally:
            transformer_service.transformers.pop("upper-name")

    @pytest.mark.parametrize("transform_type", ["template", "script", "jsonpath", "mapping"])
    def test_missing_required_config_raises(self, transform_type):
        with pytest.raises(TransformConfigError):
            compile_transform(transform_type, {})


class TestMappingTransform:
    """Tests for the mapping transform."""

    def test_scenario_mapping_with_fallback_and_fixed(self):
        """String, first-defined list and fixed overlay."""
        transform = compile_transform("mapping", {
            "mapping": {"who": "properties.userId", "amt": ["properties.amount", "properties.total"]},
            "fixed": {"v": 1},
        })
        event = {"properties": {"userId": "u1", "total": 42}}
        assert transform(event) == {"who": "u1", "amt": 42, "v": 1}

    def test_object_source_uses_default(self):
        transform = compile_transform("mapping", {"mapping": {"tier": {"path": "properties.tier", "default": "free"}}})
        assert transform(EVENT) == {"tier": "free"}

    def test_missing_paths_are_omitted(self):
        transform = compile_transform("mapping", {"mapping": {"x": "properties.nope"}})
        assert transform(EVENT) == {}

    def test_fixed_overlay_wins_over_include_original(self):
        transform = compile_transform("mapping", {
            "mapping": {"b": "b"},
            "includeOriginal": ["a"],
            "fixed": {"a": 1},
        })
        assert transform({"a": 5, "b": 2})["a"] == 1

    def test_include_original_true_keeps_mapped_values(self):
        transform = compile_transform("mapping", {
            "mapping": {"eventName": "properties.plan", "count": "properties.zero"},
            "includeOriginal": True,
        })
        result = transform({"eventName": "x", "count": 9, "other": True, "properties": {"plan": "pro", "zero": 0}})
        assert result["eventName"] == "pro"
        assert result["count"] == 0
        assert result["other"] is True

    def test_include_original_list_only_named_fields(self):
        transform = compile_transform("mapping", {"mapping": {"n": "eventName"}, "includeOriginal": ["id"]})
        assert transform(EVENT) == {"n": "order.paid", "id": "e1"}


class TestJsonPathTransform:
    """Tests for the jsonpath transform."""

    def test_scenario_multiple_results_become_list(self):
        transform = compile_transform("jsonpath", {"mapping": {"names": "$.properties.items[*].name"}})
        assert transform({"properties": {"items": [{"name": "a"}, {"name": "b"}]}}) == {"names": ["a", "b"]}

    def test_single_result_is_scalar(self):
        transform = compile_transform("jsonpath", {"mapping": {"user": "$.properties.userId"}})
        assert transform(EVENT) == {"user": "u1"}

    def test_no_result_uses_default_or_none(self):
        transform = compile_transform("jsonpath", {
            "mapping": {"a": "$.properties.missing", "b": "$.properties.gone"},
            "defaults": {"a": "fallback"},
        })
        assert transform(EVENT) == {"a": "fallback", "b": None}

    def test_invalid_expression_fails_at_compile_time(self):
        with pytest.raises(TransformConfigError):
            compile_transform("jsonpath", {"mapping": {"a": "$.[[["}})


class TestTemplateTransform:
    """Tests for the sandboxed template transform."""

    def test_single_template_parsed_as_json(self):
        transform = compile_transform("template", {
            "template": '{"user": "{{ event.properties.userId }}", "amount": {{ event.properties.amount }}}'
        })
        assert transform(EVENT) == {"user": "u1", "amount": 500}

    def test_single_template_plain_string(self):
        transform = compile_transform("template", {"template": "Order by {{ event.properties.userId }}"})
        assert transform(EVENT) == "Order by u1"

    def test_named_templates(self):
        transform = compile_transform("template", {"templates": {
            "title": "{{ event.eventName }}",
            "props": "{{ event.properties | json }}",
            "day": "{{ utils.format(event.timestamp, 'YYYY-MM-DD') }}",
        }})
        result = transform(EVENT)
        assert result["title"] == "order.paid"
        assert result["props"] == EVENT["properties"]
        assert result["day"] == "2024-01-01"

    def test_missing_values_render_empty(self):
        transform = compile_transform("template", {"template": "user=<{{ event.properties.nope.deeper }}>"})
        assert transform(EVENT) == "user=<>"

    def test_sandbox_blocks_mutation(self):
        """Templates cannot modify the event they render."""
        event = copy.deepcopy(EVENT)
        transform = compile_transform("template", {"template": "{{ event.properties.update({'userId': 'x'}) }}"})
        with pytest.raises(SecurityError):
            transform(event)
        assert event == EVENT

    def test_invalid_template_fails_at_compile_time(self):
        with pytest.raises(TransformConfigError):
            compile_transform("template", {"template": "{{ unclosed"})


class TestScriptTransform:
    """Tests for the declarative script transform."""

    def test_operations_and_field_mapping(self):
        script = json.dumps({
            "operations": [
                {"type": "get", "args": ["$event", "properties.amount"], "target": "total"},
                {"type": "pick", "args": ["$event", ["id", "eventName"]], "target": "$result"},
                {"type": "format", "args": ["2024-03-05T10:20:30Z", "DD/MM/YYYY"], "target": "day"},
                {"type": "timestamp", "args": ["2024-01-01T00:00:00Z"], "target": "unix"},
                {"type": "includes", "args": [["pro", "team"], "pro"], "target": "isPaid"},
            ],
            "fieldMapping": {"user": "properties.userId"},
        })
        result = compile_transform("script", {"script": script})(EVENT)
        assert result["total"] == 500
        assert result["id"] == "e1"
        assert result["eventName"] == "order.paid"
        assert result["day"] == "05/03/2024"
        assert result["unix"] == 1704067200
        assert result["isPaid"] is True
        assert result["user"] == "u1"

    def test_unknown_operation_is_skipped(self):
        script = {"operations": [{"type": "eval", "args": ["1+1"], "target": "x"}], "fieldMapping": {"n": "eventName"}}
        assert compile_transform("script", {"script": script})(EVENT) == {"n": "order.paid"}

    def test_empty_result_returns_event_copy(self):
        result = compile_transform("script", {"script": {"operations": []}})(EVENT)
        assert result == EVENT
        assert result is not EVENT

    def test_include_original(self):
        script = {"fieldMapping": {"plan": "properties.plan"}, "includeOriginal": True}
        result = compile_transform("script", {"script": script})(EVENT)
        assert result["plan"] == "pro"
        assert result["eventName"] == "order.paid"

    def test_invalid_script_raises(self):
        with pytest.raises(TransformConfigError):
            compile_transform("script", {"script": "return event;"})


class TestSlackTransform:
    """Tests for the Slack message transform."""

    def test_default_blocks(self):
        result = compile_transform("slack", {"channel": "#ops"})(EVENT)
        assert result["text"] == "New event: order.paid"
        assert result["channel"] == "#ops"
        assert len(result["blocks"]) == 2
        assert "*Event:* order.paid" in result["blocks"][0]["text"]["text"]
        assert '"userId": "u1"' in result["blocks"][1]["text"]["text"]

    def test_custom_blocks_are_interpolated(self):
        blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": "User ${properties.userId} paid ${properties.amount}"}}]
        result = compile_transform("slack", {"message": "Paid!", "blocks": blocks})(EVENT)
        assert result["text"] == "Paid!"
        assert result["blocks"][0]["text"]["text"] == "User u1 paid 500"


class TestMixpanelTransform:
    """Tests for the Mixpanel transform."""

    def test_prefix_distinct_id_and_time(self):
        result = compile_transform("mixpanel", {"eventNamePrefix": "app:"})(EVENT)
        assert result["event"] == "app:order.paid"
        assert result["properties"]["distinct_id"] == "u1"
        assert result["properties"]["time"] == 1704067200

    def test_include_and_exclude(self):
        result = compile_transform("mixpanel", {
            "includeProperties": ["userId", "amount", "plan"],
            "excludeProperties": ["plan"],
        })(EVENT)
        assert set(result["properties"]) == {"userId", "amount", "distinct_id", "time"}

    def test_include_false_drops_properties(self):
        result = compile_transform("mixpanel", {"includeProperties": False})(EVENT)
        assert "userId" not in result["properties"]


class TestPurity:
    """Transforms are pure functions of the event."""

    @pytest.mark.parametrize("transform_type,config", [
        ("mapping", {"mapping": {"who": "properties.userId"}, "includeOriginal": True}),
        ("jsonpath", {"mapping": {"names": "$.properties.items[*].name"}}),
        ("script", {"script": {"operations": [{"type": "set", "args": ["$event", "properties.userId", "x"], "target": "e"}]}}),
        ("slack", {}),
        ("mixpanel", {}),
        ("template", {"templates": {"u": "{{ event.properties.userId }}"}}),
    ])
    def test_same_output_and_event_untouched(self, transform_type, config):
        event = copy.deepcopy(EVENT)
        transform = compile_transform(transform_type, config)
        first = transform(event)
        second = transform(event)
        assert first == second
        assert event == EVENT


class TestSafeTransform:
    """Tests for the failure-containing wrapper."""

    async def test_failure_returns_fallback_payload(self):
        def broken(event):
            raise RuntimeError("boom")

        result = await transformer_service.safe_transform(broken, EVENT, "test")
        assert result == {
            "eventName": "order.paid",
            "eventId": "e1",
            "timestamp": EVENT["timestamp"],
            "error": "Transform error: boom",
        }

    async def test_async_transform_is_awaited(self):
        async def double(event):
            return {"amount": event["properties"]["amount"] * 2}

        assert await transformer_service.safe_transform(double, EVENT, "test") == {"amount": 1000}


class TestDateFormat:
    def test_tokens_and_literals(self):
        assert format_date("2024-03-05T07:08:09Z", "ddd, MMM D YYYY [at] HH:mm") == "Tue, Mar 5 2024 at 07:08"

    def test_default_format(self):
        assert format_date("2024-03-05T07:08:09Z") == "2024-03-05 07:08:09"

"""
Transformation engine.

A transform spec (``{"type": ..., "config": {...}}``) is compiled once into a
plain callable ``event -> payload``. Compiled transforms never perform I/O and
never mutate the event they receive.
"""

import copy
import inspect
import json
import re
from datetime import datetime
from typing import Any, Callable, Dict

from jinja2 import ChainableUndefined, TemplateError
from jinja2.sandbox import ImmutableSandboxedEnvironment
from jsonpath_ng.ext import parse as parse_jsonpath

from eventrelay.core.logger import get_logger
from eventrelay.enums import TransformationType
from eventrelay.utils.date_format import format_date, to_unix_seconds
from eventrelay.utils.object_paths import (
    MISSING,
    get_path,
    has_path,
    merge,
    omit,
    pick,
    set_path,
)
from eventrelay.utils.serialization import json_dumps, parse_datetime, to_iso

logger = get_logger("transformer_service")

TransformFn = Callable[[dict], Any]
TransformerFactory = Callable[[dict], TransformFn]


class TransformConfigError(ValueError):
    """Raised when a transform spec cannot be compiled."""


# ---------------------------------------------------------------------------
# Helpers shared by the template and script transforms
# ---------------------------------------------------------------------------

def _timestamp(date: Any = None) -> int:
    parsed = parse_datetime(date) if date is not None else datetime.utcnow()
    return to_unix_seconds(parsed)


def _parse_json(text: Any, default: Any = None) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return {} if default is None else default


def _iteratee(spec: Any) -> Callable[[Any], Any]:
    """Lodash-style shorthand: path string, ``{key: value}`` matcher or ``[path, value]`` pair."""
    if spec is None:
        return lambda item: item
    if isinstance(spec, str):
        return lambda item: get_path(item, spec, None)
    if isinstance(spec, dict):
        return lambda item: all(get_path(item, key) == value for key, value in spec.items())
    if isinstance(spec, list) and len(spec) == 2:
        return lambda item: get_path(item, spec[0]) == spec[1]
    raise ValueError(f"Unsupported iteratee: {spec!r}")


def _collection_items(collection: Any) -> list:
    if isinstance(collection, dict):
        return list(collection.values())
    if isinstance(collection, (list, tuple)):
        return list(collection)
    return []


def _op_get(obj, path, default=MISSING):
    return get_path(obj, path, default)


def _op_set(obj, path, value):
    return set_path(obj, path, value)


def _op_pick(obj, paths):
    return pick(obj, paths)


def _op_omit(obj, paths):
    return omit(obj, paths)


def _op_merge(first, second=None):
    return merge(first, second)


def _op_format(date, fmt=None):
    return format_date(date, fmt)


def _op_filter(collection, predicate=None):
    test = _iteratee(predicate)
    return [item for item in _collection_items(collection) if test(item)]


def _op_map(collection, mapper=None):
    fn = _iteratee(mapper)
    return [fn(item) for item in _collection_items(collection)]


def _op_includes(collection, value):
    if isinstance(collection, str):
        return isinstance(value, str) and value in collection
    return value in _collection_items(collection)


SCRIPT_OPERATIONS: Dict[str, Callable[..., Any]] = {
    "get": _op_get,
    "set": _op_set,
    "pick": _op_pick,
    "omit": _op_omit,
    "merge": _op_merge,
    "format": _op_format,
    "timestamp": _timestamp,
    "parseJSON": _parse_json,
    "filter": _op_filter,
    "map": _op_map,
    "includes": _op_includes,
}


class TemplateUtils:
    """Helpers exposed to templates as ``utils``."""

    @staticmethod
    def get(obj, path, default=None):
        return get_path(obj, path, default)

    @staticmethod
    def format(date, fmt=None):
        return format_date(date, fmt)

    @staticmethod
    def timestamp(date=None):
        return _timestamp(date)

    @staticmethod
    def parse_json(text, default=None):
        return _parse_json(text, default)

    @staticmethod
    def json(value):
        return json_dumps(value)


def _finalize(value):
    return "" if value is None else value


_template_env = ImmutableSandboxedEnvironment(
    undefined=ChainableUndefined,
    finalize=_finalize,
    autoescape=False,
)
_template_env.filters["json"] = json_dumps
_template_env.filters["format_date"] = format_date

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def parse_script(script: Any) -> dict:
    """Parse a script transform's JSON program."""
    if isinstance(script, str):
        try:
            program = json.loads(script)
        except ValueError as e:
            raise TransformConfigError(f"Script must be valid JSON: {e}") from e
    else:
        program = script

    if not isinstance(program, dict):
        raise TransformConfigError("Script must be a JSON object")
    if "operations" in program and not isinstance(program["operations"], list):
        raise TransformConfigError("Script operations must be an array")
    if "fieldMapping" in program and not isinstance(program["fieldMapping"], dict):
        raise TransformConfigError("Script fieldMapping must be an object")
    return program


class TransformerService:
    """Registry of transform factories keyed by transformation type."""

    def __init__(self):
        self.transformers: Dict[str, TransformerFactory] = {
            TransformationType.IDENTITY.value: TransformerService.identity_transformer,
            TransformationType.TEMPLATE.value: TransformerService.template_transformer,
            TransformationType.SCRIPT.value: TransformerService.script_transformer,
            TransformationType.JSONPATH.value: TransformerService.jsonpath_transformer,
            TransformationType.MAPPING.value: TransformerService.mapping_transformer,
            TransformationType.SLACK.value: TransformerService.slack_transformer,
            TransformationType.MIXPANEL.value: TransformerService.mixpanel_transformer,
        }

    def register_transformer(self, name: str, factory: TransformerFactory) -> None:
        if not callable(factory):
            raise TypeError("Transformer factory must be callable")
        self.transformers[name] = factory
        logger.info(f"Registered custom transformer: {name}")

    def create_transformer(self, spec: Any) -> TransformFn:
        """
        Compile a transform spec into a callable.

        ``spec`` may be a type name (``"identity"``) or a mapping with ``type``
        and ``config``. Unknown types fall back to identity.
        """
        if spec is None:
            spec = {}
        if isinstance(spec, str):
            spec = {"type": spec}

        transform_type = spec.get("type") or TransformationType.IDENTITY.value
        factory = self.transformers.get(transform_type)
        if factory is None:
            logger.warning(f"Unknown transformer type '{transform_type}', using identity transformer")
            return TransformerService.identity_transformer({})

        return factory(spec)

    async def safe_transform(self, transform_fn: TransformFn, event: dict, context: str) -> Any:
        """Run ``transform_fn``; on any failure return a minimal payload instead of raising."""
        try:
            result = transform_fn(event)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.error(
                f"Error in transform function ({context}): {e}",
                extra={
                    "eventId": event.get("id"),
                    "eventName": event.get("eventName"),
                    "context": context,
                },
            )
            return {
                "eventName": event.get("eventName"),
                "eventId": event.get("id"),
                "timestamp": event.get("timestamp"),
                "error": f"Transform error: {e}",
            }

    # -- factories ---------------------------------------------------------

    @staticmethod
    def _config(options: dict) -> dict:
        config = options.get("config")
        if config is None:
            config = options
        if not isinstance(config, dict):
            raise TransformConfigError("Transform config must be an object")
        return config

    @staticmethod
    def identity_transformer(options: dict) -> TransformFn:
        return lambda event: event

    @staticmethod
    def template_transformer(options: dict) -> TransformFn:
        config = TransformerService._config(options)
        single = config.get("template")
        many = config.get("templates")
        if not single and not many:
            raise TransformConfigError("Template transformer requires a template or templates configuration")

        try:
            if single:
                compiled = _template_env.from_string(single)
                compiled_many = None
            else:
                if not isinstance(many, dict):
                    raise TransformConfigError("templates must be an object of named templates")
                compiled = None
                compiled_many = {key: _template_env.from_string(tpl) for key, tpl in many.items()}
        except TemplateError as e:
            raise TransformConfigError(f"Invalid template: {e}") from e

        def transform(event: dict) -> Any:
            context = {"event": event, "utils": TemplateUtils}
            if compiled is not None:
                rendered = compiled.render(context)
                try:
                    return json.loads(rendered)
                except ValueError:
                    return rendered

            result = {}
            for key, template in compiled_many.items():
                rendered = template.render(context)
                stripped = rendered.strip()
                if stripped.startswith("{") or stripped.startswith("["):
                    try:
                        result[key] = json.loads(stripped)
                        continue
                    except ValueError:
                        pass
                result[key] = rendered
            return result

        return transform

    @staticmethod
    def script_transformer(options: dict) -> TransformFn:
        config = TransformerService._config(options)
        if not config.get("script"):
            raise TransformConfigError("Script transformer requires a script configuration")
        program = parse_script(config["script"])

        operations = program.get("operations") or []
        field_mapping = program.get("fieldMapping") or {}
        include_original = bool(program.get("includeOriginal"))

        def transform(event: dict) -> Any:
            event_copy = copy.deepcopy(event)
            result: dict = {}

            for op in operations:
                op_type = op.get("type") if isinstance(op, dict) else None
                operation = SCRIPT_OPERATIONS.get(op_type)
                if operation is None:
                    logger.warning(f"Unknown operation type: {op_type}")
                    continue

                args = []
                for arg in op.get("args") or []:
                    if arg == "$event":
                        args.append(event_copy)
                    elif arg == "$result":
                        args.append(result)
                    else:
                        args.append(arg)

                try:
                    op_result = operation(*args)
                except Exception as e:
                    logger.error(f"Error in operation {op_type}: {e}")
                    continue

                target = op.get("target")
                if target == "$result":
                    if isinstance(op_result, dict) and op_result is not result:
                        result.update(op_result)
                elif target and op_result is not MISSING:
                    set_path(result, target, op_result)

            for target, source in field_mapping.items():
                value = get_path(event_copy, source)
                if value is not MISSING:
                    set_path(result, target, value)

            if include_original:
                result.update(event_copy)

            return result if result else event_copy

        return transform

    @staticmethod
    def jsonpath_transformer(options: dict) -> TransformFn:
        config = TransformerService._config(options)
        mapping = config.get("mapping")
        if not mapping or not isinstance(mapping, dict):
            raise TransformConfigError("JSONPath transformer requires a mapping configuration")
        defaults = config.get("defaults") or {}

        compiled = {}
        for output_key, expression in mapping.items():
            try:
                compiled[output_key] = parse_jsonpath(expression)
            except Exception as e:
                raise TransformConfigError(f"Invalid JSONPath '{expression}' for '{output_key}': {e}") from e

        def transform(event: dict) -> dict:
            result = {}
            for output_key, expression in compiled.items():
                try:
                    values = [match.value for match in expression.find(event)]
                except Exception as e:
                    logger.error(f"Error applying JSONPath '{mapping[output_key]}': {e}")
                    values = []

                if len(values) == 1:
                    result[output_key] = values[0]
                elif len(values) > 1:
                    result[output_key] = values
                else:
                    result[output_key] = defaults.get(output_key)
            return result

        return transform

    @staticmethod
    def _mapping_source(event: dict, source: Any) -> Any:
        if isinstance(source, str):
            return get_path(event, source)
        if isinstance(source, list):
            for candidate in source:
                value = get_path(event, candidate)
                if value is not MISSING:
                    return value
            return MISSING
        if isinstance(source, dict):
            return get_path(event, source.get("path"), source.get("default", MISSING))
        return MISSING

    @staticmethod
    def mapping_transformer(options: dict) -> TransformFn:
        config = TransformerService._config(options)
        mapping = config.get("mapping")
        if not mapping or not isinstance(mapping, dict):
            raise TransformConfigError("Mapping transformer requires a mapping configuration")
        include_original = config.get("includeOriginal")
        fixed = config.get("fixed") if isinstance(config.get("fixed"), dict) else {}

        def transform(event: dict) -> dict:
            result = {}
            for target, source in mapping.items():
                value = TransformerService._mapping_source(event, source)
                if value is not MISSING:
                    result[target] = copy.deepcopy(value)

            if isinstance(include_original, list):
                for field in include_original:
                    if has_path(event, field) and result.get(field) is None:
                        result[field] = copy.deepcopy(get_path(event, field))
            elif include_original is True:
                for key, value in event.items():
                    if result.get(key) is None:
                        result[key] = copy.deepcopy(value)

            for key, value in fixed.items():
                result[key] = copy.deepcopy(value)
            return result

        return transform

    @staticmethod
    def _interpolate_blocks(value: Any, event: dict) -> Any:
        if isinstance(value, str):
            def replace(match):
                resolved = get_path(event, match.group(1).strip(), "")
                return resolved if isinstance(resolved, str) else json_dumps(resolved)
            return _PLACEHOLDER.sub(replace, value)
        if isinstance(value, list):
            return [TransformerService._interpolate_blocks(item, event) for item in value]
        if isinstance(value, dict):
            return {key: TransformerService._interpolate_blocks(item, event) for key, item in value.items()}
        return value

    @staticmethod
    def slack_transformer(options: dict) -> TransformFn:
        config = TransformerService._config(options)

        def transform(event: dict) -> dict:
            payload = {"text": config.get("message") or f"New event: {event.get('eventName')}"}
            for key in ("username", "icon_emoji", "channel"):
                if config.get(key) is not None:
                    payload[key] = config[key]

            if config.get("blocks"):
                payload["blocks"] = TransformerService._interpolate_blocks(config["blocks"], event)
            else:
                timestamp = parse_datetime(event.get("timestamp"))
                properties = json_dumps(event.get("properties") or {}, indent=2)
                payload["blocks"] = [
                    {
                        "type": "section",
                        "text": {
                            "type": "mrkdwn",
                            "text": f"*Event:* {event.get('eventName')}\n*Time:* {to_iso(timestamp)}",
                        },
                    },
                    {
                        "type": "section",
                        "text": {
                            "type": "mrkdwn",
                            "text": f"*Properties:*\n```{properties}```",
                        },
                    },
                ]
            return payload

        return transform

    @staticmethod
    def mixpanel_transformer(options: dict) -> TransformFn:
        config = TransformerService._config(options)
        prefix = config.get("eventNamePrefix") or ""
        include = config.get("includeProperties")
        exclude = config.get("excludeProperties")

        def transform(event: dict) -> dict:
            properties = copy.deepcopy(event.get("properties") or {})
            if include is False:
                properties = {}
            elif isinstance(include, list):
                properties = pick(properties, include)
            if isinstance(exclude, list):
                properties = omit(properties, exclude)

            if not properties.get("distinct_id") and properties.get("userId"):
                properties["distinct_id"] = properties["userId"]
            if not properties.get("time") and event.get("timestamp") is not None:
                properties["time"] = to_unix_seconds(parse_datetime(event["timestamp"]))

            return {"event": f"{prefix}{event.get('eventName')}", "properties": properties}

        return transform


transformer_service = TransformerService()

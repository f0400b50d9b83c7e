"""
Deep path helpers for JSON-like data (dicts and lists).

Paths use dotted keys with optional bracket indexes, e.g.
``properties.items[0].name`` or ``properties["user id"]``. A path that
does not resolve yields ``MISSING``, which is distinct from a JSON
``null`` (``None``).
"""

import copy
import re
from typing import Any, Iterable, List, Union

PathToken = Union[str, int]

_TOKEN_RE = re.compile(r'\[(\d+)\]|\[["\']([^"\']*)["\']\]|([^.\[\]]+)')


class _Missing:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


def parse_path(path) -> List[PathToken]:
    if path is None:
        return []
    if isinstance(path, (list, tuple)):
        return list(path)
    if isinstance(path, int):
        return [path]

    tokens: List[PathToken] = []
    for index, quoted, plain in _TOKEN_RE.findall(str(path)):
        if index:
            tokens.append(int(index))
        elif quoted:
            tokens.append(quoted)
        else:
            tokens.append(plain)
    return tokens


def _step(current: Any, token: PathToken) -> Any:
    if isinstance(current, dict):
        key = token if isinstance(token, str) else str(token)
        if key in current:
            return current[key]
        return MISSING
    if isinstance(current, (list, tuple)):
        try:
            position = int(token)
        except (TypeError, ValueError):
            if token == "length":
                return len(current)
            return MISSING
        if 0 <= position < len(current):
            return current[position]
        return MISSING
    if isinstance(current, str) and token == "length":
        return len(current)
    return MISSING


def get_path(obj: Any, path, default: Any = MISSING) -> Any:
    """Resolve ``path`` inside ``obj``; ``default`` when any segment is missing."""
    tokens = parse_path(path)
    if not tokens:
        return default

    current = obj
    for token in tokens:
        current = _step(current, token)
        if current is MISSING:
            return default
    return current


def has_path(obj: Any, path) -> bool:
    return get_path(obj, path) is not MISSING


def set_path(obj: Any, path, value: Any) -> Any:
    """Set ``value`` at ``path`` inside ``obj``, creating intermediate containers. Returns ``obj``."""
    tokens = parse_path(path)
    if not tokens or not isinstance(obj, (dict, list)):
        return obj

    current = obj
    for position, token in enumerate(tokens):
        last = position == len(tokens) - 1
        next_token = None if last else tokens[position + 1]

        if isinstance(current, list) and isinstance(token, int):
            while len(current) <= token:
                current.append(None)
            if last:
                current[token] = value
                return obj
            if not isinstance(current[token], (dict, list)):
                current[token] = [] if isinstance(next_token, int) else {}
            current = current[token]
            continue

        if not isinstance(current, dict):
            return obj

        key = token if isinstance(token, str) else str(token)
        if last:
            current[key] = value
            return obj
        if not isinstance(current.get(key), (dict, list)):
            current[key] = [] if isinstance(next_token, int) else {}
        current = current[key]

    return obj


def unset_path(obj: Any, path) -> bool:
    tokens = parse_path(path)
    if not tokens:
        return False

    parent = get_path(obj, tokens[:-1]) if len(tokens) > 1 else obj
    leaf = tokens[-1]
    if isinstance(parent, dict):
        key = leaf if isinstance(leaf, str) else str(leaf)
        if key in parent:
            del parent[key]
            return True
    elif isinstance(parent, list) and isinstance(leaf, int) and 0 <= leaf < len(parent):
        del parent[leaf]
        return True
    return False


def _as_paths(paths) -> Iterable:
    if paths is None:
        return []
    if isinstance(paths, (str, int)):
        return [paths]
    return paths


def pick(obj: Any, paths) -> dict:
    """New dict holding only the given ``paths`` of ``obj``."""
    result: dict = {}
    if not isinstance(obj, dict):
        return result
    for path in _as_paths(paths):
        value = get_path(obj, path)
        if value is not MISSING:
            set_path(result, path, copy.deepcopy(value))
    return result


def omit(obj: Any, paths) -> dict:
    """Deep copy of ``obj`` without the given ``paths``."""
    if not isinstance(obj, dict):
        return {}
    result = copy.deepcopy(obj)
    for path in _as_paths(paths):
        unset_path(result, path)
    return result


def merge(*sources) -> dict:
    """Recursively merge dicts left to right into a new dict."""
    result: dict = {}
    for source in sources:
        if isinstance(source, dict):
            _merge_into(result, source)
    return result


def _merge_into(target: dict, source: dict) -> None:
    for key, value in source.items():
        if value is MISSING:
            continue
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def strip_missing(value: Any) -> Any:
    """Drop ``MISSING`` values so the structure is JSON serialisable."""
    if isinstance(value, dict):
        return {k: strip_missing(v) for k, v in value.items() if v is not MISSING}
    if isinstance(value, list):
        return [None if v is MISSING else strip_missing(v) for v in value]
    return value

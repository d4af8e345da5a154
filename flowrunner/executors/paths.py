"""Dot-path access into nested payload dictionaries."""

from typing import Any, Dict, List

MISSING = object()


def split_path(path: str) -> List[str]:
    return [part for part in path.split(".") if part]


def get_value_by_path(data: Any, path: str) -> Any:
    """Resolve ``a.b.c`` against nested dicts; ``MISSING`` when absent. Empty path returns ``data``."""
    if not path:
        return data

    current = data
    for key in split_path(path):
        if not isinstance(current, dict) or key not in current:
            return MISSING
        current = current[key]
    return current


def set_value_by_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """Assign ``value`` at ``path``, creating intermediate dicts as needed."""
    keys = split_path(path)
    if not keys:
        raise KeyError(f"Invalid path '{path}'")
    current = data
    for key in keys[:-1]:
        child = current.get(key)
        if child is None:
            child = current[key] = {}
        elif not isinstance(child, dict):
            raise KeyError(f"'{key}' in '{path}' is not an object")
        current = child
    current[keys[-1]] = value


def delete_value_by_path(data: Dict[str, Any], path: str) -> Any:
    """Remove and return the value at ``path``; ``MISSING`` when absent."""
    keys = split_path(path)
    if not keys:
        return MISSING
    parent = get_value_by_path(data, ".".join(keys[:-1]))
    if not isinstance(parent, dict) or keys[-1] not in parent:
        return MISSING
    return parent.pop(keys[-1])

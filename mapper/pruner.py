# mapper/pruner.py
"""
Remove empty values from mapped payloads while keeping 0 and False
"""
from typing import Any


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ''
    if isinstance(value, (dict, list)):
        return len(value) == 0
    return False


def prune_empty_fields(value: Any) -> Any:
    """
    Recursively drop empty strings, None, and containers left empty

    Returns None when the whole value prunes away.
    """
    if isinstance(value, list):
        pruned = [prune_empty_fields(item) for item in value]
        pruned = [item for item in pruned if not _is_empty(item)]
        return pruned or None

    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            pruned = prune_empty_fields(item)
            if not _is_empty(pruned):
                cleaned[key] = pruned
        return cleaned or None

    if _is_empty(value):
        return None
    return value

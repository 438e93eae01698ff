"""
JSON Utilities
==============

Thin wrappers around orjson used for every JSON document polykv writes:
codec stored strings, flat-file mappings and the encrypted file payload.
"""

import logging
from typing import Any, Union

import orjson

logger = logging.getLogger(__name__)

JSON_BACKEND = "orjson"


def dumps(obj: Any, sort_keys: bool = False, indent: bool = False) -> str:
    """
    Serialize object to a JSON string.

    Args:
        obj: Object to serialize
        sort_keys: Whether to sort dictionary keys (for stable output)
        indent: Pretty-print with two-space indentation

    Returns:
        JSON string

    Raises:
        orjson.JSONEncodeError: If the object is not serializable
    """
    option = 0
    if sort_keys:
        option |= orjson.OPT_SORT_KEYS
    if indent:
        option |= orjson.OPT_INDENT_2

    return orjson.dumps(obj, option=option).decode("utf-8")


def dumps_bytes(obj: Any, sort_keys: bool = False) -> bytes:
    """Serialize object straight to UTF-8 JSON bytes."""
    option = orjson.OPT_SORT_KEYS if sort_keys else 0
    return orjson.dumps(obj, option=option)


def loads(s: Union[str, bytes]) -> Any:
    """
    Deserialize a JSON string or bytes.

    Raises:
        orjson.JSONDecodeError: If the input is not valid JSON
    """
    return orjson.loads(s)


def get_json_backend() -> str:
    """Get the active JSON backend name."""
    return JSON_BACKEND

"""
Value Codec
===========

Converts arbitrary JSON-shaped Python values to a stored string plus a type
tag, and back.

Type tags:
- ``null``     None
- ``boolean``  bool
- ``number``   int/float within +/-(2**53 - 1)
- ``bigint``   int beyond that range, stored as its decimal digits
- ``string``   str
- ``array``    list (tuples are accepted and come back as lists)
- ``object``   dict with string keys

Decoding never raises: a stored string that cannot be parsed, or whose
parsed shape disagrees with its tag, decodes to the caller's fallback.
"""

import copy
import logging
import math
from typing import Any, Optional, Tuple

from .config import CodecConfig
from .error_handling import CodecError, InvalidValueError
from .json_utils import dumps as json_dumps, loads as json_loads

logger = logging.getLogger(__name__)

MAX_SAFE_INTEGER = 2**53 - 1

# orjson encodes integers in the signed/unsigned 64-bit range only
_JSON_INT_MIN = -(2**63)
_JSON_INT_MAX = 2**64 - 1
_MAX_DEPTH = 254

TYPE_TAGS = ("null", "boolean", "number", "bigint", "string", "array", "object")


def determine_type(value: Any) -> str:
    """
    Return the type tag for a top-level value.

    Raises:
        InvalidValueError: If the value has no supported tag
    """
    if value is None:
        return "null"
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "bigint" if abs(value) > MAX_SAFE_INTEGER else "number"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise InvalidValueError(
        f"Unsupported value type: {type(value).__name__}",
        {"value_type": type(value).__name__},
    )


def _check_nested(value: Any, depth: int = 0):
    """Reject nested values that would not survive a JSON round trip."""
    if depth > _MAX_DEPTH:
        raise InvalidValueError("Value is nested too deeply", {"max_depth": _MAX_DEPTH})

    if value is None or isinstance(value, (bool, str)):
        return
    if isinstance(value, int):
        if not (_JSON_INT_MIN <= value <= _JSON_INT_MAX):
            raise InvalidValueError(
                "Nested integer exceeds the 64-bit range", {"value": value}
            )
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidValueError("Non-finite floats cannot be stored", {"value": value})
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _check_nested(item, depth + 1)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidValueError(
                    "Object keys must be strings",
                    {"key_type": type(key).__name__},
                )
            _check_nested(item, depth + 1)
        return
    raise InvalidValueError(
        f"Unsupported nested value type: {type(value).__name__}",
        {"value_type": type(value).__name__},
    )


class ValueCodec:
    """Encode/decode pair used by every collection."""

    def __init__(self, config: Optional[CodecConfig] = None):
        self.config = config or CodecConfig()

    def encode(self, value: Any) -> Tuple[str, str]:
        """
        Encode a value into its stored string and type tag.

        Raises:
            InvalidValueError: If the value cannot be represented
        """
        type_tag = determine_type(value)

        if type_tag == "bigint":
            if not self.config.allow_bigint:
                raise InvalidValueError(
                    "Integer exceeds the safe range and bigint storage is disabled",
                    {"value": value},
                )
            return str(value), type_tag

        _check_nested(value)

        try:
            stored = json_dumps(value)
        except TypeError as e:
            raise InvalidValueError(f"Value is not serializable: {e}") from e

        return stored, type_tag

    def decode(self, stored: Any, type_tag: str, fallback: Any = None) -> Any:
        """
        Decode a stored string according to its type tag.

        Args:
            stored: Stored string representation
            type_tag: Tag recorded at encode time
            fallback: Value returned when decoding fails

        Returns:
            The reconstructed value, or the fallback
        """
        try:
            return self._decode(stored, type_tag)
        except CodecError as e:
            logger.warning(f"Failed to decode {type_tag!r} value, using fallback: {e}")
            return self._fallback(fallback)

    def _decode(self, stored: Any, type_tag: str) -> Any:
        if not isinstance(stored, (str, bytes)):
            raise CodecError(
                f"Stored value must be a string, got {type(stored).__name__}"
            )

        if type_tag == "bigint":
            if not self.config.allow_bigint:
                raise CodecError("bigint decoding is disabled")
            try:
                return int(stored)
            except ValueError as e:
                raise CodecError(f"Invalid bigint digits: {stored!r}") from e

        if type_tag not in TYPE_TAGS:
            raise CodecError(f"Unknown type tag: {type_tag!r}")

        try:
            parsed = json_loads(stored)
        except ValueError as e:
            raise CodecError(f"Stored value is not valid JSON: {e}") from e

        if type_tag == "null":
            if parsed is not None:
                raise CodecError("Expected null")
            return None

        if type_tag == "boolean":
            if not isinstance(parsed, bool):
                raise CodecError("Expected boolean")
            return parsed

        if type_tag == "number":
            return self._decode_number(parsed)

        if type_tag == "string":
            if not isinstance(parsed, str):
                raise CodecError("Expected string")
            return parsed

        if type_tag == "array":
            if not isinstance(parsed, list):
                raise CodecError("Type mismatch: expected array")
            return parsed

        if not isinstance(parsed, dict):
            raise CodecError("Type mismatch: expected object")
        return parsed

    def _decode_number(self, parsed: Any) -> Any:
        # Numeric strings written by older layouts are still accepted
        if isinstance(parsed, str):
            try:
                parsed = float(parsed) if any(c in parsed for c in ".eE") else int(parsed)
            except ValueError as e:
                raise CodecError(f"Expected number, got {parsed!r}") from e

        if isinstance(parsed, bool) or not isinstance(parsed, (int, float)):
            raise CodecError("Expected number")

        if not self.config.allow_max_safe_integer and abs(parsed) > MAX_SAFE_INTEGER:
            raise CodecError("Number exceeds MAX_SAFE_INTEGER")

        return parsed

    def _fallback(self, fallback: Any) -> Any:
        if self.config.fallback_type == "object" and isinstance(fallback, (dict, list)):
            return copy.copy(fallback)
        return fallback


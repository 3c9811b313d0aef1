"""
Canonical JSON encoding of signable payloads (RFC 8785 / JCS).

Rules:
- Mapping keys must be strings and are sorted by their UTF-16 code units
  at every nesting level
- Compact separators, UTF-8 output, one encoder for all string escaping
- Numbers use the ECMAScript Number-to-string form: shortest round-trip
  digits, plain notation for 1e-6 <= |x| < 1e21, exponent otherwise
  (1e+21, 1e-7); -0.0 becomes 0
- Floats must be finite; integers must fit an IEEE double exactly
- Lists keep their order
"""

import json
import math
from typing import Any

from ..errors import CanonicalizationError

MAX_SAFE_INTEGER = 2 ** 53 - 1


class CanonicalJSONEncoder(json.JSONEncoder):
    """JSON encoder producing one byte sequence per semantic value."""

    def __init__(self, **kwargs: Any) -> None:
        kwargs["sort_keys"] = False
        kwargs["separators"] = (",", ":")
        kwargs["ensure_ascii"] = False
        kwargs["allow_nan"] = False
        super().__init__(**kwargs)

    def encode(self, o: Any) -> str:
        return "".join(self._encode(o, "$"))

    def _encode(self, obj: Any, where: str):
        if obj is None or isinstance(obj, (bool, str)):
            yield super().encode(obj)
        elif isinstance(obj, int):
            if abs(obj) > MAX_SAFE_INTEGER:
                raise CanonicalizationError(f"Integer out of range at {where}: {obj}")
            yield str(int(obj))
        elif isinstance(obj, float):
            yield format_number(obj, where)
        elif isinstance(obj, dict):
            yield "{"
            for i, key in enumerate(_sorted_keys(obj, where)):
                if i:
                    yield ","
                yield super().encode(key)
                yield ":"
                yield from self._encode(obj[key], f"{where}.{key}")
            yield "}"
        elif isinstance(obj, (list, tuple)):
            yield "["
            for i, item in enumerate(obj):
                if i:
                    yield ","
                yield from self._encode(item, f"{where}[{i}]")
            yield "]"
        else:
            raise CanonicalizationError(f"Unsupported type at {where}: {type(obj).__name__}")


def _sorted_keys(obj: dict, where: str):
    for key in obj:
        if not isinstance(key, str):
            raise CanonicalizationError(f"Non-string key at {where}: {key!r}")
    try:
        return sorted(obj, key=lambda k: k.encode("utf-16-be"))
    except UnicodeEncodeError as e:
        raise CanonicalizationError(f"Key is not valid Unicode at {where}: {e.reason}") from e


def format_number(value: float, where: str = "$") -> str:
    """Format a float the way ECMAScript's Number.prototype.toString does."""
    if math.isnan(value) or math.isinf(value):
        raise CanonicalizationError(f"Non-finite number at {where}: {value!r}")
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    # repr gives the shortest digits that round-trip; only the layout differs
    mantissa, _, exp = repr(abs(value)).partition("e")
    point = mantissa.find(".")
    if point < 0:
        point = len(mantissa)
    digits = mantissa.replace(".", "")
    n = point + int(exp or 0)
    while digits.startswith("0"):
        digits = digits[1:]
        n -= 1
    digits = digits.rstrip("0")
    k = len(digits)

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        e = n - 1
        head = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{head}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


_encoder = CanonicalJSONEncoder()


def canonical_json(data: Any) -> str:
    """Canonical JSON text for data."""
    return _encoder.encode(data)


def canonical_bytes(data: Any) -> bytes:
    """Canonical JSON as UTF-8 bytes, the form that gets hashed and signed."""
    try:
        return canonical_json(data).encode("utf-8")
    except UnicodeEncodeError as e:
        raise CanonicalizationError(f"String is not encodable as UTF-8: {e.reason}") from e

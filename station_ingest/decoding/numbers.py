"""Numeric token parsing for the pipe/comma payload format."""

from __future__ import annotations

import math
import re
from typing import Optional

_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")

NAN_TOKEN = "nan"


def is_nan_token(token: str) -> bool:
    """True for the literal `nan` in any case (devices use it for 'no value')."""
    return token.strip().lower() == NAN_TOKEN


def parse_decimal(token: str) -> Optional[float]:
    """Parse decimal text. Returns None for anything that is not a finite decimal.

    Python's float() also accepts 'inf', 'nan' and '1_0'; the wire format does not.
    """
    text = token.strip()
    if not _DECIMAL_RE.match(text):
        return None
    value = float(text)
    # huge exponents overflow to inf
    if not math.isfinite(value):
        return None
    return value


def parse_integer(token: str) -> Optional[int]:
    """Parse base-10 integer text, rejecting underscores and trailing garbage."""
    text = token.strip()
    if not _INTEGER_RE.match(text):
        return None
    return int(text, 10)

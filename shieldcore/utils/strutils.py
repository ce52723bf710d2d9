import json
from typing import Any


def compact_json(data: Any) -> str:
    """
    Serialize data the way browser front-ends do: no whitespace, keys in insertion order,
    non-ASCII characters kept verbatim.
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def hash_code(s: str) -> int:
    """
    32-bit string hash compatible with the one front-ends compute over exported settings
    (``h = h * 31 + c`` over UTF-16 code units, wrapped to a signed 32-bit integer).
    """
    h = 0
    data = s.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return h

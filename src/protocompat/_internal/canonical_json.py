"""Centralized canonical JSON serialization.

One function for byte-stable JSON used by every machine-readable output:
JSON reports, line-delimited records, generated JSON Schemas.

Two runs over the same inputs must produce identical bytes.
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization.

    Rules:
    - Sorted keys
    - Stable separators (",", ":")
    - Lists keep caller order (findings arrive already sorted)
    - Non-ASCII kept as UTF-8
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False
    )

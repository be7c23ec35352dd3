"""Child LLC naming helpers."""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9\s]")


def generate_llc_name(project_address: str) -> str:
    """Derive the default child LLC name from the site address.

    "123 Oak St." -> "DP 123 Oak St LLC". Empty address gives an empty name.
    """
    if not project_address or not project_address.strip():
        return ""
    clean = _NON_ALNUM.sub("", project_address).strip()
    return f"DP {clean} LLC"

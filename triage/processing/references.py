"""Order, ticket and case reference numbers found in free text."""

import re

# Spelled-out prefixes fold to the short form so "Order #12345" and
# "ORD-12345" compare equal.
_PREFIX_ALIASES = {
    "ORDER": "ORD",
    "TICKET": "TKT",
    "REFERENCE": "REF",
}

_PREFIXED = (
    re.compile(r"\b(ORD|ORDER|PO|SO)\s*[-#:]?\s*(\d{4,})\b", re.IGNORECASE),
    re.compile(r"\b(TKT|TICKET|CASE|INC)\s*[-#:]?\s*(\d{4,})\b", re.IGNORECASE),
    re.compile(r"\b(REF|REFERENCE)\s*[-#:]?\s*((?=[A-Z0-9]*\d)[A-Z0-9]{5,})\b", re.IGNORECASE),
)
# Tracker-style keys such as JIRA-20431; upper case only.
_KEYED = re.compile(r"\b([A-Z]{2,4})-(\d{4,})\b")


def extract_references(*texts: str) -> frozenset[str]:
    """Canonical ``PREFIX-VALUE`` references, upper-cased and de-duplicated.

    Bare digit runs are not treated as references: phone numbers and
    postcodes in signatures would otherwise tie unrelated mail together.
    """
    found: set[str] = set()
    for text in texts:
        if not text:
            continue
        for pattern in (*_PREFIXED, _KEYED):
            for prefix, value in pattern.findall(text):
                prefix = prefix.upper()
                found.add(f"{_PREFIX_ALIASES.get(prefix, prefix)}-{value.upper()}")
    return frozenset(found)

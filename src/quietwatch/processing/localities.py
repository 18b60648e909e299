"""
Locality name normalization for QuietWatch.
"""

import re

# Hebrew maqaf, en dash, em dash
_DASH_VARIANTS = re.compile("[־–—]")
_HYPHEN_SPACING = re.compile(r"\s*-\s*")
_WHITESPACE = re.compile(r"\s+")

SUB_AREA_SEPARATOR = " - "


def normalize_locality(raw: str) -> str:
    """
    Canonicalize a free-text locality name.

    Dash variants become a plain hyphen, hyphens are spaced as " - " and
    whitespace runs collapse to one space.
    """
    value = _DASH_VARIANTS.sub("-", raw)
    value = _HYPHEN_SPACING.sub(SUB_AREA_SEPARATOR, value)
    value = _WHITESPACE.sub(" ", value)
    return value.strip()


def is_base_match(monitored: str, alerted: str) -> bool:
    """True when ``alerted`` is ``monitored`` itself or one of its sub-areas."""
    if alerted == monitored:
        return True
    return alerted.startswith(monitored + SUB_AREA_SEPARATOR)

"""
Template interpolation.

Placeholders are written ``{name}``. Every occurrence of a known name is
replaced; unknown names are left verbatim so that partially filled templates
stay renderable.
"""

import re
from typing import List, Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def interpolate(template: str, values: Mapping[str, str]) -> str:
    """Fill ``{name}`` placeholders from ``values``, leaving unknown names untouched."""

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return str(values[name])
        return match.group(0)

    # Single pass over the original text, so inserted values are never re-expanded
    return PLACEHOLDER_PATTERN.sub(_substitute, template)


def placeholders(template: str) -> List[str]:
    """List distinct placeholder names in order of first appearance."""
    seen: List[str] = []
    for name in PLACEHOLDER_PATTERN.findall(template):
        if name not in seen:
            seen.append(name)
    return seen

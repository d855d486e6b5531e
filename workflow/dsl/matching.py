"""Two-tier option matching for ``<select>`` style controls.

Precedence:

1. exact match on a non-empty option value;
2. case-insensitive substring match on the option label.

Within a tier the first entry in document order wins. A blank target never
matches anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence, Tuple

MatchTier = Literal["value", "label"]


@dataclass(frozen=True, slots=True)
class OptionMatch:
    value: str
    label: str
    tier: MatchTier
    index: int


def match_option(entries: Iterable[Tuple[str, str]], target: Optional[str]) -> Optional[OptionMatch]:
    needle = (target or "").strip()
    if not needle:
        return None

    options: Sequence[Tuple[str, str]] = [(value or "", (label or "").strip()) for value, label in entries]

    for index, (value, label) in enumerate(options):
        if value and value == needle:
            return OptionMatch(value=value, label=label, tier="value", index=index)

    lowered = needle.lower()
    for index, (value, label) in enumerate(options):
        if lowered in label.lower():
            return OptionMatch(value=value, label=label, tier="label", index=index)
    return None

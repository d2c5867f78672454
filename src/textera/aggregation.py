from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .schemas import PredictionItem

UNKNOWN_CENTURY = "Unknown Century"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class CenturyBucket:
    items: List[PredictionItem] = field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(it.probability for it in self.items)

    def add(self, item: PredictionItem) -> None:
        self.items.append(item)


def _century_prefix(label: str) -> Optional[int]:
    # parseInt-style: leading digits of the first two characters
    m = _LEADING_INT.match(label[:2])
    if not m:
        return None
    return int(m.group(1)) + 1


def century_label(label: str) -> str:
    """Map a decade label such as "1920" to its century bucket name."""
    prefix = _century_prefix(label)
    if prefix is None:
        return UNKNOWN_CENTURY
    if prefix == 21:
        return "21st Century"
    return f"{prefix}th Century"


def group_by_century(items: Iterable[PredictionItem]) -> Dict[str, CenturyBucket]:
    grouped: Dict[str, CenturyBucket] = {}
    for it in items:
        grouped.setdefault(century_label(it.label), CenturyBucket()).add(it)
    return grouped


def sorted_buckets(grouped: Dict[str, CenturyBucket]) -> List[Tuple[str, CenturyBucket]]:
    return sorted(grouped.items(), key=lambda kv: kv[1].total, reverse=True)


def format_period_label(label: str, model_key: str) -> str:
    if model_key == "decade" and len(label) > 2:
        return label + "s"
    if label == "21":
        return "21st"
    return label + "th"


def format_percent(probability: float) -> str:
    return f"{probability * 100:.2f}%"

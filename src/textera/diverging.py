"""Tug-of-war chart data for the binary (older vs. equal-or-younger) model.

Older items are mirrored to negative values and reversed so the strongest
candidates on both sides sit next to the threshold divider; both sides share
one symmetric axis scale.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from .schemas import BinaryGroup

Group = Literal["older", "equal_or_younger", "threshold"]
Winner = Literal["older", "equal_or_younger"]
Polarity = Literal["affirmed", "negated", "neutral"]

THRESHOLD_LABEL = "threshold"
MIN_LABELLED_VALUE = 0.005

BAR_FILLS = {"affirmed": "#22c55e", "negated": "#ef4444", "neutral": "#000000"}
TEXT_FILLS = {"affirmed": "white", "negated": "black", "neutral": "black"}


@dataclass(frozen=True)
class DivergingBar:
    label: str
    value: float
    group: Group
    text: Optional[str] = None
    polarity: Polarity = "neutral"

    @property
    def fill(self) -> str:
        return BAR_FILLS[self.polarity]

    @property
    def text_fill(self) -> str:
        return TEXT_FILLS[self.polarity]


@dataclass(frozen=True)
class DivergingDataset:
    bars: List[DivergingBar]
    domain: float
    winner: Winner


def bar_text(value: float) -> Optional[str]:
    if abs(value) < MIN_LABELLED_VALUE:
        return None
    return f"{abs(value * 100):.0f}%"


def axis_tick(value: float) -> str:
    return f"{abs(value * 100):.0f}%"


def tooltip_text(value: float) -> str:
    return f"{abs(value * 100):.2f}%"


def pick_winner(older: BinaryGroup, younger: BinaryGroup) -> Winner:
    # ties go to the older side
    if older.total_probability >= younger.total_probability:
        return "older"
    return "equal_or_younger"


def _polarity(group: Group, winner: Winner) -> Polarity:
    if group == "threshold":
        return "neutral"
    return "affirmed" if group == winner else "negated"


def build_diverging_dataset(older: BinaryGroup, younger: BinaryGroup) -> DivergingDataset:
    probs = [it.probability for it in older.items] + [it.probability for it in younger.items]
    domain = max(probs, default=0.0)
    winner = pick_winner(older, younger)

    def _bar(label: str, value: float, group: Group) -> DivergingBar:
        return DivergingBar(
            label=label,
            value=value,
            group=group,
            text=bar_text(value),
            polarity=_polarity(group, winner),
        )

    bars = [_bar(it.label, -it.probability, "older") for it in reversed(older.items)]
    bars.append(_bar(THRESHOLD_LABEL, 0.0, "threshold"))
    bars.extend(_bar(it.label, it.probability, "equal_or_younger") for it in younger.items)
    return DivergingDataset(bars=bars, domain=domain, winner=winner)

"""Trust boundary between the prediction service and everything that renders.

Raw response bodies are first checked against permissive envelope schemas
(only the container shape is enforced), then every prediction item is
neutralized: labels are HTML-escaped and probabilities are coerced into
``[0, 1]``. Nothing downstream ever sees an unsanitized value.
"""
from __future__ import annotations

import html
import math
from dataclasses import dataclass
from typing import Any, Generic, List, Mapping, Optional, TypeVar, cast

from pydantic import BaseModel, ValidationError

from .errors import InvalidResponseShape
from .schemas import (
    BinaryGroup,
    BinaryPredictionResult,
    BinaryTopK,
    FlatPredictionResult,
    PredictionItem,
)

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Tagged outcome of parsing a response body."""

    value: Optional[T] = None
    error: Optional[InvalidResponseShape] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return cast(T, self.value)


# Envelope schemas: only containers are enforced, leaf values stay raw.
class _RawFlat(BaseModel):
    top_k_predictions: List[Any]


class _RawGroup(BaseModel):
    total_probability: Any = 0
    items: List[Any]


class _RawTopK(BaseModel):
    older: _RawGroup
    equal_or_younger: _RawGroup


class _RawBinary(BaseModel):
    prediction: Any = ""
    top_k: _RawTopK


def sanitize_text(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return html.escape(str(value), quote=True)


def coerce_probability(value: Any) -> float:
    if isinstance(value, int):
        # bools land here too; float() overflows on huge JSON ints
        return float(max(0, min(1, value)))
    if isinstance(value, float):
        num = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            num = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(num):
        return 0.0
    return max(0.0, min(1.0, num))


def sanitize_item(raw: Any) -> PredictionItem:
    if not isinstance(raw, Mapping):
        return PredictionItem(label="", probability=0.0)
    return PredictionItem(
        label=sanitize_text(raw.get("label")),
        probability=coerce_probability(raw.get("probability")),
    )


def sanitize_items(raw_items: List[Any]) -> List[PredictionItem]:
    return [sanitize_item(it) for it in raw_items]


def _sanitize_group(group: _RawGroup) -> BinaryGroup:
    return BinaryGroup(
        total_probability=coerce_probability(group.total_probability),
        items=sanitize_items(group.items),
    )


def parse_flat_response(data: Any) -> Parsed[FlatPredictionResult]:
    try:
        raw = _RawFlat.model_validate(data)
    except ValidationError:
        return Parsed(error=InvalidResponseShape())
    return Parsed(value=FlatPredictionResult(top_k_predictions=sanitize_items(raw.top_k_predictions)))


def parse_binary_response(data: Any) -> Parsed[BinaryPredictionResult]:
    try:
        raw = _RawBinary.model_validate(data)
    except ValidationError:
        return Parsed(error=InvalidResponseShape())
    return Parsed(
        value=BinaryPredictionResult(
            prediction=sanitize_text(raw.prediction),
            top_k=BinaryTopK(
                older=_sanitize_group(raw.top_k.older),
                equal_or_younger=_sanitize_group(raw.top_k.equal_or_younger),
            ),
        )
    )

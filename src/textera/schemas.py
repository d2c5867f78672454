from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field


class PredictionItem(BaseModel):
    label: str = Field(..., description="HTML-escaped period label, e.g. '1920'")
    probability: float = Field(..., ge=0.0, le=1.0)


class FlatPredictionResult(BaseModel):
    top_k_predictions: List[PredictionItem]


class BinaryGroup(BaseModel):
    total_probability: float = Field(..., ge=0.0, le=1.0)
    items: List[PredictionItem]


class BinaryTopK(BaseModel):
    older: BinaryGroup
    equal_or_younger: BinaryGroup


class BinaryPredictionResult(BaseModel):
    prediction: str
    top_k: BinaryTopK


@dataclass(frozen=True)
class TextUpload:
    """An in-memory file selected for submission."""

    filename: str
    content: bytes
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> "TextUpload":
        p = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(p.name)[0] or ""
        return cls(filename=p.name, content=p.read_bytes(), content_type=content_type)

from __future__ import annotations

from typing import AbstractSet, Optional, Tuple, TypeGuard

from .constants import ALLOWED_FILE_TYPES, THRESHOLD_OPTIONS, VALID_MODEL_KEYS, ModelKey
from .errors import FileTooLarge, InvalidFileType, NoFileSelected, ValidationError
from .schemas import TextUpload
from .settings import get_settings


def validate_file(
    file: Optional[TextUpload],
    *,
    max_file_size: int | None = None,
    allowed_types: AbstractSet[str] = ALLOWED_FILE_TYPES,
) -> Optional[ValidationError]:
    """Return the first failing check for ``file``, or None when it is acceptable."""
    if file is None:
        return NoFileSelected()
    limit = max_file_size if max_file_size is not None else get_settings().API_MAX_FILE_SIZE
    if file.size > limit:
        return FileTooLarge()
    if file.content_type not in allowed_types:
        return InvalidFileType()
    return None


def validate_model_key(value: object) -> TypeGuard[ModelKey]:
    return isinstance(value, str) and value in VALID_MODEL_KEYS


def threshold_options(model_key: str) -> Tuple[str, ...]:
    return THRESHOLD_OPTIONS.get(model_key, ())


def validate_threshold(model_key: str, threshold: object) -> bool:
    if not validate_model_key(model_key):
        return False
    return isinstance(threshold, str) and threshold in THRESHOLD_OPTIONS[model_key]

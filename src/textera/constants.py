from __future__ import annotations

from types import MappingProxyType
from typing import Literal, Mapping, Tuple

ModelKey = Literal["decade", "century"]
Endpoint = Literal["base", "binary"]
ViewMode = Literal["flat", "grouped"]

ALLOWED_FILE_TYPES: frozenset[str] = frozenset({"text/plain"})
VALID_MODEL_KEYS: Tuple[ModelKey, ...] = ("decade", "century")
ENDPOINTS: Tuple[Endpoint, ...] = ("base", "binary")
DEFAULT_VIEW_MODE: ViewMode = "flat"

# Markers the server uses to tell programmatic calls from page navigation
REQUEST_HEADERS: Mapping[str, str] = MappingProxyType({"X-Requested-With": "XMLHttpRequest"})

THRESHOLD_OPTIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "decade": tuple(str(1610 + i * 10) for i in range(41)),
        "century": ("18", "19", "20"),
    }
)

ERROR_MESSAGES: Mapping[str, str] = MappingProxyType(
    {
        "FILE_TOO_LARGE": "File size must be less than 5MB",
        "INVALID_FILE_TYPE": "Only .txt files are allowed",
        "NO_FILE_SELECTED": "Please select a file",
        "INVALID_MODEL_KEY": "Please select a valid model type",
        "INVALID_THRESHOLD": "Please select a valid threshold",
        "NETWORK_ERROR": "Network error. Please check your connection.",
        "TIMEOUT_ERROR": "Request timeout. Please try again.",
        "SERVER_ERROR": "Server error. Please try again later.",
        "INVALID_REQUEST": "Invalid request. Please check your input.",
        "CANCELLED": "Request cancelled.",
        "UNEXPECTED_ERROR": "An unexpected error occurred",
        "INVALID_RESPONSE": "Invalid response format",
    }
)

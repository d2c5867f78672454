from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from .aggregation import CenturyBucket, group_by_century
from .client import CancelToken, PredictionClient
from .constants import DEFAULT_VIEW_MODE, Endpoint, ViewMode
from .diverging import DivergingDataset, build_diverging_dataset
from .errors import (
    InvalidModelKey,
    InvalidThreshold,
    PredictionError,
    SubmissionInProgress,
    ValidationError,
)
from .progress import ProgressSimulator
from .schemas import BinaryPredictionResult, FlatPredictionResult, TextUpload
from .settings import get_settings
from .validation import validate_file, validate_model_key, validate_threshold

logger = logging.getLogger(__name__)

Result = Union[FlatPredictionResult, BinaryPredictionResult]


@dataclass
class FormState:
    file: Optional[TextUpload] = None
    model_key: str = ""
    threshold: str = ""
    result: Optional[Result] = None
    grouped: Optional[Dict[str, CenturyBucket]] = None
    chart: Optional[DivergingDataset] = None
    view_mode: ViewMode = DEFAULT_VIEW_MODE
    error: str = ""
    loading: bool = False
    progress: float = 0.0


class PredictionForm:
    """State owner for one prediction form (base or binary).

    Holds the current selection and result, allows a single submission in
    flight, and joins the request with the simulated progress signal.
    """

    def __init__(
        self,
        client: PredictionClient,
        endpoint: Endpoint = "base",
        *,
        progress_factory: Optional[Callable[..., ProgressSimulator]] = None,
    ) -> None:
        self.client = client
        self.endpoint = endpoint
        self.state = FormState()
        self.cancel_token: Optional[CancelToken] = None
        self._settled: Optional[asyncio.Event] = None
        if progress_factory is None:
            s = get_settings()
            progress_factory = functools.partial(
                ProgressSimulator, interval=s.PROGRESS_INTERVAL, max_step=s.PROGRESS_MAX_STEP
            )
        self._progress_factory = progress_factory

    # ---------------- Selection ----------------

    def reset_selection(self) -> None:
        """Drop everything but the model key; a pending submission is cancelled."""
        self.cancel()
        model_key = self.state.model_key
        self.state = FormState(model_key=model_key)

    def select_model(self, model_key: str) -> None:
        self.reset_selection()
        self.state.model_key = model_key
        if model_key and not validate_model_key(model_key):
            self.state.error = InvalidModelKey().message

    def select_file(self, file: Optional[TextUpload]) -> None:
        self.state.file = file
        self.state.error = ""
        if file is None:
            return
        error = validate_file(file, max_file_size=self.client.max_file_size)
        if error is not None:
            self.state.error = error.message
            self.state.file = None

    def select_threshold(self, threshold: str) -> None:
        self.state.threshold = threshold

    def set_view_mode(self, mode: ViewMode) -> None:
        if mode == "grouped" and self.state.grouped is None:
            return
        self.state.view_mode = mode

    @property
    def can_submit(self) -> bool:
        s = self.state
        if s.loading or s.file is None or not s.model_key:
            return False
        if self.endpoint == "binary" and not s.threshold:
            return False
        return True

    # ---------------- Submission ----------------

    def cancel(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.cancel()

    def _preflight_error(self, s: FormState) -> Optional[ValidationError]:
        error = validate_file(s.file, max_file_size=self.client.max_file_size)
        if error is not None:
            return error
        if not validate_model_key(s.model_key):
            return InvalidModelKey()
        if self.endpoint == "binary" and not validate_threshold(s.model_key, s.threshold):
            return InvalidThreshold()
        return None

    async def submit(self) -> Optional[Result]:
        if self.state.loading:
            raise SubmissionInProgress("a prediction is already in flight")

        s = self.state
        s.error = ""
        s.result = None
        s.grouped = None
        s.chart = None
        s.progress = 0.0

        error = self._preflight_error(s)
        if error is not None:
            s.error = error.message
            return None

        s.loading = True
        token = self.cancel_token = CancelToken()
        # a submission cancelled by a reset may still be unwinding
        previous, settled = self._settled, asyncio.Event()
        self._settled = settled

        def on_progress(value: float) -> None:
            s.progress = value

        progress = self._progress_factory(on_change=on_progress)
        progress.start()
        try:
            if previous is not None:
                await previous.wait()
            if self.endpoint == "binary":
                result: Result = await self.client.predict_binary(
                    s.file, s.model_key, s.threshold, cancel_token=token
                )
            else:
                result = await self.client.predict_base(s.file, s.model_key, cancel_token=token)
        except PredictionError as err:
            s.error = err.message
            return None
        finally:
            await progress.aclose()
            s.loading = False
            if self.cancel_token is token:
                self.cancel_token = None
            settled.set()

        s.result = result
        if isinstance(result, FlatPredictionResult) and s.model_key == "decade":
            s.grouped = group_by_century(result.top_k_predictions)
        elif isinstance(result, BinaryPredictionResult):
            s.chart = build_diverging_dataset(result.top_k.older, result.top_k.equal_or_younger)
        logger.info("prediction via %s/ completed for model_key=%s", self.endpoint, s.model_key)
        return result

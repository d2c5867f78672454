from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Set, Union, cast

import httpx

from .constants import ENDPOINTS, REQUEST_HEADERS, Endpoint
from .errors import (
    InvalidModelKey,
    InvalidRequest,
    InvalidResponseShape,
    InvalidThreshold,
    NetworkError,
    PredictionError,
    RequestCancelled,
    RequestTimeoutError,
    ServerError,
)
from .sanitize import parse_binary_response, parse_flat_response
from .schemas import BinaryPredictionResult, FlatPredictionResult, TextUpload
from .settings import Settings, get_settings
from .validation import validate_file, validate_model_key, validate_threshold

logger = logging.getLogger(__name__)

PredictionResult = Union[FlatPredictionResult, BinaryPredictionResult]


class CancelToken:
    """Caller-owned switch that aborts whatever request it is attached to."""

    def __init__(self) -> None:
        self._cancelled = False
        self._tasks: Set[asyncio.Future[Any]] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()

    def _attach(self, task: asyncio.Future[Any]) -> None:
        self._tasks.add(task)
        if self._cancelled:
            task.cancel()

    def _detach(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)


class RequestDeadline:
    """One-shot timer that cancels an in-flight request after ``timeout`` seconds."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self.fired = False
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, task: asyncio.Future[Any]) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout, self._fire, task)

    def _fire(self, task: asyncio.Future[Any]) -> None:
        self._handle = None
        if task.done():
            return
        self.fired = True
        task.cancel()

    def clear(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class PredictionClient:
    """Async client for the remote period-prediction service.

    Every call is re-validated locally, sent as a single multipart POST under a
    deadline, and either returns a sanitized result or raises exactly one
    ``PredictionError`` subclass.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_file_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        debug: bool = False,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.max_file_size = max_file_size
        self.debug = debug
        self.last_deadline: Optional[RequestDeadline] = None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> "PredictionClient":
        s = settings or get_settings()
        return cls(
            s.API_URL,
            timeout=float(s.API_TIMEOUT),
            max_file_size=int(s.API_MAX_FILE_SIZE),
            debug=s.is_development,
            **kwargs,
        )

    async def __aenter__(self) -> "PredictionClient":
        self._client = self._make_client()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=self._transport,
            timeout=httpx.Timeout(self.timeout),
            headers=dict(REQUEST_HEADERS),
        )

    # ---------------- Public API ----------------

    async def predict(
        self,
        file: Optional[TextUpload],
        model_key: str,
        extra_fields: Optional[Mapping[str, Any]] = None,
        *,
        endpoint: Endpoint = "base",
        cancel_token: Optional[CancelToken] = None,
    ) -> PredictionResult:
        if endpoint not in ENDPOINTS:
            raise ValueError(f"unknown endpoint: {endpoint!r}")
        fields = self._validated_fields(file, model_key, extra_fields, endpoint)

        try:
            # _validated_fields raised if file was None
            response = await self._send(endpoint, cast(TextUpload, file), fields, cancel_token)
            return self._decode(endpoint, response)
        except PredictionError as err:
            logger.warning("prediction via %s/ failed: %s", endpoint, err.code, exc_info=self.debug)
            raise

    async def predict_base(
        self,
        file: Optional[TextUpload],
        model_key: str,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> FlatPredictionResult:
        result = await self.predict(file, model_key, endpoint="base", cancel_token=cancel_token)
        return cast(FlatPredictionResult, result)

    async def predict_binary(
        self,
        file: Optional[TextUpload],
        model_key: str,
        threshold: str,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> BinaryPredictionResult:
        result = await self.predict(
            file,
            model_key,
            {"threshold": threshold},
            endpoint="binary",
            cancel_token=cancel_token,
        )
        return cast(BinaryPredictionResult, result)

    # ---------------- Internals ----------------

    def _validated_fields(
        self,
        file: Optional[TextUpload],
        model_key: str,
        extra_fields: Optional[Mapping[str, Any]],
        endpoint: Endpoint,
    ) -> Dict[str, str]:
        error = validate_file(file, max_file_size=self.max_file_size)
        if error is not None:
            raise error
        if not validate_model_key(model_key):
            raise InvalidModelKey()
        fields = {"model_key": model_key}
        for key, value in (extra_fields or {}).items():
            fields[key] = str(value)
        if endpoint == "binary" and not validate_threshold(model_key, fields.get("threshold")):
            raise InvalidThreshold()
        return fields

    async def _post(self, path: str, files: Dict[str, Any], data: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(path, files=files, data=data)
        async with self._make_client() as client:
            return await client.post(path, files=files, data=data)

    async def _send(
        self,
        endpoint: Endpoint,
        file: TextUpload,
        fields: Dict[str, str],
        cancel_token: Optional[CancelToken],
    ) -> httpx.Response:
        files = {"file": (file.filename or "upload.txt", file.content, file.content_type or "text/plain")}
        logger.debug("POST %s%s/ model_key=%s size=%d", self.base_url, endpoint, fields["model_key"], file.size)

        request = asyncio.ensure_future(self._post(f"{endpoint}/", files, fields))
        deadline = RequestDeadline(self.timeout)
        self.last_deadline = deadline
        deadline.arm(request)
        if cancel_token is not None:
            cancel_token._attach(request)
        try:
            return await request
        except asyncio.CancelledError:
            if deadline.fired:
                raise RequestTimeoutError() from None
            if cancel_token is not None and cancel_token.cancelled:
                raise RequestCancelled() from None
            raise
        except httpx.TimeoutException as e:
            raise RequestTimeoutError() from e
        except httpx.RequestError as e:
            raise NetworkError() from e
        finally:
            deadline.clear()
            if cancel_token is not None:
                cancel_token._detach(request)

    def _decode(self, endpoint: Endpoint, response: httpx.Response) -> PredictionResult:
        status = response.status_code
        if not response.is_success:
            if 400 <= status < 500:
                raise InvalidRequest()
            if status >= 500:
                raise ServerError()
            raise NetworkError()
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseShape() from e
        if endpoint == "base":
            return parse_flat_response(data).unwrap()
        return parse_binary_response(data).unwrap()

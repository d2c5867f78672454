from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from .aggregation import format_percent, format_period_label, group_by_century
from .client import PredictionClient
from .constants import ENDPOINTS
from .diverging import build_diverging_dataset
from .errors import (
    InvalidModelKey,
    InvalidRequest,
    InvalidThreshold,
    PredictionError,
    RequestTimeoutError,
    ValidationError,
)
from .progress import ProgressSimulator
from .schemas import BinaryGroup, BinaryPredictionResult, FlatPredictionResult, PredictionItem, TextUpload
from .settings import get_settings, validate_config
from .validation import threshold_options, validate_file, validate_model_key, validate_threshold

logger = logging.getLogger(__name__)

# ---------------- Observability: logging, metrics, error tracking ---------------

_PROM_REGISTRY = CollectorRegistry()
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
    registry=_PROM_REGISTRY,
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    registry=_PROM_REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)
PREDICTION_FAILURES = Counter(
    "prediction_failures_total",
    "Prediction submissions that ended in an error",
    ["code"],
    registry=_PROM_REGISTRY,
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)


def configure_logging() -> None:
    s = get_settings()
    level = getattr(logging, (s.LOG_LEVEL or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)

    if (s.LOG_FORMAT or "plain").lower() == "json":
        for h in logging.getLogger().handlers:
            h.setFormatter(JsonFormatter())


def _install_metrics(app: FastAPI) -> None:
    if not get_settings().METRICS_ENABLED:
        return

    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):
        path = request.url.path
        method = request.method
        if path == "/metrics":
            return await call_next(request)
        start = time.perf_counter()
        resp = await call_next(request)
        dur = time.perf_counter() - start
        REQUEST_LATENCY.labels(method=method, path=path).observe(dur)
        REQUEST_COUNT.labels(method=method, path=path, status=str(resp.status_code)).inc()
        return resp

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(_PROM_REGISTRY), media_type=CONTENT_TYPE_LATEST)


def _configure_sentry() -> None:
    dsn = get_settings().SENTRY_DSN or ""
    if not dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    _configure_sentry()
    s = validate_config()
    logger.info("textera API ready; prediction service at %s (env=%s)", s.API_URL, s.ENV)
    yield


app = FastAPI(title="textera API", version="0.1.0", lifespan=lifespan)
_install_metrics(app)


def get_prediction_client() -> PredictionClient:
    return PredictionClient.from_settings()


# ---------------- Errors ----------------


def status_for(err: PredictionError) -> int:
    if isinstance(err, ValidationError):
        return 422
    if isinstance(err, InvalidRequest):
        return 400
    if isinstance(err, RequestTimeoutError):
        return 504
    return 502


@app.exception_handler(PredictionError)
async def prediction_error_handler(request: Request, exc: PredictionError) -> JSONResponse:
    PREDICTION_FAILURES.labels(code=exc.code).inc()
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict())


# ---------------- Views ----------------


def _item_view(item: PredictionItem, model_key: str) -> Dict[str, Any]:
    return {
        "label": item.label,
        "display_label": format_period_label(item.label, model_key),
        "probability": item.probability,
        "percent": format_percent(item.probability),
    }


def flat_view(result: FlatPredictionResult, model_key: str) -> Dict[str, Any]:
    grouped: Optional[List[Dict[str, Any]]] = None
    if model_key == "decade":
        grouped = [
            {
                "century": century,
                "total": bucket.total,
                "percent": format_percent(bucket.total),
                "items": [_item_view(it, model_key) for it in bucket.items],
            }
            for century, bucket in group_by_century(result.top_k_predictions).items()
        ]
    return {
        "model_key": model_key,
        "predictions": [_item_view(it, model_key) for it in result.top_k_predictions],
        "grouped": grouped,
    }


def _percent_view(item: PredictionItem) -> Dict[str, Any]:
    return {"label": item.label, "probability": item.probability, "percent": format_percent(item.probability)}


def _group_view(group: BinaryGroup) -> Dict[str, Any]:
    return {
        "total_probability": group.total_probability,
        "percent": format_percent(group.total_probability),
        "items": [_percent_view(it) for it in group.items],
    }


def binary_view(result: BinaryPredictionResult) -> Dict[str, Any]:
    older, younger = result.top_k.older, result.top_k.equal_or_younger
    chart = build_diverging_dataset(older, younger)
    return {
        "prediction": result.prediction,
        "groups": {"older": _group_view(older), "equal_or_younger": _group_view(younger)},
        "chart": {
            "domain": chart.domain,
            "winner": chart.winner,
            "bars": [{**asdict(bar), "fill": bar.fill, "text_fill": bar.text_fill} for bar in chart.bars],
        },
    }


# ---------------- Routes ----------------


async def _read_upload(file: Optional[UploadFile]) -> Optional[TextUpload]:
    if file is None:
        return None
    content = await file.read()
    return TextUpload(filename=file.filename or "", content=content, content_type=file.content_type or "")


def _preflight(endpoint: str, upload: Optional[TextUpload], model_key: str, threshold: str) -> None:
    error = validate_file(upload)
    if error is not None:
        raise error
    if not validate_model_key(model_key):
        raise InvalidModelKey()
    if endpoint == "binary" and not validate_threshold(model_key, threshold):
        raise InvalidThreshold()


async def _run_prediction(
    client: PredictionClient,
    endpoint: str,
    upload: Optional[TextUpload],
    model_key: str,
    threshold: str,
) -> Dict[str, Any]:
    if endpoint == "binary":
        return binary_view(await client.predict_binary(upload, model_key, threshold))
    return flat_view(await client.predict_base(upload, model_key), model_key)


@app.get("/health")
def health() -> dict:
    s = get_settings()
    return {"ok": True, "env": s.ENV, "api_url_configured": bool(s.API_URL)}


@app.get("/thresholds/{model_key}")
def thresholds(model_key: str) -> dict:
    if not validate_model_key(model_key):
        raise InvalidModelKey()
    return {"model_key": model_key, "options": list(threshold_options(model_key))}


@app.post("/predict/base")
async def predict_base(
    file: Optional[UploadFile] = File(None),
    model_key: str = Form(""),
    client: PredictionClient = Depends(get_prediction_client),
) -> dict:
    upload = await _read_upload(file)
    _preflight("base", upload, model_key, "")
    return await _run_prediction(client, "base", upload, model_key, "")


@app.post("/predict/binary")
async def predict_binary(
    file: Optional[UploadFile] = File(None),
    model_key: str = Form(""),
    threshold: str = Form(""),
    client: PredictionClient = Depends(get_prediction_client),
) -> dict:
    upload = await _read_upload(file)
    _preflight("binary", upload, model_key, threshold)
    return await _run_prediction(client, "binary", upload, model_key, threshold)


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@app.post("/predict/{endpoint}/stream")
async def predict_stream(
    endpoint: str,
    file: Optional[UploadFile] = File(None),
    model_key: str = Form(""),
    threshold: str = Form(""),
    client: PredictionClient = Depends(get_prediction_client),
):
    """SSE stream of simulated progress followed by the prediction (or error).

    Emits ``{"progress": x}`` events while the request is pending, then exactly
    one ``{"result": ...}`` or ``{"error": ..., "detail": ...}`` event.
    """
    if endpoint not in ENDPOINTS:
        raise HTTPException(status_code=404, detail=f"unknown endpoint: {endpoint}")
    upload = await _read_upload(file)
    _preflight(endpoint, upload, model_key, threshold)
    s = get_settings()

    async def _gen():
        queue: asyncio.Queue[float] = asyncio.Queue()
        progress = ProgressSimulator(
            interval=s.PROGRESS_INTERVAL,
            max_step=s.PROGRESS_MAX_STEP,
            on_change=queue.put_nowait,
        )
        task = asyncio.ensure_future(_run_prediction(client, endpoint, upload, model_key, threshold))
        progress.start()
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield _sse({"progress": round(getter.result(), 2)})
                else:
                    getter.cancel()
                if task in done:
                    break
            await progress.aclose()
            yield _sse({"progress": progress.value})
            try:
                yield _sse({"result": task.result()})
            except PredictionError as err:
                PREDICTION_FAILURES.labels(code=err.code).inc()
                yield _sse(err.to_dict())
            yield "event: end\ndata: done\n\n"
        finally:
            progress.finish()
            if not task.done():
                task.cancel()

    return StreamingResponse(_gen(), media_type="text/event-stream")

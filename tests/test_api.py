from __future__ import annotations

import json
from typing import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from textera.api import app, get_prediction_client
from textera.client import PredictionClient

FLAT = {"top_k_predictions": [{"label": "1920", "probability": 0.3}, {"label": "<b>1930</b>", "probability": 0.2}]}
BINARY = {
    "prediction": "equal_or_younger",
    "top_k": {
        "older": {"total_probability": 0.35, "items": [{"label": "1890", "probability": 0.35}]},
        "equal_or_younger": {"total_probability": 0.65, "items": [{"label": "1930", "probability": 0.65}]},
    },
}
TXT = {"file": ("sample.txt", b"Call me Ishmael.", "text/plain")}


def _override(handler) -> None:
    transport = httpx.MockTransport(handler)
    app.dependency_overrides[get_prediction_client] = lambda: PredictionClient(
        "http://predictor.test/", timeout=5, transport=transport
    )


@pytest.fixture
def client() -> Iterator[TestClient]:
    yield TestClient(app)
    app.dependency_overrides.clear()


def _reply(status, body):
    return lambda request: httpx.Response(status, json=body)


def test_predict_base_returns_view_with_grouping(client):
    _override(_reply(200, FLAT))
    r = client.post("/predict/base", files=TXT, data={"model_key": "decade"})
    assert r.status_code == 200
    data = r.json()
    assert data["model_key"] == "decade"
    assert [p["label"] for p in data["predictions"]] == ["1920", "&lt;b&gt;1930&lt;/b&gt;"]
    assert data["predictions"][0]["display_label"] == "1920s"
    assert data["predictions"][0]["percent"] == "30.00%"
    assert [g["century"] for g in data["grouped"]] == ["20th Century", "Unknown Century"]


def test_predict_base_century_has_no_grouping(client):
    _override(_reply(200, {"top_k_predictions": [{"label": "21", "probability": 0.5}]}))
    r = client.post("/predict/base", files=TXT, data={"model_key": "century"})
    assert r.status_code == 200
    data = r.json()
    assert data["grouped"] is None
    assert data["predictions"][0]["display_label"] == "21st"


def test_predict_binary_returns_chart(client):
    _override(_reply(200, BINARY))
    r = client.post("/predict/binary", files=TXT, data={"model_key": "decade", "threshold": "1920"})
    assert r.status_code == 200
    groups = r.json()["groups"]
    assert groups["older"]["items"] == [{"label": "1890", "probability": 0.35, "percent": "35.00%"}]
    assert groups["equal_or_younger"]["percent"] == "65.00%"
    chart = r.json()["chart"]
    assert chart["winner"] == "equal_or_younger"
    assert chart["domain"] == 0.65
    assert [b["label"] for b in chart["bars"]] == ["1890", "threshold", "1930"]
    assert chart["bars"][0]["value"] == -0.35
    assert chart["bars"][2]["fill"] == "#22c55e"


@pytest.mark.parametrize(
    "files, data, code",
    [
        (None, {"model_key": "decade"}, "no_file_selected"),
        ({"file": ("doc.pdf", b"%PDF", "application/pdf")}, {"model_key": "decade"}, "invalid_file_type"),
        (TXT, {"model_key": "era"}, "invalid_model_key"),
    ],
)
def test_preflight_failures_are_422(client, files, data, code):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=FLAT)

    _override(handler)
    r = client.post("/predict/base", files=files, data=data)
    assert r.status_code == 422
    assert r.json()["error"] == code
    assert calls == []


def test_binary_rejects_threshold_from_other_model(client):
    _override(_reply(200, BINARY))
    r = client.post("/predict/binary", files=TXT, data={"model_key": "century", "threshold": "1920"})
    assert r.status_code == 422
    assert r.json() == {"error": "invalid_threshold", "detail": "Please select a valid threshold"}


@pytest.mark.parametrize(
    "upstream, status, code",
    [(400, 400, "invalid_request"), (500, 502, "server_error"), (502, 502, "server_error")],
)
def test_upstream_failures_are_mapped(client, upstream, status, code):
    _override(_reply(upstream, {"detail": "nope"}))
    r = client.post("/predict/base", files=TXT, data={"model_key": "decade"})
    assert r.status_code == status
    assert r.json()["error"] == code


def test_upstream_timeout_is_504(client):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    _override(handler)
    r = client.post("/predict/base", files=TXT, data={"model_key": "decade"})
    assert r.status_code == 504
    assert r.json()["detail"] == "Request timeout. Please try again."


def test_malformed_upstream_body_is_502(client):
    _override(_reply(200, {"top_k_predictions": {"label": "1920"}}))
    r = client.post("/predict/base", files=TXT, data={"model_key": "decade"})
    assert r.status_code == 502
    assert r.json()["error"] == "invalid_response"


def test_threshold_options(client):
    r = client.get("/thresholds/century")
    assert r.json() == {"model_key": "century", "options": ["18", "19", "20"]}
    assert len(client.get("/thresholds/decade").json()["options"]) == 41
    assert client.get("/thresholds/era").status_code == 422


def _events(text: str):
    return [json.loads(line[len("data: ") :]) for line in text.splitlines() if line.startswith("data: {")]


def test_stream_emits_progress_then_result(client):
    _override(_reply(200, FLAT))
    with client.stream("POST", "/predict/base/stream", files=TXT, data={"model_key": "decade"}) as r:
        assert r.status_code == 200
        body = "".join(r.iter_text())

    events = _events(body)
    results = [e for e in events if "result" in e]
    assert len(results) == 1
    assert results[0]["result"]["model_key"] == "decade"
    progress = [e["progress"] for e in events if "progress" in e]
    assert progress[-1] == 100.0
    assert progress == sorted(progress)
    assert body.rstrip().endswith("data: done")


def test_stream_reports_failure_as_event(client):
    _override(_reply(503, {}))
    r = client.post("/predict/binary/stream", files=TXT, data={"model_key": "decade", "threshold": "1920"})
    assert r.status_code == 200
    events = _events(r.text)
    assert {"error": "server_error", "detail": "Server error. Please try again later."} in events
    assert not any("result" in e for e in events)


def test_stream_validates_before_streaming(client):
    _override(_reply(200, FLAT))
    assert client.post("/predict/base/stream", data={"model_key": "decade"}).status_code == 422
    assert client.post("/predict/ternary/stream", files=TXT, data={"model_key": "decade"}).status_code == 404

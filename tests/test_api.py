"""API tests: batch submission and polling, single-screenshot processing, search and stats, with fake external services."""
import time

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.ingest.coordinator import BatchCoordinator, CoordinatorConfig
from app.ingest.processor import ProcessorConfig, ScreenshotProcessor
from app.main import app
from fakes import FakeProvider, FakeTranscripts, youtube_detection


@pytest.fixture
def client(store, resolver):
    with TestClient(app) as c:
        provider = FakeProvider(detections={"yt": youtube_detection()}, failing_payloads={"bad"})
        processor = ScreenshotProcessor(store, provider, resolver, FakeTranscripts(), ProcessorConfig())
        app.state.store = store
        app.state.processor = processor
        app.state.coordinator = BatchCoordinator(processor, CoordinatorConfig.from_settings(settings))
        yield c


def _log(item, title: str, request: dict, response: dict):
    """
    Store logs on the test item so conftest can attach to pytest-html report.
    """
    logs = getattr(item, "_api_logs", [])
    logs.append({"title": title, "request": request, "response": response})
    item._api_logs = logs


def _post(client, item, url, body):
    resp = client.post(url, json=body)
    _log(item, f"POST {url}", {"method": "POST", "url": url, "json": body}, {"status_code": resp.status_code, "json": resp.json()})
    return resp


def _wait_for_batch(client, batch_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/batch/{batch_id}").json()
        if data["status"] != "processing":
            return data
        time.sleep(0.02)
    raise AssertionError(f"batch {batch_id} did not finish")


def test_root_health_limits(client):
    assert client.get("/").json()["docs"] == "/docs"
    assert client.get("/health").json() == {"status": "ok"}
    resp = client.get("/health")
    assert resp.headers["x-request-id"]

    limits = client.get("/limits").json()
    assert limits["max_batch_size"] == settings.max_batch_size
    assert limits["concurrency_limit"] == settings.concurrency_limit
    assert limits["unit_cost"] == settings.unit_cost


def test_batch_runs_to_completion_with_isolated_failure(client, request):
    files = [
        {"filename": "yt.png", "image_base64": "yt"},
        {"filename": "bad.png", "image_base64": "bad"},
        {"filename": "board1.png", "image_base64": "b1"},
        {"filename": "board2.png", "image_base64": "b2"},
        {"filename": "board3.png", "image_base64": "b3"},
    ]
    resp = _post(client, request.node, "/batch", {"files": files})

    assert resp.status_code == 202, resp.text
    submitted = resp.json()
    assert submitted["total_files"] == 5
    assert submitted["estimated_cost"] == pytest.approx(0.4)
    assert submitted["status"] == "processing"

    final = _wait_for_batch(client, submitted["batch_id"])

    assert final["status"] == "completed"
    assert final["successful_files"] == 4
    assert final["failed_files"] == 1
    assert final["processed_files"] == 5
    assert final["actual_cost"] == pytest.approx(0.32)
    by_name = {f["filename"]: f for f in final["files"]}
    assert by_name["bad.png"]["status"] == "failed"
    assert "bad" in by_name["bad.png"]["error"]
    assert by_name["yt.png"]["result"]["video"]["external_id"] == "dw123"


def test_resubmitting_serves_cache_hits(client):
    files = [{"filename": "yt.png", "image_base64": "yt"}]
    first = _wait_for_batch(client, client.post("/batch", json={"files": files}).json()["batch_id"])
    second = _wait_for_batch(client, client.post("/batch", json={"files": files}).json()["batch_id"])

    assert first["actual_cost"] == pytest.approx(0.08)
    assert second["files"][0]["result"]["status"] == "cached"
    assert second["actual_cost"] == 0.0


def test_batch_validation_errors(client, request):
    resp = _post(client, request.node, "/batch", {"files": []})
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "Missing or empty files array"

    dupes = [{"filename": "a.png", "image_base64": "x"}, {"filename": "a.png", "image_base64": "y"}, {"filename": "c.png"}]
    resp = _post(client, request.node, "/batch", {"files": dupes})
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "Validation errors"
    assert len(detail["details"]) == 2


def test_batch_too_large(client):
    files = [{"filename": f"{i}.png", "image_base64": "x"} for i in range(settings.max_batch_size + 1)]
    resp = client.post("/batch", json={"files": files})
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "Batch size too large"


def test_unknown_batch_is_404(client):
    assert client.get("/batch/does-not-exist").status_code == 404


def test_process_single_screenshot(client, request):
    resp = _post(client, request.node, "/process", {"filename": "yt.png", "image_base64": "yt"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "success"
    assert body["url"] == "https://www.youtube.com/watch?v=dw123"

    again = client.post("/process", json={"filename": "yt.png", "image_base64": "yt"}).json()
    assert again["status"] == "cached"
    assert again["processing_cost"] == 0.0


def test_process_validation(client):
    assert client.post("/process", json={"filename": "x.png"}).status_code == 400
    too_big = "A" * (int(settings.max_payload_mb * 1024 * 1024 * 4 / 3) + 16)
    assert client.post("/process", json={"filename": "x.png", "image_base64": too_big}).status_code == 413


def test_process_failure_is_generic_500(client):
    resp = client.post("/process", json={"filename": "bad.png", "image_base64": "bad"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Internal server error"


def test_search_and_stats(client, request):
    client.post("/process", json={"filename": "yt.png", "image_base64": "yt"})
    client.post("/process", json={"filename": "board.png", "image_base64": "b"})

    resp = _post(client, request.node, "/search", {"query": "planning"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["stats"]["total_knowledge"] == 2
    assert body["stats"]["youtube_videos"] == 1
    assert body["stats"]["other_content"] == 1
    assert {r["fingerprint"] for r in body["results"]} == {"yt.png", "board.png"}

    assert client.post("/search", json={"query": ""}).status_code == 422

    stats = client.get("/stats").json()
    assert stats["overview"]["total_knowledge"] == 2
    assert stats["content_types"] == {"youtube_videos": 1, "other_content": 1}

"""HTTP surface for rendering and downloading recordings."""

from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from canvas_record import app as app_module
from canvas_record.errors import EncoderInitError


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    application = app_module.create_app(tmp_path, capability_probe=lambda: None)
    with TestClient(application) as test_client:
        yield test_client


def test_render_gif_and_download(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/recordings",
        json={"name": "demo", "width": 16, "height": 16, "duration": 0.5, "frame_rate": 4,
              "extension": "gif"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["encoder"] == "GIFEncoder"
    assert body["frames"] == 2
    (entry,) = body["files"]
    assert entry["filename"].startswith("demo-")
    assert entry["filename"].endswith("-16x16@4fps.gif")
    assert entry["mime_type"] == "image/gif"
    assert (tmp_path / entry["filename"]).exists()

    listing = client.get("/api/recordings").json()["recordings"]
    assert [item["filename"] for item in listing] == [entry["filename"]]

    download = client.get(f"/api/recordings/{entry['filename']}")
    assert download.status_code == 200
    assert download.headers["content-type"] == "image/gif"
    assert download.content.startswith(b"GIF8")


def test_render_png_sequence(client: TestClient) -> None:
    response = client.post(
        "/api/recordings",
        json={"name": "still", "width": 8, "height": 6, "duration": 0.3, "frame_rate": 10,
              "extension": "png"},
    )

    assert response.status_code == 200
    files = response.json()["files"]
    assert len(files) == 3
    assert [item["filename"][-10:] for item in files] == [
        "-00000.png",
        "-00001.png",
        "-00002.png",
    ]


def test_unsupported_extension_falls_back(client: TestClient) -> None:
    response = client.post(
        "/api/recordings",
        json={"width": 16, "height": 16, "duration": 0.1, "frame_rate": 10, "extension": "tiff"},
    )

    assert response.status_code == 200
    assert response.json()["extension"] == "mp4"


def test_invalid_payload_rejected(client: TestClient) -> None:
    response = client.post("/api/recordings", json={"width": 0})

    assert response.status_code == 422


def test_encoder_failures_surface_as_server_errors(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def broken_init(self, config) -> None:
        raise EncoderInitError("no codec")

    monkeypatch.setattr(app_module.Recorder, "init", broken_init)

    response = client.post("/api/recordings", json={"extension": "gif"})

    assert response.status_code == 500
    assert response.json()["detail"] == "no codec"


def test_missing_recording_returns_404(client: TestClient) -> None:
    assert client.get("/api/recordings/absent.mp4").status_code == 404


def test_listing_empty_directory(tmp_path: Path) -> None:
    application = app_module.create_app(tmp_path / "missing", capability_probe=lambda: None)
    with TestClient(application) as test_client:
        assert test_client.get("/api/recordings").json() == {"recordings": []}

"""
Tests for the HTTP API: video session, annotations, export and Drive endpoints.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from core.errors import InvalidDuration
from core.models import Artifact
from delivery.drive import DriveClient
from engine.transcode import TranscodeEngine
from backend.main import app
from backend.api import drive, export, transcoder, videos


CANVAS = {"width": 640, "height": 360}
VIDEO = {"width": 1920, "height": 1080}
FOLDER_URL = "https://drive.google.com/drive/folders/1AbC-d_EfG"


class FakeEngine:
    """Transcode engine stand-in; fails on the filenames in fail_on."""

    def __init__(self, fail_on: tuple = ()):
        self.fail_on = set(fail_on)
        self.extracted: list[str] = []

    def ensure_ready(self):
        pass

    def extract_clip(self, source_bytes, source_crop, time_range, filename="output.mp4"):
        if filename in self.fail_on:
            raise InvalidDuration(f"Invalid duration for {filename}")
        self.extracted.append(filename)
        return Artifact(filename=filename, payload=f"{filename}:{source_crop.filter_expression}".encode())


def drive_handler(token_ok: bool = True):
    uploaded = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/about"):
            if not token_ok:
                return httpx.Response(401, json={"error": {"message": "Invalid Credentials"}})
            return httpx.Response(200, json={"user": {"displayName": "Test User"}})
        if request.url.path.startswith("/upload/"):
            uploaded.append(request)
            return httpx.Response(200, json={"id": f"file{len(uploaded)}"})
        if "/files/" in request.url.path:
            return httpx.Response(200, json={"name": "Clips"})
        return httpx.Response(404)

    handler.uploaded = uploaded
    return handler


@pytest.fixture(autouse=True)
def clean_session(monkeypatch):
    videos.reset_session()
    monkeypatch.setattr(export, "_export_job", None)
    monkeypatch.setattr(export, "LOCAL_SAVE_DELAY", 0)
    yield
    videos.reset_session()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def fake_engine(monkeypatch):
    engine = FakeEngine()
    monkeypatch.setattr(export, "get_transcode_engine", lambda binary: engine)
    return engine


def use_drive(monkeypatch, handler):
    def make_client(token):
        return DriveClient(token, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(drive, "make_drive_client", make_client)
    monkeypatch.setattr(export, "make_drive_client", make_client)


def upload_video(client, payload: bytes = b"fake video bytes", content_type: str = "video/mp4"):
    return client.post("/api/video", files={"file": ("clip.mp4", payload, content_type)})


def add_annotation(client, label: str = "hello", start: float = 0.0, end: float = 2.0, **extra):
    body = {
        "label": label,
        "crop_area": {"x": 50, "y": 50, "width": 300, "height": 200},
        "time_range": {"start": start, "end": end},
        **extra,
    }
    return client.post("/api/annotations", json=body)


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["service"] == "clipmark-api"


class TestVideoEndpoints:
    """Tests for the source video session."""

    def test_upload_video(self, client):
        response = upload_video(client)

        assert response.status_code == 200
        assert response.json() == {"filename": "clip.mp4", "content_type": "video/mp4", "size": 16}
        assert client.get("/api/video").json()["filename"] == "clip.mp4"

    def test_rejects_non_video(self, client):
        response = upload_video(client, content_type="text/plain")
        assert response.status_code == 415
        assert client.get("/api/video").json() is None

    def test_rejects_oversize(self, client, monkeypatch):
        monkeypatch.setattr(videos, "MAX_SOURCE_BYTES", 4)
        response = upload_video(client, payload=b"0123456789")
        assert response.status_code == 413

    def test_new_video_clears_annotations(self, client):
        upload_video(client)
        add_annotation(client)

        upload_video(client)

        assert client.get("/api/annotations").json() == []

    def test_close_video(self, client):
        upload_video(client)
        add_annotation(client)

        assert client.delete("/api/video").status_code == 200
        assert client.get("/api/video").json() is None
        assert client.get("/api/annotations").json() == []


class TestAnnotationEndpoints:
    """Tests for annotation CRUD, numbering and sheets."""

    def test_create_generates_filenames(self, client):
        first = add_annotation(client).json()
        second = add_annotation(client, label="bye").json()

        assert first["filename"] == "VTV0000.mp4"
        assert second["filename"] == "VTV0001.mp4"
        assert [a["label"] for a in client.get("/api/annotations").json()] == ["hello", "bye"]

    def test_start_index(self, client):
        assert client.put("/api/annotations/start-index", json={"start_index": 10}).status_code == 200
        assert client.get("/api/annotations/start-index").json() == {"start_index": 10}

        assert add_annotation(client).json()["filename"] == "VTV0010.mp4"

    def test_negative_start_index_rejected(self, client):
        response = client.put("/api/annotations/start-index", json={"start_index": -1})
        assert response.status_code == 422

    def test_create_rejects_empty_label(self, client):
        assert add_annotation(client, label="   ").status_code == 400

    def test_create_rejects_bad_time_range(self, client):
        assert add_annotation(client, start=3, end=1).status_code == 400

    @pytest.mark.parametrize("width", ["NaN", "Infinity"])
    def test_create_rejects_non_finite_crop(self, client, width):
        body = (
            '{"label": "hello", '
            '"crop_area": {"x": 0, "y": 0, "width": ' + width + ', "height": 100}, '
            '"time_range": {"start": 0, "end": 2}}'
        )

        response = client.post(
            "/api/annotations", content=body, headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert client.get("/api/annotations").json() == []

    def test_update_rejects_non_finite_time(self, client):
        ann = add_annotation(client).json()
        body = '{"time_range": {"start": 0, "end": NaN}}'

        response = client.put(
            f"/api/annotations/{ann['id']}", content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert client.get(f"/api/annotations/{ann['id']}").json()["time_range"]["end"] == 2.0

    def test_get_update_delete(self, client):
        ann = add_annotation(client, postag="N").json()
        url = f"/api/annotations/{ann['id']}"

        assert client.get(url).json()["postag"] == "N"

        updated = client.put(url, json={"label": "updated", "side_view": True}).json()
        assert updated["label"] == "updated"
        assert updated["side_view"] is True
        assert updated["filename"] == ann["filename"]
        assert updated["time_range"] == ann["time_range"]

        assert client.delete(url).status_code == 200
        assert client.get(url).status_code == 404

    def test_update_rejects_bad_crop(self, client):
        ann = add_annotation(client).json()
        response = client.put(
            f"/api/annotations/{ann['id']}",
            json={"crop_area": {"x": 0, "y": 0, "width": 0, "height": 10}},
        )
        assert response.status_code == 400

    def test_unknown_annotation(self, client):
        assert client.get("/api/annotations/missing").status_code == 404

    def test_export_csv(self, client):
        add_annotation(client)

        response = client.get("/api/annotations/export")

        assert response.status_code == 200
        assert response.content.startswith(b"\xef\xbb\xbf")
        assert "attachment; filename=\"annotations_" in response.headers["content-disposition"]
        assert b"VTV0000.mp4" in response.content

    def test_import_replaces_session(self, client):
        add_annotation(client, label="old")
        sheet = (
            "ID_video,Meaning,Start Time (s),End Time (s),Crop X,Crop Y,Crop Width,Crop Height\n"
            "A.mp4,one,0,1,0,0,100,100\n"
            "B.mp4,,0,1,0,0,100,100\n"
            "C.mp4,three,1,2,0,0,100,100\n"
        ).encode()

        response = client.post(
            "/api/annotations/import", files={"file": ("sheet.csv", sheet, "text/csv")}
        )

        assert response.status_code == 200
        labels = [a["label"] for a in client.get("/api/annotations").json()]
        assert labels == ["one", "three"]

    def test_import_append(self, client):
        add_annotation(client, label="old")
        sheet = (
            "ID_video,Meaning,Start Time (s),End Time (s),Crop X,Crop Y,Crop Width,Crop Height\n"
            "A.mp4,new,0,1,0,0,100,100\n"
        ).encode()

        client.post(
            "/api/annotations/import?append=true",
            files={"file": ("sheet.csv", sheet, "text/csv")},
        )

        labels = [a["label"] for a in client.get("/api/annotations").json()]
        assert labels == ["old", "new"]

    def test_import_rejects_unsupported_type(self, client):
        response = client.post(
            "/api/annotations/import", files={"file": ("sheet.txt", b"a,b\n", "text/plain")}
        )
        assert response.status_code == 400

    def test_import_rejects_sheet_without_valid_rows(self, client):
        sheet = (
            "ID_video,Meaning,Start Time (s),End Time (s),Crop X,Crop Y,Crop Width,Crop Height\n"
            "A.mp4,,0,1,0,0,100,100\n"
        ).encode()
        response = client.post(
            "/api/annotations/import", files={"file": ("sheet.csv", sheet, "text/csv")}
        )
        assert response.status_code == 400

    def test_validate(self, client):
        add_annotation(client)
        report = client.get("/api/annotations/validate").json()
        assert report["is_valid"] is True
        assert report["total_annotations"] == 1


class TestExportEndpoints:
    """Tests for the clip export route."""

    def request_body(self, tmp_path, **extra) -> dict:
        body = {
            "canvas_resolution": CANVAS,
            "video_resolution": VIDEO,
            "output_dir": str(tmp_path / "out"),
        }
        body.update(extra)
        return body

    def test_requires_video(self, client, tmp_path, fake_engine):
        response = client.post("/api/export/clips", json=self.request_body(tmp_path))
        assert response.status_code == 400
        assert response.json()["detail"] == "No video loaded"

    def test_requires_annotations(self, client, tmp_path, fake_engine):
        upload_video(client)
        response = client.post("/api/export/clips", json=self.request_body(tmp_path))
        assert response.status_code == 400

    def test_requires_resolutions(self, client, tmp_path, fake_engine):
        upload_video(client)
        add_annotation(client)

        response = client.post(
            "/api/export/clips", json=self.request_body(tmp_path, video_resolution=None)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing resolution info"
        assert fake_engine.extracted == []

    def test_zero_resolution_rejected(self, client, tmp_path, fake_engine):
        upload_video(client)
        add_annotation(client)

        response = client.post(
            "/api/export/clips",
            json=self.request_body(tmp_path, canvas_resolution={"width": 0, "height": 360}),
        )

        assert response.status_code == 400

    def test_local_export(self, client, tmp_path, fake_engine):
        upload_video(client)
        add_annotation(client)
        add_annotation(client, label="bye")

        response = client.post("/api/export/clips", json=self.request_body(tmp_path))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["exported"] == 2
        assert data["delivered"] == 2
        assert data["error"] is None
        assert data["summary"] == "Delivered all 2 clips (local)"

        out = tmp_path / "out"
        assert sorted(p.name for p in out.iterdir()) == ["VTV0000.mp4", "VTV0001.mp4"]
        # 300x200 at (50, 50) on 640x360 maps to 900x600 at (150, 150) on 1920x1080
        assert (out / "VTV0000.mp4").read_bytes() == b"VTV0000.mp4:crop=900:600:150:150"

    def test_export_subset(self, client, tmp_path, fake_engine):
        upload_video(client)
        add_annotation(client)
        second = add_annotation(client, label="bye").json()

        response = client.post(
            "/api/export/clips",
            json=self.request_body(tmp_path, annotation_ids=[second["id"]]),
        )

        assert response.json()["exported"] == 1
        assert fake_engine.extracted == ["VTV0001.mp4"]

    def test_batch_failure_delivers_completed(self, client, tmp_path, monkeypatch):
        engine = FakeEngine(fail_on=("VTV0001.mp4",))
        monkeypatch.setattr(export, "get_transcode_engine", lambda binary: engine)
        upload_video(client)
        for label in ("a", "b", "c"):
            add_annotation(client, label=label)

        response = client.post("/api/export/clips", json=self.request_body(tmp_path))

        assert response.status_code == 200
        data = response.json()
        assert data["exported"] == 1
        assert data["delivered"] == 1
        assert data["error"]["filename"] == "VTV0001.mp4"
        assert "1 of 3 clips delivered" in data["summary"]
        assert engine.extracted == ["VTV0000.mp4"]
        assert [p.name for p in (tmp_path / "out").iterdir()] == ["VTV0000.mp4"]

    def test_progress_after_export(self, client, tmp_path, fake_engine):
        upload_video(client)
        add_annotation(client)
        client.post("/api/export/clips", json=self.request_body(tmp_path))

        progress = client.get("/api/export/progress").json()

        assert progress["running"] is False
        assert progress["percent"] == 100.0
        assert progress["index"] == 1
        assert progress["total"] == 1
        assert progress["summary"]

    def test_progress_before_any_export(self, client):
        progress = client.get("/api/export/progress").json()
        assert progress == {"running": False, "percent": 0.0, "index": -1, "total": 0, "summary": ""}

    def test_concurrent_export_rejected(self, client, tmp_path, fake_engine):
        upload_video(client)
        add_annotation(client)

        assert export._export_lock.acquire(blocking=False)
        try:
            response = client.post("/api/export/clips", json=self.request_body(tmp_path))
        finally:
            export._export_lock.release()

        assert response.status_code == 409
        assert fake_engine.extracted == []

    def test_drive_export(self, client, monkeypatch, fake_engine):
        handler = drive_handler()
        use_drive(monkeypatch, handler)
        upload_video(client)
        add_annotation(client)

        response = client.post(
            "/api/export/clips",
            json={
                "canvas_resolution": CANVAS,
                "video_resolution": VIDEO,
                "sink": "drive",
                "drive_token": "tok",
                "drive_folder_url": FOLDER_URL,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["delivered"] == 1
        assert data["outcomes"][0]["location"] == "file1"
        assert len(handler.uploaded) == 1

    def test_drive_export_bad_token(self, client, monkeypatch, fake_engine):
        use_drive(monkeypatch, drive_handler(token_ok=False))
        upload_video(client)
        add_annotation(client)

        response = client.post(
            "/api/export/clips",
            json={
                "canvas_resolution": CANVAS,
                "video_resolution": VIDEO,
                "sink": "drive",
                "drive_token": "bad",
                "drive_folder_url": FOLDER_URL,
            },
        )

        assert response.status_code == 401
        assert fake_engine.extracted == []
        assert not export._export_lock.locked()

    def test_drive_export_bad_folder(self, client, fake_engine):
        upload_video(client)
        add_annotation(client)

        response = client.post(
            "/api/export/clips",
            json={
                "canvas_resolution": CANVAS,
                "video_resolution": VIDEO,
                "sink": "drive",
                "drive_token": "tok",
                "drive_folder_url": "https://example.com/nope",
            },
        )

        assert response.status_code == 400


class TestDriveEndpoints:
    """Tests for the Drive connect and folder routes."""

    def test_connect(self, client, monkeypatch):
        use_drive(monkeypatch, drive_handler())
        response = client.post("/api/drive/connect", json={"token": "tok"})
        assert response.json() == {"connected": True, "user": "Test User"}

    def test_connect_rejected(self, client, monkeypatch):
        use_drive(monkeypatch, drive_handler(token_ok=False))
        response = client.post("/api/drive/connect", json={"token": "bad"})
        assert response.status_code == 401

    def test_folder(self, client, monkeypatch):
        use_drive(monkeypatch, drive_handler())
        response = client.post("/api/drive/folder", json={"token": "tok", "folder_url": FOLDER_URL})
        assert response.json() == {"folder_id": "1AbC-d_EfG", "name": "Clips"}

    def test_folder_invalid_url(self, client):
        response = client.post("/api/drive/folder", json={"token": "tok", "folder_url": "nope"})
        assert response.status_code == 400


class TestEngineEndpoints:
    """Tests for engine load/status/unload routes."""

    def test_load_and_status(self, client, monkeypatch, engine):
        monkeypatch.setattr(transcoder, "get_transcode_engine", lambda binary: engine)

        assert client.get("/api/engine/status").json()["state"] == "uninitialized"

        response = client.post("/api/engine/load")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["version"].startswith("ffmpeg version 6.1-test")
        assert client.get("/api/engine/status").json()["state"] == "ready"

    def test_load_failure(self, client, monkeypatch, tmp_path):
        broken = TranscodeEngine(ffmpeg_binary=str(tmp_path / "missing-ffmpeg"))
        monkeypatch.setattr(transcoder, "get_transcode_engine", lambda binary: broken)

        response = client.post("/api/engine/load")

        assert response.status_code == 500
        assert client.get("/api/engine/status").json()["state"] == "failed"

    def test_unload(self, client):
        assert client.post("/api/engine/unload").json() == {"status": "unloaded"}

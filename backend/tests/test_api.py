import base64
import io
import json

import pytest
from PIL import Image

from services import screenshot as screenshot_service


def save_vtt(client, objects, video="clip.mp4", **extra):
    body = {"videoId": video, "videoFileName": video, "duration": 30, "objects": objects}
    body.update(extra)
    return client.post("/api/webvtt", json=body)


def read_vtt(client, video="clip.mp4"):
    return client.get("/api/vtt-coordinates", params={"videoFileName": video})


def png_data_url(size=(8, 6), color=(255, 0, 0)) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def test_ping(client):
    response = client.get("/api/ping")
    assert response.status_code == 200
    assert "timestamp" in response.json()


# ---------------------------------------------------------
# WebVTT
# ---------------------------------------------------------
def test_save_then_read(client, data_root):
    response = save_vtt(client, [
        {"name": "A", "videoCurrentTime": 5.0, "coordinates": {"type": "click", "clickPoint": {"x": 1, "y": 2}}},
    ])
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["fileName"] == "clip-webvtt.vtt"
    assert body["objectCount"] == 1
    assert body["details"]["hadExistingFile"] is False
    assert response.headers["cache-control"] == "no-store"
    assert (data_root / "clip" / "clip-webvtt.vtt").read_text(encoding="utf-8").startswith("WEBVTT")

    response = read_vtt(client)
    assert response.status_code == 200
    body = response.json()
    assert body["coordinatesCount"] == 1
    item = body["coordinates"][0]
    assert item["objectName"] == "A"
    assert item["videoTime"] == 5.0
    assert item["code"].startswith("CODE_RECT-")
    assert item["category"] == "기타"
    assert item["finallink"] == f"http://www.naver.com/00/{item['code']}"
    assert item["position"] == {"type": "click", "clickPoint": {"x": 1.0, "y": 2.0}}
    assert item["coordinates"] == item["position"]


def test_second_save_merges(client):
    save_vtt(client, [{"name": "A", "videoCurrentTime": 5.0, "code": "C1", "category": "GTIN", "dlReservoirDomain": "http://x.com"}])
    response = save_vtt(client, [
        {"name": "A", "videoCurrentTime": 9.0, "additionalInfo": "updated"},
        {"name": "B", "videoCurrentTime": 5.05},
        {"videoCurrentTime": 1.0},
    ])
    assert response.status_code == 200
    assert response.json()["details"]["hadExistingFile"] is True
    assert response.json()["objectCount"] == 2

    coordinates = read_vtt(client).json()["coordinates"]
    assert [c["objectName"] for c in coordinates] == ["A", "B"]
    assert [c["videoTime"] for c in coordinates] == [5.0, 5.15]
    assert coordinates[0]["info"] == "updated"
    assert coordinates[0]["finallink"] == "http://x.com/01/C1"


def test_duration_is_kept_when_not_sent(client, data_root):
    save_vtt(client, [{"name": "A"}], duration=42.5)
    save_vtt(client, [{"name": "B", "videoCurrentTime": 3}], duration=0)

    text = (data_root / "clip" / "clip-webvtt.vtt").read_text(encoding="utf-8")
    assert "00:00:00.000 --> 00:00:42.500" in text


def test_save_requires_video_identity(client):
    response = client.post("/api/webvtt", json={"videoId": "clip.mp4", "objects": []})
    assert response.status_code == 400


def test_read_errors(client):
    assert client.get("/api/vtt-coordinates").status_code == 400
    assert read_vtt(client, "never-saved.mp4").status_code == 404


def test_delete_object(client):
    save_vtt(client, [{"name": "A", "videoCurrentTime": 1}, {"name": "B", "videoCurrentTime": 2}])

    response = client.post("/api/coordinate/delete", json={"videoFileName": "clip.mp4", "objectName": "A"})
    assert response.status_code == 200
    assert response.json()["objectCount"] == 1
    assert [c["objectName"] for c in read_vtt(client).json()["coordinates"]] == ["B"]

    response = client.post("/api/coordinate/delete", json={"videoFileName": "clip.mp4", "objectName": "A"})
    assert response.status_code == 404
    response = client.post("/api/coordinate/delete", json={"videoFileName": "other.mp4", "objectName": "A"})
    assert response.status_code == 404


def test_rename_object(client):
    save_vtt(client, [{"name": "A", "videoCurrentTime": 1, "code": "C1"}, {"name": "B", "videoCurrentTime": 2}])

    def rename(old, new):
        return client.post(
            "/api/coordinate/update",
            json={"videoFileName": "clip.mp4", "oldName": old, "newName": new},
        )

    assert rename("A", "B").status_code == 409
    assert rename("A", "  ").status_code == 400
    assert rename("missing", "Z").status_code == 404

    response = rename("A", " Z ")
    assert response.status_code == 200
    assert response.json()["newName"] == "Z"

    coordinates = read_vtt(client).json()["coordinates"]
    assert [c["objectName"] for c in coordinates] == ["Z", "B"]
    assert coordinates[0]["code"] == "C1"


# ---------------------------------------------------------
# Drawings
# ---------------------------------------------------------
def test_drawing_geometry_is_used_on_save(client):
    drawing = {
        "id": "d-1",
        "type": "rectangle",
        "startPoint": {"x": 10, "y": 20},
        "endPoint": {"x": 30, "y": 40},
        "videoId": "flow.mp4",
        "videoCurrentTime": 3.0,
    }
    response = client.post("/api/drawing", json=drawing)
    assert response.status_code == 200
    assert response.json()["drawingId"] == "d-1"

    response = client.post("/api/drawing/link", json={"videoId": "flow.mp4", "drawingId": "d-1", "objectName": "cup"})
    assert response.status_code == 200
    assert response.json()["geometry"]["type"] == "rectangle"

    # a drawing can only be linked once
    response = client.post("/api/drawing/link", json={"videoId": "flow.mp4", "drawingId": "d-1", "objectName": "cup"})
    assert response.status_code == 404

    save_vtt(client, [{"name": "cup", "videoCurrentTime": 3.0}], video="flow.mp4")
    position = read_vtt(client, "flow.mp4").json()["coordinates"][0]["position"]
    assert position == {
        "type": "rectangle",
        "startPoint": {"x": 10.0, "y": 20.0},
        "endPoint": {"x": 30.0, "y": 40.0},
    }


def test_drawing_cancel(client):
    client.post("/api/drawing", json={"id": "d-2", "type": "path", "points": [{"x": 1, "y": 1}], "videoId": "cancel.mp4"})

    response = client.post("/api/drawing/cancel", json={"videoId": "cancel.mp4", "drawingId": "d-2"})
    assert response.json()["removed"] is True
    response = client.post("/api/drawing/cancel", json={"videoId": "cancel.mp4", "drawingId": "d-2"})
    assert response.json()["removed"] is False

    response = client.post("/api/drawing/link", json={"videoId": "cancel.mp4", "drawingId": "d-2", "objectName": "x"})
    assert response.status_code == 404


@pytest.mark.parametrize(
    "drawing",
    [
        {"type": "rectangle"},
        {"id": "d-3"},
        {"id": "d-3", "type": "circle"},
    ],
)
def test_drawing_validation(client, drawing):
    assert client.post("/api/drawing", json=drawing).status_code == 400


# ---------------------------------------------------------
# Videos
# ---------------------------------------------------------
def upload(client, name="clip.mp4", content=b"not really a video", **form):
    return client.post(
        "/api/upload-file",
        files={"video": (name, content, "video/mp4")},
        data=form,
    )


def test_upload_and_serve(client, data_root):
    response = upload(client, duration="12.5")
    assert response.status_code == 200
    body = response.json()
    assert body["fileName"] == "clip.mp4"
    assert body["videoFolder"] == "clip"
    assert body["url"] == "/data/clip/clip.mp4"
    assert body["metadata"]["duration"] == 12.5
    assert (data_root / "clip" / "clip.mp4").read_bytes() == b"not really a video"

    records = json.loads((data_root / "clip" / "clip-uploads.json").read_text(encoding="utf-8"))
    assert records[0]["originalName"] == "clip.mp4"

    response = client.get("/data/clip/clip.mp4")
    assert response.status_code == 200
    assert response.content == b"not really a video"
    assert response.headers["content-type"] == "video/mp4"

    assert client.get("/data/clip/missing.mp4").status_code == 404


def test_duplicate_upload_gets_numbered_folder(client, data_root):
    upload(client)
    response = upload(client, content=b"second")

    body = response.json()
    assert body["fileName"] == "clip(1).mp4"
    assert body["videoFolder"] == "clip(1)"
    assert (data_root / "clip(1)" / "clip(1).mp4").read_bytes() == b"second"

    videos = client.get("/api/videos").json()["videos"]
    assert set(videos) == {"clip/clip.mp4", "clip(1)/clip(1).mp4"}


def test_upload_rejects_unknown_extension(client):
    assert upload(client, name="notes.txt").status_code == 400


def test_check_filename(client, data_root):
    body = client.get("/api/check-filename", params={"filename": "clip.mp4"}).json()
    assert body["exists"] is False
    assert body["suggestedName"] == "clip.mp4"

    (data_root / "clip").mkdir()
    (data_root / "clip(1)").mkdir()
    body = client.get("/api/check-filename", params={"filename": "clip.mp4"}).json()
    assert body["exists"] is True
    assert body["suggestedName"] == "clip(2).mp4"
    assert body["videoFolder"] == "clip(2)"
    assert body["conflictCount"] == 2

    assert client.get("/api/check-filename").status_code == 400


def test_delete_video(client, data_root):
    upload(client)
    save_vtt(client, [{"name": "A"}])

    response = client.request("DELETE", "/api/video", json={"videoId": "clip.mp4", "videoFileName": "clip.mp4"})
    assert response.status_code == 200
    assert response.json()["videoFolder"] == "clip"
    assert not (data_root / "clip").exists()

    response = client.request("DELETE", "/api/video", json={"videoFileName": "clip.mp4"})
    assert response.status_code == 404


# ---------------------------------------------------------
# Screenshots
# ---------------------------------------------------------
def test_screenshot_save_and_find(client, data_root):
    response = client.post("/api/save-screenshot", json={
        "videoId": "clip.mp4",
        "drawingId": "d-1",
        "imageData": png_data_url(),
        "videoCurrentTime": 65.2,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["imageUrl"] == "/data/clip/clip-screenshot-01-05-d-1.png"
    assert (body["width"], body["height"]) == (8, 6)

    # a new capture of the same drawing replaces the old one
    client.post("/api/save-screenshot", json={
        "videoId": "clip.mp4",
        "drawingId": "d-1",
        "imageData": png_data_url(),
        "videoCurrentTime": 3,
    })
    assert [p.name for p in (data_root / "clip").glob("*-screenshot-*")] == ["clip-screenshot-00-03-d-1.png"]

    response = client.get("/api/screenshot", params={"videoId": "clip.mp4", "drawingId": "d-1"})
    assert response.status_code == 200
    assert response.json()["imageUrl"] == "/data/clip/clip-screenshot-00-03-d-1.png"

    with Image.open(data_root / "clip" / "clip-screenshot-00-03-d-1.png") as image:
        assert image.format == "PNG"

    response = client.get("/api/screenshot", params={"videoId": "clip.mp4", "drawingId": "other"})
    assert response.status_code == 404


@pytest.mark.parametrize(
    "image_data",
    [
        "",
        "not a data url",
        "data:image/png;base64,@@@@",
        "data:image/png;base64," + base64.b64encode(b"plain text").decode("ascii"),
    ],
)
def test_screenshot_rejects_bad_images(client, image_data):
    response = client.post("/api/save-screenshot", json={
        "videoId": "clip.mp4",
        "drawingId": "d-1",
        "imageData": image_data,
    })
    assert response.status_code == 400


def test_screenshot_size_limit(client, monkeypatch):
    monkeypatch.setattr(screenshot_service, "MAX_SCREENSHOT_BYTES", 16)
    response = client.post("/api/save-screenshot", json={
        "videoId": "clip.mp4",
        "drawingId": "d-1",
        "imageData": png_data_url(),
    })
    assert response.status_code == 413


# ---------------------------------------------------------
# Editor state
# ---------------------------------------------------------
def test_save_data_versions(client, data_root):
    (data_root / "clip").mkdir()
    (data_root / "clip" / "clip.mp4").write_bytes(b"x")
    body = {
        "videoId": "clip.mp4",
        "videoFileName": "clip.mp4",
        "objects": [{"name": "A"}],
        "drawings": [{"id": "d-1"}, {"id": "d-2"}],
        "duration": 12.0,
    }

    first = client.post("/api/save-data", json=body).json()
    assert first["projectVersion"] == 1
    assert first["statistics"]["drawingCount"] == 2

    second = client.post("/api/save-data", json=body).json()
    assert second["projectVersion"] == 2

    index = json.loads((data_root / "saved-data.json").read_text(encoding="utf-8"))
    assert len(index["savedProjects"]) == 1
    assert index["savedProjects"][0]["version"] == 2

    record = json.loads((data_root / "clip" / "clip-saved-data.json").read_text(encoding="utf-8"))
    assert record["objects"] == [{"name": "A"}]


def test_save_data_requires_video_id(client):
    assert client.post("/api/save-data", json={"objects": []}).status_code == 422


def test_screenshots_of_overlapping_drawing_ids_are_kept_apart(client, data_root):
    for drawing_id in ("x-1", "1"):
        response = client.post("/api/save-screenshot", json={
            "videoId": "clip.mp4",
            "drawingId": drawing_id,
            "imageData": png_data_url(),
        })
        assert response.status_code == 200

    assert sorted(p.name for p in (data_root / "clip").glob("*-screenshot-*")) == [
        "clip-screenshot-00-00-1.png",
        "clip-screenshot-00-00-x-1.png",
    ]
    found = client.get("/api/screenshot", params={"videoId": "clip.mp4", "drawingId": "1"}).json()
    assert found["imageUrl"] == "/data/clip/clip-screenshot-00-00-1.png"
    found = client.get("/api/screenshot", params={"videoId": "clip.mp4", "drawingId": "x-1"}).json()
    assert found["imageUrl"] == "/data/clip/clip-screenshot-00-00-x-1.png"


def test_save_data_skips_malformed_index_entries(client, data_root):
    (data_root / "saved-data.json").write_text(
        json.dumps({"savedProjects": ["junk", None, {"videoId": "other.mp4", "version": 3}]}),
        encoding="utf-8",
    )

    response = client.post("/api/save-data", json={"videoId": "clip.mp4"})
    assert response.status_code == 200
    assert response.json()["projectVersion"] == 1

    index = json.loads((data_root / "saved-data.json").read_text(encoding="utf-8"))
    assert [p["videoId"] for p in index["savedProjects"]] == ["other.mp4", "clip.mp4"]
    assert index["savedProjects"][0]["version"] == 3


@pytest.mark.parametrize("path", ["clip", "clip/nested/clip.mp4"])
def test_data_paths_outside_a_video_folder_are_rejected(client, data_root, path):
    (data_root / "clip" / "nested").mkdir(parents=True)
    (data_root / "clip" / "nested" / "clip.mp4").write_bytes(b"x")
    assert client.get(f"/data/{path}").status_code == 400


def test_video_listing_ignores_other_files(client, data_root):
    (data_root / "clip").mkdir()
    (data_root / "clip" / "clip.mp4").write_bytes(b"x")
    (data_root / "clip" / "clip-webvtt.vtt").write_text("WEBVTT", encoding="utf-8")
    (data_root / "stray.mp4").write_bytes(b"x")

    assert client.get("/api/videos").json()["videos"] == ["clip/clip.mp4"]

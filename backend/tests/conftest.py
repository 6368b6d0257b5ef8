"""Shared fixtures: every test gets its own data directory."""
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from models.annotated_object import AnnotatedObject, ContainerHeader
from services import storage


@pytest.fixture
def data_root(tmp_path: Path, monkeypatch) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    monkeypatch.setattr(storage, "DATA_ROOT", root)
    return root


@pytest.fixture
def client(data_root):
    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sample_objects() -> list[AnnotatedObject]:
    return [
        AnnotatedObject(
            name="Object(1)",
            temporal_marker=5.5,
            code="CODE_RECT-123",
            category="기타",
            domain="http://www.naver.com",
            info="AI가 자동으로 탐지한 객체입니다.",
            geometry={"type": "rectangle", "startPoint": {"x": 100, "y": 100}, "endPoint": {"x": 200, "y": 200}},
        ),
        AnnotatedObject(
            name="컵",
            temporal_marker=10.2,
            code="C1",
            category="GTIN",
            domain="http://x.com",
            info="클릭으로 생성된 객체입니다.",
            geometry={"type": "click", "clickPoint": {"x": 150, "y": 150}},
            extra={"confidence": 0.87},
        ),
        AnnotatedObject(
            name="path object",
            temporal_marker=12.0,
            code="P-7",
            category="GLN",
            domain="https://example.org",
            info="multi\nline",
            geometry={"type": "path", "points": [{"x": 1, "y": 2}, {"x": 3.5, "y": 4.25}]},
            polygon=[[0, 0], [1, 0], [1, 1]],
        ),
    ]


@pytest.fixture
def header() -> ContainerHeader:
    return ContainerHeader(video_name="테스트 영상.mp4", duration=30.0)

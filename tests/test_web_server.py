import io
import json
import zipfile

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from pydantic import ValidationError

from sheet2sprite.core import DividedGrid, FreeRegions, UniformGrid
from sheet2sprite.web.server import CompositingRequest, ExportRequest, PartitionRequest, create_app


@pytest.fixture()
def client():
    return TestClient(create_app())


def _png(columns=4, rows=1, cell=(16, 24)):
    image = Image.new("RGBA", (columns * cell[0], rows * cell[1]), (0, 0, 0, 0))
    for row in range(rows):
        for col in range(columns):
            image.paste(Image.new("RGBA", (6, 10), (255, 255, 255, 255)), (col * cell[0] + 5, row * cell[1] + 7))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def test_compositing_request_parses_colors():
    assert CompositingRequest.model_validate({"chroma_key_color": "0,255,0"}).chroma_key_color == "#00ff00"
    assert CompositingRequest.model_validate({"chroma_key_color": "#FF00FF"}).chroma_key_color == "#ff00ff"
    assert CompositingRequest.model_validate({"chroma_key_color": ""}).chroma_key_color is None
    with pytest.raises(ValidationError):
        CompositingRequest.model_validate({"chroma_key_tolerance": 151})


def test_compositing_request_enables_only_requested_stages():
    settings = CompositingRequest.model_validate({"halo_px": 3, "crop_mode": "center-center"}).to_settings()
    assert not settings.chroma_key.enabled
    assert settings.halo.enabled and settings.halo.expansion_px == 3
    assert settings.auto_crop.enabled
    assert settings.auto_crop.canvas_size == (32, 48)


def test_partition_request_conversions():
    assert PartitionRequest.model_validate({"kind": "grid", "columns": 6, "rows": 8}).to_partition() == UniformGrid(6, 8)
    divided = PartitionRequest.model_validate({"kind": "dividers", "vertical_dividers": "25,50,75"}).to_partition()
    assert isinstance(divided, DividedGrid)
    assert divided.columns == 4
    regions = PartitionRequest.model_validate(
        {"kind": "regions", "regions": [{"x": 0, "y": 0, "width": 50, "height": 50}]}
    ).to_partition()
    assert isinstance(regions, FreeRegions)
    assert regions.regions[0].id


def test_export_request_rejects_unknown_type():
    with pytest.raises(ValidationError):
        ExportRequest.model_validate({"partition": {}, "animation_type": "jump"})


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_extract_endpoint_reports_frames_and_roles(client):
    response = client.post(
        "/api/extract",
        files={"image": ("sheet.png", _png(4, 3), "image/png")},
        data={"partition": json.dumps({"kind": "grid", "columns": 4, "rows": 3})},
    )
    assert response.status_code == 200
    payload = response.json()
    assert len(payload["frames"]) == 12
    assert payload["frames"][0]["contentBounds"] == {"x": 5, "y": 7, "width": 6, "height": 10}
    assert payload["roles"]["attack2"] == [4, 5, 6, 7]


def test_extract_rejects_bad_image(client):
    response = client.post(
        "/api/extract",
        files={"image": ("sheet.png", b"garbage", "image/png")},
        data={"partition": json.dumps({"kind": "grid", "columns": 2, "rows": 2})},
    )
    assert response.status_code == 400


def test_extract_rejects_invalid_partition(client):
    response = client.post(
        "/api/extract",
        files={"image": ("sheet.png", _png(), "image/png")},
        data={"partition": json.dumps({"kind": "spiral"})},
    )
    assert response.status_code == 422


def test_analyze_endpoint(client):
    response = client.post(
        "/api/analyze",
        files={"image": ("sheet.png", _png(4, 2, cell=(32, 48)), "image/png")},
        data={"expected_type": "death"},
    )
    assert response.status_code == 200
    payload = response.json()
    assert 0.0 <= payload["confidence"] <= 1.0
    assert {"detectedColumns", "detectedRows", "warnings", "recommendations"} <= set(payload)


def test_analyze_rejects_unknown_expected_type(client):
    response = client.post(
        "/api/analyze",
        files={"image": ("sheet.png", _png(), "image/png")},
        data={"expected_type": "jump"},
    )
    assert response.status_code == 400


def test_export_endpoint_returns_zip(client):
    settings = {
        "partition": {"kind": "grid", "columns": 4, "rows": 1},
        "compositing": {"crop_mode": "animation-relative", "canvas_width": 12, "canvas_height": 20},
        "animation_type": "hurt",
        "character_name": "hero",
    }
    response = client.post(
        "/api/export",
        files={"image": ("sheet.png", _png(), "image/png")},
        data={"settings": json.dumps(settings)},
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "hero-sprites.zip" in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        config = json.loads(archive.read("hero/sprite-config.json"))
        assert config["sheets"]["hurt"]["frameWidth"] == 12
        assert config["animations"]["hurt"]["frameCount"] == 4


def test_export_endpoint_maps_domain_errors_to_400(client):
    settings = {"partition": {"kind": "grid", "columns": 4, "rows": 5}, "animation_type": "walk"}
    response = client.post(
        "/api/export",
        files={"image": ("sheet.png", _png(4, 5), "image/png")},
        data={"settings": json.dumps(settings)},
    )
    assert response.status_code == 400

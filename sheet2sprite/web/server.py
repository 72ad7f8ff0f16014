"""FastAPI surface for sheet extraction, analysis and export."""

from __future__ import annotations

import json
import logging
import os
from typing import Literal, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from ..core import (
    AutoCropSettings,
    ChromaKeySettings,
    CompositingSettings,
    CropMode,
    DividedGrid,
    FreeRegions,
    HaloSettings,
    PartitionDescriptor,
    Region,
    UniformGrid,
)
from ..core.animation_config import is_known_type
from ..core.errors import InvalidImageError, ProcessingError, ValidationError
from ..core.exporter import archive_name, export_animation, export_bundle
from ..core.frame_extractor import extract, new_region_id
from ..core.grid_analyzer import analyze_grid
from ..core.image_loader import load_image
from ..utils import validators

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(os.environ.get("S2S_MAX_UPLOAD_MB", "20")) * 1024 * 1024
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("S2S_ALLOWED_ORIGINS", "http://localhost:8000").split(",")
    if origin.strip()
]


class RegionModel(BaseModel):
    id: Optional[str] = None
    x: float = Field(..., ge=0, le=100)
    y: float = Field(..., ge=0, le=100)
    width: float = Field(..., ge=0, le=100)
    height: float = Field(..., ge=0, le=100)


class PartitionRequest(BaseModel):
    """How to slice the uploaded sheet."""

    kind: Literal["grid", "dividers", "regions"] = "grid"
    columns: int = Field(1, ge=0)
    rows: int = Field(1, ge=0)
    vertical_dividers: list[float] = Field(default_factory=list)
    horizontal_dividers: list[float] = Field(default_factory=list)
    regions: list[RegionModel] = Field(default_factory=list)

    @field_validator("vertical_dividers", "horizontal_dividers", mode="before")
    @classmethod
    def _parse_dividers(cls, value):
        if isinstance(value, str):
            return validators.parse_divider_list(value, "Dividers")
        return value

    def to_partition(self) -> PartitionDescriptor:
        if self.kind == "dividers":
            return DividedGrid(list(self.vertical_dividers), list(self.horizontal_dividers))
        if self.kind == "regions":
            return FreeRegions(
                [
                    Region(id=r.id or new_region_id(), x=r.x, y=r.y, width=r.width, height=r.height)
                    for r in self.regions
                ]
            )
        return UniformGrid(columns=self.columns, rows=self.rows)


class CompositingRequest(BaseModel):
    """Compositing options; a stage runs only when its option is set."""

    chroma_key_color: Optional[str] = None
    chroma_key_tolerance: int = Field(50, ge=0, le=150)
    halo_px: Optional[int] = Field(None, ge=1, le=30)
    crop_mode: Optional[CropMode] = None
    canvas_width: int = Field(32, ge=1)
    canvas_height: int = Field(48, ge=1)
    reduction: int = Field(0, ge=0, le=100)
    align_x: Literal["left", "center", "right"] = "center"
    align_y: Literal["top", "center", "bottom"] = "center"

    @field_validator("chroma_key_color", mode="before")
    @classmethod
    def _parse_color(cls, value):
        if value in (None, "", "null"):
            return None
        if isinstance(value, (list, tuple)):
            value = ",".join(str(part) for part in value)
        if isinstance(value, str):
            return validators.parse_color(value)
        raise ValueError("Color must be #rrggbb or R,G,B")

    def to_settings(self) -> CompositingSettings:
        return CompositingSettings(
            chroma_key=ChromaKeySettings(
                enabled=self.chroma_key_color is not None,
                color=self.chroma_key_color or "#00ff00",
                tolerance=self.chroma_key_tolerance,
            ),
            halo=HaloSettings(enabled=self.halo_px is not None, expansion_px=self.halo_px or 5),
            auto_crop=AutoCropSettings(
                enabled=self.crop_mode is not None,
                mode=self.crop_mode or CropMode.ANIMATION_RELATIVE,
                canvas_size=(self.canvas_width, self.canvas_height),
                reduction_px=self.reduction,
                align_x=self.align_x,
                align_y=self.align_y,
            ),
        )


class ExportRequest(BaseModel):
    partition: PartitionRequest
    compositing: CompositingRequest = Field(default_factory=CompositingRequest)
    animation_type: str = "idle"
    character_name: str = "character"
    columns: Optional[int] = Field(None, ge=1)

    @field_validator("animation_type")
    @classmethod
    def _known_type(cls, value):
        if not is_known_type(value):
            raise ValueError(f"Unknown animation type: {value}")
        return value


def _parse_model(model: type[BaseModel], raw: str) -> BaseModel:
    try:
        payload = json.loads(raw) if raw else {}
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid settings JSON: {exc}") from exc
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


async def _read_upload(request: Request, file: UploadFile) -> bytes:
    """Read an upload into memory, enforcing the size cap."""

    declared = int(request.headers.get("content-length", "0") or 0)
    if declared > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")
    chunks = []
    written = 0
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        written += len(chunk)
        if written > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="File too large")
        chunks.append(chunk)
    return b"".join(chunks)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (ValidationError, InvalidImageError)):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("Processing failed")
    return HTTPException(status_code=500, detail=str(exc))


def _run_extraction(data: bytes, partition: PartitionDescriptor) -> dict:
    result = extract(load_image(data), partition)
    return {
        "columns": result.columns,
        "rows": result.rows,
        "frames": [frame.describe() for frame in result.frames],
        "roles": (
            {role: [frame.index for frame in frames] for role, frames in result.roles.items()}
            if result.roles is not None
            else None
        ),
        "warnings": result.warnings,
    }


def create_app() -> FastAPI:
    app = FastAPI(title="sheet2sprite", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/extract")
    async def extract_frames(
        request: Request,
        image: UploadFile = File(...),
        partition: str = Form("{}"),
    ) -> dict:
        partition_request = _parse_model(PartitionRequest, partition)
        data = await _read_upload(request, image)
        try:
            return await run_in_threadpool(_run_extraction, data, partition_request.to_partition())
        except (ValidationError, InvalidImageError, ProcessingError) as exc:
            raise _http_error(exc) from exc

    @app.post("/api/analyze")
    async def analyze(
        request: Request,
        image: UploadFile = File(...),
        expected_type: Optional[str] = Form(None),
    ) -> dict:
        if expected_type and not is_known_type(expected_type):
            raise HTTPException(status_code=400, detail=f"Unknown animation type: {expected_type}")
        data = await _read_upload(request, image)
        try:
            analysis = await run_in_threadpool(lambda: analyze_grid(load_image(data), expected_type or None))
        except (InvalidImageError, ProcessingError) as exc:
            raise _http_error(exc) from exc
        return analysis.to_dict()

    @app.post("/api/export")
    async def export(
        request: Request,
        image: UploadFile = File(...),
        settings: str = Form(...),
    ) -> Response:
        export_request = _parse_model(ExportRequest, settings)
        data = await _read_upload(request, image)
        try:
            outcome = await run_in_threadpool(
                export_animation,
                data,
                export_request.partition.to_partition(),
                export_request.animation_type,
                export_request.compositing.to_settings().validate(),
                None,
                export_request.character_name,
                export_request.columns,
                None,
                False,
                True,
            )
        except (ValidationError, InvalidImageError, ProcessingError) as exc:
            raise _http_error(exc) from exc

        bundle = export_bundle(outcome, export_request.character_name)
        filename = archive_name(export_request.character_name)
        return Response(
            content=bundle,
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("sheet2sprite.web.server:app", host="0.0.0.0", port=8000, reload=True)

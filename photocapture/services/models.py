from pydantic import BaseModel
from typing import Literal, Optional


class CaptureSummaryOut(BaseModel):
    unique_id: str
    state: str
    saved: Optional[bool] = None
    photo_bytes: int
    has_companion_movie: bool
    portrait_kind: Optional[Literal["blended", "raw_matte"]] = None
    segmentation_count: int
    error_codes: list[str]
    duration_ms: int


class StatusResponse(BaseModel):
    live_captures_in_progress: int
    processing: bool
    flash_count: int
    in_progress: list[str]
    last_capture: Optional[CaptureSummaryOut] = None
    logs: list[str]


class CaptureRequestIn(BaseModel):
    processed_file_type: Optional[str] = "public.jpeg"
    live_photo: bool = False
    portrait_matte: bool = True
    matte_types: list[str] = []
    # Optional geotag attached to the saved photo
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None


class CaptureResponse(BaseModel):
    ok: bool
    finished: bool              # False → still waiting on the driver/library after the timeout
    summary: CaptureSummaryOut


class CompositeRequest(BaseModel):
    image: str  # base64 JPEG/PNG
    matte: str  # base64 single-channel PNG
    matte_type: str = "portrait"
    orientation: Optional[int] = None


class CompositeResponse(BaseModel):
    ok: bool
    kind: Optional[Literal["blended", "raw_matte"]] = None
    image: Optional[str] = None  # base64 PNG
    error: Optional[str] = None

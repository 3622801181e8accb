import uuid
from dataclasses import dataclass, field
from typing import Optional, Literal

import cv2
import numpy as np

# Matte categories
PORTRAIT = "portrait"
HAIR = "hair"
SKIN = "skin"
TEETH = "teeth"
GLASSES = "glasses"

SEGMENTATION_MATTE_TYPES = (HAIR, SKIN, TEETH, GLASSES)

CompositeKind = Literal["blended", "raw_matte"]
BLENDED: CompositeKind = "blended"
RAW_MATTE: CompositeKind = "raw_matte"

ResourceType = Literal["photo", "paired_video"]


def _new_unique_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class TimeRange:
    start: float      # seconds
    duration: float   # seconds

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    altitude: Optional[float] = None


@dataclass(frozen=True)
class PhotoSettings:
    """Requested settings for one shutter action; never mutated after creation."""
    unique_id: str = field(default_factory=_new_unique_id)
    processed_file_type: Optional[str] = "public.jpeg"
    live_photo_enabled: bool = False
    portrait_matte_enabled: bool = False
    enabled_matte_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedPhotoSettings:
    unique_id: str
    photo_dimensions: tuple[int, int] = (0, 0)            # (width, height)
    live_photo_movie_dimensions: tuple[int, int] = (0, 0)  # (0, 0) → no companion clip
    processing_time_range: Optional[TimeRange] = None

    @property
    def expects_live_movie(self) -> bool:
        w, h = self.live_photo_movie_dimensions
        return w > 0 and h > 0


@dataclass
class CapturedPhoto:
    """Processed-photo payload handed over by the camera driver.

    Mattes are single-channel arrays (uint8, uint16 or float in [0, 1]) at the
    driver's native matte resolution, in the sensor's orientation.
    """
    file_data: Optional[bytes]
    metadata: dict = field(default_factory=dict)
    portrait_effects_matte: Optional[np.ndarray] = None
    segmentation_mattes: dict[str, np.ndarray] = field(default_factory=dict)

    def file_data_representation(self) -> Optional[bytes]:
        return self.file_data

    def segmentation_matte(self, matte_type: str) -> Optional[np.ndarray]:
        return self.segmentation_mattes.get(matte_type)

    @property
    def orientation(self) -> Optional[int]:
        value = self.metadata.get("Orientation")
        try:
            value = int(value)
        except (TypeError, ValueError):
            return None
        return value if 1 <= value <= 8 else None

    def pixel_data(self) -> Optional[np.ndarray]:
        """Decode file_data into a BGR array in sensor orientation (EXIF tag not applied).

        None if there is nothing decodable.
        """
        if not self.file_data:
            return None
        arr = np.frombuffer(self.file_data, dtype=np.uint8)
        return cv2.imdecode(arr, cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)


@dataclass(frozen=True)
class MatteComposite:
    matte_type: str
    kind: CompositeKind
    data: bytes


@dataclass
class AssetResource:
    resource_type: ResourceType
    data: Optional[bytes] = None
    file_path: Optional[str] = None
    uniform_type_identifier: Optional[str] = None
    should_move_file: bool = False


@dataclass
class AssetCreationRequest:
    resources: list[AssetResource] = field(default_factory=list)
    location: Optional[Location] = None

    def add_resource(self, resource: AssetResource):
        self.resources.append(resource)


@dataclass
class CaptureSummary:
    unique_id: str
    state: str
    saved: Optional[bool]
    photo_bytes: int
    has_companion_movie: bool
    portrait_kind: Optional[CompositeKind]
    segmentation_count: int
    error_codes: list[str]
    duration_ms: int

"""
Matte compositor: turns an abstract matte into an image a person can look at.

Pipeline:
  1. Orient the primary image and the matte into the same upright frame (EXIF tag)
  2. Synthesize a flat blue reference background at the primary image's extent
  3. Scale matte + background onto the primary extent
  4. Blend primary over background, weighted per pixel by the matte (sRGB values)
  5. Encode as RGBA8 PNG with an embedded sRGB profile and a kind tag
  If the blend fails, the raw matte is encoded instead and tagged "raw_matte".

Images are BGR uint8 arrays (OpenCV layout). Mattes are single-channel
uint8/uint16/bool/float arrays; float mattes are taken as already in [0, 1].
Deterministic: identical inputs give byte-identical output.
"""
import functools
import io
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageCms
from PIL.PngImagePlugin import PngInfo

from photocapture.orchestrator.contracts import (
    BLENDED, RAW_MATTE, PORTRAIT, HAIR, SKIN, TEETH, GLASSES, MatteComposite,
)

REFERENCE_BG_BGR = (255, 0, 0)  # blue

# Auxiliary image tag written into the container for each supported category
AUXILIARY_TAGS = {
    PORTRAIT: "portrait_effects_matte",
    HAIR:     "semantic_segmentation_hair_matte",
    SKIN:     "semantic_segmentation_skin_matte",
    TEETH:    "semantic_segmentation_teeth_matte",
    GLASSES:  "semantic_segmentation_glasses_matte",
}

META_KIND = "photocapture:kind"
META_AUXILIARY = "photocapture:auxiliary"


# ── Color space ─────────────────────────────────────────────────────────────

@functools.lru_cache(maxsize=1)
def srgb_profile() -> Optional[bytes]:
    """ICC bytes of the sRGB working space, or None if it cannot be built."""
    try:
        return ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB")).tobytes()
    except (ImageCms.PyCMSError, OSError):
        return None


# ── Pixel helpers ───────────────────────────────────────────────────────────

def apply_exif_orientation(img: np.ndarray, orientation: Optional[int]) -> np.ndarray:
    """Return img transformed so that EXIF `orientation` becomes upright (1)."""
    if orientation == 2:
        return cv2.flip(img, 1)
    if orientation == 3:
        return cv2.rotate(img, cv2.ROTATE_180)
    if orientation == 4:
        return cv2.flip(img, 0)
    if orientation == 5:
        return cv2.transpose(img)
    if orientation == 6:
        return cv2.rotate(img, cv2.ROTATE_90_CLOCKWISE)
    if orientation == 7:
        return cv2.rotate(cv2.transpose(img), cv2.ROTATE_180)
    if orientation == 8:
        return cv2.rotate(img, cv2.ROTATE_90_COUNTERCLOCKWISE)
    return img


def as_bgr(image) -> Optional[np.ndarray]:
    if image is None:
        return None
    img = np.asarray(image)
    if img.size == 0 or img.dtype != np.uint8:
        return None
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.ndim == 3 and img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    if img.ndim == 3 and img.shape[2] == 3:
        return img
    return None


def matte_weights(matte) -> Optional[np.ndarray]:
    """Single-channel float32 weights. Non-finite values are kept as-is."""
    if matte is None:
        return None
    m = np.asarray(matte)
    if m.ndim == 3:
        m = m[..., 0]
    if m.ndim != 2 or m.size == 0:
        return None
    if m.dtype == np.uint8:
        return m.astype(np.float32) / 255.0
    if m.dtype == np.uint16:
        return m.astype(np.float32) / 65535.0
    return m.astype(np.float32)


def make_reference_background(width: int, height: int, color_bgr=REFERENCE_BG_BGR) -> np.ndarray:
    bg = np.empty((height, width, 3), dtype=np.uint8)
    bg[:] = color_bgr
    return bg


def scale_factors(image_size, matte_size, background_size):
    """Return ((matte_sx, matte_sy), (bg_sx, bg_sy)). Sizes are (width, height).

    NOTE: the matte's vertical factor is the width ratio too, not H / matte_h.
    Likely a defect; reproduced as built so composites stay comparable.
    """
    iw, ih = image_size
    mw, _mh = matte_size
    bw, bh = background_size
    matte_sx = iw / mw
    matte_sy = iw / mw
    bg_sx = iw / bw
    bg_sy = ih / bh
    return (matte_sx, matte_sy), (bg_sx, bg_sy)


def resample_to_extent(img: np.ndarray, sx: float, sy: float, width: int, height: int) -> np.ndarray:
    """Scale img by (sx, sy) about the bottom-left corner of a width x height canvas.

    Same anchoring as a bottom-left-origin affine scale: a short image leaves
    the top rows at zero, a tall one loses its top rows, overflow on the
    right is cropped.
    """
    h, w = img.shape[:2]
    new_w = max(1, int(round(w * sx)))
    new_h = max(1, int(round(h * sy)))
    scaled = cv2.resize(img, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    canvas = np.zeros((height, width) + img.shape[2:], dtype=img.dtype)
    ch, cw = min(height, new_h), min(width, new_w)
    canvas[height - ch:, :cw] = scaled[new_h - ch:, :cw]
    return canvas


def blend_with_mask(image: np.ndarray, background: np.ndarray, mask: np.ndarray) -> Optional[np.ndarray]:
    """out = mask * image + (1 - mask) * background, on sRGB-encoded values.

    Returns None when the inputs cannot be blended.
    """
    if mask.shape != image.shape[:2] or background.shape != image.shape:
        return None
    if not np.isfinite(mask).all():
        return None
    weight = np.clip(mask, 0.0, 1.0)[..., None]
    out = image.astype(np.float32) * weight + background.astype(np.float32) * (1.0 - weight)
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def encode_rgba(img: np.ndarray, icc_profile: bytes, kind: str, auxiliary: str) -> bytes:
    """Encode a BGR or grayscale uint8 image as RGBA8 PNG with sRGB profile + tags."""
    if img.ndim == 2:
        rgba = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    else:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    info = PngInfo()
    info.add_text(META_KIND, kind)
    info.add_text(META_AUXILIARY, auxiliary)
    buf = io.BytesIO()
    Image.fromarray(rgba).save(buf, format="PNG", pnginfo=info, icc_profile=icc_profile)
    return buf.getvalue()


def raw_matte_pixels(weights: np.ndarray) -> np.ndarray:
    clean = np.nan_to_num(weights, nan=0.0, posinf=1.0, neginf=0.0)
    return np.rint(np.clip(clean, 0.0, 1.0) * 255.0).astype(np.uint8)


# ── Compositor ──────────────────────────────────────────────────────────────

class MatteCompositor:
    """
    Stateless apart from its log sink; safe to share across worker threads.
    composite() never raises for bad input: it logs and returns None.
    """

    def __init__(self, status_store=None, background_bgr=REFERENCE_BG_BGR):
        self.status = status_store
        self.background_bgr = background_bgr

    def _log(self, msg: str):
        if self.status is not None:
            self.status.log(msg)

    def composite(self, image, matte, matte_type: str, orientation: Optional[int] = None) -> Optional[MatteComposite]:
        auxiliary = AUXILIARY_TAGS.get(matte_type)
        if auxiliary is None:
            self._log(f"matte_compositor: unsupported matte type '{matte_type}'")
            return None

        primary = as_bgr(image)
        if primary is None:
            self._log(f"matte_compositor: {matte_type}: no primary pixel data")
            return None

        weights = matte_weights(matte)
        if weights is None:
            self._log(f"matte_compositor: {matte_type}: no matte pixel data")
            return None

        icc = srgb_profile()
        if icc is None:
            self._log(f"matte_compositor: {matte_type}: sRGB color space unavailable")
            return None

        if orientation is not None:
            primary = apply_exif_orientation(primary, orientation)
            weights = apply_exif_orientation(weights, orientation)

        height, width = primary.shape[:2]
        background = make_reference_background(width, height, self.background_bgr)
        (msx, msy), (bsx, bsy) = scale_factors(
            (width, height),
            (weights.shape[1], weights.shape[0]),
            (background.shape[1], background.shape[0]),
        )
        mask_scaled = resample_to_extent(weights, msx, msy, width, height)
        bg_scaled = resample_to_extent(background, bsx, bsy, width, height)

        blended = blend_with_mask(primary, bg_scaled, mask_scaled)
        if blended is None:
            self._log(f"matte_compositor: {matte_type}: blend failed, storing raw matte")
            data = encode_rgba(raw_matte_pixels(weights), icc, RAW_MATTE, auxiliary)
            return MatteComposite(matte_type=matte_type, kind=RAW_MATTE, data=data)

        data = encode_rgba(blended, icc, BLENDED, auxiliary)
        self._log(f"matte_compositor: {matte_type}: blended {width}x{height} ({len(data)} bytes)")
        return MatteComposite(matte_type=matte_type, kind=BLENDED, data=data)

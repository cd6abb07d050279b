"""
Image and mask primitives shared by every pipeline stage.

Images are numpy ``uint8`` arrays in OpenCV channel order, shape
``(height, width, 3)`` for BGR or ``(height, width, 4)`` for BGRA.
Masks are ``(height, width)`` ``uint8`` arrays, 0 = background,
255 = foreground.
"""

import io
import logging
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps
from PIL.ImageCms import profileToProfile, createProfile, ImageCmsProfile

from .exceptions import InvalidInput
from .utils import SRGB_ICC_BYTES

_srgb_profile = ImageCmsProfile(createProfile('sRGB'))

logger = logging.getLogger(__name__)


# =============================================================================
# RECTANGLE
# =============================================================================

@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in pixel coordinates of a specific image."""
    x: int
    y: int
    width: int
    height: int

    @property
    def center(self) -> Tuple[int, int]:
        return (self.x + self.width // 2, self.y + self.height // 2)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def is_within(self, img_width: int, img_height: int) -> bool:
        return (
            self.x >= 0 and self.y >= 0
            and self.width > 0 and self.height > 0
            and self.right <= img_width and self.bottom <= img_height
        )

    def clamp(self, img_width: int, img_height: int) -> 'Rect':
        """Intersect with the image, keeping at least one pixel."""
        x1 = min(max(0, int(self.x)), img_width - 1)
        y1 = min(max(0, int(self.y)), img_height - 1)
        x2 = min(max(x1 + 1, int(self.x + self.width)), img_width)
        y2 = min(max(y1 + 1, int(self.y + self.height)), img_height)
        return Rect(x1, y1, x2 - x1, y2 - y1)

    def expand(self, padding: int, img_width: int, img_height: int) -> 'Rect':
        """Grow by `padding` on every side, clamped to the image."""
        return Rect(
            self.x - padding, self.y - padding,
            self.width + padding * 2, self.height + padding * 2,
        ).clamp(img_width, img_height)

    @classmethod
    def centered(cls, img_width: int, img_height: int, width_frac: float, height_frac: float) -> 'Rect':
        """Rectangle centered in the image covering the given fractions."""
        width = max(1, int(img_width * width_frac))
        height = max(1, int(img_height * height_frac))
        return cls(
            img_width // 2 - width // 2,
            img_height // 2 - height // 2,
            width, height,
        ).clamp(img_width, img_height)


# =============================================================================
# VALIDATION
# =============================================================================

def ensure_image(image, stage: str = "input") -> np.ndarray:
    """Check the Image invariants and return the array unchanged."""
    if not isinstance(image, np.ndarray):
        raise InvalidInput(f"Expected a numpy image, got {type(image).__name__}", stage=stage)
    if image.size == 0:
        raise InvalidInput("Image is empty", stage=stage)
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise InvalidInput(f"Expected 3 or 4 channels, got shape {image.shape}", stage=stage)
    if image.dtype != np.uint8:
        raise InvalidInput(f"Expected uint8 pixels, got {image.dtype}", stage=stage)
    return image


def ensure_mask(mask, stage: str = "input") -> np.ndarray:
    if not isinstance(mask, np.ndarray) or mask.size == 0:
        raise InvalidInput("Mask is empty", stage=stage)
    if mask.ndim == 3 and mask.shape[2] == 1:
        mask = mask[:, :, 0]
    if mask.ndim != 2:
        raise InvalidInput(f"Expected a single-channel mask, got shape {mask.shape}", stage=stage)
    if mask.dtype != np.uint8:
        mask = np.clip(mask, 0, 255).astype(np.uint8)
    return mask


def to_bgr(image: np.ndarray) -> np.ndarray:
    """Drop the alpha channel if present."""
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


# =============================================================================
# PIL CONVERSION
# =============================================================================

def to_pil(image: np.ndarray) -> Image.Image:
    """BGR(A) array -> RGB(A) PIL image."""
    if image.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA), 'RGBA')
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB), 'RGB')


def from_pil(img: Image.Image) -> np.ndarray:
    """PIL image -> BGR(A) array. Modes without alpha become BGR."""
    has_alpha = img.mode in ('RGBA', 'LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info)
    if has_alpha:
        return cv2.cvtColor(np.array(img.convert('RGBA')), cv2.COLOR_RGBA2BGRA)
    return cv2.cvtColor(np.array(img.convert('RGB')), cv2.COLOR_RGB2BGR)


# =============================================================================
# DECODE / ENCODE
# =============================================================================

def decode_image(data: bytes) -> np.ndarray:
    """Decode uploaded bytes into a BGR(A) array in the sRGB color space."""
    if not data:
        raise InvalidInput("Image data is empty", stage="decode")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Exception as e:
        raise InvalidInput(f"Cannot read image: {e}", stage="decode") from e

    img = ImageOps.exif_transpose(img)

    # Convert to sRGB if the image has a different ICC profile
    src_profile = img.info.get('icc_profile')
    if src_profile and img.mode in ('RGB', 'RGBA', 'CMYK'):
        output_mode = 'RGBA' if img.mode == 'RGBA' else 'RGB'
        try:
            img = profileToProfile(img, io.BytesIO(src_profile), _srgb_profile, outputMode=output_mode)
        except Exception as e:
            logger.warning(f"ICC conversion failed, using raw pixels: {e}")

    if img.width == 0 or img.height == 0:
        raise InvalidInput("Image has no pixels", stage="decode")
    return from_pil(img)


def encode_image(image: np.ndarray, fmt: str = 'png', dpi: int = 300, quality: int = 95) -> bytes:
    """Encode to PNG or JPEG with DPI metadata and an embedded sRGB profile."""
    ensure_image(image, stage="encode")
    fmt = fmt.lower()
    pil = to_pil(image)
    buffer = io.BytesIO()
    if fmt in ('jpg', 'jpeg'):
        if pil.mode == 'RGBA':
            flat = Image.new('RGB', pil.size, (255, 255, 255))
            flat.paste(pil, (0, 0), pil)
            pil = flat
        pil.save(buffer, 'JPEG', quality=quality, dpi=(dpi, dpi), icc_profile=SRGB_ICC_BYTES)
    elif fmt == 'png':
        pil.save(buffer, 'PNG', optimize=True, dpi=(dpi, dpi), icc_profile=SRGB_ICC_BYTES)
    else:
        raise InvalidInput(f"Unsupported output format: {fmt}", stage="encode")
    return buffer.getvalue()

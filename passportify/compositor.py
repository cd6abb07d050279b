"""
Alpha compositing and background substitution
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .exceptions import InvalidInput
from .imaging import decode_image, ensure_image, ensure_mask, to_bgr

logger = logging.getLogger(__name__)

WHITE_BGR = (255, 255, 255)
BLACK_BGR = (0, 0, 0)


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """Parse '#rgb' / '#rrggbb' (leading '#' optional) into a BGR tuple.

    Unparseable values fall back to white.
    """
    text = str(value or '').strip().lstrip('#')
    if len(text) == 3:
        text = ''.join(c * 2 for c in text)
    try:
        if len(text) != 6:
            raise ValueError(f"expected 6 hex digits, got {len(text)}")
        r, g, b = (int(text[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError as e:
        logger.warning(f"Invalid color format '{value}' ({e}), using white")
        return WHITE_BGR
    return (b, g, r)


@dataclass(frozen=True)
class BackgroundSpec:
    """What to put behind the subject: nothing, a solid color or a tiled image."""
    kind: str = 'none'
    color: str = '#ffffff'
    image: Optional[Union[bytes, np.ndarray]] = None
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self):
        if self.kind not in ('none', 'color', 'image'):
            raise InvalidInput(f"Unknown background kind: {self.kind}", stage="composite")
        if self.kind == 'image' and self.image is None:
            raise InvalidInput("Image background requires an image", stage="composite")
        if self.scale <= 0:
            raise InvalidInput(f"Background scale must be positive, got {self.scale}", stage="composite")
        for name in ('offset_x', 'offset_y'):
            value = getattr(self, name)
            if not -1.0 <= value <= 1.0:
                raise InvalidInput(f"{name} must be within [-1, 1], got {value}", stage="composite")

    @classmethod
    def none(cls) -> 'BackgroundSpec':
        return cls(kind='none')

    @classmethod
    def solid(cls, color: str) -> 'BackgroundSpec':
        return cls(kind='color', color=color)

    @classmethod
    def from_image(
        cls,
        image: Union[bytes, np.ndarray],
        scale: float = 1.0,
        offset_x: float = 0.0,
        offset_y: float = 0.0,
    ) -> 'BackgroundSpec':
        return cls(kind='image', image=image, scale=scale, offset_x=offset_x, offset_y=offset_y)


class Compositor:
    """Attaches alpha mattes and composites cutouts over backgrounds."""

    @staticmethod
    def apply_alpha(image: np.ndarray, matte: np.ndarray) -> np.ndarray:
        """Return a BGRA copy of `image` with `matte` as its alpha channel."""
        ensure_image(image, stage="composite")
        matte = ensure_mask(matte, stage="composite")
        img_height, img_width = image.shape[:2]
        if matte.shape != (img_height, img_width):
            matte = cv2.resize(matte, (img_width, img_height), interpolation=cv2.INTER_CUBIC)
        b, g, r = cv2.split(to_bgr(image))
        return cv2.merge([b, g, r, matte])

    @staticmethod
    def _over(bgra: np.ndarray, canvas: np.ndarray) -> np.ndarray:
        alpha = bgra[:, :, 3:4].astype(np.float32) / 255.0
        fg = bgra[:, :, :3].astype(np.float32)
        out = fg * alpha + canvas.astype(np.float32) * (1.0 - alpha)
        return np.clip(np.round(out), 0, 255).astype(np.uint8)

    @staticmethod
    def _tile(background: np.ndarray, spec: BackgroundSpec, width: int, height: int) -> np.ndarray:
        """Uniformly scale the background and tile it over a width x height canvas."""
        bg_height, bg_width = background.shape[:2]
        tile_w = max(1, int(bg_width * spec.scale))
        tile_h = max(1, int(bg_height * spec.scale))
        if (tile_w, tile_h) != (bg_width, bg_height):
            interpolation = cv2.INTER_AREA if spec.scale < 1 else cv2.INTER_CUBIC
            background = cv2.resize(background, (tile_w, tile_h), interpolation=interpolation)

        start_x = int(spec.offset_x * tile_w)
        start_y = int(spec.offset_y * tile_h)
        cols = (np.arange(width) - start_x) % tile_w
        rows = (np.arange(height) - start_y) % tile_h
        return background[np.ix_(rows, cols)]

    def composite(self, bgra: np.ndarray, background: BackgroundSpec) -> np.ndarray:
        """Place the cutout over `background`. Kind 'none' returns the BGRA input."""
        ensure_image(bgra, stage="composite")
        if bgra.shape[2] != 4:
            raise InvalidInput("Compositing requires a BGRA image", stage="composite")
        height, width = bgra.shape[:2]

        if background.kind == 'none':
            return bgra.copy()

        if background.kind == 'color':
            color = parse_hex_color(background.color)
            logger.info(f"Applying solid background {background.color}")
            canvas = np.empty((height, width, 3), dtype=np.uint8)
            canvas[:] = color
            return self._over(bgra, canvas)

        source = background.image
        if isinstance(source, (bytes, bytearray)):
            source = decode_image(bytes(source))
        ensure_image(source, stage="composite")
        logger.info(f"Applying image background: scale={background.scale}, "
                    f"offset=({background.offset_x}, {background.offset_y})")
        canvas = self._tile(to_bgr(source), background, width, height)
        return self._over(bgra, canvas)


def add_border(
    image: np.ndarray,
    width: int,
    color: Tuple[int, int, int] = BLACK_BGR,
) -> np.ndarray:
    """Surround the image with a constant border; opaque for BGRA images."""
    ensure_image(image, stage="border")
    if width < 0:
        raise InvalidInput(f"Border width must not be negative, got {width}", stage="border")
    if width == 0:
        return image.copy()
    value = tuple(color) + (255,) if image.shape[2] == 4 else tuple(color)
    return cv2.copyMakeBorder(image, width, width, width, width, cv2.BORDER_CONSTANT, value=value)

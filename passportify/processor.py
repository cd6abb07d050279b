"""
PhotoProcessor - Facade that orchestrates the full passport photo pipeline.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Union

import numpy as np

from .adjust import Adjuster
from .background import RemovalEngineSelector, normalize_strategy
from .compositor import BackgroundSpec, Compositor, add_border
from .config import PhotoFormatSpec, PipelineConfig, REGISTRY
from .cropping import PassportCropper
from .exceptions import InvalidInput
from .face_detection import FaceLocator
from .imaging import Rect, ensure_image
from .refine import MaskRefiner
from .utils import DebugArtifacts

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Result of a full photo processing pipeline run."""
    photo: np.ndarray
    cutout: np.ndarray
    face_rect: Optional[Rect]
    crop_rect: Optional[Rect]
    format_info: Optional[PhotoFormatSpec]
    strategy: Optional[str]


class PhotoProcessor:
    """High-level facade for the entire passport photo pipeline.

    Usage:
        processor = PhotoProcessor()
        result = processor.process(image, "35x45", BackgroundSpec.solid("#ffffff"))
        cv2.imwrite("output/photo.png", result.photo)
        processor.close()
    """

    def __init__(self, config: Optional[PipelineConfig] = None, factories: Optional[Dict] = None):
        logger.info("Initializing PhotoProcessor...")
        self.config = config or PipelineConfig()
        self.debug = DebugArtifacts(self.config.debug, self.config.debug_dir)
        self.face_locator = FaceLocator(self.config.face_cascade_path)
        self.refiner = MaskRefiner(self.config.refine, debug=self.debug)
        self.compositor = Compositor()
        self.cropper = PassportCropper()
        self.adjuster = Adjuster()
        self._factories = factories
        self._selectors: Dict[str, RemovalEngineSelector] = {}
        self._lock = threading.Lock()
        logger.info("PhotoProcessor ready")

    def selector(self, strategy: Optional[str] = None) -> RemovalEngineSelector:
        """Selector for a strategy, created on first request and kept for reuse."""
        name = normalize_strategy(strategy or self.config.removal_strategy)
        with self._lock:
            selector = self._selectors.get(name)
            if selector is None:
                selector = RemovalEngineSelector(
                    name, self.config,
                    factories=self._factories,
                    refiner=self.refiner,
                    compositor=self.compositor,
                    face_locator=self.face_locator,
                    debug=self.debug,
                )
                self._selectors[name] = selector
            return selector

    def remove_background(self, image: np.ndarray, strategy: Optional[str] = None) -> np.ndarray:
        """Transparent cutout (BGRA) using the configured or given strategy."""
        return self.selector(strategy).remove_background(image)

    def _border(self, image: np.ndarray) -> np.ndarray:
        if self.config.border_width > 0:
            return add_border(image, self.config.border_width)
        return image

    def _locate(self, image: np.ndarray, face_rect: Optional[Rect]) -> Rect:
        img_height, img_width = image.shape[:2]
        if face_rect is not None:
            return face_rect.clamp(img_width, img_height)
        face = self.face_locator.locate(image)
        self.debug.save("face", self.cropper.draw_face_marker(image, face))
        return face

    def normalize_to_passport_format(
        self,
        image: np.ndarray,
        face_rect: Optional[Rect] = None,
        spec: Optional[PhotoFormatSpec] = None,
        strategy: Optional[str] = None,
    ) -> np.ndarray:
        """Background removal, then crop+resize when `spec` is given, then border."""
        ensure_image(image, stage="input")
        cutout = self.remove_background(image, strategy)
        if spec is None:
            return self._border(cutout)

        face = self._locate(image, face_rect)
        cropped = self.cropper.crop(cutout, face, spec)
        return self._border(cropped)

    def composite_background(self, bgra: np.ndarray, background: BackgroundSpec) -> np.ndarray:
        return self.compositor.composite(bgra, background)

    def adjust(
        self,
        image: np.ndarray,
        brightness: float = 0,
        contrast: float = 1.0,
        saturation: float = 1.0,
    ) -> np.ndarray:
        return self.adjuster.apply(image, brightness, contrast, saturation)

    def process(
        self,
        image: np.ndarray,
        format_key: Union[str, PhotoFormatSpec, None] = None,
        background: Optional[BackgroundSpec] = None,
        adjustments: Optional[Dict] = None,
        face_rect: Optional[Rect] = None,
        strategy: Optional[str] = None,
    ) -> ProcessingResult:
        """Run the full pipeline: remove bg -> crop -> background -> adjust -> border.

        Args:
            image: BGR or BGRA input image.
            format_key: Registry key, a PhotoFormatSpec, or None to keep the
                original framing.
            background: What to place behind the subject (default: transparent).
            adjustments: Optional dict with brightness, contrast, saturation.
            face_rect: Known face rectangle; detected when omitted and a
                format is given.
            strategy: Removal strategy overriding the configured one.

        Raises:
            InvalidInput: If format_key is not registered or the image is invalid.
        """
        ensure_image(image, stage="input")
        spec = self._resolve_format(format_key)
        background = background or BackgroundSpec.none()
        logger.info(f"Processing: format={spec.description if spec else 'original'}, "
                    f"background={background.kind}")

        # 1. Remove background
        selector = self.selector(strategy)
        cutout = selector.remove_background(image)

        # 2. Locate face and crop (only needed for a target format)
        face = None
        crop_rect = None
        photo = cutout
        if spec is not None:
            face = self._locate(image, face_rect)
            crop_rect = self.cropper.rect_for(image.shape, face, spec)
            photo = self.cropper.crop_to_rect(cutout, crop_rect, spec)
        elif face_rect is not None:
            face = face_rect.clamp(image.shape[1], image.shape[0])

        # 3. Background
        photo = self.compositor.composite(photo, background)

        # 4. Adjustments
        if adjustments:
            photo = self.adjuster.apply(
                photo,
                brightness=adjustments.get('brightness', 0),
                contrast=adjustments.get('contrast', 1.0),
                saturation=adjustments.get('saturation', 1.0),
            )

        photo = self._border(photo)
        return ProcessingResult(
            photo=photo,
            cutout=cutout,
            face_rect=face,
            crop_rect=crop_rect,
            format_info=spec,
            strategy=selector.last_strategy,
        )

    def _resolve_format(self, format_key) -> Optional[PhotoFormatSpec]:
        if format_key is None or isinstance(format_key, PhotoFormatSpec):
            return format_key
        fmt = REGISTRY.get(format_key)
        if fmt is None:
            raise InvalidInput(f"Unknown format: {format_key}. Available: {REGISTRY.keys()}", stage="format")
        if fmt.dpi != self.config.dpi:
            fmt = fmt.with_dpi(self.config.dpi)
        return fmt

    def close(self) -> None:
        """Release all resources."""
        with self._lock:
            for selector in self._selectors.values():
                selector.close()
            self._selectors.clear()
        logger.info("PhotoProcessor closed")

"""
Configuration settings for passportify - Passport Photo Pipeline
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple, Dict, List

import cv2
import torch

from .exceptions import InvalidInput, UnsupportedUnit


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# =============================================================================
# GENERAL CONFIG
# =============================================================================

DPI = int(os.environ.get('PASSPORTIFY_DPI', '300'))

REMOVAL_STRATEGY = os.environ.get('PASSPORTIFY_REMOVAL_STRATEGY', 'auto')
DEBUG = _env_flag('PASSPORTIFY_DEBUG')
DEBUG_DIR = os.environ.get('PASSPORTIFY_DEBUG_DIR', 'debug')
BORDER_WIDTH = int(os.environ.get('PASSPORTIFY_BORDER_WIDTH', '0'))
ALPHA_POLICY = os.environ.get('PASSPORTIFY_ALPHA_POLICY', 'hard')

DEVICE = "cuda" if torch.cuda.is_available() else "cpu"


# =============================================================================
# MODEL CONFIG
# =============================================================================

# U2Net saliency model, run directly through onnxruntime
MODEL_PATH = os.environ.get('PASSPORTIFY_MODEL_PATH', 'models/u2net.onnx')
MODEL_INPUT_SIZE = 320

# rembg model zoo name for the managed strategy
MANAGED_MODEL = os.environ.get('PASSPORTIFY_MANAGED_MODEL', 'u2net')

FACE_CASCADE_PATH = os.environ.get(
    'PASSPORTIFY_FACE_CASCADE',
    os.path.join(cv2.data.haarcascades, 'haarcascade_frontalface_default.xml'),
)


# =============================================================================
# PHYSICAL UNITS
# =============================================================================

UNIT_TO_INCH = {
    'mm': 25.4,
    'cm': 2.54,
    'inch': 1.0,
}


def unit_to_inch_factor(unit: str) -> float:
    """Divisor that turns a length in `unit` into inches."""
    factor = UNIT_TO_INCH.get(str(unit).lower())
    if factor is None:
        raise UnsupportedUnit(f"Unsupported unit: {unit}", stage="format")
    return factor


def calc_pixel_size(size: float, unit: str, dpi: int) -> int:
    """Calculate print size in pixels from a physical length"""
    return int(round(size * dpi / unit_to_inch_factor(unit)))


# =============================================================================
# PHOTO FORMAT DATACLASS & REGISTRY
# =============================================================================

@dataclass(frozen=True)
class PhotoFormatSpec:
    """Immutable physical size of a passport/ID photo."""
    width: float
    height: float
    unit: str = 'mm'
    dpi: int = DPI
    key: Optional[str] = None
    label: Optional[str] = None

    def __post_init__(self):
        normalized = str(self.unit).lower()
        if normalized not in UNIT_TO_INCH:
            raise UnsupportedUnit(f"Unsupported unit: {self.unit}", stage="format")
        object.__setattr__(self, 'unit', normalized)
        if self.width <= 0 or self.height <= 0:
            raise InvalidInput(
                f"Photo size must be positive, got {self.width}x{self.height} {self.unit}",
                stage="format",
            )
        if self.dpi <= 0:
            raise InvalidInput(f"DPI must be positive, got {self.dpi}", stage="format")

    @property
    def pixel_size(self) -> Tuple[int, int]:
        return (
            calc_pixel_size(self.width, self.unit, self.dpi),
            calc_pixel_size(self.height, self.unit, self.dpi),
        )

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def description(self) -> str:
        return f"{self.width:g}x{self.height:g}{self.unit}"

    def with_dpi(self, dpi: int) -> 'PhotoFormatSpec':
        return PhotoFormatSpec(self.width, self.height, self.unit, dpi, self.key, self.label)


class PhotoFormatRegistry:
    """Registry of the standard photo formats."""

    def __init__(self):
        self._formats: Dict[str, PhotoFormatSpec] = {}

    def register(self, fmt: PhotoFormatSpec) -> None:
        self._formats[fmt.key] = fmt

    def get(self, key: str) -> Optional[PhotoFormatSpec]:
        return self._formats.get(key)

    def list_all(self) -> List[PhotoFormatSpec]:
        return list(self._formats.values())

    def keys(self) -> List[str]:
        return list(self._formats.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._formats

    def __iter__(self):
        return iter(self._formats.items())


REGISTRY = PhotoFormatRegistry()

REGISTRY.register(PhotoFormatSpec(
    width=2, height=2, unit='inch', key='2x2',
    label='2x2 inches (US and India)',
))

REGISTRY.register(PhotoFormatSpec(
    width=35, height=45, unit='mm', key='35x45',
    label='35x45 mm (UK, Europe, Australia, Singapore, Nigeria)',
))

REGISTRY.register(PhotoFormatSpec(
    width=5, height=7, unit='cm', key='5x7',
    label='5x7 cm (Canada)',
))

REGISTRY.register(PhotoFormatSpec(
    width=33, height=48, unit='mm', key='33x48',
    label='33x48 mm (China)',
))


def get_format(format_key: str) -> Optional[PhotoFormatSpec]:
    return REGISTRY.get(format_key)


def get_format_list() -> List[dict]:
    return [
        {'key': fmt.key, 'label': fmt.label, 'width': fmt.width,
         'height': fmt.height, 'unit': fmt.unit}
        for fmt in REGISTRY.list_all()
    ]


# Background color presets (hex, RGB order)
BACKGROUND_COLORS = {
    'white': '#ffffff',
    'blue': '#0284c7',
    'red': '#dc2626',
    'gray': '#9ca3af',
    'black': '#000000',
}


# =============================================================================
# PIPELINE CONFIG
# =============================================================================

@dataclass(frozen=True)
class RefineParams:
    """Mask refinement tuning. Kernel sizes are in pixels and must be odd."""
    threshold: int = 127
    morph_kernel: int = 5
    edge_band_kernel: int = 3
    edge_blur_kernel: int = 5
    smooth_edges: bool = False
    alpha_policy: str = ALPHA_POLICY
    soft_blur_kernel: int = 5
    soft_weight: float = 0.7

    def __post_init__(self):
        if self.alpha_policy not in ('hard', 'soft'):
            raise InvalidInput(f"Unknown alpha policy: {self.alpha_policy}", stage="config")
        for name in ('morph_kernel', 'edge_band_kernel', 'edge_blur_kernel', 'soft_blur_kernel'):
            value = getattr(self, name)
            if value < 1 or value % 2 == 0:
                raise InvalidInput(f"{name} must be a positive odd number, got {value}", stage="config")


@dataclass(frozen=True)
class PipelineConfig:
    """Options recognised by the pipeline; defaults come from the environment."""
    removal_strategy: str = REMOVAL_STRATEGY
    debug: bool = DEBUG
    debug_dir: str = DEBUG_DIR
    border_width: int = BORDER_WIDTH
    dpi: int = DPI
    model_path: str = MODEL_PATH
    model_input_size: int = MODEL_INPUT_SIZE
    managed_model: str = MANAGED_MODEL
    face_cascade_path: str = FACE_CASCADE_PATH
    device: str = DEVICE
    portrait_mode: bool = True
    refine: RefineParams = field(default_factory=RefineParams)

    def __post_init__(self):
        if self.border_width < 0:
            raise InvalidInput(f"Border width must not be negative, got {self.border_width}", stage="config")
        if self.dpi <= 0:
            raise InvalidInput(f"DPI must be positive, got {self.dpi}", stage="config")

    @property
    def providers(self) -> List[str]:
        """onnxruntime execution providers, GPU first when available."""
        if self.device == 'cuda':
            return ['CUDAExecutionProvider', 'CPUExecutionProvider']
        return ['CPUExecutionProvider']

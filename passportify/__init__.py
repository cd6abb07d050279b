"""
passportify - Passport Photo Pipeline

Turns an uploaded portrait into a standards-compliant passport photo.

Pipeline:
- Background removal (opencv / neural / managed, with automatic fallback)
- Mask refinement and alpha matte
- Face-anchored crop to an exact physical size at a fixed DPI
- Background substitution (transparent, solid color or tiled image)
- Brightness / contrast / saturation adjustment

Supported formats:
- 2x2 inch (US and India)
- 35x45 mm (UK, Europe, Australia)
- 5x7 cm (Canada)
- 33x48 mm (China)

Usage:
    from passportify import PhotoProcessor, BackgroundSpec, decode_image
    processor = PhotoProcessor()
    image = decode_image(open("input/photo.jpg", "rb").read())
    result = processor.process(image, "35x45", BackgroundSpec.solid("#ffffff"))
    processor.close()
"""

# Core classes
from .config import (
    PhotoFormatSpec, PhotoFormatRegistry, PipelineConfig, RefineParams,
    REGISTRY, DPI, BACKGROUND_COLORS, get_format, get_format_list, calc_pixel_size,
)
from .exceptions import (
    PassportPhotoError, InvalidInput, UnsupportedUnit, InferenceError,
    EngineUnavailable, GeometryError, SegmentationDegraded,
)
from .imaging import Rect, decode_image, encode_image, to_pil, from_pil
from .face_detection import FaceLocator
from .classical import ClassicalSegmenter
from .neural import SegmentationStrategy, NeuralTensorSegmenter, ManagedModelSegmenter
from .refine import MaskRefiner
from .compositor import BackgroundSpec, Compositor, parse_hex_color, add_border
from .cropping import PassportCropper
from .adjust import Adjuster
from .background import RemovalEngineSelector
from .processor import PhotoProcessor, ProcessingResult

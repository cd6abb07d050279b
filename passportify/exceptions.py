"""
Exceptions raised by the passport photo pipeline
"""

from typing import Optional


# =============================================================================
# ERRORS
# =============================================================================

class PassportPhotoError(Exception):
    """Base exception for pipeline failures.

    `stage` names the pipeline step that failed (decode, segment, crop, ...),
    so callers can tell bad input apart from a processing failure.
    """

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class InvalidInput(PassportPhotoError):
    """Unreadable or empty image, or parameters out of range"""
    pass


class UnsupportedUnit(InvalidInput):
    """Physical unit other than mm, cm or inch"""
    pass


class InferenceError(PassportPhotoError):
    """A segmentation engine failed to produce a prediction"""
    pass


class EngineUnavailable(InferenceError):
    """Model file or inference session could not be constructed"""
    pass


class GeometryError(PassportPhotoError):
    """Crop rectangle could not be fit inside the image"""
    pass


# =============================================================================
# WARNINGS
# =============================================================================

class SegmentationDegraded(UserWarning):
    """A heuristic-only mask was used after a refinement step failed."""
    pass

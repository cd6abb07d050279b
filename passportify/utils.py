"""
Utility functions
"""

import gc
import logging
import os
from typing import Optional

import cv2
import numpy as np
import torch
from PIL.ImageCms import createProfile, ImageCmsProfile

logger = logging.getLogger(__name__)

# Build the sRGB ICC profile once (bytes), for embedding in saved images
_srgb_profile = ImageCmsProfile(createProfile('sRGB'))
SRGB_ICC_BYTES = _srgb_profile.tobytes()


def clear_gpu_memory() -> None:
    """Collect garbage and hand cached CUDA memory back to the driver."""
    gc.collect()
    try:
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
            torch.cuda.synchronize()
            logger.info("GPU memory cleared")
    except Exception as e:
        logger.warning(f"Failed to clear GPU memory: {e}")


class DebugArtifacts:
    """Writes intermediate masks and mattes as debug_<name>.png when enabled."""

    def __init__(self, enabled: bool = False, directory: str = "debug"):
        self._enabled = enabled
        self._directory = directory

    @property
    def enabled(self) -> bool:
        return self._enabled

    def save(self, name: str, image: Optional[np.ndarray]) -> Optional[str]:
        if not self._enabled or image is None:
            return None
        path = os.path.join(self._directory, f"debug_{name}.png")
        try:
            os.makedirs(self._directory, exist_ok=True)
            if not cv2.imwrite(path, image):
                logger.warning(f"Could not write debug artifact: {path}")
                return None
        except Exception as e:
            logger.warning(f"Failed to save debug artifact {name}: {e}")
            return None
        logger.debug(f"Debug artifact saved: {path}")
        return path


NO_DEBUG = DebugArtifacts(enabled=False)

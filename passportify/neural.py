"""
Neural segmentation strategies: a raw onnxruntime U2Net session and the
rembg model zoo.
"""

import os
import logging
import traceback
from typing import Callable, List, Optional, Protocol, Sequence

import cv2
import numpy as np
import onnxruntime as ort
from rembg import new_session

from .config import MODEL_INPUT_SIZE, MODEL_PATH, MANAGED_MODEL
from .exceptions import EngineUnavailable, InferenceError
from .face_detection import FaceLocator
from .grabcut import refine_with_grabcut, face_anchored_rect
from .imaging import ensure_image, to_bgr, to_pil
from .utils import DebugArtifacts, NO_DEBUG, clear_gpu_memory

logger = logging.getLogger(__name__)

_ORT_FLOAT_TYPES = {
    'tensor(float)': np.float32,
    'tensor(float16)': np.float16,
    'tensor(double)': np.float64,
}


class SegmentationStrategy(Protocol):
    """Anything that turns an image into a same-sized foreground mask."""

    name: str

    def segment(self, image: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


class _ModelSegmenter:
    """Shared secondary GrabCut pass for the model-backed strategies."""

    name = 'model'

    def __init__(
        self,
        portrait_mode: bool = True,
        face_locator: Optional[FaceLocator] = None,
        debug: DebugArtifacts = NO_DEBUG,
    ):
        self._portrait_mode = portrait_mode
        self._face_locator = face_locator
        self._debug = debug

    def _secondary_pass(self, image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        if self._portrait_mode:
            return mask
        img_height, img_width = image.shape[:2]
        face = self._face_locator.detect(image) if self._face_locator else None
        rect = face_anchored_rect(face, img_width, img_height) if face else None
        logger.info("Refining model mask with GrabCut")
        refined = refine_with_grabcut(image, mask, rect)
        self._debug.save(f"{self.name}_grabcut", refined)
        return refined


# =============================================================================
# ONNX RUNTIME SEGMENTER
# =============================================================================

class NeuralTensorSegmenter(_ModelSegmenter):
    """U2Net saliency model run through an onnxruntime InferenceSession.

    The model takes a 1x3xNxN float tensor (RGB, 0..1) and returns a
    saliency map whose first output is normalised into the mask.
    """

    name = 'neural'

    def __init__(
        self,
        model_path: str = MODEL_PATH,
        input_size: int = MODEL_INPUT_SIZE,
        providers: Optional[Sequence] = None,
        session_factory: Callable = ort.InferenceSession,
        portrait_mode: bool = True,
        face_locator: Optional[FaceLocator] = None,
        debug: DebugArtifacts = NO_DEBUG,
    ):
        super().__init__(portrait_mode, face_locator, debug)
        self._input_size = input_size

        if not model_path or not os.path.exists(model_path):
            raise EngineUnavailable(f"Model file not found: {model_path}", stage="load")

        logger.info(f"Loading ONNX model from {model_path}...")
        try:
            self._session = session_factory(
                model_path, providers=list(providers or ['CPUExecutionProvider']),
            )
            meta = self._session.get_inputs()[0]
        except Exception as e:
            logger.error(f"Failed to create inference session: {e}")
            logger.debug(traceback.format_exc())
            raise EngineUnavailable(f"Cannot create inference session: {e}", stage="load") from e

        self._input_name = meta.name
        self._input_dtype = _ORT_FLOAT_TYPES.get(getattr(meta, 'type', None), np.float32)
        self._input_shape = self._resolve_shape(getattr(meta, 'shape', None))
        logger.info(f"ONNX model loaded: input {self._input_name} {self._input_shape}")

    def _resolve_shape(self, shape) -> List[int]:
        """Replace symbolic dimensions with the configured batch/size."""
        default = [1, 3, self._input_size, self._input_size]
        if not shape or len(shape) != 4:
            return default
        return [dim if isinstance(dim, int) and dim > 0 else default[i] for i, dim in enumerate(shape)]

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        """Resize, BGR->RGB, scale to 0..1 and lay out as NCHW."""
        resized = cv2.resize(to_bgr(image), (self._input_size, self._input_size),
                             interpolation=cv2.INTER_LINEAR)
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
        tensor = rgb.astype(np.float32) / 255.0
        tensor = np.transpose(tensor, (2, 0, 1))[np.newaxis, ...]

        expected = tuple(self._input_shape)
        if tensor.shape != expected:
            if tensor.size != int(np.prod(expected)):
                raise InferenceError(
                    f"Input tensor shape {tensor.shape} does not match model input {expected}",
                    stage="segment",
                )
            logger.warning(f"Reshaping input tensor {tensor.shape} -> {expected}")
            tensor = tensor.reshape(expected)
        return np.ascontiguousarray(tensor, dtype=self._input_dtype)

    @staticmethod
    def postprocess(output: np.ndarray, img_width: int, img_height: int) -> np.ndarray:
        """Min-max normalise the saliency map and resize to the source image."""
        saliency = np.squeeze(np.asarray(output, dtype=np.float32))
        if saliency.ndim != 2:
            raise InferenceError(f"Unexpected model output shape {np.shape(output)}", stage="segment")
        if not np.isfinite(saliency).all():
            logger.warning("Model output contains non-finite values, zeroing them")
            saliency = np.nan_to_num(saliency, nan=0.0, posinf=0.0, neginf=0.0)

        lo, hi = float(saliency.min()), float(saliency.max())
        if hi - lo <= 0:
            logger.warning("Model output is constant, returning empty mask")
            return np.zeros((img_height, img_width), dtype=np.uint8)

        normalized = (saliency - lo) / (hi - lo)
        mask = (normalized * 255).astype(np.uint8)
        return cv2.resize(mask, (img_width, img_height), interpolation=cv2.INTER_LINEAR)

    def segment(self, image: np.ndarray) -> np.ndarray:
        ensure_image(image, stage="segment")
        if self._session is None:
            raise InferenceError("Segmenter has been closed", stage="segment")
        img_height, img_width = image.shape[:2]

        tensor = self.preprocess(image)
        try:
            outputs = self._session.run(None, {self._input_name: tensor})
        except Exception as e:
            logger.error(f"ONNX inference failed: {e}")
            logger.debug(traceback.format_exc())
            raise InferenceError(f"Inference failed: {e}", stage="segment") from e

        if not outputs:
            raise InferenceError("Model returned no outputs", stage="segment")

        mask = self.postprocess(outputs[0], img_width, img_height)
        self._debug.save("neural_mask", mask)
        return self._secondary_pass(to_bgr(image), mask)

    def close(self) -> None:
        """Release the session."""
        self._session = None
        clear_gpu_memory()


# =============================================================================
# REMBG MODEL ZOO SEGMENTER
# =============================================================================

class ManagedModelSegmenter(_ModelSegmenter):
    """Pretrained segmentation from the rembg model zoo."""

    name = 'managed'

    FALLBACK_WIDTH = 0.7
    FALLBACK_HEIGHT = 0.9

    def __init__(
        self,
        model_name: str = MANAGED_MODEL,
        providers: Optional[Sequence] = None,
        session_factory: Callable = new_session,
        portrait_mode: bool = True,
        face_locator: Optional[FaceLocator] = None,
        debug: DebugArtifacts = NO_DEBUG,
    ):
        super().__init__(portrait_mode, face_locator, debug)
        self._model_name = model_name

        logger.info(f"Initializing rembg session ({model_name})...")
        try:
            self._session = session_factory(
                model_name, providers=list(providers or ['CPUExecutionProvider']),
            )
        except Exception as e:
            logger.error(f"Failed to initialize rembg session: {e}")
            logger.debug(traceback.format_exc())
            raise EngineUnavailable(f"Cannot initialize rembg session: {e}", stage="load") from e
        logger.info(f"Rembg session initialized ({model_name})")

    def segment(self, image: np.ndarray) -> np.ndarray:
        ensure_image(image, stage="segment")
        if self._session is None:
            raise InferenceError("Segmenter has been closed", stage="segment")
        img_height, img_width = image.shape[:2]
        bgr = to_bgr(image)

        try:
            outputs = self._session.predict(to_pil(bgr))
        except Exception as e:
            logger.error(f"Rembg prediction failed: {e}")
            logger.debug(traceback.format_exc())
            raise InferenceError(f"Prediction failed: {e}", stage="segment") from e

        mask = self._select_mask(outputs, img_width, img_height)
        self._debug.save("managed_mask", mask)
        return self._secondary_pass(bgr, mask)

    def _select_mask(self, outputs, img_width: int, img_height: int) -> np.ndarray:
        confidences = []
        for output in outputs or []:
            if output is None:
                confidences.append(0.0)
                continue
            mask = np.asarray(output.convert('L') if hasattr(output, 'convert') else output)
            if mask.ndim == 3:
                mask = mask[:, :, 0]
            if mask.ndim != 2 or mask.size == 0:
                confidences.append(0.0)
                continue
            confidence = float(mask.mean()) / 255.0
            confidences.append(confidence)
            if mask.max() == 0:
                continue
            mask = mask.astype(np.uint8)
            if mask.shape != (img_height, img_width):
                mask = cv2.resize(mask, (img_width, img_height), interpolation=cv2.INTER_LINEAR)
            return mask

        logger.warning(f"No usable mask from rembg, using centered fallback "
                       f"(output confidences: {[round(c, 3) for c in confidences]})")
        width = int(img_width * self.FALLBACK_WIDTH)
        height = int(img_height * self.FALLBACK_HEIGHT)
        x = (img_width - width) // 2
        y = (img_height - height) // 2
        mask = np.zeros((img_height, img_width), dtype=np.uint8)
        mask[y:y + height, x:x + width] = 255
        return mask

    def close(self) -> None:
        """Release the session."""
        self._session = None
        clear_gpu_memory()

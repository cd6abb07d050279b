"""
Background removal: strategy selection, engine lifecycle and fallback
"""

import logging
import threading
import traceback
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .classical import ClassicalSegmenter
from .compositor import Compositor
from .config import PipelineConfig
from .exceptions import EngineUnavailable, InferenceError, InvalidInput
from .face_detection import FaceLocator
from .imaging import ensure_image
from .neural import ManagedModelSegmenter, NeuralTensorSegmenter, SegmentationStrategy
from .refine import MaskRefiner
from .utils import DebugArtifacts

logger = logging.getLogger(__name__)

CLASSICAL = 'opencv'

STRATEGY_ALIASES = {
    'opencv': CLASSICAL,
    'neural': 'neural',
    'onnx': 'neural',
    'managed': 'managed',
    'djl': 'managed',
    'auto': 'auto',
}

AUTO_CHAIN = ['neural', 'managed', CLASSICAL]

EngineFactory = Callable[[], SegmentationStrategy]


def normalize_strategy(name: Optional[str]) -> str:
    """Canonical strategy name; raises InvalidInput for unknown names."""
    key = str(name or 'auto').strip().lower()
    if key not in STRATEGY_ALIASES:
        raise InvalidInput(
            f"Unknown removal strategy: {name}. Available: {sorted(STRATEGY_ALIASES)}",
            stage="config",
        )
    return STRATEGY_ALIASES[key]


def candidate_chain(strategy: str) -> List[str]:
    """Ordered engines to try for a strategy; classical always comes last."""
    strategy = normalize_strategy(strategy)
    if strategy == 'auto':
        return list(AUTO_CHAIN)
    if strategy == CLASSICAL:
        return [CLASSICAL]
    return [strategy, CLASSICAL]


class RemovalEngineSelector:
    """Owns one segmentation engine, chosen from an ordered candidate chain.

    Usage:
        selector = RemovalEngineSelector('auto')
        cutout = selector.remove_background(image)   # BGRA
        selector.close()
    """

    def __init__(
        self,
        strategy: Optional[str] = None,
        config: Optional[PipelineConfig] = None,
        factories: Optional[Dict[str, EngineFactory]] = None,
        refiner: Optional[MaskRefiner] = None,
        compositor: Optional[Compositor] = None,
        face_locator: Optional[FaceLocator] = None,
        debug: Optional[DebugArtifacts] = None,
    ):
        self.config = config or PipelineConfig()
        self.strategy = normalize_strategy(strategy or self.config.removal_strategy)
        self._debug = debug or DebugArtifacts(self.config.debug, self.config.debug_dir)
        self._face_locator = face_locator or FaceLocator(self.config.face_cascade_path)
        self._refiner = refiner or MaskRefiner(self.config.refine, debug=self._debug)
        self._compositor = compositor or Compositor()

        self._factories = self._default_factories()
        if factories:
            self._factories.update(factories)
        self._candidates: List[Tuple[str, EngineFactory]] = [
            (name, self._factories[name]) for name in candidate_chain(self.strategy)
        ]

        self._engine: Optional[SegmentationStrategy] = None
        self._engine_name: Optional[str] = None
        self._fallback: Optional[SegmentationStrategy] = None
        self._last_served: Optional[str] = None
        self._build_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _default_factories(self) -> Dict[str, EngineFactory]:
        cfg = self.config
        return {
            CLASSICAL: lambda: ClassicalSegmenter(
                face_locator=self._face_locator,
                portrait_mode=cfg.portrait_mode,
                debug=self._debug,
            ),
            'neural': lambda: NeuralTensorSegmenter(
                model_path=cfg.model_path,
                input_size=cfg.model_input_size,
                providers=cfg.providers,
                portrait_mode=cfg.portrait_mode,
                face_locator=self._face_locator,
                debug=self._debug,
            ),
            'managed': lambda: ManagedModelSegmenter(
                model_name=cfg.managed_model,
                providers=cfg.providers,
                portrait_mode=cfg.portrait_mode,
                face_locator=self._face_locator,
                debug=self._debug,
            ),
        }

    # -------------------------------------------------------------------------
    # Engine lifecycle
    # -------------------------------------------------------------------------

    def _construct(self, candidates: List[Tuple[str, EngineFactory]]) -> Tuple[SegmentationStrategy, str]:
        failures = []
        for name, factory in candidates:
            logger.info(f"Trying removal strategy '{name}'...")
            try:
                engine = factory()
            except Exception as e:
                logger.warning(f"Strategy '{name}' unavailable: {e}")
                logger.debug(traceback.format_exc())
                failures.append(f"{name}: {e}")
                continue
            self._locks.setdefault(name, threading.Lock())
            logger.info(f"Using removal strategy '{name}'")
            return engine, name
        raise EngineUnavailable(f"No removal strategy could be constructed ({'; '.join(failures)})", stage="load")

    def load(self) -> SegmentationStrategy:
        """Build the engine now instead of on first use."""
        with self._build_lock:
            if self._engine is None:
                self._engine, self._engine_name = self._construct(self._candidates)
            return self._engine

    @property
    def engine(self) -> SegmentationStrategy:
        return self.load()

    @property
    def active_strategy(self) -> Optional[str]:
        """Name of the loaded engine, None before the first load."""
        return self._engine_name

    @property
    def last_strategy(self) -> Optional[str]:
        """Engine that produced the most recent mask (differs after an inference fallback)."""
        return self._last_served

    def _classical_fallback(self) -> SegmentationStrategy:
        with self._build_lock:
            if self._fallback is None:
                self._fallback, _ = self._construct([(CLASSICAL, self._factories[CLASSICAL])])
            return self._fallback

    def close(self) -> None:
        """Release every engine this selector built."""
        with self._build_lock:
            for engine in (self._engine, self._fallback):
                if engine is not None:
                    engine.close()
            self._engine = None
            self._fallback = None
            self._engine_name = None
        logger.info("Removal engines released")

    # -------------------------------------------------------------------------
    # Segmentation
    # -------------------------------------------------------------------------

    def _run(self, name: str, engine: SegmentationStrategy, image: np.ndarray) -> np.ndarray:
        with self._locks.setdefault(name, threading.Lock()):
            mask = engine.segment(image)
        self._last_served = name
        return mask

    def segment(self, image: np.ndarray) -> np.ndarray:
        """Raw foreground mask; retries once on the classical engine if a model fails."""
        ensure_image(image, stage="segment")
        engine = self.load()
        name = self._engine_name
        try:
            return self._run(name, engine, image)
        except InferenceError as e:
            if name == CLASSICAL:
                e.stage = "segment"
                raise
            logger.warning(f"Strategy '{name}' failed during inference, falling back to {CLASSICAL}: {e}")
            logger.debug(traceback.format_exc())
            return self._run(CLASSICAL, self._classical_fallback(), image)

    def remove_background(self, image: np.ndarray) -> np.ndarray:
        """Segment, refine and attach the alpha matte. Returns BGRA."""
        ensure_image(image, stage="segment")
        logger.info(f"Removing background (image size: {image.shape[1]}x{image.shape[0]})")

        raw = self.segment(image)
        self._debug.save("raw_mask", raw)
        refined = self._refiner.refine(image, raw)
        self._debug.save("refined_mask", refined)
        matte = self._refiner.to_alpha_matte(refined)
        self._debug.save("matte", matte)

        cutout = self._compositor.apply_alpha(image, matte)
        logger.info(f"Background removed with '{self._last_served}'")
        return cutout

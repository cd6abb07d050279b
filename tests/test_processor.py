"""
Tests for the PhotoProcessor facade
"""

import numpy as np
import pytest

from passportify.compositor import BackgroundSpec
from passportify.config import PhotoFormatSpec, PipelineConfig, REGISTRY
from passportify.exceptions import EngineUnavailable, InvalidInput
from passportify.imaging import Rect
from passportify.processor import PhotoProcessor, ProcessingResult


def unavailable():
    raise EngineUnavailable("not installed", stage="load")


@pytest.fixture
def engines(fake_engine):
    return {'opencv': fake_engine('opencv')}


@pytest.fixture
def make_processor(tmp_path, engines):
    created = []

    def make(**overrides):
        options = dict(removal_strategy='auto', model_path=str(tmp_path / "missing.onnx"), device='cpu')
        options.update(overrides)
        processor = PhotoProcessor(PipelineConfig(**options), factories={
            'neural': unavailable,
            'managed': unavailable,
            'opencv': lambda: engines['opencv'],
        })
        created.append(processor)
        return processor

    yield make
    for processor in created:
        processor.close()


class TestPhotoProcessor:
    """End-to-end pipeline with a fake engine"""

    def test_process_format(self, make_processor, portrait):
        result = make_processor().process(portrait, '35x45', BackgroundSpec.solid('#ffffff'))
        assert isinstance(result, ProcessingResult)
        assert result.photo.shape == (531, 413, 3)
        assert result.cutout.shape == portrait.shape[:2] + (4,)
        assert result.strategy == 'opencv'
        assert result.format_info.key == '35x45'
        assert result.crop_rect.is_within(portrait.shape[1], portrait.shape[0])

    def test_transparent_output(self, make_processor, portrait):
        result = make_processor().process(portrait, '2x2')
        assert result.photo.shape == (600, 600, 4)

    def test_original_framing(self, make_processor, portrait):
        result = make_processor().process(portrait, None, BackgroundSpec.solid('#0284c7'))
        assert result.photo.shape == portrait.shape
        assert result.crop_rect is None
        # corners are outside the fake mask
        assert tuple(result.photo[0, 0]) == (0xc7, 0x84, 0x02)

    def test_border(self, make_processor, portrait):
        result = make_processor(border_width=5).process(portrait, '35x45', BackgroundSpec.solid('#ffffff'))
        assert result.photo.shape == (541, 423, 3)
        assert tuple(result.photo[0, 0]) == (0, 0, 0)

    def test_dpi_override(self, make_processor, portrait):
        result = make_processor(dpi=600).process(portrait, '35x45')
        assert result.photo.shape[:2] == (1063, 827)

    def test_custom_spec_and_face(self, make_processor, portrait):
        spec = PhotoFormatSpec(33, 48, 'mm', 300)
        face = Rect(80, 60, 80, 100)
        result = make_processor().process(portrait, spec, face_rect=face)
        assert result.face_rect == face
        assert result.photo.shape[:2] == (567, 390)

    def test_adjustments(self, make_processor, portrait):
        processor = make_processor()
        plain = processor.process(portrait, '35x45', BackgroundSpec.solid('#808080'))
        brighter = processor.process(portrait, '35x45', BackgroundSpec.solid('#808080'),
                                     adjustments={'brightness': 40})
        assert brighter.photo.mean() > plain.photo.mean()

    def test_unknown_format(self, make_processor, portrait):
        with pytest.raises(InvalidInput):
            make_processor().process(portrait, 'a4')

    def test_invalid_image(self, make_processor):
        with pytest.raises(InvalidInput):
            make_processor().process(np.zeros((10, 10), dtype=np.uint8), '35x45')


class TestEntryPoints:
    """Individual pipeline entry points"""

    def test_normalize_without_spec(self, make_processor, portrait):
        result = make_processor().normalize_to_passport_format(portrait)
        assert result.shape == portrait.shape[:2] + (4,)

    def test_normalize_with_spec_and_border(self, make_processor, portrait):
        spec = REGISTRY.get('35x45')
        result = make_processor(border_width=10).normalize_to_passport_format(portrait, spec=spec)
        assert result.shape == (551, 433, 4)
        assert tuple(result[0, 0]) == (0, 0, 0, 255)

    def test_normalize_without_spec_gets_border(self, make_processor, portrait):
        result = make_processor(border_width=3).normalize_to_passport_format(portrait)
        assert result.shape == (306, 246, 4)

    def test_composite_and_adjust(self, make_processor, portrait):
        processor = make_processor()
        cutout = processor.remove_background(portrait)
        composed = processor.composite_background(cutout, BackgroundSpec.solid('#ffffff'))
        assert composed.shape == portrait.shape
        assert np.array_equal(processor.adjust(composed), composed)

    def test_selectors_are_reused(self, make_processor):
        processor = make_processor()
        assert processor.selector('onnx') is processor.selector('neural')
        assert processor.selector() is processor.selector('auto')

    def test_close_releases_engines(self, make_processor, portrait, engines):
        processor = make_processor()
        processor.remove_background(portrait, strategy='opencv')
        processor.close()
        assert engines['opencv'].closed


class TestFaceHandling:
    """Face detection and cropping work only happen when a format needs them"""

    def test_no_detection_without_format(self, make_processor, portrait, monkeypatch):
        processor = make_processor()

        def unexpected(image):
            raise AssertionError("face detection should not run")

        monkeypatch.setattr(processor.face_locator, "locate", unexpected)
        result = processor.process(portrait, None, BackgroundSpec.solid('#ffffff'))
        assert result.face_rect is None
        assert result.crop_rect is None

    def test_known_face_kept_without_format(self, make_processor, portrait):
        face = Rect(80, 60, 80, 100)
        assert make_processor().process(portrait, None, face_rect=face).face_rect == face

    def test_crop_rect_computed_once(self, make_processor, portrait, monkeypatch):
        processor = make_processor()
        calls = []
        real = processor.cropper.rect_for

        def counting(*args):
            calls.append(args)
            return real(*args)

        monkeypatch.setattr(processor.cropper, "rect_for", counting)
        result = processor.process(portrait, '35x45')
        assert len(calls) == 1
        assert result.photo.shape[:2] == (531, 413)
        expected = processor.cropper.crop(result.cutout, result.face_rect, result.format_info)
        assert np.array_equal(result.photo, expected)

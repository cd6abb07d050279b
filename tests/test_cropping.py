"""
Tests for face-anchored passport cropping
"""

import numpy as np
import pytest

from passportify.config import PhotoFormatSpec, REGISTRY
from passportify.cropping import PassportCropper
from passportify.exceptions import GeometryError
from passportify.imaging import Rect

WIDTH, HEIGHT = 600, 800


@pytest.fixture
def cropper():
    return PassportCropper()


@pytest.fixture
def large_image():
    return np.random.randint(0, 255, (HEIGHT, WIDTH, 3), dtype=np.uint8)


class TestTargetSize:
    """Target pixel dimensions"""

    def test_35x45(self, cropper):
        assert cropper.target_pixel_size(PhotoFormatSpec(35, 45, 'mm', 300)) == (413, 531)

    def test_crop_output_size(self, cropper, large_image):
        spec = PhotoFormatSpec(35, 45, 'mm', 300)
        result = cropper.crop(large_image, Rect(250, 250, 100, 120), spec)
        assert result.shape == (531, 413, 3)

    @pytest.mark.parametrize("key", REGISTRY.keys())
    def test_every_registered_format(self, cropper, large_image, key):
        spec = REGISTRY.get(key)
        result = cropper.crop(large_image, Rect(250, 250, 100, 120), spec)
        assert (result.shape[1], result.shape[0]) == spec.pixel_size

    def test_keeps_alpha(self, cropper):
        image = np.zeros((HEIGHT, WIDTH, 4), dtype=np.uint8)
        result = cropper.crop(image, Rect(250, 250, 100, 120), REGISTRY.get('2x2'))
        assert result.shape == (600, 600, 4)


class TestCropRect:
    """Crop rectangle geometry"""

    def test_centered_face_keeps_aspect(self, cropper):
        rect = cropper.compute_crop_rect((HEIGHT, WIDTH), Rect(250, 250, 100, 120), 35 / 45)
        assert rect.is_within(WIDTH, HEIGHT)
        assert rect.width == 250
        assert rect.width / rect.height == pytest.approx(35 / 45, rel=0.02)
        cx, cy = rect.center
        assert abs(cx - 300) <= 1
        assert abs(cy - 310) <= 1

    def test_minimum_height(self, cropper):
        rect = cropper.compute_crop_rect((HEIGHT, WIDTH), Rect(250, 200, 60, 200), 1.0)
        assert rect.height >= 400

    @pytest.mark.parametrize("face", [
        Rect(0, 0, 80, 100),
        Rect(WIDTH - 80, HEIGHT - 100, 80, 100),
        Rect(WIDTH - 1, HEIGHT - 1, 1, 1),
        Rect(-50, 300, 120, 140),
        Rect(0, 0, WIDTH, HEIGHT),
        Rect(100, 100, 2000, 2000),
    ])
    def test_edge_faces_stay_in_bounds(self, cropper, large_image, face):
        rect = cropper.compute_crop_rect(large_image.shape, face, 35 / 45)
        assert rect.is_within(WIDTH, HEIGHT)
        result = cropper.crop(large_image, face, PhotoFormatSpec(35, 45, 'mm', 300))
        assert result.shape == (531, 413, 3)

    def test_unfittable_crop(self, cropper):
        with pytest.raises(GeometryError):
            cropper.compute_crop_rect((100, 100), Rect(0, 0, 10, 10), 1000.0)

    def test_crop_to_precomputed_rect(self, cropper, large_image):
        spec = PhotoFormatSpec(35, 45, 'mm', 300)
        face = Rect(250, 250, 100, 120)
        rect = cropper.rect_for(large_image.shape, face, spec)
        assert np.array_equal(cropper.crop_to_rect(large_image, rect, spec), cropper.crop(large_image, face, spec))

    def test_rect_outside_image(self, cropper, large_image):
        with pytest.raises(GeometryError):
            cropper.crop_to_rect(large_image, Rect(500, 700, 200, 200), REGISTRY.get('35x45'))


class TestFaceMarker:
    """Debug face outline"""

    def test_draws_on_copy(self, cropper):
        image = np.zeros((100, 100, 3), dtype=np.uint8)
        marked = cropper.draw_face_marker(image, Rect(20, 20, 40, 40))
        assert image.max() == 0
        assert tuple(marked[20, 40]) == (0, 255, 0)

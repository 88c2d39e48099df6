"""
Tests for the Canny edge detector and its individual stages.
"""

import numpy as np
import pytest

from edgelens.buffers import GradientField, LuminanceBuffer
from edgelens.errors import ContractViolation
from edgelens.filter_stages import (
    apply_canny_edge_detection,
    hysteresis_raster,
    stage_double_threshold,
    stage_grayscale,
    stage_hysteresis,
    stage_non_maximum_suppression,
    stage_separable_blur,
    stage_sobel,
)
from edgelens.schemas import FilterOptions, HysteresisMode


def luminance(values) -> LuminanceBuffer:
    values = np.asarray(values, dtype=np.uint8)
    return LuminanceBuffer(values.shape[1], values.shape[0], values)


def gradient(magnitude, direction) -> GradientField:
    magnitude = np.asarray(magnitude, dtype=np.uint8)
    direction = np.broadcast_to(np.float32(direction), magnitude.shape).copy()
    return GradientField(magnitude.shape[1], magnitude.shape[0], magnitude, direction)


def reference_raster(edges: np.ndarray) -> np.ndarray:
    """Pixel-by-pixel raster pass, for comparison."""
    result = edges.copy()
    height, width = result.shape
    for y in range(1, height - 1):
        for x in range(1, width - 1):
            if result[y, x] == 128:
                window = result[y - 1:y + 2, x - 1:x + 2]
                result[y, x] = 255 if (window == 255).any() else 0
    result[result == 128] = 0
    return result


class TestSeparableBlur:

    def test_uniform_luminance_unchanged(self):
        lum = luminance(np.full((6, 9), 90))
        blurred = stage_separable_blur(lum)
        assert np.all(blurred.values == 90)

    def test_step_profile(self):
        row = [0] * 10 + [255] * 10
        blurred = stage_separable_blur(luminance([row] * 5))
        # every row identical, monotonic across the step
        assert np.all(blurred.values == blurred.values[0])
        profile = blurred.values[0].tolist()
        assert profile == sorted(profile)
        assert profile[:7] == [0] * 7
        assert profile[13:] == [255] * 7


class TestSobel:

    def test_border_ring_zero(self, random_frame):
        field = stage_sobel(stage_grayscale(random_frame))
        for arr in (field.magnitude, field.direction):
            assert np.all(arr[0, :] == 0)
            assert np.all(arr[-1, :] == 0)
            assert np.all(arr[:, 0] == 0)
            assert np.all(arr[:, -1] == 0)

    def test_vertical_step(self):
        row = [0, 0, 0, 255, 255, 255]
        field = stage_sobel(luminance([row] * 5))
        # interior columns 2 and 3 straddle the step: gx = 1020 -> clamped
        assert field.magnitude[2].tolist() == [0, 0, 255, 255, 0, 0]
        assert np.all(field.direction[1:-1, 1:-1] == 0)

    def test_horizontal_step_direction(self):
        values = np.zeros((6, 5), dtype=np.uint8)
        values[3:] = 40
        field = stage_sobel(luminance(values))
        # gy = 4 * 40 = 160 on the rows next to the step
        assert field.magnitude[2, 2] == 160
        assert field.direction[2, 2] == pytest.approx(np.pi / 2)

    def test_too_small_for_window(self):
        field = stage_sobel(luminance(np.full((2, 8), 200)))
        assert not field.magnitude.any()
        assert not field.direction.any()


class TestNonMaximumSuppression:

    def test_keeps_ridge_across_horizontal_gradient(self):
        mag = np.zeros((5, 5))
        mag[:, 1] = 50
        mag[:, 2] = 100
        mag[:, 3] = 50
        suppressed = stage_non_maximum_suppression(gradient(mag, 0.0))
        expected = np.zeros((5, 5), dtype=np.uint8)
        expected[1:-1, 2] = 100
        np.testing.assert_array_equal(suppressed, expected)

    def test_keeps_ridge_across_vertical_gradient(self):
        mag = np.zeros((5, 5))
        mag[1, :] = 30
        mag[2, :] = 90
        mag[3, :] = 30
        suppressed = stage_non_maximum_suppression(gradient(mag, -np.pi / 2))
        expected = np.zeros((5, 5), dtype=np.uint8)
        expected[2, 1:-1] = 90
        np.testing.assert_array_equal(suppressed, expected)

    def test_ties_are_kept(self):
        suppressed = stage_non_maximum_suppression(gradient(np.full((5, 5), 10), 0.0))
        assert np.all(suppressed[1:-1, 1:-1] == 10)
        assert suppressed[0].sum() == 0 and suppressed[:, 0].sum() == 0

    def test_diagonal_sector_uses_anti_diagonal(self):
        mag = np.zeros((5, 5))
        mag[2, 2] = 60
        mag[1, 3] = 80  # north-east neighbour
        suppressed = stage_non_maximum_suppression(gradient(mag, np.pi / 4))
        assert suppressed[2, 2] == 0
        suppressed = stage_non_maximum_suppression(gradient(mag, 3 * np.pi / 4))
        assert suppressed[2, 2] == 60


class TestHysteresis:

    @pytest.fixture
    def seeded_ring(self):
        values = np.zeros((5, 5), dtype=np.uint8)
        values[1:4, 1:4] = 80
        values[2, 2] = 200
        return values

    def test_double_threshold_classes(self):
        values = np.array([[0, 49, 50, 149, 150, 255]], dtype=np.uint8)
        assert stage_double_threshold(values, 50, 150).tolist() == [[0, 0, 128, 128, 255, 255]]

    @pytest.mark.parametrize("mode", list(HysteresisMode))
    def test_weak_ring_around_strong_seed_promoted(self, seeded_ring, mode):
        edges = stage_hysteresis(seeded_ring, 50, 150, mode)
        expected = np.zeros((5, 5), dtype=np.uint8)
        expected[1:4, 1:4] = 255
        np.testing.assert_array_equal(edges, expected)

    @pytest.mark.parametrize("mode", list(HysteresisMode))
    def test_isolated_weak_pixel_dropped(self, mode):
        values = np.zeros((5, 5), dtype=np.uint8)
        values[1, 1] = 80
        values[3, 3] = 200
        edges = stage_hysteresis(values, 50, 150, mode)
        assert edges[1, 1] == 0
        assert edges[3, 3] == 255

    def test_raster_promotion_visible_later_in_pass(self):
        values = np.zeros((7, 7), dtype=np.uint8)
        values[1, 1] = 200
        values[1, 2:6] = 80
        edges = stage_hysteresis(values, 50, 150, HysteresisMode.RASTER)
        assert edges[1, 1:6].tolist() == [255] * 5

    def test_raster_under_propagates_upward_chain(self):
        values = np.zeros((7, 7), dtype=np.uint8)
        values[1, 3] = 80
        values[2, 3] = 80
        values[3, 3] = 200
        raster = stage_hysteresis(values, 50, 150, HysteresisMode.RASTER)
        flood = stage_hysteresis(values, 50, 150, HysteresisMode.FLOOD)
        assert raster[1:4, 3].tolist() == [0, 255, 255]
        assert flood[1:4, 3].tolist() == [255, 255, 255]

    @pytest.mark.parametrize("mode", list(HysteresisMode))
    def test_zero_low_threshold_leaves_binary_map(self, mode):
        values = np.zeros((5, 5), dtype=np.uint8)
        values[2, 2] = 200
        edges = stage_hysteresis(values, 0, 150, mode)
        expected = np.zeros((5, 5), dtype=np.uint8)
        expected[1:4, 1:4] = 255
        np.testing.assert_array_equal(edges, expected)

    @pytest.mark.parametrize("shape", [(1, 9), (3, 3), (12, 17), (40, 31)])
    @pytest.mark.parametrize("weak_share", [0.3, 0.6])
    def test_raster_matches_pixel_by_pixel_pass(self, shape, weak_share):
        rng = np.random.default_rng(7)
        for _ in range(5):
            draw = rng.random(shape)
            edges = np.zeros(shape, dtype=np.uint8)
            edges[draw < weak_share] = 128
            edges[draw > 0.95] = 255
            np.testing.assert_array_equal(hysteresis_raster(edges), reference_raster(edges))

    def test_unknown_mode_rejected(self):
        with pytest.raises(ContractViolation):
            stage_hysteresis(np.zeros((3, 3), dtype=np.uint8), 50, 150, "iterative")

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ContractViolation):
            stage_hysteresis(np.zeros((3, 3), dtype=np.uint8), 200, 100)
        with pytest.raises(ContractViolation):
            FilterOptions.create(low_threshold=200, high_threshold=100)


class TestCannyPipeline:

    def test_binary_range_and_opaque_alpha(self, random_frame):
        output = apply_canny_edge_detection(random_frame, {'low_threshold': 10, 'high_threshold': 40})
        assert set(np.unique(output.pixels[..., :3]).tolist()) <= {0, 255}
        assert np.all(output.alpha == 255)
        pixels = output.pixels
        assert np.array_equal(pixels[..., 0], pixels[..., 1])
        assert np.array_equal(pixels[..., 1], pixels[..., 2])

    def test_uniform_frame_has_no_edges(self, solid_frame):
        output = apply_canny_edge_detection(solid_frame(8, 8, (120, 30, 60, 10)))
        assert not output.pixels[..., :3].any()
        assert np.all(output.alpha == 255)

    @pytest.mark.parametrize("mode", ["raster", "flood"])
    def test_vertical_edge_smoke(self, vertical_edge_frame, mode):
        output = apply_canny_edge_detection(vertical_edge_frame, {'hysteresis': mode})
        edges = output.pixels[..., 0]

        # border ring stays empty
        assert not edges[0].any() and not edges[-1].any()
        assert not edges[:, 0].any() and not edges[:, -1].any()

        # the step between columns 9 and 10 is marked on every interior row
        interior = edges[1:-1]
        assert np.all(interior[:, 9] == 255)
        assert np.all(interior[:, 10] == 255)

        # nothing away from the step
        columns = np.nonzero(edges.any(axis=0))[0]
        assert columns.min() >= 8 and columns.max() <= 11
        for col in columns:
            assert np.all(interior[:, col] == 255)

    def test_small_frames_supported(self, solid_frame):
        output = apply_canny_edge_detection(solid_frame(1, 1, (255, 255, 255, 0)))
        assert output.pixels[0, 0].tolist() == [0, 0, 0, 255]

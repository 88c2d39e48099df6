"""Shared fixtures: small synthetic RGBA frames."""

import numpy as np
import pytest

from edgelens.buffers import PixelBuffer


@pytest.fixture
def solid_frame():
    """Factory for frames filled with a single RGBA colour."""
    def make(width: int, height: int, rgba) -> PixelBuffer:
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = rgba
        return PixelBuffer.from_array(pixels)

    return make


@pytest.fixture
def random_frame() -> PixelBuffer:
    """Deterministic 16×12 frame with random colour and alpha."""
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(12, 16, 4), dtype=np.uint8)
    return PixelBuffer.from_array(pixels)


@pytest.fixture
def vertical_edge_frame() -> PixelBuffer:
    """20×20 opaque frame, black for x < 10 and white for x >= 10."""
    pixels = np.zeros((20, 20, 4), dtype=np.uint8)
    pixels[:, 10:, :3] = 255
    pixels[..., 3] = 255
    return PixelBuffer.from_array(pixels)

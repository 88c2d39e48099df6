"""
EdgeLens - Convolution Kernels
==============================
Gaussian kernel construction for the 2D blur filter and the separable
pre-blur of the edge detector. Kernels are odd-sized, centred and
normalised to sum to 1.0.
"""

import math

import numpy as np

from edgelens.errors import ContractViolation


# Sobel operators, row-major 3×3 (applied as correlation)
SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.int32)
SOBEL_Y = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.int32)


def create_gaussian_kernel_2d(radius: int) -> np.ndarray:
    """
    Square Gaussian kernel of size 2*radius+1 with sigma = radius / 3.

    Args:
        radius: Non-negative blur radius

    Returns:
        Normalised kernel (2r+1, 2r+1) float64. radius=0 gives [[1.0]].
    """
    if radius < 0:
        raise ContractViolation(f"Blur radius must be non-negative, got {radius}")
    if radius == 0:
        return np.ones((1, 1), dtype=np.float64)

    sigma = radius / 3
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    dy, dx = np.meshgrid(offsets, offsets, indexing='ij')
    kernel = np.exp(-(dx * dx + dy * dy) / (2 * sigma * sigma))

    return kernel / kernel.sum()


def create_gaussian_kernel_1d(sigma: float) -> np.ndarray:
    """
    1D Gaussian kernel with radius ceil(3 * sigma).

    Args:
        sigma: Standard deviation in pixels (> 0)

    Returns:
        Normalised kernel (2r+1,) float64
    """
    if not sigma > 0:
        raise ContractViolation(f"Sigma must be positive, got {sigma}")

    radius = math.ceil(sigma * 3)
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-(offsets * offsets) / (2 * sigma * sigma))

    return kernel / kernel.sum()

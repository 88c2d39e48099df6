"""
EdgeLens - Filter Stages
========================
NumPy/SciPy implementations of the four per-frame filters and the stages
of the Canny edge detector.

Every public filter takes a PixelBuffer and returns a freshly allocated
PixelBuffer of the same size. Nothing here keeps state between calls.

Canny stage order:
1. Grayscale            PixelBuffer     -> LuminanceBuffer
2. Separable blur       LuminanceBuffer -> LuminanceBuffer (sigma = 1.0)
3. Sobel gradient       LuminanceBuffer -> GradientField
4. Non-max suppression  GradientField   -> suppressed magnitude
5. Double threshold + hysteresis        -> binary edge map
"""

import functools
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Mapping, Optional, Union

import numpy as np
from scipy.ndimage import correlate, correlate1d, label

from edgelens.buffers import (
    CHANNELS,
    GradientField,
    LuminanceBuffer,
    PixelBuffer,
    replicate_edges,
    to_uint8,
    validate_pixel_buffer,
)
from edgelens.errors import ComputationFailure, ContractViolation, FilterError
from edgelens.kernels import (
    SOBEL_X,
    SOBEL_Y,
    create_gaussian_kernel_1d,
    create_gaussian_kernel_2d,
)
from edgelens.schemas import FilterOptions, HysteresisMode


LUMA_WEIGHTS = (0.299, 0.587, 0.114)

CANNY_SIGMA = 1.0

STRONG = 255
WEAK = 128

OptionsLike = Union[FilterOptions, Mapping, None]


def _resolve_options(options: OptionsLike) -> FilterOptions:
    if options is None:
        return FilterOptions()
    if isinstance(options, FilterOptions):
        return options
    if isinstance(options, Mapping):
        return FilterOptions.create(**options)
    raise ContractViolation(f"Unsupported options type: {type(options).__name__}")


def atomic_filter(func):
    """
    Validate the input buffer, and turn unexpected failures into
    ComputationFailure so callers never see a partial result.
    """
    @functools.wraps(func)
    def wrapper(buffer: PixelBuffer, *args, **kwargs) -> PixelBuffer:
        if not isinstance(buffer, PixelBuffer):
            raise ContractViolation(f"Expected PixelBuffer, got {type(buffer).__name__}")
        validate_pixel_buffer(buffer)
        try:
            return func(buffer, *args, **kwargs)
        except FilterError:
            raise
        except Exception as e:
            raise ComputationFailure(f"{func.__name__} failed: {e}") from e

    return wrapper


# ==============================================================================
# Luminance
# ==============================================================================

def compute_luminance(pixels: np.ndarray) -> np.ndarray:
    """
    Unrounded luminance 0.299R + 0.587G + 0.114B.

    Args:
        pixels: RGBA (H, W, 4) uint8

    Returns:
        Luminance (H, W) float64
    """
    rgb = pixels[..., :3].astype(np.float64)
    r_w, g_w, b_w = LUMA_WEIGHTS
    return rgb[..., 0] * r_w + rgb[..., 1] * g_w + rgb[..., 2] * b_w


def stage_grayscale(buffer: PixelBuffer) -> LuminanceBuffer:
    """
    Stage 1: PixelBuffer -> LuminanceBuffer (round half to even).
    """
    values = to_uint8(compute_luminance(buffer.pixels))
    return LuminanceBuffer(buffer.width, buffer.height, values)


def _expand_gray(buffer: PixelBuffer, gray: np.ndarray, alpha: Optional[np.ndarray]) -> PixelBuffer:
    output = np.empty((buffer.height, buffer.width, CHANNELS), dtype=np.uint8)
    output[..., :3] = gray[..., np.newaxis]
    output[..., 3] = buffer.alpha if alpha is None else alpha
    return PixelBuffer(buffer.width, buffer.height, output.reshape(-1))


# ==============================================================================
# Grayscale / Threshold Filters
# ==============================================================================

@atomic_filter
def apply_grayscale(buffer: PixelBuffer) -> PixelBuffer:
    """
    Grayscale filter: R = G = B = luminance, alpha preserved.
    """
    luminance = stage_grayscale(buffer)
    return _expand_gray(buffer, luminance.values, None)


@atomic_filter
def apply_binary_threshold(buffer: PixelBuffer, options: OptionsLike = None) -> PixelBuffer:
    """
    Binary threshold filter: white where luminance > threshold_value,
    black otherwise (equality is black). Alpha preserved.
    """
    opts = _resolve_options(options)
    luminance = compute_luminance(buffer.pixels)
    binary = np.where(luminance > opts.threshold_value, 255, 0).astype(np.uint8)
    return _expand_gray(buffer, binary, None)


# ==============================================================================
# Gaussian Blur Filter (2D direct convolution)
# ==============================================================================

def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


def _blur_band(padded: np.ndarray, kernel: np.ndarray, y0: int, y1: int, width: int) -> np.ndarray:
    """
    Convolve output rows [y0, y1) from the edge-replicated source.

    padded carries `radius` extra rows/columns on every side, so the band
    reads padded rows [y0, y1 + 2r) and only real or replicated samples
    reach the kept region.
    """
    radius = kernel.shape[0] // 2
    band = padded[y0:y1 + 2 * radius]
    out = np.empty((y1 - y0, width, CHANNELS), dtype=np.uint8)

    for c in range(CHANNELS):
        acc = correlate(band[..., c], kernel, mode='constant')
        out[..., c] = _round_half_up(acc[radius:radius + (y1 - y0), radius:radius + width])

    return out


def _row_bands(height: int, workers: int):
    step = max(1, math.ceil(height / workers))
    return [(y0, min(y0 + step, height)) for y0 in range(0, height, step)]


@atomic_filter
def apply_gaussian_blur(buffer: PixelBuffer, options: OptionsLike = None) -> PixelBuffer:
    """
    Gaussian blur filter over all four channels.

    Kernel size 2r+1 with sigma = r/3; edges replicated; each channel
    rounded to nearest (halves up) and clamped. blur_radius=0 returns an
    identical copy. With workers > 1 the rows are split into bands that
    are convolved on a thread pool; the result is identical either way.
    """
    opts = _resolve_options(options)
    radius = opts.blur_radius
    kernel = create_gaussian_kernel_2d(radius)

    if radius == 0:
        return buffer.copy()

    width, height = buffer.width, buffer.height
    padded = replicate_edges(buffer.pixels.astype(np.float64), radius, radius)

    bands = _row_bands(height, opts.workers)
    if len(bands) == 1:
        output = _blur_band(padded, kernel, 0, height, width)
    else:
        with ThreadPoolExecutor(max_workers=opts.workers) as pool:
            parts = list(pool.map(
                lambda span: _blur_band(padded, kernel, span[0], span[1], width),
                bands,
            ))
        output = np.concatenate(parts, axis=0)

    return PixelBuffer(width, height, output.reshape(-1))


# ==============================================================================
# Canny Stage 2: Separable Gaussian Blur
# ==============================================================================

def stage_separable_blur(luminance: LuminanceBuffer, sigma: float = CANNY_SIGMA) -> LuminanceBuffer:
    """
    Stage 2: horizontal then vertical 1D Gaussian pass.

    The intermediate is stored as 8-bit (rounded half to even) before the
    vertical pass reads it.
    """
    kernel = create_gaussian_kernel_1d(sigma)
    radius = kernel.size // 2

    source = luminance.values.astype(np.float64)
    padded = replicate_edges(source, 0, radius)
    horizontal = correlate1d(padded, kernel, axis=1, mode='constant')
    temp = to_uint8(horizontal[:, radius:radius + luminance.width])

    padded = replicate_edges(temp.astype(np.float64), radius, 0)
    vertical = correlate1d(padded, kernel, axis=0, mode='constant')
    values = to_uint8(vertical[radius:radius + luminance.height, :])

    return LuminanceBuffer(luminance.width, luminance.height, values)


# ==============================================================================
# Canny Stage 3: Sobel Gradient
# ==============================================================================

def stage_sobel(luminance: LuminanceBuffer) -> GradientField:
    """
    Stage 3: 3×3 Sobel on interior pixels.

    The outermost one-pixel ring keeps zero magnitude and direction.
    """
    height, width = luminance.height, luminance.width
    magnitude = np.zeros((height, width), dtype=np.uint8)
    direction = np.zeros((height, width), dtype=np.float32)

    if height < 3 or width < 3:
        return GradientField(width, height, magnitude, direction)

    source = luminance.values.astype(np.int32)
    gx = correlate(source, SOBEL_X, mode='constant')[1:-1, 1:-1].astype(np.float64)
    gy = correlate(source, SOBEL_Y, mode='constant')[1:-1, 1:-1].astype(np.float64)

    magnitude[1:-1, 1:-1] = to_uint8(np.sqrt(gx * gx + gy * gy))
    direction[1:-1, 1:-1] = np.arctan2(gy, gx).astype(np.float32)

    return GradientField(width, height, magnitude, direction)


# ==============================================================================
# Canny Stage 4: Non-Maximum Suppression
# ==============================================================================

def stage_non_maximum_suppression(gradient: GradientField) -> np.ndarray:
    """
    Stage 4: keep a magnitude only where it is >= both neighbours along the
    quantised gradient direction.

    Sectors by |angle|:
        < pi/8 or > 7pi/8  horizontal   (W, E)
        < 3pi/8            diagonal /   (NE, SW)
        < 5pi/8            vertical     (N, S)
        otherwise          diagonal \\   (NW, SE)

    Returns:
        Suppressed magnitude (H, W) uint8, border ring zero
    """
    mag = gradient.magnitude
    suppressed = np.zeros_like(mag)
    if gradient.height < 3 or gradient.width < 3:
        return suppressed

    center = mag[1:-1, 1:-1]
    angle = np.abs(gradient.direction[1:-1, 1:-1].astype(np.float64))

    north, south = mag[:-2, 1:-1], mag[2:, 1:-1]
    west, east = mag[1:-1, :-2], mag[1:-1, 2:]
    north_east, south_west = mag[:-2, 2:], mag[2:, :-2]
    north_west, south_east = mag[:-2, :-2], mag[2:, 2:]

    sectors = [
        (angle < np.pi / 8) | (angle > 7 * np.pi / 8),
        angle < 3 * np.pi / 8,
        angle < 5 * np.pi / 8,
    ]
    neighbor1 = np.select(sectors, [west, north_east, north], default=north_west)
    neighbor2 = np.select(sectors, [east, south_west, south], default=south_east)

    keep = (center >= neighbor1) & (center >= neighbor2)
    suppressed[1:-1, 1:-1] = np.where(keep, center, 0)

    return suppressed


# ==============================================================================
# Canny Stage 5: Double Threshold + Hysteresis
# ==============================================================================

def stage_double_threshold(suppressed: np.ndarray, low: int, high: int) -> np.ndarray:
    """
    First pass: >= high -> 255, [low, high) -> 128 (weak), else 0.
    """
    edges = np.zeros(suppressed.shape, dtype=np.uint8)
    edges[suppressed >= low] = WEAK
    edges[suppressed >= high] = STRONG
    return edges


def hysteresis_raster(edges: np.ndarray) -> np.ndarray:
    """
    Single raster-order pass over interior pixels.

    A weak pixel becomes strong if any 8-neighbour is strong at the moment
    it is visited, otherwise it is cleared. Promotions earlier in the pass
    are visible to later pixels; no iteration to a fixed point.

    Evaluated one row at a time. When row y is scanned, row y-1 is final,
    row y+1 and the pixels right of the cursor are untouched (so only their
    original strong pixels count) and the left neighbour is already
    resolved. Promotion therefore spreads rightward only, along a run of
    consecutive weak pixels, starting from any pixel in that run with
    settled strong support.
    """
    result = edges.copy()
    width = result.shape[1]

    columns = np.arange(width)
    interior = np.zeros(width, dtype=bool)
    interior[1:-1] = True

    rows = np.nonzero((edges[1:-1] == WEAK)[:, 1:-1].any(axis=1))[0] + 1
    for y in rows:
        row = result[y]
        weak = (row == WEAK) & interior

        strong = (result[y - 1] == STRONG) | (row == STRONG) | (result[y + 1] == STRONG)
        support = strong.copy()
        support[1:] |= strong[:-1]
        support[:-1] |= strong[1:]

        run_start = weak & ~np.concatenate(([False], weak[:-1]))
        start_index = np.maximum.accumulate(np.where(run_start, columns, -1))
        seed_index = np.maximum.accumulate(np.where(weak & support, columns, -1))
        promoted = weak & (seed_index >= start_index)

        row[weak] = np.where(promoted[weak], STRONG, 0)

    result[result == WEAK] = 0
    return result


def hysteresis_flood(edges: np.ndarray) -> np.ndarray:
    """
    Connected-component hysteresis: every interior weak pixel 8-connected
    to a strong pixel (through weak pixels) becomes strong.
    """
    strong = edges == STRONG
    weak = np.zeros_like(strong)
    weak[1:-1, 1:-1] = edges[1:-1, 1:-1] == WEAK

    labels, count = label(strong | weak, structure=np.ones((3, 3), dtype=bool))
    if count == 0:
        return np.zeros_like(edges)

    seeded = np.unique(labels[strong])
    seeded = seeded[seeded != 0]
    return np.where(np.isin(labels, seeded), STRONG, 0).astype(np.uint8)


def stage_hysteresis(suppressed: np.ndarray, low: int, high: int,
                     mode: HysteresisMode = HysteresisMode.RASTER) -> np.ndarray:
    """
    Stage 5: double threshold followed by edge tracking.

    Returns:
        Binary edge map (H, W) uint8 with values 0 or 255
    """
    if low > high:
        raise ContractViolation(f"low_threshold ({low}) exceeds high_threshold ({high})")

    edges = stage_double_threshold(suppressed, low, high)

    try:
        mode = HysteresisMode(mode)
    except ValueError as e:
        raise ContractViolation(f"Unknown hysteresis mode: {mode!r}") from e

    if mode == HysteresisMode.FLOOD:
        return hysteresis_flood(edges)
    return hysteresis_raster(edges)


# ==============================================================================
# Canny Edge Detector
# ==============================================================================

@atomic_filter
def apply_canny_edge_detection(buffer: PixelBuffer, options: OptionsLike = None,
                               trace: Optional[Callable[[str], None]] = None) -> PixelBuffer:
    """
    Full Canny pipeline. Output RGB is 0 or 255, alpha always 255.

    Only low_threshold, high_threshold and hysteresis are read from the
    options; the pre-blur uses a fixed sigma of 1.0.

    Args:
        buffer: Input RGBA frame
        options: FilterOptions or a mapping of option overrides
        trace: Called with one line per stage, if given
    """
    opts = _resolve_options(options)
    trace = trace or (lambda message: None)

    trace("Stage 1: Grayscale")
    luminance = stage_grayscale(buffer)

    trace(f"Stage 2: Separable blur (sigma={CANNY_SIGMA})")
    blurred = stage_separable_blur(luminance, CANNY_SIGMA)

    trace("Stage 3: Sobel gradient")
    gradient = stage_sobel(blurred)

    trace("Stage 4: Non-maximum suppression")
    suppressed = stage_non_maximum_suppression(gradient)

    trace(f"Stage 5: Hysteresis ({opts.low_threshold}/{opts.high_threshold}, {opts.hysteresis.value})")
    edges = stage_hysteresis(suppressed, opts.low_threshold, opts.high_threshold, opts.hysteresis)

    alpha = np.full(edges.shape, 255, dtype=np.uint8)
    return _expand_gray(buffer, edges, alpha)

"""
EdgeLens - Pixel Buffers
========================
Data model shared by every filter stage.

- PixelBuffer: RGBA8, row-major, stride = width * 4
- LuminanceBuffer: single-channel 8-bit intensity map
- GradientField: Sobel magnitude (uint8) + direction (float32 radians)

Buffers are created fresh per filter call and never mutated by the core.
"""

from dataclasses import dataclass
import numpy as np
from PIL import Image

from edgelens.errors import ContractViolation


CHANNELS = 4


def clamp_coordinate(coord, max_index: int):
    """
    Clamp a sample coordinate to [0, max_index] (edge replication).

    Works on plain ints and on NumPy index arrays; every convolution stage
    builds its out-of-bounds lookups through this helper.
    """
    if isinstance(coord, np.ndarray):
        return np.clip(coord, 0, max_index)
    return min(max(coord, 0), max_index)


def replicate_edges(values: np.ndarray, pad_y: int, pad_x: int) -> np.ndarray:
    """
    Extend a (H, W, ...) array by pad_y rows and pad_x columns on each side,
    repeating the nearest edge sample.
    """
    height, width = values.shape[:2]
    rows = clamp_coordinate(np.arange(-pad_y, height + pad_y), height - 1)
    cols = clamp_coordinate(np.arange(-pad_x, width + pad_x), width - 1)
    return values[rows][:, cols]


def _as_uint8_array(data) -> np.ndarray:
    if isinstance(data, np.ndarray):
        if data.dtype != np.uint8:
            raise ContractViolation(
                f"Pixel data must be uint8, got dtype {data.dtype}"
            )
        return data.reshape(-1)

    if isinstance(data, (bytes, bytearray, memoryview)):
        return np.frombuffer(data, dtype=np.uint8)

    values = np.asarray(data)
    if values.size and (
        not np.issubdtype(values.dtype, np.integer)
        or values.min() < 0
        or values.max() > 255
    ):
        raise ContractViolation("Pixel data must contain integers in [0, 255]")
    return values.astype(np.uint8).reshape(-1)


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    RGBA8 frame buffer.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        data: Flat uint8 array of length width * height * 4
    """
    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'data', _as_uint8_array(self.data))
        validate_pixel_buffer(self)

    def __repr__(self) -> str:
        return f"PixelBuffer(size={self.width}×{self.height})"

    def __len__(self) -> int:
        return self.data.size

    @property
    def pixels(self) -> np.ndarray:
        """(H, W, 4) view over the flat data."""
        return self.data.reshape(self.height, self.width, CHANNELS)

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def copy(self) -> 'PixelBuffer':
        return PixelBuffer(self.width, self.height, self.data.copy())

    def same_pixels(self, other: 'PixelBuffer') -> bool:
        """True when both buffers have the same size and identical bytes."""
        return (
            self.width == other.width
            and self.height == other.height
            and np.array_equal(self.data, other.data)
        )

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'PixelBuffer':
        """
        Build a buffer from an (H, W, 4) RGBA or (H, W, 3) RGB uint8 array.

        RGB input gets an opaque alpha channel.
        """
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise ContractViolation(
                f"Expected (H, W, 3) or (H, W, 4) array, got shape {array.shape}"
            )
        if array.dtype != np.uint8:
            raise ContractViolation(f"Expected uint8 array, got dtype {array.dtype}")

        height, width = array.shape[:2]
        rgba = np.empty((height, width, CHANNELS), dtype=np.uint8)
        rgba[..., :3] = array[..., :3]
        rgba[..., 3] = array[..., 3] if array.shape[2] == 4 else 255
        return cls(width, height, rgba.reshape(-1))

    @classmethod
    def from_image(cls, image: Image.Image) -> 'PixelBuffer':
        """Build a buffer from a Pillow image (converted to RGBA)."""
        rgba = np.array(image.convert('RGBA'), dtype=np.uint8)
        return cls.from_array(rgba)

    def to_image(self) -> Image.Image:
        """Convert to a Pillow RGBA image."""
        return Image.fromarray(self.pixels.copy())


@dataclass(frozen=True, eq=False)
class LuminanceBuffer:
    """Single-channel 8-bit intensity map, values shaped (H, W)."""
    width: int
    height: int
    values: np.ndarray


@dataclass(frozen=True, eq=False)
class GradientField:
    """
    Sobel gradient of a LuminanceBuffer.

    magnitude and direction at the same index describe the same pixel.
    """
    width: int
    height: int
    magnitude: np.ndarray
    direction: np.ndarray


def validate_pixel_buffer(buffer: PixelBuffer) -> None:
    """
    Reject zero-sized frames and data whose length is not width*height*4.

    Raises:
        ContractViolation: If the buffer is malformed
    """
    width, height = buffer.width, buffer.height
    if isinstance(width, bool) or isinstance(height, bool) or \
            not isinstance(width, (int, np.integer)) or not isinstance(height, (int, np.integer)):
        raise ContractViolation(
            f"Dimensions must be integers, got {type(width).__name__}×{type(height).__name__}"
        )
    if width <= 0 or height <= 0:
        raise ContractViolation(f"Invalid dimensions: {width}×{height}")

    expected = width * height * CHANNELS
    if buffer.data.size != expected:
        raise ContractViolation(
            f"Buffer length {buffer.data.size} does not match "
            f"{width}×{height}×{CHANNELS} = {expected}"
        )


def to_uint8(values: np.ndarray) -> np.ndarray:
    """
    8-bit clamped store: round half to even, clamp to [0, 255].
    NaN maps to 0.
    """
    rounded = np.rint(np.nan_to_num(values, nan=0.0))
    return np.clip(rounded, 0, 255).astype(np.uint8)


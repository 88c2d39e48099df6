"""EdgeLens - Real-Time Image Filter Core"""

from .errors import FilterError, ContractViolation, ComputationFailure
from .buffers import PixelBuffer, LuminanceBuffer, GradientField, clamp_coordinate
from .schemas import FilterOptions, FilterSettings, FilterType, HysteresisMode
from .filter_stages import (
    apply_grayscale,
    apply_gaussian_blur,
    apply_binary_threshold,
    apply_canny_edge_detection,
    stage_grayscale,
    stage_separable_blur,
    stage_sobel,
    stage_non_maximum_suppression,
    stage_hysteresis,
)
from .pipeline import FrameProcessor, FilterResult, process_single_image, process_image_sequence

__all__ = [
    'FilterError',
    'ContractViolation',
    'ComputationFailure',
    'PixelBuffer',
    'LuminanceBuffer',
    'GradientField',
    'clamp_coordinate',
    'FilterOptions',
    'FilterSettings',
    'FilterType',
    'HysteresisMode',
    'apply_grayscale',
    'apply_gaussian_blur',
    'apply_binary_threshold',
    'apply_canny_edge_detection',
    'stage_grayscale',
    'stage_separable_blur',
    'stage_sobel',
    'stage_non_maximum_suppression',
    'stage_hysteresis',
    'FrameProcessor',
    'FilterResult',
    'process_single_image',
    'process_image_sequence',
]
__version__ = '1.0.0'

"""
EdgeLens - Frame Processor
==========================
Per-frame dispatcher around the pure filters.

Holds the current FilterSettings, routes each frame to the selected
filter, measures processing time and, when a filter fails, hands back the
original frame so the display loop keeps running.
"""

import argparse
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from PIL import Image

from edgelens.buffers import PixelBuffer
from edgelens.errors import ContractViolation, FilterError
from edgelens.filter_stages import (
    apply_binary_threshold,
    apply_canny_edge_detection,
    apply_gaussian_blur,
    apply_grayscale,
)
from edgelens.schemas import FilterOptions, FilterSettings, FilterType, HysteresisMode


Trace = Optional[Callable[[str], None]]

FILTERS: Dict[FilterType, Callable[[PixelBuffer, FilterOptions, Trace], PixelBuffer]] = {
    FilterType.GRAYSCALE: lambda buffer, options, trace: apply_grayscale(buffer),
    FilterType.BLUR: lambda buffer, options, trace: apply_gaussian_blur(buffer, options),
    FilterType.THRESHOLD: lambda buffer, options, trace: apply_binary_threshold(buffer, options),
    FilterType.EDGE: lambda buffer, options, trace: apply_canny_edge_detection(buffer, options, trace=trace),
}


@dataclass
class FilterResult:
    """
    Outcome of one filter invocation.

    Exactly one of output / error is set.
    """
    output: Optional[PixelBuffer]
    error: Optional[FilterError]
    elapsed_ms: float

    @property
    def ok(self) -> bool:
        return self.error is None


class FrameProcessor:
    """
    Apply the configured filter to one frame at a time.
    """

    def __init__(self, settings: Optional[FilterSettings] = None, verbose: bool = False):
        """
        Args:
            settings: Initial configuration (defaults: edge filter enabled)
            verbose: Print per-frame and per-stage trace lines
        """
        self.settings = settings if settings is not None else FilterSettings()
        self.verbose = verbose
        self.processing_time_ms: float = 0.0
        self.frames_processed = 0
        self.frames_failed = 0

        print(f"[FrameProcessor] Mode: {self._describe()}")

    def _describe(self) -> str:
        if self.settings.passthrough:
            return "passthrough"
        return self.settings.filter_type.value

    def _trace(self, message: str):
        print(f"[FrameProcessor] {message}")

    def update_settings(self, changes: Optional[Dict[str, Any]] = None, **kwargs: Any) -> FilterSettings:
        """
        Merge a partial update into the current settings.

        Raises:
            ContractViolation: If the merged record is invalid; the previous
                settings stay in effect
        """
        self.settings = self.settings.merged(changes, **kwargs)
        print(f"[FrameProcessor] Settings updated, mode: {self._describe()}")
        return self.settings

    def process(self, frame: PixelBuffer) -> FilterResult:
        """
        Run the selected filter and report the outcome without raising.

        Passthrough settings return a copy of the input and leave
        processing_time_ms untouched.
        """
        if isinstance(frame, PixelBuffer) and self.settings.passthrough:
            self.frames_processed += 1
            return FilterResult(output=frame.copy(), error=None, elapsed_ms=0.0)

        start = time.perf_counter()

        try:
            if not isinstance(frame, PixelBuffer):
                raise ContractViolation(f"Expected PixelBuffer, got {type(frame).__name__}")

            if self.verbose:
                print(f"[FrameProcessor] Processing frame: {frame.width}×{frame.height} "
                      f"({self.settings.filter_type.value})")
            apply = FILTERS[self.settings.filter_type]
            output = apply(frame, self.settings.options(), self._trace if self.verbose else None)
            error = None
        except FilterError as e:
            output, error = None, e

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        self.processing_time_ms = elapsed_ms
        self.frames_processed += 1
        if error is not None:
            self.frames_failed += 1
        elif self.verbose:
            print(f"[FrameProcessor] Done in {elapsed_ms:.2f} ms")

        return FilterResult(output=output, error=error, elapsed_ms=elapsed_ms)

    def process_frame(self, frame: PixelBuffer) -> PixelBuffer:
        """
        Process a frame, falling back to the unprocessed frame on failure.

        Args:
            frame: Input RGBA frame

        Returns:
            Filtered frame, or the original frame if the filter failed
        """
        result = self.process(frame)
        if result.ok:
            return result.output

        print(f"[FrameProcessor] Filter failed: {type(result.error).__name__}: {result.error}")
        return frame


# ==============================================================================
# Convenience Functions
# ==============================================================================

def process_single_image(
    input_path: str,
    output_path: str,
    settings: FilterSettings
):
    """
    Filter a single image file.

    Args:
        input_path: Path to input image
        output_path: Path to save output image (RGBA-capable format)
        settings: Filter settings

    Raises:
        FilterError: If the filter fails (no fallback for offline files)
    """
    frame = PixelBuffer.from_image(Image.open(input_path))

    processor = FrameProcessor(settings)
    result = processor.process(frame)
    if not result.ok:
        raise result.error

    result.output.to_image().save(output_path)
    print(f"[Success] Saved output to: {output_path} ({result.elapsed_ms:.1f} ms)")


def process_image_sequence(
    input_dir: str,
    output_dir: str,
    settings: FilterSettings,
    pattern: str = "*.png"
) -> int:
    """
    Filter every image in a directory matching the glob pattern.

    Frames that fail keep their original pixels, as in live processing.

    Returns:
        Number of frames written
    """
    input_path = Path(input_dir)
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    input_files = sorted(input_path.glob(pattern))

    if not input_files:
        print(f"[Error] No files found matching {pattern} in {input_dir}")
        return 0

    print(f"[Sequence] Processing {len(input_files)} frames")

    processor = FrameProcessor(settings)
    total_ms = 0.0

    for i, input_file in enumerate(input_files):
        frame = PixelBuffer.from_image(Image.open(input_file))
        output = processor.process_frame(frame)
        total_ms += processor.processing_time_ms

        output.to_image().save(output_path / input_file.name)

        if (i + 1) % 100 == 0:
            print(f"[Sequence] {i + 1}/{len(input_files)} frames")

    print(f"[Success] Processed {len(input_files)} frames "
          f"(avg {total_ms / len(input_files):.2f} ms/frame, {processor.frames_failed} failed)")
    print(f"[Output] Saved to: {output_dir}")
    return len(input_files)


def build_parser() -> argparse.ArgumentParser:
    defaults = FilterSettings()
    parser = argparse.ArgumentParser(
        prog="edgelens",
        description="Apply an EdgeLens filter to an image or a directory of frames.",
    )
    parser.add_argument("input", help="Input image file or directory")
    parser.add_argument("output", help="Output image file or directory")
    parser.add_argument("--filter", dest="filter_type", default=defaults.filter_type.value,
                        choices=[f.value for f in FilterType])
    parser.add_argument("--low", dest="low_threshold", type=int, default=defaults.low_threshold)
    parser.add_argument("--high", dest="high_threshold", type=int, default=defaults.high_threshold)
    parser.add_argument("--radius", dest="blur_radius", type=int, default=defaults.blur_radius)
    parser.add_argument("--threshold", dest="threshold_value", type=int,
                        default=defaults.threshold_value)
    parser.add_argument("--hysteresis", default=defaults.hysteresis.value,
                        choices=[m.value for m in HysteresisMode])
    parser.add_argument("--workers", type=int, default=defaults.workers)
    parser.add_argument("--pattern", default="*.png", help="Glob pattern for directory input")
    return parser


def main(argv=None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = FilterSettings.create(
            filter_type=args.filter_type,
            low_threshold=args.low_threshold,
            high_threshold=args.high_threshold,
            blur_radius=args.blur_radius,
            threshold_value=args.threshold_value,
            hysteresis=args.hysteresis,
            workers=args.workers,
        )

        if Path(args.input).is_dir():
            process_image_sequence(args.input, args.output, settings, pattern=args.pattern)
        else:
            process_single_image(args.input, args.output, settings)
    except FilterError as e:
        print(f"[Error] {type(e).__name__}: {e}")
        return 1
    except FileNotFoundError as e:
        print(f"[Error] {e}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

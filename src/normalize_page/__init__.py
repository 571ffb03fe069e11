"""
Page geometry normalization (scanned page raster -> rectified, cropped raster).

Per page, in order:
- decode the source and build a bounded grayscale preview
- infer physical size and DPI (metadata, standard page size, or fallback)
- estimate skew from a gradient-orientation histogram and undo it
- locate content bounds (intensity mask + edge mask, shadow-aware trim, padding)
- write the cropped raster with DPI metadata and return a measurement record

Page-level failures raise `NormalizationError` subclasses; `run_normalization`
isolates them per page.
"""

from .contracts import (
    DpiSource,
    NormalizationResult,
    NormalizationRunResult,
    NormalizeConfig,
    PageFailure,
    PageStats,
    RunConfig,
    ShadowDetection,
    ShadowSide,
)
from .errors import (
    ComputationError,
    DecodeError,
    EncodeError,
    MissingEstimateError,
    NormalizationError,
    OutputDirectoryError,
)
from .module import normalize_page
from .run_module import evaluate_run, run_normalization

__all__ = [
    "ComputationError",
    "DecodeError",
    "DpiSource",
    "EncodeError",
    "MissingEstimateError",
    "NormalizationError",
    "NormalizationResult",
    "NormalizationRunResult",
    "NormalizeConfig",
    "OutputDirectoryError",
    "PageFailure",
    "PageStats",
    "RunConfig",
    "ShadowDetection",
    "ShadowSide",
    "evaluate_run",
    "normalize_page",
    "run_normalization",
]

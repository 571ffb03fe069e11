from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from contracts.pages import PixelBox


class DpiSource(str, Enum):
    """
    Which tier of physical size inference produced the reported DPI.
    """

    METADATA = "metadata"
    INFERRED = "inferred"
    FALLBACK = "fallback"


class ShadowSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"
    NONE = "none"


@dataclass(frozen=True, slots=True, eq=False)
class PreviewRaster:
    """
    Downsampled grayscale analysis buffer.

    `scale` maps source pixels to preview pixels (preview = source * scale).
    Owned by a single page normalization call and discarded with it.
    """

    pixels: np.ndarray  # uint8, shape (height, width)
    scale: float

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True, slots=True)
class PhysicalSize:
    width_mm: float
    height_mm: float
    dpi: float
    source: DpiSource


@dataclass(frozen=True, slots=True)
class SkewEstimate:
    angle: float  # degrees; positive = content rotated counter-clockwise
    confidence: float  # 0..1


@dataclass(frozen=True, slots=True)
class BorderStats:
    mean: float
    std: float


@dataclass(frozen=True, slots=True)
class ShadowDetection:
    present: bool
    side: ShadowSide
    width_px: int  # preview pixels
    confidence: float  # 0..1
    darkness: float  # raw intensity delta against the global mean

    def to_dict(self) -> dict[str, Any]:
        return {
            "present": self.present,
            "side": self.side.value,
            "widthPx": self.width_px,
            "confidence": self.confidence,
            "darkness": self.darkness,
        }


@dataclass(frozen=True, slots=True)
class PageStats:
    background_mean: float
    background_std: float
    mask_coverage: float
    skew_confidence: float
    shadow_score: float


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    """
    Measurement record for one normalized page.

    Boxes are inclusive source-raster pixel coordinates.
    """

    page_id: str
    normalized_path: str
    crop_box: PixelBox
    mask_box: PixelBox
    dimensions_mm: dict[str, float]  # {"width": mm, "height": mm}
    dpi: float
    dpi_source: DpiSource
    trim_mm: float
    bleed_mm: float
    skew_angle: float
    shadow: ShadowDetection
    stats: PageStats
    engine_id: str = ""  # raster engine that decoded the source
    engine_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pageId": self.page_id,
            "normalizedPath": self.normalized_path,
            "cropBox": self.crop_box.to_list(),
            "maskBox": self.mask_box.to_list(),
            "dimensionsMm": dict(self.dimensions_mm),
            "dpi": self.dpi,
            "dpiSource": self.dpi_source.value,
            "trimMm": self.trim_mm,
            "bleedMm": self.bleed_mm,
            "skewAngle": self.skew_angle,
            "shadow": self.shadow.to_dict(),
            "stats": {
                "backgroundMean": self.stats.background_mean,
                "backgroundStd": self.stats.background_std,
                "maskCoverage": self.stats.mask_coverage,
                "skewConfidence": self.stats.skew_confidence,
                "shadowScore": self.stats.shadow_score,
            },
            "engine": {"id": self.engine_id, "version": self.engine_version},
        }


@dataclass(frozen=True, slots=True)
class PageFailure:
    page_id: str
    phase: str
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "pageId": self.page_id,
            "phase": self.phase,
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class NormalizationRunResult:
    run_id: str
    ok: bool  # True iff every page produced a result
    results: dict[str, NormalizationResult]
    failures: list[PageFailure]
    metrics: dict[str, Any]


@dataclass(frozen=True, slots=True)
class NormalizeConfig:
    """
    Per-invocation tuning for page normalization.

    Defaults are empirically chosen starting points; they are passed explicitly
    into every call so concurrent runs can use distinct tuning.
    """

    max_preview_dim: int = 1600
    default_padding_px: int = 6
    padding_ratio: float = 0.002
    border_sample_ratio: float = 0.04
    edge_threshold_scale: float = 1.4
    edge_threshold_floor: float = 8.0
    gradient_noise_floor: float = 10.0
    skew_window: int = 3
    max_skew_degrees: float = 8.0
    intensity_std_factor: float = 0.45
    intensity_min_delta: float = 6.0
    mask_line_fraction: float = 0.008
    edge_line_fraction: float = 0.004
    shadow_strip_ratio: float = 0.04
    shadow_min_delta: float = 8.0
    shadow_delta_ratio: float = 0.08
    shadow_trim_confidence: float = 0.25
    shadow_trim_fraction: float = 0.75
    size_match_tolerance: float = 0.02
    pdf_render_dpi: int = 300
    png_compress_level: int = 6

    def __post_init__(self) -> None:
        if self.max_preview_dim < 16:
            raise ValueError("max_preview_dim must be >= 16")
        if self.default_padding_px < 0:
            raise ValueError("default_padding_px must be >= 0")
        if not (0.0 < self.border_sample_ratio < 0.5):
            raise ValueError("border_sample_ratio must be within (0, 0.5)")
        if not (0.0 < self.shadow_strip_ratio < 0.5):
            raise ValueError("shadow_strip_ratio must be within (0, 0.5)")
        if not (0.0 < self.max_skew_degrees <= 45.0):
            raise ValueError("max_skew_degrees must be within (0, 45]")
        if self.skew_window < 0:
            raise ValueError("skew_window must be >= 0")
        if not (0.0 <= self.shadow_trim_fraction <= 1.0):
            raise ValueError("shadow_trim_fraction must be within [0, 1]")
        if self.pdf_render_dpi <= 0:
            raise ValueError("pdf_render_dpi must be a positive integer")
        if not (0 <= self.png_compress_level <= 9):
            raise ValueError("png_compress_level must be within [0, 9]")

    def padding_for(self, *, width: int, height: int) -> int:
        return max(self.default_padding_px, int(round(min(width, height) * self.padding_ratio)))


@dataclass(frozen=True, slots=True)
class RunConfig:
    """
    Run-level configuration.

    `target_dpi` is the fallback DPI used when neither metadata nor standard
    page size matching yields one.
    """

    target_dpi: float = 300.0
    target_dimensions_mm: dict[str, float] = field(
        default_factory=lambda: {"width": 210.0, "height": 297.0}
    )
    max_workers: int = 4
    write_sidecars: bool = True
    tuning: NormalizeConfig = field(default_factory=NormalizeConfig)

    def __post_init__(self) -> None:
        if self.target_dpi <= 0:
            raise ValueError("target_dpi must be > 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

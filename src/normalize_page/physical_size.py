from __future__ import annotations

from .contracts import DpiSource, PhysicalSize

MM_PER_INCH = 25.4

# (name, width_mm, height_mm); portrait orientation, landscape is tried as well.
STANDARD_SIZES_MM: tuple[tuple[str, float, float], ...] = (
    ("A4", 210.0, 297.0),
    ("Letter", 216.0, 279.0),
    ("B5", 176.0, 250.0),
    ("A5", 148.0, 210.0),
    ("A3", 297.0, 420.0),
)


def px_to_mm(px: float, dpi: float) -> float:
    return (px / dpi) * MM_PER_INCH


def mm_to_inches(mm: float) -> float:
    return mm / MM_PER_INCH


def match_standard_size(width_px: int, height_px: int) -> tuple[float, float, float]:
    """
    Best standard page for the pixel aspect ratio.

    Returns (score, width_mm, height_mm) where score is the absolute ratio
    difference. The first candidate wins on ties.
    """

    ratio = width_px / max(1, height_px)
    best = (float("inf"), 0.0, 0.0)
    for _, w_mm, h_mm in STANDARD_SIZES_MM:
        for vw, vh in ((w_mm, h_mm), (h_mm, w_mm)):
            score = abs(vw / vh - ratio)
            if score < best[0]:
                best = (score, vw, vh)
    return best


def infer_physical_size(
    width_px: int,
    height_px: int,
    density: float | None,
    *,
    fallback_dpi: float = 300.0,
    tolerance: float = 0.02,
) -> PhysicalSize:
    """
    Physical page size in millimetres plus the DPI that produced it.

    Trusted density metadata wins, then a standard page size whose aspect ratio
    matches within `tolerance`, then `fallback_dpi`. Never fails for missing
    metadata.
    """

    if fallback_dpi <= 0:
        raise ValueError("fallback_dpi must be > 0")

    if density is not None and density > 1:
        return PhysicalSize(
            width_mm=px_to_mm(width_px, density),
            height_mm=px_to_mm(height_px, density),
            dpi=float(density),
            source=DpiSource.METADATA,
        )

    score, w_mm, h_mm = match_standard_size(width_px, height_px)
    if score < tolerance and width_px > 0:
        return PhysicalSize(
            width_mm=w_mm,
            height_mm=h_mm,
            dpi=width_px / mm_to_inches(w_mm),
            source=DpiSource.INFERRED,
        )

    return PhysicalSize(
        width_mm=px_to_mm(width_px, fallback_dpi),
        height_mm=px_to_mm(height_px, fallback_dpi),
        dpi=float(fallback_dpi),
        source=DpiSource.FALLBACK,
    )

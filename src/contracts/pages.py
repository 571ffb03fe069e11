from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Any


@dataclass(frozen=True, slots=True)
class PixelBox:
    """
    Inclusive pixel coordinates:
    - (x0, y0) is the top-left pixel
    - (x1, y1) is the bottom-right pixel (inside the box)

    Serialized as [left, top, right, bottom].
    """

    x0: int
    y0: int
    x1: int
    y1: int

    def width(self) -> int:
        return int(self.x1 - self.x0 + 1)

    def height(self) -> int:
        return int(self.y1 - self.y0 + 1)

    def area(self) -> int:
        w = self.width()
        h = self.height()
        return int(w * h) if w > 0 and h > 0 else 0

    def union(self, other: "PixelBox") -> "PixelBox":
        return PixelBox(
            x0=min(self.x0, other.x0),
            y0=min(self.y0, other.y0),
            x1=max(self.x1, other.x1),
            y1=max(self.y1, other.y1),
        )

    def contains(self, other: "PixelBox") -> bool:
        return (
            self.x0 <= other.x0
            and self.y0 <= other.y0
            and other.x1 <= self.x1
            and other.y1 <= self.y1
        )

    @staticmethod
    def from_list(v: Any) -> "PixelBox":
        if not isinstance(v, (list, tuple)) or len(v) != 4:
            raise TypeError("PixelBox expects [left, top, right, bottom]")
        return PixelBox(x0=int(v[0]), y0=int(v[1]), x1=int(v[2]), y1=int(v[3]))

    def to_list(self) -> list[int]:
        return [self.x0, self.y0, self.x1, self.y1]


@dataclass(frozen=True, slots=True)
class PageSource:
    """
    One discovered page of a corpus.

    Produced by corpus discovery (identity, checksum, raw dimensions); consumed
    read-only by normalization.
    """

    page_id: str
    path: str
    checksum: str
    width_px: int
    height_px: int
    density: float | None = None  # pixels per inch, when the scanner recorded one

    @property
    def filename(self) -> str:
        return PurePath(self.path.replace("\\", "/")).name

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "PageSource":
        return PageSource(
            page_id=str(d["page_id"]),
            path=str(d["path"]),
            checksum=str(d.get("checksum") or ""),
            width_px=int(d.get("width_px") or 0),
            height_px=int(d.get("height_px") or 0),
            density=(None if d.get("density") is None else float(d["density"])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_id": self.page_id,
            "path": self.path,
            "checksum": self.checksum,
            "width_px": self.width_px,
            "height_px": self.height_px,
            "density": self.density,
        }


@dataclass(frozen=True, slots=True)
class BoundsEstimate:
    """
    Rough per-page bounds from the upstream estimator (pixels of the source raster).
    """

    page_id: str
    width_px: int
    height_px: int
    bleed_px: float
    trim_px: float
    page_bounds: PixelBox
    content_bounds: PixelBox

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "BoundsEstimate":
        return BoundsEstimate(
            page_id=str(d["page_id"]),
            width_px=int(d["width_px"]),
            height_px=int(d["height_px"]),
            bleed_px=float(d.get("bleed_px") or 0.0),
            trim_px=float(d.get("trim_px") or 0.0),
            page_bounds=PixelBox.from_list(d["page_bounds"]),
            content_bounds=PixelBox.from_list(d["content_bounds"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_id": self.page_id,
            "width_px": self.width_px,
            "height_px": self.height_px,
            "bleed_px": self.bleed_px,
            "trim_px": self.trim_px,
            "page_bounds": self.page_bounds.to_list(),
            "content_bounds": self.content_bounds.to_list(),
        }

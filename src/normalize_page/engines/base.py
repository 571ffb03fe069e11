from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from PIL import Image


@dataclass(frozen=True, slots=True, eq=False)
class DecodedRaster:
    image: Image.Image  # full-resolution raster, kept for final output
    width_px: int
    height_px: int
    density: float | None  # pixels per inch from the source container, if any


class RasterEngine(ABC):
    """
    Source raster decoding backend.

    Engines must:
    - Return the full-resolution raster untouched (no resizing, no enhancement)
    - Report a density hint only when the container actually records one
    - Raise DecodeError for unreadable sources
    """

    @abstractmethod
    def backend_id(self) -> str:
        raise NotImplementedError

    def backend_version(self) -> str | None:
        return None

    @abstractmethod
    def decode(self, *, source_file: Path) -> DecodedRaster:
        raise NotImplementedError

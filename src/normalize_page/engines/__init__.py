"""
Source raster decoding engines.

Engines only decode; preview construction and analysis live in
`normalize_page.raster` and the analysis modules.
"""

from .base import DecodedRaster, RasterEngine
from .pillow_engine import PillowEngine
from .pypdfium2_engine import Pypdfium2Engine

__all__ = ["DecodedRaster", "PillowEngine", "Pypdfium2Engine", "RasterEngine"]

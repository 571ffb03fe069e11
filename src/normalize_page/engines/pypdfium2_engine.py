from __future__ import annotations

from pathlib import Path

from ..errors import DecodeError
from .base import DecodedRaster, RasterEngine


class Pypdfium2Engine(RasterEngine):
    """
    Decodes a single-page PDF scan by rendering its first page.

    The render DPI is the density hint: PDF pages carry physical size in points,
    so the rendered raster's pixel density is known exactly.
    """

    def __init__(self, *, render_dpi: int = 300) -> None:
        if render_dpi <= 0:
            raise ValueError("render_dpi must be a positive integer")
        self.render_dpi = render_dpi

    def backend_id(self) -> str:
        return "pypdfium2"

    def backend_version(self) -> str | None:
        try:
            import pypdfium2 as pdfium  # type: ignore

            return getattr(pdfium, "__version__", None)
        except Exception:
            return None

    def _require_pdfium(self):
        try:
            import pypdfium2 as pdfium  # type: ignore

            return pdfium
        except ImportError as e:
            raise RuntimeError(
                "Missing dependency: pypdfium2 is required to decode PDF page scans."
            ) from e

    def decode(self, *, source_file: Path) -> DecodedRaster:
        if not source_file.exists():
            raise DecodeError(f"Source PDF not found: {source_file}")

        pdfium = self._require_pdfium()
        try:
            doc = pdfium.PdfDocument(str(source_file))
        except Exception as e:
            raise DecodeError(f"Unreadable source PDF {source_file.name}: {e!r}") from e

        try:
            if len(doc) < 1:
                raise DecodeError(f"Source PDF {source_file.name} has no pages")
            page = doc[0]
            bitmap = page.render(scale=self.render_dpi / 72.0)  # PDF points are 1/72 inch
            image = bitmap.to_pil().convert("RGB")
        except DecodeError:
            raise
        except Exception as e:
            raise DecodeError(f"Failed to render source PDF {source_file.name}: {e!r}") from e
        finally:
            doc.close()

        width_px, height_px = image.size
        if width_px <= 0 or height_px <= 0:
            raise DecodeError(f"Source PDF {source_file.name} rendered with zero dimensions")

        return DecodedRaster(
            image=image,
            width_px=int(width_px),
            height_px=int(height_px),
            density=float(self.render_dpi),
        )

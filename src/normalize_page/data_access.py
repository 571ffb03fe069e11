from __future__ import annotations

import hashlib
import re
import uuid
from pathlib import Path

from .errors import OutputDirectoryError


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def safe_page_stem(page_id: str) -> str:
    """
    Deterministic, filesystem-safe file stem for a page id, unique per page id.

    Ids that are already safe are used as-is. Any id that sanitizing changes
    gets `~<sha256[:12]>` of the raw id appended; `~` never survives
    sanitizing, so a suffixed stem cannot equal an unchanged id.
    """

    s = re.sub(r"[^A-Za-z0-9._-]+", "_", page_id)
    s = re.sub(r"_+", "_", s).strip("_.") or "page"
    if s == page_id:
        return s
    digest = hashlib.sha256(page_id.encode("utf-8")).hexdigest()[:12]
    return f"{s}~{digest}"


def normalized_path_for(*, out_dir: Path, page_id: str) -> Path:
    return out_dir / "normalized" / f"{safe_page_stem(page_id)}.png"


def sidecar_path_for(*, out_dir: Path, page_id: str) -> Path:
    return out_dir / "sidecars" / f"{safe_page_stem(page_id)}.json"


def ensure_output_dir(out_dir: Path) -> Path:
    """
    Create `out_dir` and prove it is writable.

    Raises OutputDirectoryError: an unusable output directory is fatal to the run.
    """

    out = out_dir.expanduser().resolve()
    probe = out / f".write-probe-{uuid.uuid4().hex}"
    try:
        out.mkdir(parents=True, exist_ok=True)
        probe.write_bytes(b"")
        probe.unlink()
    except OSError as e:
        raise OutputDirectoryError(f"Output directory is not writable: {out} ({e})") from e
    return out

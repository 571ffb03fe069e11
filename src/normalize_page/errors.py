from __future__ import annotations


class NormalizationError(Exception):
    """
    Page-level normalization failure.

    `code` is a stable identifier for artifacts; `phase` names the pipeline step
    that failed. Page-level errors are isolated per page by the run orchestrator.
    """

    code = "NORMALIZE_FAILED"
    phase = "normalize"

    def __init__(self, message: str, *, page_id: str | None = None) -> None:
        super().__init__(message)
        self.page_id = page_id


class DecodeError(NormalizationError):
    code = "NORMALIZE_DECODE_FAILED"
    phase = "decode"


class MissingEstimateError(NormalizationError):
    code = "NORMALIZE_MISSING_ESTIMATE"
    phase = "estimate"


class ComputationError(NormalizationError):
    code = "NORMALIZE_DEGENERATE_GEOMETRY"
    phase = "analysis"


class EncodeError(NormalizationError):
    code = "NORMALIZE_ENCODE_FAILED"
    phase = "encode"


class OutputDirectoryError(Exception):
    """
    Systemic failure: the run's output directory cannot be created or written.

    Fatal to the whole run; never converted into a per-page failure.
    """

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AcceptanceRule:
    """
    One auto-accept condition: metrics[metric] >= minimum.
    """

    name: str
    metric: str
    minimum: float
    description: str


@dataclass(frozen=True, slots=True)
class AcceptanceDecision:
    accepted: bool
    notes: str
    failed_rules: tuple[str, ...]


DESKEW_CONFIDENCE_BOOST = 0.25

ACCEPTANCE_RULES: tuple[AcceptanceRule, ...] = (
    AcceptanceRule(
        name="mask_coverage",
        metric="maskCoverage",
        minimum=0.5,
        description="Detected page area covers at least half of the frame",
    ),
    AcceptanceRule(
        name="deskew_confidence",
        metric="deskewConfidence",
        minimum=0.2,
        description="Skew estimate is confident enough to trust the rotation",
    ),
)


def deskew_confidence(skew_confidence: float) -> float:
    return min(1.0, skew_confidence + DESKEW_CONFIDENCE_BOOST)


def evaluate_acceptance(
    metrics: dict[str, float],
    rules: tuple[AcceptanceRule, ...] = ACCEPTANCE_RULES,
) -> AcceptanceDecision:
    """
    Apply every rule; a page is auto-accepted only when all rules pass.

    A missing metric fails its rule.
    """

    failed = tuple(
        rule.name
        for rule in rules
        if metrics.get(rule.metric) is None or float(metrics[rule.metric]) < rule.minimum
    )
    accepted = not failed
    return AcceptanceDecision(
        accepted=accepted,
        notes="Auto-accepted" if accepted else "Requires review",
        failed_rules=failed,
    )

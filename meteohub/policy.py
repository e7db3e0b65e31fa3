from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Sequence, Tuple


PROVIDER_CONFIDENCE: Dict[str, float] = {
    "meteofrance": 0.95,
    "openmeteo": 0.9,
    "weatherapi": 0.85,
    "openweathermap": 0.8,
}
DEFAULT_CONFIDENCE = 0.7

# (max temperature spread in °C, agreement score), checked in order
AGREEMENT_BUCKETS: Tuple[Tuple[float, float], ...] = (
    (1.0, 0.95),
    (2.0, 0.85),
    (3.0, 0.75),
    (5.0, 0.65),
)
DISAGREEMENT_SCORE = 0.5
MAX_CONSENSUS_CONFIDENCE = 0.98


@dataclass(frozen=True)
class ConfidencePolicy:
    """Static confidence heuristics used by the aggregation strategies."""

    provider_confidence: Mapping[str, float] = field(default_factory=lambda: dict(PROVIDER_CONFIDENCE))
    default_confidence: float = DEFAULT_CONFIDENCE
    agreement_buckets: Sequence[Tuple[float, float]] = AGREEMENT_BUCKETS
    disagreement_score: float = DISAGREEMENT_SCORE
    max_consensus_confidence: float = MAX_CONSENSUS_CONFIDENCE

    def confidence_for(self, provider: str) -> float:
        return self.provider_confidence.get(provider, self.default_confidence)

    def agreement(self, temperatures: Iterable[float]) -> float:
        values = list(temperatures)
        if len(values) < 2:
            return 1.0
        spread = max(values) - min(values)
        for limit, score in self.agreement_buckets:
            if spread <= limit:
                return score
        return self.disagreement_score

    def consensus_confidence(self, providers: Sequence[str], temperatures: Iterable[float]) -> float:
        if not providers:
            return 0.0
        base = sum(self.confidence_for(name) for name in providers) / len(providers)
        return min(self.max_consensus_confidence, base * self.agreement(temperatures))


__all__ = ["ConfidencePolicy", "PROVIDER_CONFIDENCE", "AGREEMENT_BUCKETS"]

from __future__ import annotations

from typing import Any, NamedTuple, Optional

from nudge_service.models.nudge import CctRiskProfile, to_float

HIGH_RISK_THRESHOLD = 0.8
MEDIUM_RISK_THRESHOLD = 0.5


class RiskInterpretation(NamedTuple):
    level: str
    advice: str


UNKNOWN_RISK = RiskInterpretation("unknown", "standard risk assessment")
HIGH_RISK = RiskInterpretation("high", "conservative approach recommended")
MEDIUM_RISK = RiskInterpretation("medium", "balanced risk management")
LOW_RISK = RiskInterpretation("low", "careful position sizing advised")


def interpret_cct_score(score: Any) -> RiskInterpretation:
    """Classify a legacy CCT score into half-open bands; anything non-numeric is unknown."""
    value = to_float(score)
    if value is None:
        return UNKNOWN_RISK
    if value >= HIGH_RISK_THRESHOLD:
        return HIGH_RISK
    if value >= MEDIUM_RISK_THRESHOLD:
        return MEDIUM_RISK
    return LOW_RISK


def describe_hot_cold_pattern(diff: Optional[float]) -> str:
    if diff is not None and diff > 0:
        return "Participant shows more caution under pressure"
    if diff is not None and diff < 0:
        return "Participant shows more risk-taking under pressure"
    return "Participant shows consistent risk-taking across conditions"


def describe_consistency(consistency: Optional[str]) -> str:
    if consistency and consistency.lower() == "consistent":
        return "predictable risk behavior"
    return "variable risk behavior"


def describe_drawdown(current_drawdown_pct: Optional[float]) -> str:
    if current_drawdown_pct is None:
        return "Drawdown data is unavailable"
    if current_drawdown_pct > 5:
        return "Participant is experiencing significant drawdown"
    if current_drawdown_pct > 2:
        return "Participant is experiencing moderate drawdown"
    return "Participant is near peak performance"


def describe_performance(total_return: Optional[float]) -> str:
    if total_return is None:
        return "Unknown performance"
    return "Positive performance" if total_return > 0 else "Negative performance"


def resolve_risk_strategy(cct: Optional[CctRiskProfile]) -> tuple[str, str]:
    """Return the (risk level, risk type) pair used to tailor risk awareness."""
    if cct is None:
        return "standard", "balanced"
    return cct.risk_level or "standard", cct.risk_type or "balanced"


__all__ = [
    "HIGH_RISK",
    "LOW_RISK",
    "MEDIUM_RISK",
    "RiskInterpretation",
    "UNKNOWN_RISK",
    "describe_consistency",
    "describe_drawdown",
    "describe_hot_cold_pattern",
    "describe_performance",
    "interpret_cct_score",
    "resolve_risk_strategy",
]

from __future__ import annotations

from typing import Optional

from nudge_service.models.nudge import NudgeMode, NudgeRequest, format_number
from nudge_service.services.profile_interpreter import interpret_cct_score

FALLBACK_MODEL = "fallback-rule-based"
DEFAULT_SUGGESTION = "Consider all factors carefully before making your trading decision."
HIGH_SENTIMENT_PCT = 70
DRAWDOWN_WARNING_PCT = 2


def _signed_money(value: float) -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}${format_number(abs(value))}"


def _experience_clause(experience: Optional[str]) -> Optional[str]:
    if not experience:
        return None
    framing = "caution" if "None" in experience or "Less than" in experience else "consideration"
    return f"Your {experience} experience suggests {framing} of all market factors."


def _portfolio_clause(request: NudgeRequest) -> Optional[str]:
    portfolio = request.portfolio
    if portfolio is None:
        return None
    parts = []
    if portfolio.balance is not None:
        parts.append(f"${format_number(portfolio.balance)} balance")
    if portfolio.position_qty is not None:
        parts.append(f"{format_number(portfolio.position_qty)} position")
    if portfolio.unrealized_pl is not None:
        parts.append(f"{_signed_money(portfolio.unrealized_pl)} unrealized P&L")
    if not parts:
        return None
    return f"Portfolio: {', '.join(parts)}."


def _drawdown_clause(request: NudgeRequest) -> Optional[str]:
    drawdown = request.portfolio.current_drawdown_pct if request.portfolio else None
    if drawdown is None or drawdown <= DRAWDOWN_WARNING_PCT:
        return None
    return f"You're currently {format_number(drawdown)}% below peak. Consider risk management strategy."


def _risk_pattern_clause(request: NudgeRequest) -> Optional[str]:
    diff = request.profile.cct_hot_cold_diff if request.profile else None
    if diff is None:
        return None
    if diff > 0:
        pattern = "more caution under market pressure"
    elif diff < 0:
        pattern = "more risk-taking under market pressure"
    else:
        pattern = "consistent risk-taking across market conditions"
    return f"Your risk pattern shows {pattern}."


def compose_fallback_nudge(request: NudgeRequest, mode: NudgeMode = NudgeMode.GENERIC) -> str:
    """Assemble the rule-based nudge used whenever model generation fails.

    Clauses are added in a fixed order and each one only when the field it
    depends on is present. Generic mode never reads the participant profile or
    portfolio blocks.
    """
    trade = request.trade
    market = request.market
    analysis = request.analysis
    personalized = mode is NudgeMode.ENHANCED

    clauses: list[Optional[str]] = [
        f"You are placing {format_number(trade.qty)} {trade.side} on {market.symbol}.",
    ]
    if analysis.fair_value is not None and market.last is not None:
        clauses.append(f"Entry vs. fair value: {market.last - analysis.fair_value:.2f}.")
    if personalized:
        risk = interpret_cct_score(request.profile.cct_score if request.profile else None)
        clauses.append(f"Risk assessment ({risk.level} risk tolerance): {risk.advice}.")
    if analysis.sentiment_pct is not None and analysis.sentiment_pct >= HIGH_SENTIMENT_PCT:
        clauses.append(
            f"High institutional activity ({format_number(analysis.sentiment_pct)}%) creates strong market momentum."
        )
    if analysis.is_hot:
        clauses.append("Market volatility requires careful execution timing.")

    if personalized and request.profile is not None:
        traits = request.profile.psychological_traits
        clauses.append(_experience_clause(request.profile.trading_experience))
        if traits.pre_mood:
            clauses.append(f"Your current mood ({traits.pre_mood}) may influence market assessment.")
        if traits.pre_decision_fatigue:
            clauses.append(f"Decision fatigue level ({traits.pre_decision_fatigue}) may affect market analysis.")

    if personalized and request.is_enhanced_payload:
        clauses.append(_portfolio_clause(request))
        clauses.append(_drawdown_clause(request))
        clauses.append(_risk_pattern_clause(request))

    text = " ".join(clause for clause in clauses if clause)
    return text or DEFAULT_SUGGESTION


__all__ = ["DEFAULT_SUGGESTION", "FALLBACK_MODEL", "compose_fallback_nudge"]

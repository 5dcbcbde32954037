from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NamedTuple, Optional

from nudge_service.models.nudge import (
    DEFAULT_ORDER_PRICE,
    NudgeMode,
    NudgeRequest,
    ParticipantProfile,
    format_number,
)
from nudge_service.services.profile_interpreter import (
    describe_consistency,
    describe_drawdown,
    describe_hot_cold_pattern,
    describe_performance,
    interpret_cct_score,
    resolve_risk_strategy,
)

UNKNOWN = "Unknown"

DEFAULT_SYSTEM_PROMPT = (
    "You are a professional trading platform advisor providing market analysis and considerations to investors. "
    "Generate concise, neutral market observations (max 80 words) that present key market data and risk factors "
    "without giving direct investment advice. Use consideration language ('Consider', 'Evaluate', 'Assess'), "
    "highlight important market data, and end with thought-provoking questions. Present neutral analysis of market "
    "conditions, spreads, volatility, and risk factors. Use professional trading platform language and trading "
    "symbols ($, %, ↑, ↓, ⚠️) for data emphasis. Never use academic psychology terms, reference "
    "experimental scenarios, or provide direct buy/sell recommendations."
)

PROMPT_PREAMBLE = (
    "You are a professional trading platform advisor providing market analysis and considerations to investors. "
    "Generate concise, neutral market observations that present key data without giving direct investment advice."
)

BASE_GUIDELINES = (
    "MAXIMUM 80 WORDS - Concise but complete",
    'Use CONSIDERATION language: "Consider", "Evaluate", "Assess"',
    "Highlight KEY MARKET DATA: Prices, spreads, percentages, volatility",
    "Focus on MARKET CONDITIONS and RISK FACTORS",
    "Present NEUTRAL ANALYSIS - no direct recommendations",
    "Use PROFESSIONAL trading platform language",
    "End with THOUGHT-PROVOKING QUESTION or CONSIDERATION",
    "Avoid financial advice - just market observations",
    "Use trading symbols: $, %, ↑, ↓, ⚠️ for data emphasis",
    "Professional, informative, but not directive tone",
)

ENHANCED_GUIDELINES = (
    "Use portfolio context to provide relevant market guidance",
    "Consider trading history and performance patterns for risk assessment",
)

NUDGE_CATEGORIES: dict[str, tuple[str, str]] = {
    "execution_cost": ("Execution Cost", "Focus on spread, fees, transaction costs"),
    "fair_value_analysis": ("Fair Value Analysis", "Compare entry price to fair value estimates"),
    "fair_value_anchor": ("Fair Value Anchor", "Compare entry price to fair value estimates"),
    "market_momentum": ("Market Momentum", "Address high institutional buying activity"),
    "herding_bias": ("Herding Bias", "Address high investor buying activity"),
    "volatility_impact": ("Volatility Impact", "Warn about market volatility effects"),
    "hot_decisions": ("Hot Decisions", "Warn about time pressure effects"),
    "risk_assessment": ("Risk Assessment", "General risk considerations"),
    "cct_risk_awareness": (
        "Risk Awareness",
        "Tailor advice based on CCT score and enhanced risk profiling "
        "(risk level, consistency, preference, gain/loss sensitivity)",
    ),
    "portfolio_risk": ("Portfolio Risk", "Address drawdown, position sizing, performance patterns"),
    "behavioral_patterns": ("Behavioral Patterns", "Use hot/cold CCT differences and trading history"),
}

GENERIC_CATEGORY_KEYS = (
    "execution_cost",
    "fair_value_analysis",
    "market_momentum",
    "volatility_impact",
    "risk_assessment",
)
PERSONALIZED_CATEGORY_KEYS = (
    "execution_cost",
    "fair_value_anchor",
    "herding_bias",
    "hot_decisions",
    "cct_risk_awareness",
)
ENHANCED_CATEGORY_KEYS = PERSONALIZED_CATEGORY_KEYS + ("portfolio_risk", "behavioral_patterns")

_ASCII_REPLACEMENTS = str.maketrans(
    {
        "—": "-",  # em dash
        "–": "-",  # en dash
        "‘": "'",
        "’": "'",
        "“": '"',
        "”": '"',
    }
)


class PromptBundle(NamedTuple):
    system: str
    user: str


def _show(value: Any) -> str:
    if value is None or value == "":
        return UNKNOWN
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def _money(value: Optional[float]) -> str:
    if value is None:
        return UNKNOWN
    return f"${format_number(value)}"


def _pct(value: Optional[float]) -> str:
    if value is None:
        return UNKNOWN
    return f"{format_number(value)}%"


def _order_price_suffix(price: Any) -> str:
    if isinstance(price, float):
        return f" @ {format_number(price)}"
    if isinstance(price, str) and price and price != DEFAULT_ORDER_PRICE:
        return f" @ {price}"
    return ""


def _amount_suffix(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f" ({_money(value)})"


def sanitize_prompt_text(text: str) -> str:
    """Replace typographic punctuation coming from payload fields with ASCII equivalents."""
    return text.translate(_ASCII_REPLACEMENTS)


@dataclass
class PromptBuilder:
    """Renders the system and user instructions for one nudge request."""

    request: NudgeRequest
    mode: NudgeMode = NudgeMode.GENERIC
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @property
    def shape(self) -> str:
        if self.mode is NudgeMode.GENERIC:
            return "generic"
        if self.request.is_enhanced_payload:
            return "enhanced"
        return "personalized"

    def build(self) -> PromptBundle:
        shape = self.shape
        profile = self.request.profile or ParticipantProfile()
        sections = [PROMPT_PREAMBLE]
        if shape == "generic":
            sections.append(self._market_conditions_section(None))
            sections.append(self._guidelines_section(enhanced=False))
            sections.append(self._categories_section("AVAILABLE MARKET ANALYSIS CATEGORIES", GENERIC_CATEGORY_KEYS))
            sections.append(
                "Generate professional trading guidance that addresses the most relevant market factors "
                "for this specific situation."
            )
        else:
            enhanced = shape == "enhanced"
            sections.append(self._market_conditions_section(profile))
            if enhanced:
                sections.append(self._portfolio_section())
            sections.append(self._guidelines_section(enhanced=enhanced))
            sections.append(self._strategy_section(profile, enhanced=enhanced))
            category_keys = ENHANCED_CATEGORY_KEYS if enhanced else PERSONALIZED_CATEGORY_KEYS
            sections.append(self._categories_section("AVAILABLE NUDGE CATEGORIES", category_keys))
            sections.append(
                "Generate a personalized nudge that addresses the most relevant behavioral bias "
                "for this specific scenario."
            )
        user_prompt = sanitize_prompt_text("\n\n".join(sections))
        return PromptBundle(system=self.system_prompt, user=user_prompt)

    def _market_conditions_section(self, profile: Optional[ParticipantProfile]) -> str:
        trade = self.request.trade
        market = self.request.market
        analysis = self.request.analysis
        market_line = f"- Market: Last={_show(market.last)}, Bid={_show(market.bid)}, Ask={_show(market.ask)}"
        spread = market.spread
        if spread is not None:
            market_line += f", Spread=${spread:.2f}"
        lines = [
            "CURRENT MARKET CONDITIONS:",
            f"- Trade: {trade.side} {format_number(trade.qty)} shares of {market.symbol} "
            f"({trade.order_type} order{_order_price_suffix(trade.order_price)})",
            market_line,
            f"- Analysis: Fair Value={_show(analysis.fair_value)}, Analyst Target={_show(analysis.anchor_target)}, "
            f"Institutional Activity={_pct(analysis.sentiment_pct)}",
        ]
        if profile is not None:
            lines.extend(self._participant_lines(profile))
        volatility = "High volatility conditions" if analysis.is_hot else "Standard market conditions"
        timer = self.request.scenario.timer_sec if self.request.scenario else None
        if profile is not None and timer:
            volatility += f" ({format_number(timer)}s execution window)"
        lines.append(f"- Market Volatility: {volatility}")
        return "\n".join(lines)

    @staticmethod
    def _participant_lines(profile: ParticipantProfile) -> list[str]:
        interpretation = interpret_cct_score(profile.cct_score)
        risk_line = (
            f"- Risk Profile: {interpretation.level} risk tolerance (CCT Score: {_show(profile.cct_score)})"
        )
        if profile.cct_hot_score is not None or profile.cct_cold_score is not None:
            risk_line += (
                f", Hot/Cold Risk Pattern: {_show(profile.cct_hot_score)}/{_show(profile.cct_cold_score)} "
                f"(diff: {_show(profile.cct_hot_cold_diff)})"
            )
        cct = profile.cct
        if any(
            value is not None
            for value in (
                cct.risk_level,
                cct.risk_type,
                cct.risk_score,
                cct.risk_profile,
                cct.risk_consistency,
                cct.risk_preference,
            )
        ):
            risk_line += (
                f", Risk Profile: {_show(cct.risk_level)} ({_show(cct.risk_type)}), "
                f"Consistency: {_show(cct.risk_consistency)}, Preference: {_show(cct.risk_preference)}"
                f", Score: {_show(cct.risk_score)}, Profile: {_show(cct.risk_profile)}"
            )
        demographics = profile.demographics
        experience = profile.experience
        traits = profile.psychological_traits
        return [
            risk_line,
            f"- Investor Profile: {_show(demographics.age)} {_show(demographics.gender)}, "
            f"{_show(demographics.education)} education, {_money_text(demographics.personal_income)} income, "
            f"{_show(demographics.employment)} employment",
            f"- Experience: {_show(profile.trading_experience)} trading experience, "
            f"{_show(experience.confidence)}/10 confidence, {_show(experience.market_knowledge)} market knowledge, "
            f"{_show(experience.financial_education)} financial education, "
            f"instruments traded: {_show(experience.investment_types)}",
            f"- Current State: {_show(traits.pre_mood)} mood, {_show(traits.pre_decision_fatigue)} decision fatigue, "
            f"{_show(traits.regret_avoidance)}/7 regret avoidance",
        ]

    def _portfolio_section(self) -> str:
        portfolio = self.request.portfolio
        scenario = self.request.scenario
        history = self.request.trading_context
        total_return = portfolio.total_return if portfolio else None
        total_return_text = f"{total_return * 100:.2f}%" if total_return is not None else UNKNOWN
        lines = [
            "PORTFOLIO CONTEXT:",
            f"- Portfolio: Balance={_money(portfolio.balance if portfolio else None)}, "
            f"Position={_show(portfolio.position_qty if portfolio else None)}"
            f"@{_money(portfolio.position_price if portfolio else None)}, "
            f"Unrealized P&L={_money(portfolio.unrealized_pl if portfolio else None)}, "
            f"Realized P&L={_money(portfolio.realized_pl if portfolio else None)}",
            f"- Performance: Total Return={total_return_text}, "
            f"Max Drawdown={_pct(portfolio.max_drawdown_pct if portfolio else None)}"
            f"{_amount_suffix(portfolio.max_drawdown if portfolio else None)}, "
            f"Current Drawdown={_pct(portfolio.current_drawdown_pct if portfolio else None)}"
            f"{_amount_suffix(portfolio.current_drawdown if portfolio else None)}",
            f"- Trading History: {_show(portfolio.trade_count if portfolio else None)} trades completed, "
            f"Previous P&L={_money(history.previous_realized_pl if history else None)}",
        ]
        if history is not None:
            lines.append(
                f"- Scenario Start: Balance={_money(history.start_balance)}, "
                f"Position={_show(history.start_position)}@{_money(history.start_price)}, "
                f"Previous Trades={_show(history.previous_trades)}"
            )
        lines.append(
            f"- Market News: {_show(scenario.name if scenario else None)} "
            f"({_show(scenario.session_tag if scenario else None)}), "
            f"Headline: {_show(scenario.news_head if scenario else None)}"
        )
        lines.append(f"- Market Focus: {_show(scenario.bias_focus if scenario else None)}")
        return "\n".join(lines)

    @staticmethod
    def _guidelines_section(*, enhanced: bool) -> str:
        guidelines = BASE_GUIDELINES + (ENHANCED_GUIDELINES if enhanced else ())
        lines = ["ACADEMICALLY SOUND TRADING GUIDELINES (MARKET REALISM):"]
        lines.extend(f"{index}. {text}" for index, text in enumerate(guidelines, start=1))
        return "\n".join(lines)

    def _strategy_section(self, profile: ParticipantProfile, *, enhanced: bool) -> str:
        cct = profile.cct
        risk_level, risk_type = resolve_risk_strategy(cct)
        traits = profile.psychological_traits
        lines = [
            "PERSONALIZATION STRATEGY:",
            f"- **CCT Risk Profile**: Use {risk_level} risk level ({risk_type}) to tailor risk awareness",
            f"- **Hot/Cold Pattern**: {describe_hot_cold_pattern(profile.cct_hot_cold_diff)} "
            "- use this pattern to inform bias awareness",
            f"- **Risk Consistency**: {cct.risk_consistency or 'unknown'} consistency suggests "
            f"{describe_consistency(cct.risk_consistency)} - tailor advice accordingly",
            f"- **Gain/Loss Sensitivity**: {cct.gain_sensitivity or 'unknown'} gain sensitivity and "
            f"{cct.loss_aversion or 'unknown'} loss aversion - use to frame risk awareness",
            f"- **Trading Experience**: {_show(profile.trading_experience)} experience level "
            "- adjust complexity of bias awareness",
            f"- **Current State**: {_show(traits.pre_mood)} mood and {_show(traits.pre_decision_fatigue)} fatigue "
            "- consider emotional state in bias awareness",
        ]
        if enhanced:
            portfolio = self.request.portfolio
            drawdown = portfolio.current_drawdown_pct if portfolio else None
            total_return = portfolio.total_return if portfolio else None
            trade_count = portfolio.trade_count if portfolio else None
            lines.append(
                f"- **Portfolio Context**: {describe_drawdown(drawdown)} - use this context for risk awareness"
            )
            lines.append(
                f"- **Performance Pattern**: {describe_performance(total_return)} with {_show(trade_count)} trades "
                "- consider overconfidence or loss aversion"
            )
        return "\n".join(lines)

    @staticmethod
    def _categories_section(title: str, keys: tuple[str, ...]) -> str:
        lines = [f"{title}:"]
        for key in keys:
            label, focus = NUDGE_CATEGORIES[key]
            lines.append(f"- {label}: {focus}")
        return "\n".join(lines)


def _money_text(value: Optional[str]) -> str:
    if not value:
        return UNKNOWN
    return value if value.startswith("$") else f"${value}"


__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "NUDGE_CATEGORIES",
    "PromptBuilder",
    "PromptBundle",
    "sanitize_prompt_text",
]

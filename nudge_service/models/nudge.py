from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SYMBOL = "TICKER"
DEFAULT_SIDE = "Buy"
DEFAULT_ORDER_TYPE = "Market"
DEFAULT_ORDER_PRICE = "Market"


class NudgeMode(str, Enum):
    GENERIC = "generic"
    ENHANCED = "enhanced"


def to_float(value: Any) -> Optional[float]:
    """Coerce JSON scalars to a finite float, or ``None`` when that is not possible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(result):
        return None
    return result


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def to_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)):
        number = to_float(value)
        return format_number(number) if number is not None else None
    if isinstance(value, (list, tuple)):
        parts = [text for text in (to_text(item) for item in value) if text]
        return ", ".join(parts) or None
    return None


def _object_or_none(value: Any) -> Any:
    return value if isinstance(value, dict) else None


def _object_or_empty(value: Any) -> Any:
    return value if isinstance(value, dict) else {}


class _PayloadBlock(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TradeIntent(_PayloadBlock):
    side: str = DEFAULT_SIDE
    qty: float = 0.0
    order_type: str = Field(default=DEFAULT_ORDER_TYPE, alias="ordType")
    order_price: Union[float, str] = Field(default=DEFAULT_ORDER_PRICE, alias="ordPx")

    @field_validator("side", mode="before")
    def default_side(cls, value: Any) -> str:  # noqa: N805
        return to_text(value) or DEFAULT_SIDE

    @field_validator("qty", mode="before")
    def default_qty(cls, value: Any) -> float:  # noqa: N805
        return to_float(value) or 0.0

    @field_validator("order_type", mode="before")
    def default_order_type(cls, value: Any) -> str:  # noqa: N805
        return to_text(value) or DEFAULT_ORDER_TYPE

    @field_validator("order_price", mode="before")
    def default_order_price(cls, value: Any) -> Union[float, str]:  # noqa: N805
        number = to_float(value)
        if number is not None and not isinstance(value, str):
            return number
        return to_text(value) or DEFAULT_ORDER_PRICE


class MarketSnapshot(_PayloadBlock):
    symbol: str = Field(default=DEFAULT_SYMBOL, alias="sym")
    last: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None

    @field_validator("symbol", mode="before")
    def default_symbol(cls, value: Any) -> str:  # noqa: N805
        return to_text(value) or DEFAULT_SYMBOL

    @field_validator("last", "bid", "ask", mode="before")
    def numeric_prices(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)

    @property
    def spread(self) -> Optional[float]:
        if self.ask is None or self.bid is None:
            return None
        return self.ask - self.bid


class AnalysisContext(_PayloadBlock):
    fair_value: Optional[float] = None
    anchor_target: Optional[float] = None
    sentiment_pct: Optional[float] = None
    hot_condition: Any = None

    @field_validator("fair_value", "anchor_target", "sentiment_pct", mode="before")
    def numeric_fields(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)

    @property
    def is_hot(self) -> bool:
        # Only the string "1" and boolean true mark the hot condition.
        value = self.hot_condition
        return value is True or (isinstance(value, str) and value == "1")


class Demographics(_PayloadBlock):
    age: Optional[str] = None
    gender: Optional[str] = None
    education: Optional[str] = None
    personal_income: Optional[str] = None
    employment: Optional[str] = None
    trading_experience: Optional[str] = None

    @field_validator("*", mode="before")
    def text_fields(cls, value: Any) -> Optional[str]:  # noqa: N805
        return to_text(value)


class Experience(_PayloadBlock):
    trading_years: Optional[str] = None
    confidence: Optional[float] = None
    financial_education: Optional[str] = None
    investment_types: Optional[str] = None
    market_knowledge: Optional[str] = None

    @field_validator("trading_years", "financial_education", "investment_types", "market_knowledge", mode="before")
    def text_fields(cls, value: Any) -> Optional[str]:  # noqa: N805
        return to_text(value)

    @field_validator("confidence", mode="before")
    def numeric_confidence(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)


class PsychologicalTraits(_PayloadBlock):
    regret_avoidance: Optional[float] = None
    pre_mood: Optional[str] = None
    pre_decision_fatigue: Optional[str] = None

    @field_validator("regret_avoidance", mode="before")
    def numeric_regret(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)

    @field_validator("pre_mood", "pre_decision_fatigue", mode="before")
    def text_fields(cls, value: Any) -> Optional[str]:  # noqa: N805
        return to_text(value)


class CctRiskProfile(_PayloadBlock):
    """Nested CCT block sent to the enhanced treatment group."""

    risk_profile: Optional[str] = None
    risk_level: Optional[str] = None
    risk_score: Optional[float] = None
    risk_type: Optional[str] = None
    risk_consistency: Optional[str] = None
    risk_preference: Optional[str] = None
    gain_sensitivity: Optional[str] = None
    loss_aversion: Optional[str] = None

    @field_validator(
        "risk_profile",
        "risk_level",
        "risk_type",
        "risk_consistency",
        "risk_preference",
        "gain_sensitivity",
        "loss_aversion",
        mode="before",
    )
    def text_fields(cls, value: Any) -> Optional[str]:  # noqa: N805
        return to_text(value)

    @field_validator("risk_score", mode="before")
    def numeric_score(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)


class ParticipantProfile(_PayloadBlock):
    demographics: Demographics = Field(default_factory=Demographics)
    experience: Experience = Field(default_factory=Experience)
    psychological_traits: PsychologicalTraits = Field(default_factory=PsychologicalTraits)
    cct_score: Optional[float] = None
    cct_hot_score: Optional[float] = None
    cct_cold_score: Optional[float] = None
    cct_hot_cold_diff: Optional[float] = None
    cct: CctRiskProfile = Field(default_factory=CctRiskProfile)

    @field_validator("demographics", "experience", "psychological_traits", "cct", mode="before")
    def nested_blocks(cls, value: Any) -> Any:  # noqa: N805
        return _object_or_empty(value)

    @field_validator("cct_score", "cct_hot_score", "cct_cold_score", "cct_hot_cold_diff", mode="before")
    def numeric_scores(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)

    @property
    def trading_experience(self) -> Optional[str]:
        return self.experience.trading_years or self.demographics.trading_experience


class PortfolioState(_PayloadBlock):
    balance: Optional[float] = None
    position_qty: Optional[float] = Field(default=None, alias="posQty")
    position_price: Optional[float] = Field(default=None, alias="posPx")
    unrealized_pl: Optional[float] = Field(default=None, alias="unrealizedPL")
    realized_pl: Optional[float] = Field(default=None, alias="realizedPL")
    max_drawdown: Optional[float] = Field(default=None, alias="maxDrawdown")
    max_drawdown_pct: Optional[float] = Field(default=None, alias="maxDrawdownPct")
    current_drawdown: Optional[float] = Field(default=None, alias="currentDrawdown")
    current_drawdown_pct: Optional[float] = Field(default=None, alias="currentDrawdownPct")
    total_return: Optional[float] = Field(default=None, alias="totalReturn")
    trade_count: Optional[float] = Field(default=None, alias="tradeCount")

    @field_validator("*", mode="before")
    def numeric_fields(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)


class ScenarioMeta(_PayloadBlock):
    name: Optional[str] = None
    session_tag: Optional[str] = None
    news_head: Optional[str] = None
    bias_focus: Optional[str] = None
    timer_sec: Optional[float] = None

    @field_validator("name", "session_tag", "news_head", "bias_focus", mode="before")
    def text_fields(cls, value: Any) -> Optional[str]:  # noqa: N805
        return to_text(value)

    @field_validator("timer_sec", mode="before")
    def numeric_timer(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)


class TradingHistoryContext(_PayloadBlock):
    start_balance: Optional[float] = Field(default=None, alias="scenario_start_balance")
    start_position: Optional[float] = Field(default=None, alias="scenario_start_position")
    start_price: Optional[float] = Field(default=None, alias="scenario_start_price")
    previous_trades: Optional[float] = Field(default=None, alias="previous_trades_count")
    previous_realized_pl: Optional[float] = None

    @field_validator("*", mode="before")
    def numeric_fields(cls, value: Any) -> Optional[float]:  # noqa: N805
        return to_float(value)


class NudgeRequest(_PayloadBlock):
    """Request-scoped view of a nudge payload with every optional block resolved."""

    trade: TradeIntent = Field(default_factory=TradeIntent, alias="exec")
    market: MarketSnapshot = Field(default_factory=MarketSnapshot)
    analysis: AnalysisContext = Field(default_factory=AnalysisContext)
    profile: Optional[ParticipantProfile] = None
    portfolio: Optional[PortfolioState] = None
    scenario: Optional[ScenarioMeta] = None
    trading_context: Optional[TradingHistoryContext] = None

    @field_validator("trade", mode="before")
    def trade_block(cls, value: Any) -> Any:  # noqa: N805
        return _object_or_empty(value)

    @field_validator("profile", "portfolio", "scenario", "trading_context", mode="before")
    def optional_blocks(cls, value: Any) -> Any:  # noqa: N805
        return _object_or_none(value)

    @classmethod
    def from_payload(cls, body: dict[str, Any]) -> "NudgeRequest":
        market = {key: body.get(key) for key in ("sym", "last", "bid", "ask")}
        analysis = {key: body.get(key) for key in ("fair_value", "anchor_target", "sentiment_pct", "hot_condition")}
        return cls.model_validate(
            {
                "exec": body.get("exec"),
                "market": market,
                "analysis": analysis,
                "profile": body.get("profile"),
                "portfolio": body.get("portfolio"),
                "scenario": body.get("scenario"),
                "trading_context": body.get("trading_context"),
            }
        )

    @property
    def is_enhanced_payload(self) -> bool:
        return any(block is not None for block in (self.portfolio, self.scenario, self.trading_context))


class NudgeResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model: str
    suggestion_html: str
    suggestion_text: str
    meta: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AnalysisContext",
    "CctRiskProfile",
    "Demographics",
    "Experience",
    "MarketSnapshot",
    "NudgeMode",
    "NudgeRequest",
    "NudgeResult",
    "ParticipantProfile",
    "PortfolioState",
    "PsychologicalTraits",
    "ScenarioMeta",
    "TradeIntent",
    "TradingHistoryContext",
    "format_number",
    "to_float",
    "to_text",
]

from __future__ import annotations

import html
import logging
import time
from typing import Any, Optional

from nudge_service.models.nudge import NudgeMode, NudgeRequest, NudgeResult
from nudge_service.services.fallback_composer import DEFAULT_SUGGESTION, FALLBACK_MODEL, compose_fallback_nudge
from nudge_service.services.llm_service import GenerationResult, LLMService
from nudge_service.services.profile_interpreter import interpret_cct_score
from nudge_service.services.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

ERROR_MODEL = "error"
ERROR_SUGGESTION = "Unable to generate nudge at this time."


def now_ms() -> int:
    return int(time.time() * 1000)


def wrap_suggestion_html(text: str) -> str:
    return f"<div><b>AI Trade Feedback:</b> {html.escape(text, quote=False)}</div>"


def build_error_result(error: str) -> NudgeResult:
    return NudgeResult(
        model=ERROR_MODEL,
        suggestion_html=f"<div>{ERROR_SUGGESTION}</div>",
        suggestion_text=ERROR_SUGGESTION,
        meta={"error": error, "received_at": now_ms()},
    )


def _base_meta(request: NudgeRequest, mode: NudgeMode, received_at: int) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "received_at": received_at,
        "nudge_type": mode.value,
        "sentiment_pct": request.analysis.sentiment_pct,
        "is_hot": request.analysis.is_hot,
    }
    if mode is NudgeMode.ENHANCED:
        cct_score = request.profile.cct_score if request.profile else None
        meta["cct_score"] = cct_score
        meta["cct_level"] = interpret_cct_score(cct_score).level
        meta["enhanced_payload"] = request.is_enhanced_payload
    return meta


def log_nudge_request(request: NudgeRequest, mode: NudgeMode) -> None:
    trade = request.trade
    if mode is NudgeMode.GENERIC:
        logger.info(
            "Received generic nudge request: symbol=%s side=%s qty=%s sentiment=%s",
            request.market.symbol,
            trade.side,
            trade.qty,
            request.analysis.sentiment_pct,
        )
        return
    profile = request.profile
    demographics = profile.demographics if profile else None
    traits = profile.psychological_traits if profile else None
    logger.info(
        "Received enhanced nudge request: symbol=%s side=%s qty=%s cct_score=%s sentiment=%s payload_type=%s "
        "has_portfolio=%s has_scenario=%s has_trading_context=%s age=%s gender=%s education=%s "
        "trading_experience=%s confidence=%s pre_mood=%s pre_decision_fatigue=%s",
        request.market.symbol,
        trade.side,
        trade.qty,
        profile.cct_score if profile else None,
        request.analysis.sentiment_pct,
        "enhanced" if request.is_enhanced_payload else "basic",
        request.portfolio is not None,
        request.scenario is not None,
        request.trading_context is not None,
        demographics.age if demographics else None,
        demographics.gender if demographics else None,
        demographics.education if demographics else None,
        profile.trading_experience if profile else None,
        profile.experience.confidence if profile else None,
        traits.pre_mood if traits else None,
        traits.pre_decision_fatigue if traits else None,
    )


async def _generate(request: NudgeRequest, mode: NudgeMode, llm_service: LLMService) -> GenerationResult:
    try:
        prompt = PromptBuilder(request, mode).build()
    except Exception as exc:
        logger.exception("Prompt composition failed for %s nudge", mode.value)
        return GenerationResult.failure(llm_service.model_id, f"prompt composition failed: {exc}")
    return await llm_service.generate(prompt)


def _fallback_text(request: NudgeRequest, mode: NudgeMode) -> str:
    try:
        return compose_fallback_nudge(request, mode)
    except Exception:
        logger.exception("Fallback composition failed for %s nudge", mode.value)
        return DEFAULT_SUGGESTION


async def generate_nudge(
    body: dict[str, Any],
    mode: NudgeMode,
    llm_service: LLMService,
    *,
    received_at: Optional[int] = None,
) -> NudgeResult:
    """Run one nudge request through prompt composition, generation and fallback."""
    received_at = received_at if received_at is not None else now_ms()
    request = NudgeRequest.from_payload(body)
    log_nudge_request(request, mode)
    meta = _base_meta(request, mode, received_at)

    generation = await _generate(request, mode, llm_service)
    if generation.ok:
        text = generation.text or DEFAULT_SUGGESTION
        model = generation.model
        meta["tokens_used"] = generation.tokens_used
    else:
        text = _fallback_text(request, mode) or DEFAULT_SUGGESTION
        model = FALLBACK_MODEL
        meta["error"] = generation.error
        meta["fallback"] = True

    return NudgeResult(
        model=model,
        suggestion_html=wrap_suggestion_html(text),
        suggestion_text=text,
        meta=meta,
    )


__all__ = [
    "ERROR_MODEL",
    "ERROR_SUGGESTION",
    "build_error_result",
    "generate_nudge",
    "log_nudge_request",
    "now_ms",
    "wrap_suggestion_html",
]

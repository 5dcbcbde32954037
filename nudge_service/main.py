import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nudge_service.core.config import Settings, get_settings
from nudge_service.models.nudge import NudgeMode
from nudge_service.services.llm_service import LLMService
from nudge_service.services.nudge_pipeline import build_error_result, generate_nudge, now_ms

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Generic nudge generation failed"
ENHANCED_FAILURE = "Enhanced nudge generation failed"
LEGACY_FAILURE = "Nudge generation failed"


class PayloadError(ValueError):
    """Raised when a request body cannot be read as a JSON object."""


def _create_lifespan(llm_service: LLMService):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for name in ("nudge_service", "uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(name).setLevel(logging.INFO)
        if llm_service.configured:
            logger.info("LLM credential found; model-generated nudges enabled (model=%s)", llm_service.model_id)
        else:
            logger.warning("LLM credential not set; every request will use fallback rule-based nudges")
        yield
        logger.info("Nudge service shutting down")

    return lifespan


async def _read_json_body(request: Request, max_body_bytes: int) -> dict[str, Any]:
    declared = request.headers.get("content-length")
    if declared and declared.strip().isdigit() and int(declared) > max_body_bytes:
        raise PayloadError(f"request body exceeds {max_body_bytes} bytes")
    raw = bytearray()
    async for chunk in request.stream():
        raw.extend(chunk)
        if len(raw) > max_body_bytes:
            raise PayloadError(f"request body exceeds {max_body_bytes} bytes")
    if not raw.strip():
        return {}
    try:
        body = json.loads(bytes(raw))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PayloadError(f"invalid JSON body: {exc}") from exc
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise PayloadError("request body must be a JSON object")
    return body


def create_app(settings: Settings | None = None, llm_service: LLMService | None = None) -> FastAPI:
    settings = settings or get_settings()
    llm_service = llm_service or LLMService.from_settings(settings)
    app = FastAPI(title="nudge-service", version="0.1.0", lifespan=_create_lifespan(llm_service))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.llm_service = llm_service

    async def handle_nudge(request: Request, mode: NudgeMode, failure_message: str) -> JSONResponse:
        received_at = now_ms()
        try:
            body = await _read_json_body(request, settings.max_body_bytes)
            result = await generate_nudge(body, mode, llm_service, received_at=received_at)
        except Exception as exc:
            logger.exception("%s", failure_message)
            error_result = build_error_result(str(exc) or exc.__class__.__name__)
            content = error_result.model_dump()
            content["error"] = failure_message
            return JSONResponse(content, status_code=500)
        return JSONResponse(result.model_dump(), status_code=200)

    @app.post("/generic-nudge")
    async def generic_nudge(request: Request) -> JSONResponse:
        return await handle_nudge(request, NudgeMode.GENERIC, GENERIC_FAILURE)

    @app.post("/enhanced-nudge")
    async def enhanced_nudge(request: Request) -> JSONResponse:
        return await handle_nudge(request, NudgeMode.ENHANCED, ENHANCED_FAILURE)

    @app.post("/nudge")
    async def legacy_nudge(request: Request) -> JSONResponse:
        return await handle_nudge(request, NudgeMode.ENHANCED, LEGACY_FAILURE)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "healthy", "timestamp": now_ms(), "hasOpenAI": settings.has_llm_credential}

    return app


def run() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()
    logger.info("Nudge server listening on http://%s:%s/nudge", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


app = create_app()


if __name__ == "__main__":
    run()

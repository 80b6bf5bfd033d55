"""
Elder Health Assistant - FastAPI relay

Endpoints:
  POST /api/analyze  - read a checkup report, medicine box or food label
  POST /api/tts      - read text aloud
  POST /api/chat     - follow-up questions about the current item
  GET  /api/health   - readiness probe

Every call is a single Gemini round trip; nothing is kept between requests.
"""
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Type, TypeVar

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .config import (
    ANALYSIS_TEMPERATURE,
    CHAT_TEMPERATURE,
    get_logging_options,
    get_settings,
    has_api_key,
)
from .errors import MissingAudioError, PayloadTooLargeError, ValidationError
from .gemini_client import GatewayFactory, get_gateway_factory, speech_config, text_config
from .models import (
    AnalyzeRequest,
    AnalyzeResponse,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    TTSRequest,
    TTSResponse,
)
from .normalizer import extract_audio, extract_text, normalize_analysis
from .prompts import (
    build_analysis_contents,
    build_analysis_prompt,
    build_chat_contents,
    build_chat_prompt,
    build_tts_contents,
)
from .structured_logging import (
    EventLogger,
    begin_request,
    bind_endpoint,
    configure_logging,
    log_request,
)

_log_level, _log_json = get_logging_options()
configure_logging(level=_log_level, json_lines=_log_json)
logger = EventLogger("api")

# User-facing messages (the front-end shows these verbatim)
ANALYZE_MISSING = "缺少必要参数"
ANALYZE_FAILED = "分析失败，请重试"
TTS_MISSING = "缺少文本"
TTS_FAILED = "语音生成失败"
TTS_UNAVAILABLE = "语音服务暂时不可用，请重试"
CHAT_MISSING = "缺少消息"
CHAT_FAILED = "回复失败"
BODY_TOO_LARGE = "请求内容过大"
NOT_FOUND = "Not found"

M = TypeVar("M", bound=BaseModel)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate settings once on startup; a malformed PORT or MAX_BODY_BYTES stops the server here."""
    settings = get_settings()
    logger.info(
        "starting",
        version=__version__,
        text_model=settings.text_model,
        tts_model=settings.tts_model,
        max_body_bytes=settings.max_body_bytes,
        has_api_key=settings.gemini_api_key is not None,
    )
    yield
    logger.info("shutting down")


app = FastAPI(
    title="Elder Health Assistant",
    description="Gemini relay that explains reports, medicines and food labels to elderly users",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag the request with an id, enforce the declared body size, log the outcome."""
    start_time = time.time()
    request_id = begin_request(request.headers.get("X-Request-ID"))

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > get_settings().max_body_bytes:
        response = _error(413, BODY_TOO_LARGE)
    else:
        response = await call_next(request)

    response.headers["X-Request-ID"] = request_id
    log_request(
        request.method,
        request.url.path,
        response.status_code,
        (time.time() - start_time) * 1000,
        client_ip=request.client.host if request.client else None,
    )
    return response


def _error(status_code: int, message: str, details: str = None) -> JSONResponse:
    body = ErrorResponse(error=message, details=details).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code)


async def _read_body(req: Request, limit: int) -> bytes:
    """Read the body, counting bytes as they arrive; chunked uploads carry no Content-Length."""
    chunks = []
    size = 0
    async for chunk in req.stream():
        size += len(chunk)
        if size > limit:
            raise PayloadTooLargeError(f"request body exceeds {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def _parse_body(req: Request, model: Type[M]) -> M:
    """Read the JSON body into a request model.

    Raises PayloadTooLargeError past the body ceiling and ValidationError for
    anything the model rejects.
    """
    raw = await _read_body(req, get_settings().max_body_bytes)
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise ValidationError("request body is not valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(str(e.errors()[0].get("msg", "Invalid request"))) from e


@app.post("/api/analyze")
async def analyze(req: Request, gateway_factory: GatewayFactory = Depends(get_gateway_factory)):
    """Explain a checkup report, medicine or food label from images and/or a PDF."""
    bind_endpoint("analyze")
    try:
        request_model = await _parse_body(req, AnalyzeRequest)
    except PayloadTooLargeError as e:
        logger.warning("body too large", reason=str(e))
        return _error(413, BODY_TOO_LARGE)
    except ValidationError as e:
        logger.warning("rejected", reason=str(e))
        return _error(400, ANALYZE_MISSING)

    mode = request_model.mode
    logger.info(
        "accepted",
        mode=mode,
        images=len(request_model.images or []),
        has_pdf=request_model.pdf_data is not None,
    )

    try:
        settings = get_settings()
        gateway = gateway_factory(settings.gemini_api_key, settings.timeout_seconds)
        response = await gateway.generate(
            settings.text_model,
            build_analysis_contents(request_model.images, request_model.pdf_data),
            text_config(build_analysis_prompt(mode), ANALYSIS_TEMPERATURE),
        )
        data = normalize_analysis(mode, extract_text(response))
        # Rendering happens here so an unserializable reply is still a 500 with details.
        return JSONResponse(AnalyzeResponse(data=data).model_dump())
    except Exception as e:
        logger.exception("failed", mode=mode, error=str(e))
        return _error(500, ANALYZE_FAILED, details=str(e))


@app.post("/api/tts")
async def tts(req: Request, gateway_factory: GatewayFactory = Depends(get_gateway_factory)):
    """Read text aloud; returns base64 audio."""
    bind_endpoint("tts")
    try:
        request_model = await _parse_body(req, TTSRequest)
    except PayloadTooLargeError as e:
        logger.warning("body too large", reason=str(e))
        return _error(413, BODY_TOO_LARGE)
    except ValidationError as e:
        logger.warning("rejected", reason=str(e))
        return _error(400, TTS_MISSING)

    logger.info("accepted", chars=len(request_model.text))

    try:
        settings = get_settings()
        gateway = gateway_factory(settings.gemini_api_key, settings.timeout_seconds)
        response = await gateway.generate(
            settings.tts_model,
            build_tts_contents(request_model.text),
            speech_config(settings.tts_voice),
        )
        audio = extract_audio(response)
        if audio is None:
            raise MissingAudioError("speech reply carried no audio data")
    except MissingAudioError as e:
        logger.error("no audio", error=str(e))
        return _error(500, TTS_FAILED)
    except Exception as e:
        logger.exception("failed", error=str(e))
        return _error(500, TTS_UNAVAILABLE)

    return JSONResponse(TTSResponse(audio=audio).model_dump())


@app.post("/api/chat")
async def chat(req: Request, gateway_factory: GatewayFactory = Depends(get_gateway_factory)):
    """Answer a follow-up question about the item currently on screen."""
    bind_endpoint("chat")
    try:
        request_model = await _parse_body(req, ChatRequest)
    except PayloadTooLargeError as e:
        logger.warning("body too large", reason=str(e))
        return _error(413, BODY_TOO_LARGE)
    except ValidationError as e:
        logger.warning("rejected", reason=str(e))
        return _error(400, CHAT_MISSING)

    logger.info(
        "accepted",
        context_type=request_model.context_type,
        history_turns=len(request_model.history or []),
    )

    try:
        settings = get_settings()
        gateway = gateway_factory(settings.gemini_api_key, settings.timeout_seconds)
        response = await gateway.generate(
            settings.text_model,
            build_chat_contents(request_model.history, request_model.message),
            text_config(
                build_chat_prompt(
                    request_model.context_type,
                    request_model.context_item,
                    request_model.context_content,
                ),
                CHAT_TEMPERATURE,
            ),
        )
        reply = extract_text(response)
    except Exception as e:
        # Unlike /api/analyze, no error details go back to the client.
        logger.exception("failed", error=str(e))
        return _error(500, CHAT_FAILED)

    return JSONResponse(ChatResponse(reply=reply).model_dump())


@app.get("/api/health")
async def health_check() -> Any:
    return HealthResponse(has_api_key=has_api_key()).model_dump(by_alias=True)


@app.get("/{full_path:path}", include_in_schema=False)
async def frontend(full_path: str):
    """Serve the built front-end; unknown paths get index.html."""
    if full_path == "api" or full_path.startswith("api/"):
        return _error(404, NOT_FOUND)

    static_dir = Path(get_settings().static_dir).resolve()
    if full_path:
        candidate = (static_dir / full_path).resolve()
        if static_dir in candidate.parents and candidate.is_file():
            return FileResponse(candidate)

    index = static_dir / "index.html"
    if index.is_file():
        return FileResponse(index)
    return _error(404, NOT_FOUND)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)


if __name__ == "__main__":
    run()

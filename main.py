# main.py
import os
from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chat_proxy import WebhookChatProxy
from errors import ClientInputError, ProxyError
from logger import logger
from models import ChatRequest, ChatResponse, ErrorResponse, TranscribeRequest, TranscribeResponse
from settings import Settings, get_settings
from transcription_proxy import DeepgramTranscriber

app = FastAPI(title="ChatWidget Proxy API", version="1.0.0")

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ALLOW_ORIGINS.split(","),
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# --- Collaborators (overridden in tests) ---
def get_chat_proxy(settings: Settings = Depends(get_settings)) -> WebhookChatProxy:
    return WebhookChatProxy(settings)


def get_transcriber(settings: Settings = Depends(get_settings)) -> DeepgramTranscriber:
    return DeepgramTranscriber(settings)


def body_limit(setting_name: str):
    async def check(request: Request, settings: Settings = Depends(get_settings)) -> None:
        limit = getattr(settings, setting_name)
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > limit:
            raise ProxyError(
                f"Request body exceeds {limit} bytes",
                error="Request body too large",
                fallback="",
                status_code=413,
            )
    return check


# --- Error envelopes ---
@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    if not isinstance(exc, ClientInputError):
        logger.error("Proxy request failed", path=request.url.path, error=exc.error, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers=exc.headers)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


# --- Routes ---
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.options("/api/chat")
@app.options("/api/transcribe")
def preflight():
    return Response(status_code=200)


@app.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
    dependencies=[Depends(body_limit("CHAT_BODY_LIMIT_BYTES"))],
)
async def chat(req: ChatRequest, proxy: WebhookChatProxy = Depends(get_chat_proxy)):
    return await proxy.forward(req)


@app.post(
    "/api/transcribe",
    response_model=TranscribeResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    dependencies=[Depends(body_limit("TRANSCRIBE_BODY_LIMIT_BYTES"))],
)
async def transcribe(req: TranscribeRequest, transcriber: DeepgramTranscriber = Depends(get_transcriber)):
    return await transcriber.transcribe(req)


def run() -> None:
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))

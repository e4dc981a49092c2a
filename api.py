#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Shadow Reading – FastAPI backend for read-aloud practice
---------------------------------------------------------

• Content: Gemini writes a three-sentence passage (OpenAI as fallback), or picks one from an uploaded document
• Reference audio: Gemini TTS, returned as a WAV container in base64
• Cache: one challenge per process, keyed by (level, mode), 5 minute TTL, shared in-flight fetch
• Analysis: Gemini compares the learner's recording with the reference, word by word

Endpoints (Shadow):
  - POST   /shadow/challenge   → challenge for {level, mode} (cached; sourceDocument bypasses the cache)
  - POST   /shadow/prefetch    → warm the cache in the background (202)
  - POST   /shadow/analyze     → word-level analysis of a recording against the reference
  - POST   /shadow/ref-audio   → reference audio for arbitrary text

Endpoints (Documents):
  - POST   /documents          → upload a reference document (multipart "file")
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware

from app import config, time_utils
from app.exceptions import (
    DocumentExtractionError,
    InvalidAudioError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ShadowEngineError,
)
from app.schemas import (
    AnalysisResult,
    AnalyzeRequest,
    ChallengeOut,
    ChallengeRequest,
    PrefetchOut,
    PrefetchRequest,
    RefAudioOut,
    RefAudioRequest,
    SourceDocument,
)
from app.services.analysis_service import AlignmentAnalysisClient, build_analysis_client
from app.services.challenge_cache import ChallengeCache
from app.services.challenge_service import NO_AI_PROVIDER_MESSAGE, ChallengeService, build_challenge_service
from app.utils.b64 import bytes_to_transport_text, transport_text_to_bytes

utc_now = time_utils.utc_now

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Failed to load challenge. Please try again."
UNAVAILABLE_MESSAGE = "AI service unavailable. Please check your API keys and try again."
MAX_DOCUMENT_BYTES = 20 * 1024 * 1024


def http_error_for(exc: Exception, retry_message: str = RETRY_MESSAGE) -> HTTPException:
    """Translate an engine error into the HTTP error the client sees."""
    if isinstance(exc, ProviderUnavailableError):
        return HTTPException(status_code=503, detail=UNAVAILABLE_MESSAGE)
    if isinstance(exc, ProviderTimeoutError):
        return HTTPException(status_code=504, detail=retry_message)
    if isinstance(exc, InvalidAudioError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, DocumentExtractionError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=502, detail=retry_message)


# ---------------------------------
# Dependencies
# ---------------------------------
def get_challenge_service(request: Request) -> ChallengeService:
    return request.app.state.challenge_service


def get_challenge_cache(request: Request) -> ChallengeCache:
    return request.app.state.challenge_cache


def get_analysis_client(request: Request) -> AlignmentAnalysisClient:
    return request.app.state.analysis_client


# ---------------
# FastAPI (app)
# ---------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan hook: wire providers and the per-process challenge cache."""
    service = build_challenge_service()
    app.state.challenge_service = service
    app.state.challenge_cache = ChallengeCache(
        service.fetch, ttl=timedelta(seconds=config.CHALLENGE_CACHE_TTL_S)
    )
    app.state.analysis_client = build_analysis_client()
    yield
    app.state.challenge_cache.clear()


app = FastAPI(
    title="Shadow Reading API",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------
# Endpoints – Shadow
# ------------------------
@app.post("/shadow/challenge", response_model=ChallengeOut)
async def get_challenge(
    req: ChallengeRequest,
    service: ChallengeService = Depends(get_challenge_service),
    cache: ChallengeCache = Depends(get_challenge_cache),
):
    if not service.providers:
        raise HTTPException(status_code=503, detail=NO_AI_PROVIDER_MESSAGE)
    if req.refresh:
        cache.clear()
    try:
        if req.source_document is not None:
            challenge = await service.generate_challenge(req.level, req.mode, req.source_document)
        else:
            challenge = await cache.load(req.level, req.mode)
    except ShadowEngineError as exc:
        logger.error("Challenge request failed (%s): %s", type(exc).__name__, exc)
        # next request starts from a clean slate
        cache.clear()
        raise http_error_for(exc) from exc

    return ChallengeOut(
        topic=challenge.topic,
        text=challenge.text,
        source_url=challenge.source_url,
        reference_audio_transport=bytes_to_transport_text(challenge.reference_audio),
    )


@app.post("/shadow/prefetch", response_model=PrefetchOut, status_code=status.HTTP_202_ACCEPTED)
async def prefetch_challenge(
    req: PrefetchRequest,
    service: ChallengeService = Depends(get_challenge_service),
    cache: ChallengeCache = Depends(get_challenge_cache),
):
    """Start a background fetch unless one is running or the cache already holds this key."""
    if not service.providers:
        return PrefetchOut(status="skipped")
    task = cache.prefetch(req.level, req.mode)
    return PrefetchOut(status="scheduled" if task is not None else "skipped")


@app.post("/shadow/analyze", response_model=AnalysisResult, response_model_by_alias=True)
async def analyze_recording(
    req: AnalyzeRequest,
    client: AlignmentAnalysisClient = Depends(get_analysis_client),
):
    try:
        user_audio = transport_text_to_bytes(req.user_audio_transport)
        ref_audio = transport_text_to_bytes(req.reference_audio_transport)
        return await client.analyze(user_audio, req.user_mime, ref_audio, req.reference_text)
    except ValueError as exc:
        # invalid base64 or empty input
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ShadowEngineError as exc:
        logger.error("Analysis failed (%s): %s", type(exc).__name__, exc)
        raise http_error_for(exc, retry_message="Analysis failed. Please try again.") from exc


@app.post("/shadow/ref-audio", response_model=RefAudioOut)
async def reference_audio(
    req: RefAudioRequest,
    service: ChallengeService = Depends(get_challenge_service),
):
    try:
        wav = await service.synthesize_reference_audio(req.text, voice=req.voice_name or config.TEXTBOOK_TTS_VOICE)
    except ShadowEngineError as exc:
        logger.error("Reference audio failed (%s): %s", type(exc).__name__, exc)
        raise http_error_for(exc, retry_message="Failed to generate audio. Please try again.") from exc
    return RefAudioOut(reference_audio_transport=bytes_to_transport_text(wav))


# ------------------------
# Endpoints – Documents
# ------------------------
@app.post("/documents", response_model=SourceDocument, response_model_by_alias=True, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    service: ChallengeService = Depends(get_challenge_service),
):
    upload = getattr(service.primary, "upload_document", None)
    if upload is None:
        raise HTTPException(status_code=503, detail="Document upload needs GEMINI_API_KEY.")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > MAX_DOCUMENT_BYTES:
        raise HTTPException(status_code=413, detail="File too large")

    try:
        return await upload(
            data,
            display_name=file.filename or "document",
            mime_type=file.content_type or "application/pdf",
        )
    except ShadowEngineError as exc:
        logger.error("Document upload failed (%s): %s", type(exc).__name__, exc)
        raise http_error_for(exc, retry_message="Upload failed. Please try again.") from exc


# ------------------------
# Healthcheck
# ------------------------
@app.get("/health")
def health():
    """Simple health check endpoint with current UTC timestamp."""
    return {"status": "ok", "utc": utc_now().isoformat()}


# ------------------------
# Local execution
# ------------------------
if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("api:app", host=config.API_HOST, port=config.API_PORT, reload=config.API_RELOAD)

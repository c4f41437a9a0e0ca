# backend/quiz_portal/app.py

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import APIRouter, Body, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY

from quiz_portal.core import (
    BackendGateway,
    IdentityStore,
    InvalidAnswer,
    LeaderboardPublisher,
    LocalStorage,
    QueryResult,
    QuizSession,
    ResilientQueryLayer,
    ResultStore,
    SessionRegistry,
    SessionState,
    SessionStateError,
    ValidationFailed,
    WriteFailed,
)
from quiz_portal.core.config import Settings, get_settings
from quiz_portal.core.schemas import (
    AnswerRequest,
    IdentityRequest,
    LeaderboardSubmission,
    ResultsResponse,
    StartSessionRequest,
)

logger = logging.getLogger("quiz")

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

PDF_CONTENT_TYPE = "application/pdf"

router = APIRouter()


# ------------------------------------------------------------
# Middleware to log requests
# ------------------------------------------------------------
class LogRequestMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger.info(
            f"Incoming {request.method} {request.url.path} "
            f"length={request.headers.get('content-length', '0')}"
        )
        return await call_next(request)


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _layer(request: Request) -> ResilientQueryLayer:
    return request.app.state.layer


def _sourced(result: QueryResult, payload: Any) -> JSONResponse:
    """JSON body in its usual shape, with where it came from in a header."""
    return JSONResponse(payload, headers={"X-Data-Source": result.source.value})


def _preflight() -> Response:
    return Response(status_code=200, headers=PREFLIGHT_HEADERS)


def _session_or_404(request: Request, session_id: str) -> QuizSession:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        logger.warning(f"Session not found: {session_id}")
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session


def _extract_user_id(body: Any) -> Optional[int]:
    if not isinstance(body, dict):
        return None
    candidates = [body.get("userId"), body.get("user_id"), body.get("id")]
    user = body.get("user")
    if isinstance(user, dict):
        candidates.append(user.get("id"))
    for value in candidates:
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


# ------------------------------------------------------------
# Auth (forwarded, backend status kept)
# ------------------------------------------------------------
@router.post("/api/auth/login")
async def login(request: Request, credentials: Dict[str, Any] = Body(...)):
    reply = await _layer(request).login(credentials)
    if reply.ok:
        user_id = _extract_user_id(reply.body)
        if user_id is not None:
            await run_in_threadpool(request.app.state.identity.set, user_id)
            logger.info(f"Identity stored for user {user_id}")
    return JSONResponse(reply.body, status_code=reply.status_code)


@router.options("/api/auth/login")
async def login_preflight():
    return _preflight()


@router.post("/api/auth/register")
async def register(request: Request, registration: Dict[str, Any] = Body(...)):
    reply = await _layer(request).register(registration)
    return JSONResponse(reply.body, status_code=reply.status_code)


@router.options("/api/auth/register")
async def register_preflight():
    return _preflight()


# ------------------------------------------------------------
# Catalog reads (fall back when the backend is down)
# ------------------------------------------------------------
@router.get("/api/categories")
async def categories(request: Request):
    result = await _layer(request).categories()
    return _sourced(result, result.data)


@router.get("/api/quizzes")
async def quizzes(request: Request):
    result = await _layer(request).quizzes()
    return _sourced(result, [q.model_dump(mode="json") for q in result.data])


@router.get("/api/quiz/{quiz_id}")
async def quiz(request: Request, quiz_id: int):
    result = await _layer(request).quiz(quiz_id)
    return _sourced(result, result.data.model_dump(mode="json"))


# ------------------------------------------------------------
# Leaderboard
# ------------------------------------------------------------
@router.get("/api/leaderboard")
async def leaderboard(request: Request, category: Optional[str] = None):
    result = await _layer(request).leaderboard(category or None)
    return _sourced(result, [e.model_dump(mode="json") for e in result.data])


@router.post("/api/leaderboard")
async def save_result(request: Request, submission: LeaderboardSubmission):
    ack = await _layer(request).submit_result(submission)
    return JSONResponse(ack)


@router.options("/api/leaderboard")
async def leaderboard_preflight():
    return _preflight()


@router.get("/api/leaderboard/overall")
async def overall_leaderboard(request: Request):
    result = await _layer(request).overall_leaderboard()
    return _sourced(result, [e.model_dump(mode="json") for e in result.data])


# ------------------------------------------------------------
# Upload
# ------------------------------------------------------------
@router.post("/api/upload-pdf")
async def upload_pdf(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    pdf: Optional[UploadFile] = File(None),
):
    if not title.strip():
        raise ValidationFailed("Title is required")
    if pdf is None or not pdf.filename:
        raise ValidationFailed("Please select a PDF file")
    if pdf.content_type != PDF_CONTENT_TYPE:
        raise ValidationFailed("Please select a PDF file")

    settings: Settings = request.app.state.settings
    too_large = ValidationFailed(f"PDF is larger than {settings.max_upload_mb} MB")
    if pdf.size is not None and pdf.size > settings.max_upload_bytes:
        raise too_large
    content = await pdf.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise too_large

    body = await _layer(request).submit_document(
        pdf.filename, content, title.strip(), description, PDF_CONTENT_TYPE
    )
    logger.info(f"Uploaded {pdf.filename!r} -> quiz {body.get('quizId')}")
    return JSONResponse(body)


@router.options("/api/upload-pdf")
async def upload_preflight():
    return _preflight()


# ------------------------------------------------------------
# Quiz sessions
# ------------------------------------------------------------
@router.post("/api/sessions", status_code=201)
async def start_session(request: Request, req: StartSessionRequest):
    user_id = req.user_id
    if user_id is None:
        user_id = await run_in_threadpool(request.app.state.identity.get)
    session = QuizSession(req.quiz_id, user_id=user_id)
    await session.load(_layer(request))

    if session.state is SessionState.ERRORED:
        return JSONResponse(
            {"error": "Failed to fetch quiz data. Make sure the backend is running.", "success": False},
            status_code=502,
        )

    request.app.state.sessions.add(session)
    return JSONResponse(
        session.view().model_dump(mode="json", by_alias=True),
        status_code=201,
        headers={"X-Data-Source": session.source.value},
    )


@router.get("/api/sessions/{session_id}")
def get_session(request: Request, session_id: str):
    return _session_or_404(request, session_id).view().model_dump(mode="json", by_alias=True)


@router.post("/api/sessions/{session_id}/answers")
def select_answer(request: Request, session_id: str, req: AnswerRequest):
    session = _session_or_404(request, session_id)
    session.select_answer(req.question_id, req.answer)
    return session.view().model_dump(mode="json", by_alias=True)


@router.post("/api/sessions/{session_id}/next")
def next_question(request: Request, session_id: str):
    session = _session_or_404(request, session_id)
    session.next()
    return session.view().model_dump(mode="json", by_alias=True)


@router.post("/api/sessions/{session_id}/previous")
def previous_question(request: Request, session_id: str):
    session = _session_or_404(request, session_id)
    session.previous()
    return session.view().model_dump(mode="json", by_alias=True)


@router.post("/api/sessions/{session_id}/submit")
async def submit_session(request: Request, session_id: str):
    state = request.app.state
    session = _session_or_404(request, session_id)
    result = await session.submit(state.results, state.publisher)
    state.sessions.discard(session_id)
    return result.model_dump(mode="json", by_alias=True)


# ------------------------------------------------------------
# Local results and identity
# ------------------------------------------------------------
@router.get("/api/results")
def list_results(request: Request):
    store: ResultStore = request.app.state.results
    results = store.read_recent()
    stats = store.stats(results)
    response = ResultsResponse(results=results, **stats.model_dump())
    return response.model_dump(mode="json", by_alias=True)


@router.delete("/api/results")
def clear_results(request: Request):
    request.app.state.results.clear_all()
    return {"success": True}


@router.get("/api/identity")
def get_identity(request: Request):
    return {"userId": request.app.state.identity.get()}


@router.put("/api/identity")
def set_identity(request: Request, req: IdentityRequest):
    request.app.state.identity.set(req.user_id)
    return {"userId": req.user_id}


@router.delete("/api/identity")
def clear_identity(request: Request):
    request.app.state.identity.clear()
    return {"userId": None}


@router.get("/healthz")
def healthz():
    return {"ok": True}


# ------------------------------------------------------------
# Exception handlers
# ------------------------------------------------------------
async def write_failed_handler(request: Request, exc: WriteFailed):
    logger.error(f"Write failed ({exc.operation}): {exc.detail}")
    return JSONResponse(status_code=500, content=exc.to_body())


async def bad_input_handler(request: Request, exc: Exception):
    message = getattr(exc, "message", None) or str(exc)
    logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message, "success": False})


async def session_state_handler(request: Request, exc: SessionStateError):
    return JSONResponse(status_code=409, content={"error": str(exc), "success": False})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={"status": "error", "detail": jsonable_encoder(exc.errors())},
    )


async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": str(exc)},
    )


# ------------------------------------------------------------
# Setup
# ------------------------------------------------------------
def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    gateway = BackendGateway(settings.backend_url, settings.backend_timeout, transport=transport)
    layer = ResilientQueryLayer(gateway)
    storage = LocalStorage(settings.storage_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Proxying to {settings.backend_url}")
        yield
        await app.state.publisher.drain()
        await gateway.aclose()

    app = FastAPI(title="Quiz Portal API", lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.layer = layer
    app.state.publisher = LeaderboardPublisher(layer)
    app.state.results = ResultStore(storage)
    app.state.identity = IdentityStore(storage)
    app.state.sessions = SessionRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LogRequestMiddleware)

    app.add_exception_handler(WriteFailed, write_failed_handler)
    app.add_exception_handler(ValidationFailed, bad_input_handler)
    app.add_exception_handler(InvalidAnswer, bad_input_handler)
    app.add_exception_handler(SessionStateError, session_state_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    # Development server; in production run: uvicorn quiz_portal.app:app
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))

"""FastAPI frontend for the HealthGuard claim review tool."""

from __future__ import annotations

import logging
import os
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from healthguard.agents import ClaimsAssistantAgent, FraudAnalystAgent
from healthguard.models import ClaimDocument, ClaimDraft
from healthguard.plugins import PDFExtractionPipeline
from healthguard.storage import (
    ChatTranscript,
    ClaimSessionState,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
)
from healthguard.submission import ClaimSubmissionService
from healthguard.utils.config import Config
from healthguard.utils.errors import (
    ClaimValidationError,
    DocumentProcessingError,
    ModelAPIError,
    StorageError,
)
from healthguard.utils.llm_client import ChatCompletionClient
from healthguard.utils.logging import setup_logging

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
CONFIG_PATH = os.getenv("HEALTHGUARD_CONFIG", str(BASE_DIR / "config.yaml"))
SECRET_KEY = os.getenv("HEALTHGUARD_SECRET_KEY", "healthguard-dev-secret")
API_KEY_SESSION_FIELD = "llm_api_key"


@dataclass
class Runtime:
    """Process-wide services shared by all requests."""

    config: Config
    durable: KeyValueStore
    pipeline: PDFExtractionPipeline
    client_factory: Callable[[Optional[str]], ChatCompletionClient]
    session_stores: "OrderedDict[str, InMemoryStore]" = field(default_factory=OrderedDict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def ephemeral_store(self, session_id: Optional[str], create: bool = False) -> InMemoryStore:
        """
        Return the per-session store for ``session_id``.

        Unknown sessions get a fresh, unregistered store unless ``create``
        is set. Registered stores are capped at ``app.max_sessions``; the
        least recently used one is dropped first.
        """
        with self.lock:
            store = self.session_stores.get(session_id) if session_id else None
            if store is not None:
                self.session_stores.move_to_end(session_id)
                return store
            if not create or not session_id:
                return InMemoryStore()

            store = self.session_stores[session_id] = InMemoryStore()
            while len(self.session_stores) > self.config.app.max_sessions:
                evicted, _ = self.session_stores.popitem(last=False)
                logger.info(f"Dropped state of idle session {evicted[:8]}")
            return store

    def drop_session(self, session_id: str) -> None:
        with self.lock:
            self.session_stores.pop(session_id, None)


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    config = Config.load(CONFIG_PATH)
    setup_logging(
        level=config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file,
    )
    logger.info(f"Loaded configuration from {CONFIG_PATH}")
    return Runtime(
        config=config,
        durable=JsonFileStore(config.storage.claims_file),
        pipeline=PDFExtractionPipeline(),
        client_factory=lambda api_key: ChatCompletionClient.from_config(config.llm, api_key),
    )


app = FastAPI(title="HealthGuard")
# No max_age: the cookie ends with the browser session, like sessionStorage
app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY, max_age=None)
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


def _session_id(request: Request, create: bool = False) -> Optional[str]:
    session_id = request.session.get("sid")
    if not session_id and create:
        session_id = uuid.uuid4().hex
        request.session["sid"] = session_id
    return session_id


def _session_store(request: Request, runtime: Runtime, create: bool = False) -> InMemoryStore:
    """Per-session store; read-only callers get a throwaway one for unknown sessions."""
    return runtime.ephemeral_store(_session_id(request, create), create=create)


def _claim_state(request: Request, runtime: Runtime, create: bool = False) -> ClaimSessionState:
    return ClaimSessionState(
        ephemeral=_session_store(request, runtime, create),
        durable=runtime.durable,
        max_history=runtime.config.storage.max_history,
    )


def _transcript(request: Request, runtime: Runtime, create: bool = False) -> ChatTranscript:
    return ChatTranscript(_session_store(request, runtime, create))


def _notify(request: Request, kind: str, message: str) -> None:
    notices = list(request.session.get("notices", []))
    notices.append({"kind": kind, "message": message})
    request.session["notices"] = notices


def _notify_storage_error(request: Request, state: ClaimSessionState) -> None:
    if state.last_error is not None:
        _notify(
            request,
            "warning",
            f"Saved claim data could not be read and was ignored. {state.last_error.message}",
        )


def _api_key(request: Request, runtime: Runtime) -> Optional[str]:
    return request.session.get(API_KEY_SESSION_FIELD) or runtime.config.llm.api_key


def _client(request: Request, runtime: Runtime) -> ChatCompletionClient:
    return runtime.client_factory(_api_key(request, runtime))


def _render(
    request: Request,
    runtime: Runtime,
    template: str,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> HTMLResponse:
    payload = {
        "app_title": runtime.config.app.title,
        "user": request.session.get("user"),
        "notices": request.session.pop("notices", []),
    }
    payload.update(context or {})
    return templates.TemplateResponse(request, template, payload, status_code=status_code)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


@app.get("/")
async def index() -> RedirectResponse:
    return _redirect("/login")


@app.get("/login", response_class=HTMLResponse)
async def login_form(request: Request, runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    return _render(request, runtime, "login.html", {"email": ""})


@app.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    runtime: Runtime = Depends(get_runtime),
):
    if not email.strip() or not password:
        _notify(request, "error", "Please enter both email and password")
        return _render(request, runtime, "login.html", {"email": email}, status_code=400)

    # Any credentials are accepted
    request.session["user"] = email.strip()
    _notify(request, "success", "Login successful")
    return _redirect("/dashboard")


@app.post("/logout")
async def logout(request: Request, runtime: Runtime = Depends(get_runtime)) -> RedirectResponse:
    session_id = request.session.get("sid")
    if session_id:
        _claim_state(request, runtime).clear_current()
        _transcript(request, runtime).reset()
        runtime.drop_session(session_id)
    request.session.clear()
    return _redirect("/login")


@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request, runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    state = _claim_state(request, runtime)
    claims = state.load_history(runtime.config.app.dashboard_limit)
    _notify_storage_error(request, state)
    stats = state.history_stats()
    return _render(request, runtime, "dashboard.html", {"claims": claims, "stats": stats})


@app.get("/upload", response_class=HTMLResponse)
async def upload_form(request: Request, runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    return _render(
        request,
        runtime,
        "upload.html",
        {"form": {}, "max_file_size": runtime.config.extraction.max_file_size_mb},
    )


@app.post("/upload")
async def submit_claim(
    request: Request,
    patient_name: str = Form(""),
    patient_age: str = Form(""),
    claim_amount: str = Form(""),
    claim_description: str = Form(""),
    document: Optional[UploadFile] = File(None),
    runtime: Runtime = Depends(get_runtime),
):
    config = runtime.config
    draft = ClaimDraft(
        patient_name=patient_name,
        patient_age=patient_age,
        claim_amount=claim_amount,
        claim_description=claim_description,
    )

    claim_document = None
    if document is not None and document.filename:
        # Never buffer more than one byte past the limit; validation rejects the rest
        limit_bytes = config.extraction.max_file_size_mb * 1024 * 1024
        claim_document = ClaimDocument(
            filename=document.filename,
            content=await document.read(limit_bytes + 1),
            content_type=document.content_type or "application/pdf",
        )

    analyst = FraudAnalystAgent.from_config(
        config.fraud_analyst, config.llm.analysis, _client(request, runtime)
    )
    service = ClaimSubmissionService(
        session=_claim_state(request, runtime, create=True),
        pipeline=runtime.pipeline,
        analyst=analyst,
        extraction_timeout=config.extraction.timeout,
        classification_timeout=config.llm.timeout,
        max_file_size_mb=config.extraction.max_file_size_mb,
    )

    form_context = {
        "form": {
            "patient_name": patient_name,
            "patient_age": patient_age,
            "claim_amount": claim_amount,
            "claim_description": claim_description,
        },
        "max_file_size": config.extraction.max_file_size_mb,
    }

    try:
        record = await service.submit(draft, claim_document)
    except ClaimValidationError as e:
        _notify(request, "error", e.message)
        return _render(request, runtime, "upload.html", form_context, status_code=400)
    except DocumentProcessingError as e:
        logger.error(f"Submission aborted: {e}")
        _notify(request, "error", f"Could not read the claim document. {e.message}")
        return _render(request, runtime, "upload.html", form_context, status_code=422)
    except StorageError as e:
        logger.error(f"Submission not saved: {e}")
        _notify(request, "error", f"The claim could not be saved. Please try again. {e.message}")
        return _render(request, runtime, "upload.html", form_context, status_code=500)

    _transcript(request, runtime, create=True).reset()
    if record.is_fallback:
        _notify(
            request,
            "warning",
            "Fraud analysis was unavailable; the result shown is a fallback and needs manual review.",
        )
    else:
        _notify(request, "success", "Analysis complete")
    return _redirect("/results")


@app.get("/results", response_class=HTMLResponse)
async def results(request: Request, runtime: Runtime = Depends(get_runtime)):
    state = _claim_state(request, runtime)
    claim = state.load_current()
    if claim is None:
        _notify_storage_error(request, state)
        _notify(request, "info", "No analyzed claim yet. Upload a claim document first.")
        return _redirect("/upload")
    return _render(request, runtime, "results.html", {"claim": claim})


@app.get("/chat", response_class=HTMLResponse)
async def chat(request: Request, runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    claim = _claim_state(request, runtime).load_current()
    messages = _transcript(request, runtime).messages()
    return _render(request, runtime, "chat.html", {"claim": claim, "messages": messages})


@app.post("/chat")
async def send_chat_message(
    request: Request,
    message: str = Form(""),
    runtime: Runtime = Depends(get_runtime),
) -> RedirectResponse:
    if not message.strip():
        _notify(request, "error", "Please type a message")
        return _redirect("/chat")

    config = runtime.config
    transcript = _transcript(request, runtime, create=True)
    claim = _claim_state(request, runtime).load_current()
    assistant = ClaimsAssistantAgent.from_config(
        config.claims_assistant, config.llm.chat, _client(request, runtime)
    )

    transcript.append(is_user=True, text=message.strip())
    try:
        answer = await assistant.reply(message, claim)
    except ModelAPIError as e:
        logger.warning(f"Chat assistant call failed: {e}")
        transcript.append(
            is_user=False,
            text="Sorry, I couldn't reach the assistant. Please try again.",
            status="error",
        )
        _notify(request, "error", e.message)
    else:
        transcript.append(is_user=False, text=answer)
    return _redirect("/chat")


@app.get("/settings", response_class=HTMLResponse)
async def settings(request: Request, runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    return _render(
        request,
        runtime,
        "settings.html",
        {
            "key_stored": bool(request.session.get(API_KEY_SESSION_FIELD)),
            "key_from_config": bool(runtime.config.llm.api_key),
            "model": runtime.config.llm.model,
        },
    )


@app.post("/settings")
async def update_settings(
    request: Request,
    action: str = Form("save"),
    api_key: str = Form(""),
) -> RedirectResponse:
    if action == "remove":
        request.session.pop(API_KEY_SESSION_FIELD, None)
        _notify(request, "info", "API key removed")
    elif not api_key.strip():
        _notify(request, "error", "Please enter a valid API key")
    else:
        request.session[API_KEY_SESSION_FIELD] = api_key.strip()
        _notify(request, "success", "API key saved successfully")
    return _redirect("/settings")


@app.get("/api/claims")
async def list_claims(
    request: Request,
    limit: int = 10,
    runtime: Runtime = Depends(get_runtime),
) -> JSONResponse:
    state = _claim_state(request, runtime)
    claims = state.load_history(limit)
    payload: Dict[str, Any] = {"claims": [claim.to_dict() for claim in claims]}
    if state.last_error is not None:
        payload["error"] = state.last_error.to_dict()
    return JSONResponse(jsonable_encoder(payload))


@app.get("/api/claims/current")
async def current_claim(request: Request, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    claim = _claim_state(request, runtime).load_current()
    if claim is None:
        raise HTTPException(status_code=404, detail="No current claim.")
    return JSONResponse(jsonable_encoder(claim.to_dict()))


@app.get("/healthz")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))

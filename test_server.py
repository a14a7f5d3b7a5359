"""Route tests for the FastAPI frontend."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import server
from conftest import FRAUD_ANSWER, FakeChatClient, build_pdf
from healthguard.plugins import PDFExtractionPipeline
from healthguard.storage import InMemoryStore
from healthguard.utils.config import Config
from healthguard.utils.llm_client import ChatCompletionClient

CLAIM_FORM = {
    "patient_name": "Jane Doe",
    "patient_age": "42",
    "claim_amount": "$1,250.00",
    "claim_description": "Routine visit",
}


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def runtime(chat_client):
    config = Config.load(str(Path(server.__file__).parent / "config.yaml"))
    return server.Runtime(
        config=config,
        durable=InMemoryStore(),
        pipeline=PDFExtractionPipeline(),
        client_factory=lambda api_key: chat_client,
    )


@pytest.fixture
def client(runtime):
    server.app.dependency_overrides[server.get_runtime] = lambda: runtime
    with TestClient(server.app) as test_client:
        yield test_client
    server.app.dependency_overrides.clear()


def _upload(client, pdf=None, **form):
    if pdf is None:
        pdf = build_pdf(["Office visit 99213"])
    files = {"document": ("claim.pdf", pdf, "application/pdf")}
    return client.post("/upload", data={**CLAIM_FORM, **form}, files=files, follow_redirects=False)


def test_root_redirects_to_login(client):
    response = client.get("/", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_login_requires_both_fields(client):
    response = client.post("/login", data={"email": "ops@example.com", "password": ""})

    assert response.status_code == 400
    assert "Please enter both email and password" in response.text


def test_login_success_lands_on_dashboard(client):
    response = client.post("/login", data={"email": "ops@example.com", "password": "pw"})

    assert response.status_code == 200
    assert "Login successful" in response.text
    assert "Recent Claims" in response.text


def test_results_without_claim_redirects_to_upload(client):
    response = client.get("/results", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/upload"
    assert "Upload a claim document first" in client.get("/upload").text


def test_upload_flow_shows_results_and_history(client, chat_client):
    chat_client.responses.append(FRAUD_ANSWER)

    response = _upload(client)

    assert response.status_code == 303
    assert response.headers["location"] == "/results"

    results = client.get("/results")
    assert "Potential Fraud Detected" in results.text
    assert "87%" in results.text
    assert "Analysis complete" in results.text

    current = client.get("/api/claims/current").json()
    assert current["patientName"] == "Jane Doe"
    assert current["isFraud"] is True
    assert current["isFallback"] is False

    claims = client.get("/api/claims").json()["claims"]
    assert [c["id"] for c in claims] == [current["id"]]


def test_upload_without_document_is_rejected(client):
    response = client.post("/upload", data=CLAIM_FORM)

    assert response.status_code == 400
    assert "Please upload a claim document" in response.text
    assert client.get("/api/claims").json()["claims"] == []


def test_empty_document_is_rejected_before_extraction(client, chat_client):
    response = _upload(client, pdf=b"")

    assert response.status_code == 400
    assert "Uploaded claim document is empty" in response.text
    assert chat_client.calls == []


def test_unreadable_pdf_returns_422(client):
    response = _upload(client, pdf=b"definitely not a pdf")

    assert response.status_code == 422
    assert "direct_buffer" in response.text
    assert client.get("/api/claims/current").status_code == 404


def test_missing_api_key_produces_flagged_fallback(client, runtime):
    runtime.client_factory = lambda api_key: ChatCompletionClient(api_key=None)

    _upload(client)
    results = client.get("/results")

    assert "fallback" in results.text
    current = client.get("/api/claims/current").json()
    assert current["isFallback"] is True
    assert "Degraded mode" in current["reasons"][0]


def test_settings_key_is_used_for_model_calls(client, runtime):
    used_keys = []

    def factory(api_key):
        used_keys.append(api_key)
        return FakeChatClient([FRAUD_ANSWER])

    runtime.client_factory = factory

    assert "Please enter a valid API key" in client.post("/settings", data={"api_key": "  "}).text
    assert "API key saved successfully" in client.post("/settings", data={"api_key": "pplx-123"}).text
    _upload(client)

    assert used_keys == ["pplx-123"]
    assert "API key removed" in client.post("/settings", data={"action": "remove"}).text


def test_chat_round_trip(client, chat_client):
    chat_client.responses.extend([FRAUD_ANSWER, "It was billed twice on the same day."])
    _upload(client)

    response = client.post("/chat", data={"message": "Why was this flagged?"}, follow_redirects=False)
    assert response.status_code == 303

    page = client.get("/chat").text
    assert "Why was this flagged?" in page
    assert "It was billed twice on the same day." in page
    system_prompt = chat_client.calls[-1]["messages"][0]["content"]
    assert "Use the following context about the claim" in system_prompt


def test_chat_model_error_is_shown(client, runtime):
    runtime.client_factory = lambda api_key: ChatCompletionClient(api_key=None)

    page = client.post("/chat", data={"message": "Hello"}).text

    assert "LLaMA API key not found" in page
    assert "Hello" in page


def test_blank_chat_message_rejected(client, chat_client):
    page = client.post("/chat", data={"message": "   "}).text

    assert "Please type a message" in page
    assert chat_client.calls == []


def test_dashboard_reports_corrupt_store(client, runtime):
    runtime.durable.set("claims", "[{truncated")

    page = client.get("/dashboard").text

    assert "Saved claim data could not be read" in page
    assert "No claims analyzed yet" in page


def test_history_shared_but_current_claim_per_session(client, runtime, chat_client):
    chat_client.responses.append(FRAUD_ANSWER)
    _upload(client)

    with TestClient(server.app) as other:
        assert other.get("/api/claims/current").status_code == 404
        assert len(other.get("/api/claims").json()["claims"]) == 1


def test_logout_clears_current_claim(client, chat_client):
    chat_client.responses.append(FRAUD_ANSWER)
    _upload(client)

    client.post("/logout")

    assert client.get("/api/claims/current").status_code == 404
    assert len(client.get("/api/claims").json()["claims"]) == 1


def test_healthcheck(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_cookieless_reads_do_not_keep_session_state(client, runtime):
    for _ in range(50):
        with TestClient(server.app) as poller:
            assert poller.get("/api/claims").status_code == 200
            poller.get("/dashboard")
            poller.get("/chat")

    assert len(runtime.session_stores) == 0


def test_session_stores_are_capped(client, runtime):
    runtime.config.app.max_sessions = 3

    for _ in range(10):
        with TestClient(server.app) as browser:
            browser.post("/chat", data={"message": "Hello"})

    assert len(runtime.session_stores) == 3


def test_oldest_session_is_dropped_first(runtime):
    runtime.config.app.max_sessions = 2
    first = runtime.ephemeral_store("first", create=True)
    runtime.ephemeral_store("second", create=True)
    assert runtime.ephemeral_store("first") is first

    runtime.ephemeral_store("third", create=True)

    assert list(runtime.session_stores) == ["first", "third"]


def test_failed_history_write_shows_notice_and_no_results(client, runtime, chat_client):
    class FullDiskStore(InMemoryStore):
        def set(self, key, value):
            raise IOError("disk full")

    runtime.durable = FullDiskStore()
    chat_client.responses.append(FRAUD_ANSWER)

    response = _upload(client)

    assert response.status_code == 500
    assert "The claim could not be saved" in response.text
    assert client.get("/api/claims/current").status_code == 404
    assert client.get("/results", follow_redirects=False).status_code == 303


def test_oversized_upload_rejected(client, runtime, chat_client):
    runtime.config.extraction.max_file_size_mb = 1

    response = _upload(client, pdf=b"%PDF-1.4" + b"0" * (1024 * 1024))

    assert response.status_code == 400
    assert "File size exceeds 1MB limit" in response.text
    assert chat_client.calls == []

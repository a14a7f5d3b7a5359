"""Tests for configuration loading, errors and logging context."""

import asyncio
import logging
from pathlib import Path

import pytest
import yaml

from healthguard.utils.config import Config
from healthguard.utils.errors import ConfigError, ErrorType, StorageError
from healthguard.utils.logging import (
    ContextFilter,
    clear_context,
    get_context,
    set_context,
    with_context,
)

REPO_CONFIG = Path(__file__).parent / "config.yaml"

ENV_OVERRIDES = (
    "LLM_API_KEY", "LLM_BASE_URL", "LLM_MODEL", "LLM_TIMEOUT", "EXTRACTION_TIMEOUT",
    "MAX_FILE_SIZE_MB", "CLAIMS_STORE_PATH", "MAX_HISTORY", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


def test_loads_repository_config():
    config = Config.load(str(REPO_CONFIG))

    assert config.llm.base_url == "https://api.perplexity.ai"
    assert config.llm.model == "llama-3.1-sonar-small-128k-online"
    assert config.llm.api_key is None
    assert config.llm.analysis.temperature == 0.2
    assert config.llm.chat.temperature == 0.7
    assert config.extraction.timeout == 30
    assert config.extraction.max_file_size_mb == 10
    assert config.storage.max_history is None
    assert config.app.dashboard_limit == 10
    assert "isFraud" in config.fraud_analyst.instructions
    assert config.claims_assistant.instructions == (
        "You are a helpful assistant for healthcare insurance claims."
    )


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LLM_API_KEY", "pplx-env")
    monkeypatch.setenv("LLM_MODEL", "other-model")
    monkeypatch.setenv("EXTRACTION_TIMEOUT", "5")
    monkeypatch.setenv("MAX_HISTORY", "25")
    monkeypatch.setenv("CLAIMS_STORE_PATH", "/tmp/claims.json")

    config = Config.load(str(REPO_CONFIG))

    assert config.llm.api_key == "pplx-env"
    assert config.llm.model == "other-model"
    assert config.extraction.timeout == 5.0
    assert config.storage.max_history == 25
    assert config.storage.claims_file == "/tmp/claims.json"


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError) as exc_info:
        Config.load(str(tmp_path / "nope.yaml"))

    assert exc_info.value.context.error_type == ErrorType.CONFIG_MISSING


def test_missing_section_raises(tmp_path):
    data = yaml.safe_load(REPO_CONFIG.read_text())
    del data["storage"]
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))

    with pytest.raises(ConfigError) as exc_info:
        Config.load(str(path))

    assert exc_info.value.context.error_type == ErrorType.CONFIG_MISSING


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("llm: [unclosed")

    with pytest.raises(ConfigError) as exc_info:
        Config.load(str(path))

    assert exc_info.value.context.error_type == ErrorType.CONFIG_INVALID


def test_error_string_includes_fallback():
    error = StorageError.corrupted("claims", ValueError("bad"))

    assert str(error) == (
        "STORE_CORRUPTED: Stored data under 'claims' is malformed: bad "
        "(Fallback: Treat store as empty)"
    )
    assert error.to_dict()["recoverable"] is True


class TestLoggingContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_with_context_restores_after_sync_call(self):
        @with_context(component="sync")
        def work():
            return get_context()

        assert work() == {"component": "sync"}
        assert get_context() == {}

    @pytest.mark.asyncio
    async def test_with_context_spans_awaited_coroutine(self):
        @with_context(component="submission")
        async def work():
            set_context(document="claim.pdf")
            return get_context()

        assert await work() == {"component": "submission", "document": "claim.pdf"}
        assert get_context() == {}

    def test_context_fields_stamped_on_records(self):
        context_filter = ContextFilter(component="server")
        set_context(claim_id="CLM-1A2B3C4D")
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)

        assert context_filter.filter(record) is True
        assert record.claim_id == "CLM-1A2B3C4D"
        assert record.component == "server"

    @pytest.mark.asyncio
    async def test_concurrent_calls_keep_separate_context(self):
        @with_context(component="submission")
        async def work(document, delay):
            set_context(document=document)
            await asyncio.sleep(delay)
            return get_context()

        first, second = await asyncio.gather(work("a.pdf", 0.02), work("b.pdf", 0.01))

        assert first == {"component": "submission", "document": "a.pdf"}
        assert second == {"component": "submission", "document": "b.pdf"}
        assert get_context() == {}

    @pytest.mark.asyncio
    async def test_context_set_inside_call_is_dropped_after_return(self):
        @with_context(component="submission")
        async def work():
            set_context(document="claim.pdf")
            await asyncio.sleep(0)

        await work()
        await work()

        assert get_context() == {}

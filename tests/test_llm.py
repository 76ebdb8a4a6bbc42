"""Tests for scholardigest/llm.py — openai SDK wrapper and the single-item executor."""

import base64
import os
from unittest.mock import MagicMock, patch

import pytest

from scholardigest.llm import (
    ModelClient,
    create_client,
    execute_job,
    is_transient,
    resolve_api_key,
)
from scholardigest.models import (
    Config,
    ConfigError,
    DigestJob,
    EmptyResponseError,
    TransportError,
)


def _job(mime_type="application/pdf", label="paper.pdf") -> DigestJob:
    return DigestJob(
        source_bytes=b"%PDF-bytes",
        mime_type=mime_type,
        template_content="# t",
        language="en",
        prompt="digest this",
        label=label,
    )


def _chat_response(content):
    return MagicMock(choices=[MagicMock(message=MagicMock(content=content))])


# ---------------------------------------------------------------------------
# resolve_api_key / create_client
# ---------------------------------------------------------------------------


def test_resolve_api_key_prefers_config():
    with patch.dict(os.environ, {"LLM_API_KEY": "sk-env"}):
        assert resolve_api_key(Config(api_key="sk-explicit")) == "sk-explicit"


def test_resolve_api_key_falls_back_to_env():
    with patch.dict(os.environ, {"LLM_API_KEY": "sk-env"}):
        assert resolve_api_key(Config(api_key=None)) == "sk-env"


def test_resolve_api_key_missing_is_config_error():
    with patch.dict(os.environ, {}, clear=True):
        with pytest.raises(ConfigError, match="LLM_API_KEY"):
            resolve_api_key(Config(api_key=None))


def test_create_client_missing_key_does_not_build_sdk_client():
    with (
        patch.dict(os.environ, {}, clear=True),
        patch("scholardigest.llm._openai.OpenAI") as mock_openai,
    ):
        with pytest.raises(ConfigError):
            create_client(Config())
    mock_openai.assert_not_called()


def test_create_client_returns_model_client():
    config = Config(base_url="http://localhost:1234/v1", model="test-model", api_key="k")
    with patch("scholardigest.llm._openai.OpenAI"):
        client = create_client(config)
    assert isinstance(client, ModelClient)
    assert client.model == "test-model"


def test_create_client_adds_openrouter_headers():
    config = Config(base_url="https://openrouter.ai/api/v1", api_key="k")
    with patch("scholardigest.llm._openai.OpenAI") as mock_openai:
        create_client(config)
    headers = mock_openai.call_args[1]["default_headers"]
    assert "HTTP-Referer" in headers
    assert "X-Title" in headers


def test_create_client_no_extra_headers_for_other_backends():
    config = Config(base_url="https://api.openai.com/v1", api_key="k")
    with patch("scholardigest.llm._openai.OpenAI") as mock_openai:
        create_client(config)
    assert mock_openai.call_args[1]["default_headers"] == {}


# ---------------------------------------------------------------------------
# ModelClient.complete
# ---------------------------------------------------------------------------


def _client_with_mock_sdk(**kwargs):
    with patch("scholardigest.llm._openai.OpenAI") as mock_openai:
        client = ModelClient(model="m", base_url="http://x/v1", api_key="k", **kwargs)
    create = mock_openai.return_value.chat.completions.create
    create.return_value = _chat_response("# ok")
    return client, create


def test_complete_sends_pdf_as_file_part():
    client, create = _client_with_mock_sdk(timeout_s=42)
    client.complete("prompt", document=b"%PDF", mime_type="application/pdf", filename="p.pdf")

    kwargs = create.call_args[1]
    assert kwargs["timeout"] == 42
    parts = kwargs["messages"][0]["content"]
    assert parts[0]["type"] == "file"
    assert parts[0]["file"]["filename"] == "p.pdf"
    expected = "data:application/pdf;base64," + base64.b64encode(b"%PDF").decode("ascii")
    assert parts[0]["file"]["file_data"] == expected
    assert parts[1] == {"type": "text", "text": "prompt"}


def test_complete_sends_image_as_image_url_part():
    client, create = _client_with_mock_sdk()
    client.complete("prompt", document=b"\x89PNG", mime_type="image/png", filename="f.png")
    part = create.call_args[1]["messages"][0]["content"][0]
    assert part["type"] == "image_url"
    assert part["image_url"]["url"].startswith("data:image/png;base64,")


def test_complete_omits_reasoning_effort_by_default():
    client, create = _client_with_mock_sdk()
    client.complete("prompt")
    assert "reasoning_effort" not in create.call_args[1]


def test_complete_passes_reasoning_effort_when_configured():
    client, create = _client_with_mock_sdk(reasoning_effort="high")
    client.complete("prompt")
    assert create.call_args[1]["reasoning_effort"] == "high"


def test_complete_without_choices_returns_none_text():
    client, create = _client_with_mock_sdk()
    create.return_value = MagicMock(choices=[])
    assert client.complete("prompt").text is None


# ---------------------------------------------------------------------------
# execute_job
# ---------------------------------------------------------------------------


def test_execute_job_returns_raw_text(mock_client):
    mock_client.complete.return_value = MagicMock(text="# Title\n\n```not stripped```")
    result = execute_job(mock_client, _job())
    assert result.markdown == "# Title\n\n```not stripped```"


def test_execute_job_forwards_document_and_prompt(mock_client):
    execute_job(mock_client, _job(mime_type="image/jpeg", label="scan.jpg"))
    mock_client.complete.assert_called_once_with(
        "digest this",
        document=b"%PDF-bytes",
        mime_type="image/jpeg",
        filename="scan.jpg",
    )


@pytest.mark.parametrize("text", [None, "", "   \n"])
def test_execute_job_empty_response(mock_client, text):
    mock_client.complete.return_value = MagicMock(text=text)
    with pytest.raises(EmptyResponseError):
        execute_job(mock_client, _job())


def test_execute_job_wraps_transport_failures(mock_client):
    mock_client.complete.side_effect = RuntimeError("Error code: 429 - quota exceeded")
    with pytest.raises(TransportError) as exc_info:
        execute_job(mock_client, _job())
    assert "quota exceeded" in str(exc_info.value)
    assert exc_info.value.status_code == 429
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_execute_job_reads_status_attribute(mock_client):
    exc = Exception("unauthorized")
    exc.status_code = 401
    mock_client.complete.side_effect = exc
    with pytest.raises(TransportError) as exc_info:
        execute_job(mock_client, _job())
    assert exc_info.value.status_code == 401


def test_execute_job_makes_a_single_attempt(mock_client):
    mock_client.complete.side_effect = RuntimeError("Error code: 503")
    with pytest.raises(TransportError):
        execute_job(mock_client, _job())
    assert mock_client.complete.call_count == 1


# ---------------------------------------------------------------------------
# is_transient
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status, expected",
    [(429, True), (500, True), (503, True), (400, False), (401, False), (None, False)],
)
def test_is_transient_by_status(status, expected):
    assert is_transient(TransportError("x", status_code=status)) is expected


def test_is_transient_parses_plain_exception_message():
    assert is_transient(Exception("status code: 502")) is True
    assert is_transient(Exception("connection reset")) is False

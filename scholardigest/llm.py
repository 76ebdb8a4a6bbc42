"""Model client setup and the single-item digest executor — wraps the openai SDK.

Supports any OpenAI-compatible backend that accepts document input in chat
completions (OpenRouter, OpenAI, self-hosted gateways).  The document travels
inline as a base64 data URL: PDFs as a ``file`` content part, images as an
``image_url`` part.

``execute_job`` makes exactly one call per job and classifies the outcome.
Retrying is the caller's decision (see ``batch.BackoffRetry``).
"""

import base64
import logging
import os
import re
import time

import openai as _openai

from scholardigest.models import (
    Config,
    ConfigError,
    DigestJob,
    DigestResult,
    EmptyResponseError,
    TransportError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Client wrapper
# ---------------------------------------------------------------------------


class _CompletionResponse:
    """Thin wrapper presenting an openai chat response as ``response.text``."""

    __slots__ = ("text",)

    def __init__(self, text: str | None) -> None:
        self.text = text


class ModelClient:
    """OpenAI-compatible client bound to one model.

    Attributes:
        model: The model identifier passed to every completion request.
    """

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str,
        extra_headers: dict | None = None,
        timeout_s: int = 300,
        reasoning_effort: str | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.reasoning_effort = reasoning_effort
        self._client = _openai.OpenAI(
            base_url=base_url,
            api_key=api_key,
            default_headers=extra_headers or {},
        )

    def complete(
        self,
        prompt: str,
        document: bytes | None = None,
        mime_type: str = "application/pdf",
        filename: str = "document.pdf",
    ) -> _CompletionResponse:
        """Send the prompt (and optional document) and return the model's reply."""
        content: list[dict] = []
        if document is not None:
            content.append(_document_part(document, mime_type, filename))
        content.append({"type": "text", "text": prompt})

        kwargs: dict = dict(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            timeout=self.timeout_s,
        )
        if self.reasoning_effort is not None:
            kwargs["reasoning_effort"] = self.reasoning_effort
        response = self._client.chat.completions.create(**kwargs)
        if not response.choices:
            return _CompletionResponse(text=None)
        return _CompletionResponse(text=response.choices[0].message.content)


def _document_part(document: bytes, mime_type: str, filename: str) -> dict:
    data_url = f"data:{mime_type};base64,{base64.b64encode(document).decode('ascii')}"
    if mime_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": data_url}}
    return {"type": "file", "file": {"filename": filename, "file_data": data_url}}


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def resolve_api_key(config: Config) -> str:
    """Return the API key from ``config.api_key`` or the ``LLM_API_KEY`` env var.

    Raises:
        ConfigError: if neither is set.
    """
    api_key = config.api_key or os.environ.get("LLM_API_KEY")
    if not api_key:
        raise ConfigError(
            "API key not found. Set LLM_API_KEY in the environment or in .env."
        )
    return api_key


def create_client(config: Config) -> ModelClient:
    """Create a client from configuration, resolving API key and headers.

    OpenRouter attribution headers are injected automatically when
    ``config.base_url`` contains ``"openrouter.ai"``.

    Raises:
        ConfigError: if no API key is configured.
    """
    api_key = resolve_api_key(config)

    extra_headers: dict = {}
    if "openrouter.ai" in config.base_url:
        extra_headers = {
            "HTTP-Referer": "https://github.com/scholardigest",
            "X-Title": "ScholarDigest",
        }

    return ModelClient(
        model=config.model,
        base_url=config.base_url,
        api_key=api_key,
        extra_headers=extra_headers,
        timeout_s=config.timeout_s,
        reasoning_effort=config.reasoning_effort,
    )


def execute_job(client: ModelClient, job: DigestJob) -> DigestResult:
    """Run one digest job against the model and return its markdown.

    One attempt, no retry.  The call is atomic: the full reply is awaited
    before anything is returned.

    Raises:
        TransportError: if the call itself fails (network, auth, quota,
            server error).  Carries the upstream message and, when one can
            be found, the HTTP status code.
        EmptyResponseError: if the reply contains no text.
    """
    logger.info("Calling model  model=%s  document=%s", client.model, job.label)
    t0 = time.monotonic()
    try:
        response = client.complete(
            job.prompt,
            document=job.source_bytes,
            mime_type=job.mime_type,
            filename=job.label,
        )
    except Exception as exc:
        raise TransportError(str(exc) or type(exc).__name__, _extract_status_code(exc)) from exc
    elapsed = time.monotonic() - t0

    text = response.text
    if not text or not text.strip():
        raise EmptyResponseError("The model returned an empty response.")

    logger.info("Response received (%.1fs, %s chars)", elapsed, f"{len(text):,}")
    return DigestResult(markdown=text)


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


def is_transient(exc: Exception) -> bool:
    """Return True for errors worth retrying: HTTP 429 and 5xx."""
    status_code = exc.status_code if isinstance(exc, TransportError) else _extract_status_code(exc)
    if status_code == 429:
        return True
    if status_code is not None and 500 <= status_code <= 599:
        return True
    return False


def _extract_status_code(exc: Exception) -> int | None:
    """Extract HTTP status code from common exception shapes or message text."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value

    code_attr = getattr(exc, "code", None)
    if isinstance(code_attr, int) and 100 <= code_attr <= 599:
        return code_attr

    message = str(exc)
    patterns = [
        r"Error code:\s*(\d{3})",
        r"status(?:\s*code)?\s*[:=]\s*(\d{3})",
    ]
    for pattern in patterns:
        match = re.search(pattern, message, flags=re.IGNORECASE)
        if match:
            return int(match.group(1))

    return None

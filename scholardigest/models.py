"""Pydantic models, dataclass Config, and exceptions for scholardigest.

This module only defines the *schema* of the data that flows through the
template store and the digest pipeline: templates and their durability
records, digest jobs and results, batch progress/reporting, and runtime
configuration.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

Language = Literal["en", "zh"]
"""Output language of a digest: English or Simplified Chinese."""

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "zh": "Simplified Chinese",
}

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class Template(BaseModel):
    """A markdown skeleton with placeholder tokens that the model fills in.

    ``id`` is the slug of ``name`` (see ``store.slugify``).  Default templates
    are shipped with the package and are never edited or deleted.

    The JSON form uses the camel-case ``isDefault`` key spoken by the remote
    template store; both spellings are accepted on input.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    content: str
    is_default: bool = Field(default=False, alias="isDefault")


class TemplateSource(str, Enum):
    """The layer that produced the repository's current working set."""

    REMOTE = "remote"
    LOCAL = "local"
    DEFAULTS = "defaults"


class WriteIntent(BaseModel):
    """Durability record for one optimistic template write.

    The in-memory change is applied before the intent is created; ``status``
    tracks whether the remote store has acknowledged it.
    """

    template_id: str
    name: str
    content: str
    operation: Literal["create", "update"]
    status: Literal["pending", "committed", "failed"] = "pending"
    error: str | None = None


# ---------------------------------------------------------------------------
# Digest jobs
# ---------------------------------------------------------------------------


class DigestJob(BaseModel):
    """One unit of work: one document + one template + one target language.

    Built by ``prompts.build_job`` and consumed by exactly one
    ``llm.execute_job`` call.  ``prompt`` is the instruction text forwarded to
    the model verbatim.
    """

    source_bytes: bytes
    mime_type: str
    template_content: str
    language: Language = "en"
    prompt: str
    label: str = "document"


class DigestResult(BaseModel):
    """Successful outcome of a digest job: the raw markdown returned by the model."""

    markdown: str


class HistoryEntry(BaseModel):
    """A recently generated digest, kept for quick recall."""

    filename: str
    markdown: str
    template_id: str | None = None
    language: Language = "en"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Batch reporting
# ---------------------------------------------------------------------------


class BatchProgress(BaseModel):
    """Snapshot of a batch run, emitted after every job boundary.

    ``completed`` counts finished jobs regardless of outcome.
    """

    completed: int
    total: int
    current_label: str = ""


class FailedJob(BaseModel):
    """Records a single document that could not be digested during a batch run."""

    source_path: str
    kind: str
    error: str


class BatchReport(BaseModel):
    """Aggregate result of a batch run over a directory of documents."""

    total: int
    succeeded: int
    failed: int
    failed_jobs: list[FailedJob] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Config (dataclass — not pydantic; holds runtime settings)
# ---------------------------------------------------------------------------

#: Pause between consecutive batch jobs.  The hosted model endpoints rate
#: limit per minute; ten seconds keeps a sequential run comfortably below the
#: free-tier ceiling.
_DEFAULT_COOLDOWN_S = 10.0


@dataclass
class Config:
    """Runtime configuration for scholardigest.

    All fields correspond to CLI flags.

    Attributes:
        base_url:         OpenAI-compatible API base URL.
        model:            Model identifier passed to the API.
        api_key:          API key for the model backend.  ``None`` means the
                          key is read from the ``LLM_API_KEY`` environment
                          variable; a missing key is a ``ConfigError``.
        timeout_s:        Seconds before a model call is abandoned.
        reasoning_effort: Optional reasoning-effort hint forwarded to the
                          model (``"low"``, ``"medium"`` or ``"high"``).
        language:         Output language of generated digests.
        template:         Id of the template used by the CLI.
        templates_dir:    Directory holding one ``<id>.md`` file per template.
        template_url:     Base URL of a remote template store.  ``None``
                          means the ``templates_dir`` store acts as remote.
        cache_file:       Local fallback storage for custom templates.
        history_file:     JSON file holding the most recent digests.
        output_dir:       Directory receiving one ``.md`` digest per input.
        cooldown_s:       Blocking pause between consecutive batch jobs.
        retries:          Transient-error retries per batch job (0 = none).
        verbose:          If True, enable DEBUG-level logging.
    """

    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.5-flash"
    api_key: str | None = None
    timeout_s: int = 300
    reasoning_effort: str | None = None
    language: Language = "en"
    template: str = "standard"
    templates_dir: Path = Path("templates")
    template_url: str | None = None
    cache_file: Path = Path(".scholardigest") / "local_storage.json"
    history_file: Path = Path("temp") / "history.json"
    output_dir: Path = Path("output")
    cooldown_s: float = _DEFAULT_COOLDOWN_S
    retries: int = 0
    verbose: bool = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DigestError(Exception):
    """Base class for every error raised by scholardigest.

    Attributes:
        kind: Short, stable classification used in reports and logs.
    """

    kind = "DigestError"


class ConfigError(DigestError):
    """Raised when a required credential or setting is missing. Fatal."""

    kind = "ConfigError"


class EmptyResponseError(DigestError):
    """Raised when the model returns no usable text."""

    kind = "EmptyResponse"


class TransportError(DigestError):
    """Raised when the model call fails (network, auth, quota, server error).

    Attributes:
        status_code: HTTP status of the upstream failure, when known.
    """

    kind = "TransportError"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TemplateValidationError(DigestError):
    """Raised when a template save request is missing a name or content."""

    kind = "ValidationError"


class TemplateConflictError(TemplateValidationError):
    """Raised when a new template's slug would shadow a built-in template."""

    kind = "ConflictError"


class TemplateStoreError(DigestError):
    """Raised when the remote template store cannot be read or written."""

    kind = "TemplateStoreError"


class HistoryError(DigestError):
    """Raised when the digest history file exists but cannot be parsed."""

    kind = "HistoryError"

"""Batch processing — digest every document in a directory, one at a time.

Jobs run strictly sequentially with a blocking cooldown between them, so at
most one model call is outstanding and the backend's rate limit is respected.
A failing job is logged and recorded in the ``BatchReport``; it never stops
the run.

Run lifecycle
-------------
``BatchRun.state`` moves ``idle -> running -> done``.  The queue is fixed when
the run starts.  ``BatchRun.progress`` (and the optional ``on_progress``
callback) reports ``(completed, total, current_label)`` at every job
boundary, where ``completed`` counts finished jobs whatever their outcome.
There is no mid-run cancellation.

Output location
---------------
Each input ``<stem>.<ext>`` produces ``{output_dir}/<stem>.md``.  Existing
files are overwritten; every write is a single atomic replace.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Callable

from tqdm.auto import tqdm

from scholardigest.io_utils import write_atomically
from scholardigest.llm import ModelClient, execute_job, is_transient
from scholardigest.models import (
    BatchProgress,
    BatchReport,
    Config,
    DigestError,
    FailedJob,
    TransportError,
)
from scholardigest.prompts import SUPPORTED_SUFFIXES, build_job

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Document discovery
# ---------------------------------------------------------------------------


def discover_documents(input_dir: Path) -> list[Path]:
    """Return the PDFs and images directly inside ``input_dir``, sorted by name."""
    return sorted(
        p
        for p in input_dir.iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
    )


def get_output_path(output_dir: Path, source: Path) -> Path:
    """Return ``output_dir/<source stem>.md``."""
    return output_dir / source.with_suffix(".md").name


# ---------------------------------------------------------------------------
# Retry policies
# ---------------------------------------------------------------------------


class NoRetry:
    """Never retry: a failed job is recorded and the run moves on."""

    def next_delay(self, exc: Exception, attempt: int) -> float | None:
        return None


class BackoffRetry:
    """Retry transient failures (HTTP 429/5xx) with exponential backoff.

    Delays are 1s, 2s, 4s, ... for attempts 1, 2, 3, ...  Retries stay
    inside the job's slot, so the one-call-at-a-time guarantee holds.
    """

    def __init__(self, max_retries: int = 2) -> None:
        self.max_retries = max_retries

    def next_delay(self, exc: Exception, attempt: int) -> float | None:
        if attempt > self.max_retries or not is_transient(exc):
            return None
        return float(2 ** (attempt - 1))


def retry_policy_for(config: Config) -> NoRetry | BackoffRetry:
    """Build the retry policy selected by ``config.retries``."""
    if config.retries > 0:
        return BackoffRetry(max_retries=config.retries)
    return NoRetry()


# ---------------------------------------------------------------------------
# Batch runner
# ---------------------------------------------------------------------------


class BatchRun:
    """One sequential pass over a fixed queue of documents.

    Attributes:
        state:    ``"idle"``, ``"running"`` or ``"done"``.
        progress: Latest progress snapshot.
        report:   Final report, set when the run is done.
    """

    def __init__(
        self,
        documents: list[Path],
        template_content: str,
        client: ModelClient,
        config: Config,
        on_progress: Callable[[BatchProgress], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_policy: NoRetry | BackoffRetry | None = None,
    ) -> None:
        self.documents = list(documents)
        self.template_content = template_content
        self.client = client
        self.config = config
        self.on_progress = on_progress
        self.sleep = sleep
        self.retry_policy = retry_policy or NoRetry()
        self.state = "idle"
        self.progress = BatchProgress(completed=0, total=len(self.documents))
        self.report: BatchReport | None = None

    def run(self) -> BatchReport:
        """Process every queued document and return the aggregate report."""
        total = len(self.documents)
        succeeded = 0
        failed_jobs: list[FailedJob] = []
        cooldown_label = f"Cooling down ({self.config.cooldown_s:g}s)..."

        self.state = "running"
        self._emit(0, "Starting...")

        with tqdm(
            total=total,
            desc="Digest",
            unit="doc",
            disable=not sys.stderr.isatty(),
            leave=True,
        ) as bar:
            for idx, source in enumerate(self.documents, start=1):
                self._emit(idx - 1, source.name)
                bar.set_postfix_str(source.name[:30])
                try:
                    output_path = self._process_one(source)
                    logger.info("  [%d/%d] Written: %s", idx, total, output_path)
                    succeeded += 1
                except DigestError as exc:
                    logger.error("  [%d/%d] Failed (%s): %s", idx, total, exc.kind, exc)
                    failed_jobs.append(
                        FailedJob(source_path=str(source), kind=exc.kind, error=str(exc))
                    )
                except Exception as exc:
                    logger.error("  [%d/%d] Failed: %s", idx, total, exc)
                    failed_jobs.append(
                        FailedJob(
                            source_path=str(source),
                            kind=type(exc).__name__,
                            error=str(exc),
                        )
                    )

                bar.update(1)
                bar.set_postfix(ok=succeeded, failed=len(failed_jobs))
                self._emit(idx, source.name)

                if idx < total and self.config.cooldown_s > 0:
                    self._emit(idx, cooldown_label)
                    self.sleep(self.config.cooldown_s)

        self.report = BatchReport(
            total=total,
            succeeded=succeeded,
            failed=len(failed_jobs),
            failed_jobs=failed_jobs,
        )
        self.state = "done"
        self._emit(total, "Done")
        return self.report

    def _process_one(self, source: Path) -> Path:
        job = build_job(source, self.template_content, self.config.language)
        attempt = 1
        while True:
            try:
                result = execute_job(self.client, job)
                break
            except TransportError as exc:
                delay = self.retry_policy.next_delay(exc, attempt)
                if delay is None:
                    raise
                logger.warning(
                    "Transient error on %s (attempt %d); retrying in %.1fs: %s",
                    source.name,
                    attempt,
                    delay,
                    exc,
                )
                self.sleep(delay)
                attempt += 1

        output_path = get_output_path(self.config.output_dir, source)
        write_atomically(output_path, result.markdown)
        return output_path

    def _emit(self, completed: int, label: str) -> None:
        self.progress = BatchProgress(
            completed=completed, total=len(self.documents), current_label=label
        )
        if self.on_progress is not None:
            self.on_progress(self.progress)


def run_batch(
    input_dir: Path,
    template_content: str,
    client: ModelClient,
    config: Config,
    on_progress: Callable[[BatchProgress], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    retry_policy: NoRetry | BackoffRetry | None = None,
) -> BatchReport:
    """Digest every document in ``input_dir`` into ``config.output_dir``.

    Args:
        input_dir:        Directory scanned (non-recursively) for documents.
        template_content: Markdown template applied to every document.
        client:           Model client shared by all jobs.
        config:           Runtime configuration (language, cooldown, output dir).
        on_progress:      Called with a ``BatchProgress`` at every job boundary.
        sleep:            Blocking wait used for cooldowns and retry delays.
        retry_policy:     Defaults to the policy selected by ``config.retries``.

    Returns:
        A ``BatchReport`` with counts and details of failed jobs.
    """
    documents = discover_documents(input_dir)
    logger.info("Discovered documents: %d", len(documents))
    config.output_dir.mkdir(parents=True, exist_ok=True)

    batch = BatchRun(
        documents,
        template_content,
        client,
        config,
        on_progress=on_progress,
        sleep=sleep,
        retry_policy=retry_policy or retry_policy_for(config),
    )
    return batch.run()

"""Command-line interface for scholardigest.

Entry point: ``scholar-digest`` (configured in ``pyproject.toml``).

Usage:
    scholar-digest --source DIR [options]     # batch mode
    scholar-digest --file DOC [options]       # single-document mode
    scholar-digest --list-templates [options]
    scholar-digest --save-template NAME --from FILE [options]
    scholar-digest --update-template ID --from FILE [options]
    scholar-digest --delete-template ID [--yes] [options]

Key options:
    --template, --language, --output-dir, --templates-dir, --template-url,
    --cache-file, --history-file, --model, --base-url, --reasoning-effort,
    --cooldown, --retries, --timeout, --verbose/--no-verbose, --log-file.

The mode flags are mutually exclusive.  Template edits go through the
``TemplateRepository``; a failed remote write exits 1.

Batch mode reads the template straight from ``--templates-dir`` and stops
before any model call when it is missing.  Single-document mode resolves the
template through the ``TemplateRepository`` (remote store first, local cache
as fallback) and records the digest in the history file.
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from scholardigest.batch import get_output_path, run_batch
from scholardigest.history import HistoryStore
from scholardigest.io_utils import write_atomically
from scholardigest.llm import ModelClient, create_client, execute_job
from scholardigest.log import setup_logging
from scholardigest.models import (
    Config,
    ConfigError,
    DigestError,
    HistoryEntry,
    HistoryError,
    Template,
    TemplateStoreError,
    TemplateValidationError,
    _DEFAULT_COOLDOWN_S,
)
from scholardigest.prompts import build_job
from scholardigest.repository import TemplateRepository
from scholardigest.store import FileTemplateStore, HttpTemplateStore, LocalTemplateCache

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "google/gemini-2.5-flash"


def _non_negative_int(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return parsed


def _non_negative_float(value: str) -> float:
    parsed = float(value)
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return parsed


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Parse CLI arguments, validate environment, and run scholardigest."""
    load_dotenv()

    parser = _build_parser()
    args = parser.parse_args()
    if (args.save_template or args.update_template) and not args.from_file:
        parser.error("--save-template and --update-template require --from FILE")

    if args.log_file:
        log_file = Path(args.log_file)
    else:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = Path("logs") / f"run_{ts}.log"
    setup_logging(verbose=args.verbose, log_file=log_file)

    config = Config(
        base_url=args.base_url,
        model=args.model,
        timeout_s=args.timeout,
        reasoning_effort=args.reasoning_effort,
        language=args.language,
        template=args.template,
        templates_dir=Path(args.templates_dir),
        template_url=args.template_url,
        cache_file=Path(args.cache_file),
        history_file=Path(args.history_file),
        output_dir=Path(args.output_dir),
        cooldown_s=args.cooldown,
        retries=args.retries,
        verbose=args.verbose,
    )

    if args.list_templates:
        _list_templates(config)
    elif args.save_template:
        _save_template(args.save_template, Path(args.from_file), config)
    elif args.update_template:
        _update_template(args.update_template, Path(args.from_file), config)
    elif args.delete_template:
        _delete_template(args.delete_template, config, assume_yes=args.yes)
    elif args.file:
        _run_single(Path(args.file), config)
    else:
        _run_batch(Path(args.source), config)


# ---------------------------------------------------------------------------
# Template helpers
# ---------------------------------------------------------------------------


def _build_repository(config: Config) -> TemplateRepository:
    """Create and populate the template repository for this session."""
    if config.template_url:
        remote = HttpTemplateStore(config.template_url)
    else:
        remote = FileTemplateStore(config.templates_dir)
        remote.seed_defaults()
    repository = TemplateRepository(remote, LocalTemplateCache(config.cache_file))
    repository.list_templates()
    return repository


def _report_missing_template(name: str, available: list[str]) -> None:
    logger.error("Template '%s' not found.", name)
    if available:
        logger.error("Available templates:\n%s", "\n".join(f"   - {t}" for t in available))
    else:
        logger.error("No templates available.")


def _list_templates(config: Config) -> None:
    """Print the template working set, one per line."""
    repository = _build_repository(config)
    for template in repository.templates:
        marker = " (Default)" if template.is_default else ""
        print(f"{template.id:<28} {template.name}{marker}")
    logger.info("Templates loaded from %s", repository.source.value)


def _create_client_or_exit(config: Config) -> ModelClient:
    try:
        return create_client(config)
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Template editing modes
# ---------------------------------------------------------------------------


def _read_template_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Cannot read template content from %s: %s", path, exc)
        sys.exit(1)


def _report_failed_writes(repository: TemplateRepository) -> None:
    """Exit 1 if any remote write failed this session."""
    failed = repository.failed_intents()
    if not failed:
        return
    logger.error("Remote template store did not accept the change:")
    for intent in failed:
        logger.error("  %s [%s]: %s", intent.template_id, intent.operation, intent.error)
    sys.exit(1)


def _save_template(name: str, content_file: Path, config: Config) -> None:
    """Create a custom template, or overwrite the custom one with the same slug."""
    content = _read_template_file(content_file)
    repository = _build_repository(config)
    try:
        template = repository.save_as_new(name, content)
    except TemplateValidationError as exc:
        logger.error("Cannot save template (%s): %s", exc.kind, exc)
        sys.exit(1)
    _report_failed_writes(repository)
    print(f"Saved template {template.id}")


def _update_template(template_id: str, content_file: Path, config: Config) -> None:
    """Replace the content of an existing custom template."""
    content = _read_template_file(content_file)
    repository = _build_repository(config)
    template = repository.get(template_id)
    if template is None:
        _report_missing_template(template_id, [t.id for t in repository.templates])
        sys.exit(1)
    if template.is_default:
        logger.error("Template '%s' is built in and cannot be edited.", template_id)
        sys.exit(1)
    repository.save_existing(template_id, content)
    _report_failed_writes(repository)
    print(f"Updated template {template_id}")


def _confirm_delete(template: Template) -> bool:
    answer = input(f"Delete template '{template.name}' ({template.id})? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _delete_template(template_id: str, config: Config, assume_yes: bool = False) -> None:
    """Delete a custom template after confirmation."""
    repository = _build_repository(config)
    template = repository.get(template_id)
    if template is None:
        _report_missing_template(template_id, [t.id for t in repository.templates])
        sys.exit(1)
    if template.is_default:
        logger.error("Template '%s' is built in and cannot be deleted.", template_id)
        sys.exit(1)

    confirm = (lambda _t: True) if assume_yes else _confirm_delete
    if not repository.delete_template(template_id, confirm):
        print("Cancelled.")
        return

    # The remote protocol has no delete; a template directory can still drop the file.
    if isinstance(repository.remote, FileTemplateStore):
        repository.remote.delete(template_id)
    else:
        logger.warning(
            "Remote template store has no delete endpoint; '%s' will reappear on the next listing",
            template_id,
        )
    print(f"Deleted template {template_id}")


# ---------------------------------------------------------------------------
# Single-document mode
# ---------------------------------------------------------------------------


def _run_single(doc_path: Path, config: Config) -> None:
    """Digest one document and write ``<stem>.md`` to the output dir."""
    if not doc_path.exists():
        logger.error("File not found: %s", doc_path)
        sys.exit(1)

    client = _create_client_or_exit(config)

    repository = _build_repository(config)
    if repository.select_template(config.template) is None:
        _report_missing_template(config.template, [t.id for t in repository.templates])
        sys.exit(1)

    logger.info("Processing: %s (template: %s)", doc_path.name, repository.selected_id)
    job = build_job(doc_path, repository.content, config.language)
    try:
        result = execute_job(client, job)
    except DigestError as exc:
        logger.error("Digest failed (%s): %s", exc.kind, exc)
        sys.exit(1)

    output_path = get_output_path(config.output_dir, doc_path)
    write_atomically(output_path, result.markdown)
    logger.info("Written: %s", output_path)

    try:
        HistoryStore(config.history_file).add(
            HistoryEntry(
                filename=doc_path.name,
                markdown=result.markdown,
                template_id=repository.selected_id,
                language=config.language,
            )
        )
    except (HistoryError, OSError) as exc:
        logger.warning("Could not record digest in history: %s", exc)


# ---------------------------------------------------------------------------
# Batch mode
# ---------------------------------------------------------------------------


def _run_batch(source_dir: Path, config: Config) -> None:
    """Digest every document in ``source_dir`` sequentially."""
    if not source_dir.is_dir():
        logger.error("Directory not found: %s", source_dir)
        sys.exit(1)

    client = _create_client_or_exit(config)

    store = FileTemplateStore(config.templates_dir)
    store.seed_defaults()
    try:
        template = store.get(config.template)
    except TemplateStoreError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    if template is None:
        _report_missing_template(config.template, store.available_ids())
        sys.exit(1)
    logger.info("Using template: %s (%s.md)", template.name, template.id)

    report = run_batch(source_dir, template.content, client, config)

    if report.total == 0:
        logger.warning("No PDF or image files found in %s", source_dir)
        return

    logger.info(
        "Done — succeeded: %d, failed: %d (of %d)",
        report.succeeded,
        report.failed,
        report.total,
    )

    if report.failed_jobs:
        logger.error("Failed documents:")
        for fj in report.failed_jobs:
            logger.error("  %s [%s]: %s", fj.source_path, fj.kind, fj.error)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scholar-digest",
        description=(
            "Turn research papers into structured markdown digests using a "
            "generative model and an editable markdown template."
        ),
    )

    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument(
        "--source",
        metavar="DIR",
        help="Directory of PDFs/images to digest in batch mode.",
    )
    mode_group.add_argument(
        "--file",
        metavar="DOC",
        help="Path to a single PDF or image to digest.",
    )
    mode_group.add_argument(
        "--list-templates",
        action="store_true",
        default=False,
        help="List available templates and exit.",
    )
    mode_group.add_argument(
        "--save-template",
        metavar="NAME",
        help="Create a custom template named NAME from --from FILE.",
    )
    mode_group.add_argument(
        "--update-template",
        metavar="ID",
        help="Replace the content of custom template ID with --from FILE.",
    )
    mode_group.add_argument(
        "--delete-template",
        metavar="ID",
        help="Delete custom template ID (asks for confirmation unless --yes).",
    )

    parser.add_argument(
        "--from",
        dest="from_file",
        metavar="FILE",
        default=None,
        help="Markdown file holding the template content for --save-template/--update-template.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        default=False,
        help="Skip the confirmation prompt of --delete-template.",
    )

    parser.add_argument(
        "--template",
        metavar="NAME",
        default="standard",
        help="Template id to use (default: standard).",
    )
    parser.add_argument(
        "--language",
        choices=["en", "zh"],
        default="en",
        help="Output language: en (English) or zh (Simplified Chinese). Default: en.",
    )
    parser.add_argument(
        "--output-dir",
        metavar="DIR",
        default="output",
        help="Directory receiving one .md digest per input (default: output).",
    )
    parser.add_argument(
        "--templates-dir",
        metavar="DIR",
        default="templates",
        help="Directory of <id>.md template files (default: templates).",
    )
    parser.add_argument(
        "--template-url",
        metavar="URL",
        default=os.environ.get("SCHOLARDIGEST_TEMPLATE_URL") or None,
        help=(
            "Base URL of a remote template store "
            "(default: SCHOLARDIGEST_TEMPLATE_URL env var; unset uses --templates-dir)."
        ),
    )
    parser.add_argument(
        "--cache-file",
        metavar="FILE",
        default=str(Path(".scholardigest") / "local_storage.json"),
        help="Local fallback storage for custom templates.",
    )
    parser.add_argument(
        "--history-file",
        metavar="FILE",
        default=str(Path("temp") / "history.json"),
        help="JSON file holding the most recent digests (default: temp/history.json).",
    )
    _default_model = os.environ.get("LLM_MODEL", _DEFAULT_MODEL)
    parser.add_argument(
        "--model",
        metavar="MODEL",
        default=_default_model,
        help=f"Model identifier (default: LLM_MODEL env var, currently {_default_model!r}).",
    )
    parser.add_argument(
        "--base-url",
        metavar="URL",
        default="https://openrouter.ai/api/v1",
        help="OpenAI-compatible API base URL (default: https://openrouter.ai/api/v1).",
    )
    parser.add_argument(
        "--reasoning-effort",
        choices=["low", "medium", "high"],
        default=None,
        help="Reasoning-effort hint forwarded to the model (default: model's own).",
    )
    parser.add_argument(
        "--cooldown",
        metavar="S",
        type=_non_negative_float,
        default=_DEFAULT_COOLDOWN_S,
        help=f"Pause between batch jobs in seconds (default: {_DEFAULT_COOLDOWN_S:g}).",
    )
    parser.add_argument(
        "--retries",
        metavar="N",
        type=_non_negative_int,
        default=0,
        help="Retries per batch job on HTTP 429/5xx, with exponential backoff (default: 0).",
    )
    parser.add_argument(
        "--timeout",
        metavar="S",
        type=int,
        default=300,
        help="Model call timeout in seconds (default: 300).",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable DEBUG-level logging (default: off).",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Write log output to FILE (default: logs/run_TIMESTAMP.log).",
    )

    return parser


if __name__ == "__main__":
    main()

"""Template storage backends and the slug rule they share.

Three backends, all speaking ``Template``:

* ``FileTemplateStore`` — a directory with one ``<id>.md`` file per template.
  This is what the remote template endpoints serve, and what batch mode reads
  directly.
* ``HttpTemplateStore`` — client for the remote endpoints
  (``GET /api/templates``, ``POST /api/save-template``).
* ``LocalTemplateCache`` — degraded-mode fallback holding only custom
  templates as a JSON array under one flat key.

The repository derives ids client-side for optimistic updates, so
``slugify`` must stay identical to the rule the store applies when it names
files.
"""

import http.client
import json
import logging
import re
import urllib.error
import urllib.request
from pathlib import Path

from pydantic import ValidationError

from scholardigest.defaults import DEFAULT_TEMPLATE_IDS, DEFAULT_TEMPLATES
from scholardigest.io_utils import write_atomically
from scholardigest.models import (
    Template,
    TemplateStoreError,
    TemplateValidationError,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_\- ]", flags=re.IGNORECASE | re.ASCII)
_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Slug rule
# ---------------------------------------------------------------------------


def slugify(name: str) -> str:
    """Derive a filesystem-safe template id from a display name.

    Characters outside ``[a-z0-9_- ]`` (case-insensitive) are dropped, the
    result is trimmed, runs of spaces become a single ``-`` and everything is
    lowercased::

        >>> slugify("Standard Obsidian Digest")
        'standard-obsidian-digest'
        >>> slugify("Methods & Data Focus")
        'methods-data-focus'

    The function is idempotent: ``slugify(slugify(x)) == slugify(x)``.
    """
    stripped = _UNSAFE_CHARS.sub("", name).strip()
    return _WHITESPACE.sub("-", stripped).lower()


def display_name(template_id: str) -> str:
    """Turn a file-derived id back into a readable name (``my-notes`` -> ``My Notes``).

    This is not the inverse of ``slugify`` for ids the slug rule would never
    produce.  ``Foo`` reads back as ``Foo`` but saves to ``foo.md``, and
    ``a--b`` becomes ``A  B`` which saves to ``a-b.md``.  Saving such a
    template therefore writes a new file beside the original.
    """
    return " ".join(word[:1].upper() + word[1:] for word in template_id.split("-"))


def _validate_save_request(name: str, content: str) -> None:
    if not name or not name.strip() or not content:
        raise TemplateValidationError("Missing name or content")


# ---------------------------------------------------------------------------
# Directory-backed store
# ---------------------------------------------------------------------------


class FileTemplateStore:
    """Templates stored as ``<id>.md`` files in a single directory.

    Saving is an upsert: a name whose slug matches an existing file
    overwrites it.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def list_templates(self) -> list[Template]:
        """Return every template in the directory, sorted by filename.

        Raises:
            TemplateStoreError: if a template file is not valid UTF-8.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        return [self._read(path) for path in sorted(self.directory.glob("*.md"))]

    def save_template(self, name: str, content: str) -> str:
        """Write ``content`` under the slug of ``name`` and return the filename.

        Raises:
            TemplateValidationError: if ``name`` or ``content`` is empty, or
                if ``name`` has no characters left after slugging.
        """
        _validate_save_request(name, content)
        slug = slugify(name)
        if not slug:
            raise TemplateValidationError(f"Template name {name!r} has no usable characters")
        filename = f"{slug}.md"
        write_atomically(self.directory / filename, content)
        logger.info("Saved template to %s", self.directory / filename)
        return filename

    def get(self, template_id: str) -> Template | None:
        """Return the template stored as ``<template_id>.md``, or ``None``."""
        path = self.directory / f"{template_id}.md"
        if not path.is_file():
            return None
        return self._read(path)

    def delete(self, template_id: str) -> bool:
        """Remove ``<template_id>.md``; return ``False`` if there was no such file."""
        path = self.directory / f"{template_id}.md"
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Removed template file %s", path)
        return True

    def available_ids(self) -> list[str]:
        """Return the ids of all stored templates, sorted."""
        if not self.directory.exists():
            return []
        return [path.stem for path in sorted(self.directory.glob("*.md"))]

    def seed_defaults(self) -> list[str]:
        """Write any missing built-in template files; return the ids written."""
        written = []
        for template in DEFAULT_TEMPLATES:
            path = self.directory / f"{template.id}.md"
            if not path.exists():
                write_atomically(path, template.content)
                written.append(template.id)
        if written:
            logger.debug("Seeded default templates: %s", ", ".join(written))
        return written

    def _read(self, path: Path) -> Template:
        template_id = path.stem
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise TemplateStoreError(f"Template file {path} is not valid UTF-8: {exc}") from exc
        return Template(
            id=template_id,
            name=display_name(template_id),
            content=content,
            is_default=template_id in DEFAULT_TEMPLATE_IDS,
        )


# ---------------------------------------------------------------------------
# Remote store client
# ---------------------------------------------------------------------------


class HttpTemplateStore:
    """Client for a remote template store.

    ``GET {base_url}/api/templates`` returns an ordered JSON list of
    ``{id, name, content, isDefault}``; ``POST {base_url}/api/save-template``
    upserts ``{name, content}`` and derives the slug server-side.
    """

    def __init__(self, base_url: str, timeout_s: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def list_templates(self) -> list[Template]:
        """Fetch the remote template list.

        Raises:
            TemplateStoreError: on any transport failure or malformed payload.
        """
        data = self._request("GET", "/api/templates")
        if not isinstance(data, list):
            raise TemplateStoreError(
                f"Expected a JSON list from {self.base_url}/api/templates, "
                f"got {type(data).__name__}"
            )
        try:
            return [Template.model_validate(item) for item in data]
        except ValidationError as exc:
            raise TemplateStoreError(f"Malformed template payload: {exc}") from exc

    def save_template(self, name: str, content: str) -> str:
        """Upsert a template remotely and return the filename the server chose.

        Raises:
            TemplateValidationError: if the request is rejected as incomplete.
            TemplateStoreError: on any other failure.
        """
        _validate_save_request(name, content)
        data = self._request("POST", "/api/save-template", {"name": name, "content": content})
        if not isinstance(data, dict):
            raise TemplateStoreError("Unexpected response from save-template endpoint")
        return data.get("filename") or f"{slugify(name)}.md"

    def _request(self, method: str, path: str, payload: dict | None = None):
        url = f"{self.base_url}{path}"
        body = None
        headers = {"Accept": "application/json"}
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(url, data=body, headers=headers, method=method)
        logger.debug("%s %s", method, url)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_s) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            detail = _http_error_detail(exc)
            if exc.code == 400:
                raise TemplateValidationError(detail) from exc
            raise TemplateStoreError(f"{method} {url} failed ({exc.code}): {detail}") from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError) as exc:
            raise TemplateStoreError(f"{method} {url} failed: {exc}") from exc

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TemplateStoreError(f"Invalid JSON from {url}: {exc}") from exc


def _http_error_detail(exc: urllib.error.HTTPError) -> str:
    """Pull the ``error`` message out of a JSON error body, if there is one."""
    try:
        body = json.loads(exc.read().decode("utf-8"))
    except Exception:
        return str(exc.reason)
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(exc.reason)


# ---------------------------------------------------------------------------
# Local fallback storage
# ---------------------------------------------------------------------------


class LocalTemplateCache:
    """Best-effort local storage for custom templates.

    The backing file is a flat key-value JSON object.  The value under
    ``key`` is itself a JSON-encoded array of ``{id, name, content}`` entries
    (non-default templates only).  Other keys in the file are preserved.
    """

    def __init__(self, path: Path, key: str = "custom_templates") -> None:
        self.path = path
        self.key = key

    def load(self) -> list[Template]:
        """Return the cached custom templates.

        A missing file, a missing key or any parse error yields an empty
        list; the cache never blocks startup.
        """
        raw = self._read_all().get(self.key)
        if raw is None:
            return []
        try:
            entries = json.loads(raw) if isinstance(raw, str) else raw
            templates = [Template.model_validate(entry) for entry in entries]
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable template cache %s: %s", self.path, exc)
            return []
        return [t for t in templates if not t.is_default]

    def replace(self, templates: list[Template]) -> None:
        """Overwrite the cache with exactly the non-default entries of ``templates``."""
        entries = [
            {"id": t.id, "name": t.name, "content": t.content}
            for t in templates
            if not t.is_default
        ]
        data = self._read_all()
        data[self.key] = json.dumps(entries, ensure_ascii=False)
        write_atomically(self.path, json.dumps(data, ensure_ascii=False, indent=2))
        logger.debug("Wrote %d custom template(s) to %s", len(entries), self.path)

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable template cache %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

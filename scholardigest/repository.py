"""Template repository — the working set of templates for one session.

The repository reconciles three sources, in precedence order:

1. the **remote** store (any object with ``list_templates()`` and
   ``save_template(name, content)``, e.g. ``HttpTemplateStore`` or
   ``FileTemplateStore``);
2. the **local** fallback cache (``LocalTemplateCache``), consulted only when
   the remote cannot be reached;
3. the built-in **defaults**, seeded at construction.

A successful remote fetch always wins and replaces the working set
entirely.  ``source`` records which layer produced the current set.

Writes are optimistic: the in-memory set changes first, then the remote
write is attempted and recorded as a ``WriteIntent``.  A failed remote write
never rolls back the in-memory change; callers inspect ``failed_intents()``
and may call ``retry_failed()``.

Durability gap: a template created while the remote is unreachable lives
only in memory.  Failed refreshes keep it; the next successful ``list_templates()`` replaces the
working set with the remote list, and that template is gone unless a
``retry_failed()`` has committed it first.

Slug collisions: ``save_as_new`` refuses names whose slug matches a built-in
template (``TemplateConflictError``) and overwrites an existing custom
template with the same slug, which is what the remote store's upsert does.

Not thread-safe: the working set assumes a single logical thread of control.
"""

import logging
from typing import Callable

from scholardigest.defaults import DEFAULT_TEMPLATE_IDS, default_templates
from scholardigest.models import (
    DigestError,
    Template,
    TemplateConflictError,
    TemplateSource,
    TemplateValidationError,
    WriteIntent,
)
from scholardigest.store import LocalTemplateCache, slugify

logger = logging.getLogger(__name__)


class TemplateRepository:
    """In-memory template working set with selection and optimistic writes.

    Attributes:
        remote:      Authoritative template store.
        local_cache: Optional degraded-mode fallback storage.
        source:      Layer that produced the current working set.
        content:     Editor buffer holding the selected template's content.
        intents:     Every remote write attempted this session, oldest first.
    """

    def __init__(self, remote, local_cache: LocalTemplateCache | None = None) -> None:
        self.remote = remote
        self.local_cache = local_cache
        self._templates: list[Template] = default_templates()
        self._selected_id: str | None = self._templates[0].id
        self.content: str = self._templates[0].content
        self.source = TemplateSource.DEFAULTS
        self.intents: list[WriteIntent] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def templates(self) -> list[Template]:
        """Current working set, in display order."""
        return list(self._templates)

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def selected(self) -> Template | None:
        return self.get(self._selected_id) if self._selected_id else None

    def get(self, template_id: str) -> Template | None:
        """Return the template with ``template_id`` from the working set, or ``None``."""
        for template in self._templates:
            if template.id == template_id:
                return template
        return None

    def list_templates(self) -> list[Template]:
        """Refresh the working set and return it.

        Tries the remote store first.  A non-empty remote list replaces the
        working set exactly; an empty one leaves it untouched.  When the
        remote fails, the current set is kept (the defaults, plus anything
        created this session) and cached entries it lacks are appended.
        Never raises.
        """
        try:
            fetched = self.remote.list_templates()
        except (DigestError, OSError) as exc:
            logger.warning(
                "Failed to load templates from remote store, falling back to local storage: %s",
                exc,
            )
            self._load_fallback()
            return self.templates

        if not fetched:
            logger.info("Remote template store returned no templates; keeping current set")
            return self.templates

        self._templates = [t.model_copy() for t in fetched]
        self.source = TemplateSource.REMOTE
        logger.debug("Loaded %d template(s) from remote store", len(fetched))
        if self.get(self._selected_id) is None:
            self._select_first()
        return self.templates

    def select_template(self, template_id: str) -> Template | None:
        """Make ``template_id`` the current selection and load it into the editor.

        An unknown id leaves the selection and editor content unchanged and
        returns ``None``.
        """
        template = self.get(template_id)
        if template is None:
            logger.debug("Ignoring selection of unknown template %r", template_id)
            return None
        self._selected_id = template.id
        self.content = template.content
        return template

    def set_content(self, content: str) -> None:
        """Replace the editor buffer without touching any stored template."""
        self.content = content

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def save_existing(self, template_id: str, content: str | None = None) -> WriteIntent | None:
        """Overwrite a custom template's content, then persist it remotely.

        ``content`` defaults to the editor buffer.  Default and unknown
        templates are silently ignored (returns ``None``).  The returned
        intent is ``committed`` or ``failed``; either way the in-memory edit
        stands.
        """
        template = self.get(template_id)
        if template is None or template.is_default:
            return None
        if content is None:
            content = self.content

        updated = template.model_copy(update={"content": content})
        self._replace(updated)
        if template_id == self._selected_id:
            self.content = content

        intent = WriteIntent(
            template_id=updated.id,
            name=updated.name,
            content=content,
            operation="update",
        )
        return self._commit(intent)

    def save_as_new(self, name: str, content: str | None = None) -> Template:
        """Create a custom template from ``name``, select it, and persist it remotely.

        Raises:
            TemplateValidationError: if ``name`` or ``content`` is empty, or
                ``name`` has no characters left after slugging.
            TemplateConflictError: if the slug matches a built-in template.
        """
        name = name.strip()
        if content is None:
            content = self.content
        if not name or not content:
            raise TemplateValidationError("Missing name or content")

        template_id = slugify(name)
        if not template_id:
            raise TemplateValidationError(f"Template name {name!r} has no usable characters")

        existing = self.get(template_id)
        if template_id in DEFAULT_TEMPLATE_IDS or (existing is not None and existing.is_default):
            raise TemplateConflictError(
                f"Template name {name!r} collides with built-in template {template_id!r}"
            )

        template = Template(id=template_id, name=name, content=content, is_default=False)
        if existing is not None:
            logger.info("Overwriting custom template %r with new content", template_id)
            self._replace(template)
        else:
            self._templates.append(template)

        self._selected_id = template.id
        self.content = template.content

        self._commit(
            WriteIntent(
                template_id=template.id,
                name=template.name,
                content=template.content,
                operation="create",
            )
        )
        return template

    def delete_template(self, template_id: str, confirm: Callable[[Template], bool]) -> bool:
        """Delete a custom template after the caller confirms.

        ``confirm`` receives the template and must return ``True`` for the
        deletion to proceed.  Defaults and unknown ids are no-ops.  On
        deletion the first remaining template becomes the selection and the
        local cache is rewritten with exactly the surviving custom
        templates.

        Returns:
            ``True`` if the template was removed.
        """
        template = self.get(template_id)
        if template is None or template.is_default:
            return False
        if not confirm(template):
            return False

        self._templates = [t for t in self._templates if t.id != template_id]
        self._select_first()
        logger.info("Deleted template %r", template_id)

        if self.local_cache is not None:
            try:
                self.local_cache.replace(self._templates)
            except OSError as exc:
                logger.warning("Could not update local template cache: %s", exc)
        return True

    # ------------------------------------------------------------------
    # Durability state
    # ------------------------------------------------------------------

    def pending_intents(self) -> list[WriteIntent]:
        return [i for i in self.intents if i.status == "pending"]

    def failed_intents(self) -> list[WriteIntent]:
        return [i for i in self.intents if i.status == "failed"]

    def retry_failed(self) -> list[WriteIntent]:
        """Re-attempt failed remote writes whose template still exists.

        Only the latest write per template is retried; older failed writes
        for the same template are superseded.  Returns the intents that were
        re-attempted.
        """
        latest: dict[str, WriteIntent] = {}
        for intent in self.intents:
            latest[intent.template_id] = intent

        retried = []
        for intent in self.failed_intents():
            if latest[intent.template_id] is not intent:
                continue
            if self.get(intent.template_id) is None:
                continue
            intent.status = "pending"
            intent.error = None
            self._persist(intent)
            retried.append(intent)
        return retried

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, intent: WriteIntent) -> WriteIntent:
        self.intents.append(intent)
        self._persist(intent)
        return intent

    def _persist(self, intent: WriteIntent) -> None:
        try:
            self.remote.save_template(intent.name, intent.content)
        except (DigestError, OSError) as exc:
            intent.status = "failed"
            intent.error = str(exc)
            logger.warning(
                "Failed to save template %r remotely; the change is kept for this session: %s",
                intent.template_id,
                exc,
            )
            return
        intent.status = "committed"
        logger.info("Template %r saved (%s)", intent.template_id, intent.operation)

    def _load_fallback(self) -> None:
        seen = {t.id for t in self._templates}
        cached = self.local_cache.load() if self.local_cache is not None else []
        added = 0
        for template in cached:
            if template.id in seen:
                continue
            seen.add(template.id)
            self._templates.append(template)
            added += 1

        if added:
            self.source = TemplateSource.LOCAL
        if self.get(self._selected_id) is None:
            self._select_first()

    def _replace(self, template: Template) -> None:
        self._templates = [template if t.id == template.id else t for t in self._templates]

    def _select_first(self) -> None:
        if self._templates:
            first = self._templates[0]
            self._selected_id = first.id
            self.content = first.content
        else:
            self._selected_id = None
            self.content = ""

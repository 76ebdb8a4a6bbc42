"""Shared pytest fixtures for the scholardigest test suite."""

import logging
from unittest.mock import MagicMock

import pytest

from scholardigest.models import Config, Template, TemplateStoreError


# ---------------------------------------------------------------------------
# Logger isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_scholardigest_logger():
    """Clear the scholardigest logger between tests.

    Tests that call ``main()`` trigger ``setup_logging()``, which attaches
    handlers and sets ``propagate=False``.  Without this fixture the state
    leaks into subsequent tests and breaks ``caplog`` capture.
    """
    logger = logging.getLogger("scholardigest")
    for h in logger.handlers[:]:
        try:
            h.close()
        except Exception:
            pass
        logger.removeHandler(h)
    logger.propagate = True
    yield
    for h in logger.handlers[:]:
        try:
            h.close()
        except Exception:
            pass
        logger.removeHandler(h)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Fake remote template store
# ---------------------------------------------------------------------------


class FakeRemoteStore:
    """In-memory stand-in for a remote template store.

    ``fail_list`` / ``fail_save`` make the respective call raise
    ``TemplateStoreError``.  Every save is recorded in ``saved``.
    """

    def __init__(self, templates=None, fail_list=False, fail_save=False):
        self.templates = list(templates or [])
        self.fail_list = fail_list
        self.fail_save = fail_save
        self.saved: list[tuple[str, str]] = []

    def list_templates(self):
        if self.fail_list:
            raise TemplateStoreError("connection refused")
        return [t.model_copy() for t in self.templates]

    def save_template(self, name, content):
        if self.fail_save:
            raise TemplateStoreError("connection refused")
        self.saved.append((name, content))
        return f"{name}.md"


@pytest.fixture
def remote_templates() -> list[Template]:
    """What a remote store returns: the three built-ins plus one custom template."""
    return [
        Template(id="standard", name="Standard", content="# std", is_default=True),
        Template(id="brief", name="Brief", content="# brief", is_default=True),
        Template(id="methods", name="Methods", content="# methods", is_default=True),
        Template(id="lab-notes", name="Lab Notes", content="# lab", is_default=False),
    ]


@pytest.fixture
def make_remote():
    """Factory for ``FakeRemoteStore`` instances."""
    return FakeRemoteStore


@pytest.fixture
def fake_remote(remote_templates) -> FakeRemoteStore:
    return FakeRemoteStore(remote_templates)


@pytest.fixture
def offline_remote() -> FakeRemoteStore:
    return FakeRemoteStore(fail_list=True, fail_save=True)


# ---------------------------------------------------------------------------
# Config / documents / model client
# ---------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path) -> Config:
    """Config with every path under tmp_path and no cooldown."""
    return Config(
        base_url="http://localhost:1234/v1",
        model="test-model",
        api_key="sk-test",
        templates_dir=tmp_path / "templates",
        cache_file=tmp_path / "local_storage.json",
        history_file=tmp_path / "temp" / "history.json",
        output_dir=tmp_path / "output",
        cooldown_s=0,
    )


@pytest.fixture
def input_dir(tmp_path):
    """Directory with three PDFs and one unrelated file."""
    d = tmp_path / "input"
    d.mkdir()
    (d / "paper_a.pdf").write_bytes(b"%PDF-a")
    (d / "paper_b.pdf").write_bytes(b"%PDF-b")
    (d / "paper_c.pdf").write_bytes(b"%PDF-c")
    (d / "notes.txt").write_text("not a paper", encoding="utf-8")
    return d


@pytest.fixture
def mock_client():
    """A ModelClient stand-in whose ``complete`` returns a markdown reply."""
    client = MagicMock()
    client.model = "test-model"
    client.complete.return_value = MagicMock(text="# Digest\n\nBody")
    return client

"""Tests for scholardigest/prompts.py — mime detection, prompt text, job building."""

import pytest

from scholardigest.defaults import STANDARD_TEMPLATE, TITLE_PLACEHOLDER
from scholardigest.prompts import build_digest_prompt, build_job, guess_mime_type


# ---------------------------------------------------------------------------
# guess_mime_type
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("paper.pdf", "application/pdf"),
        ("PAPER.PDF", "application/pdf"),
        ("figure.png", "image/png"),
        ("scan.jpg", "image/jpeg"),
        ("scan.JPEG", "image/jpeg"),
        ("mystery.bin", "application/pdf"),
        ("no_extension", "application/pdf"),
    ],
)
def test_guess_mime_type(filename, expected):
    assert guess_mime_type(filename) == expected


# ---------------------------------------------------------------------------
# build_digest_prompt
# ---------------------------------------------------------------------------


def test_prompt_embeds_template_verbatim():
    prompt = build_digest_prompt(STANDARD_TEMPLATE)
    assert STANDARD_TEMPLATE in prompt


def test_prompt_asks_to_replace_title_placeholder():
    prompt = build_digest_prompt("# <% tp.file.title %>\n## Notes")
    assert f'replace "{TITLE_PLACEHOLDER}"' in prompt


def test_prompt_requires_raw_markdown():
    prompt = build_digest_prompt("# t")
    assert "ONLY the raw Markdown" in prompt
    assert "fences" in prompt


def test_prompt_english_by_default():
    prompt = build_digest_prompt("# t")
    assert "Output language: English" in prompt
    assert "Simplified Chinese" not in prompt


def test_prompt_chinese_keeps_title_and_terms():
    prompt = build_digest_prompt("# t", language="zh")
    assert "Output language: Simplified Chinese" in prompt
    assert "keep the paper title" in prompt


def test_prompt_is_deterministic():
    assert build_digest_prompt("# t", "zh") == build_digest_prompt("# t", "zh")


def test_prompt_survives_braces_in_template():
    """Template text containing braces is embedded as-is, not formatted."""
    template = "## Data {n} {{x}}"
    assert template in build_digest_prompt(template)


# ---------------------------------------------------------------------------
# build_job
# ---------------------------------------------------------------------------


def test_build_job_from_path(tmp_path):
    doc = tmp_path / "paper.pdf"
    doc.write_bytes(b"%PDF-1.7 data")

    job = build_job(doc, "# t", language="zh")

    assert job.source_bytes == b"%PDF-1.7 data"
    assert job.mime_type == "application/pdf"
    assert job.template_content == "# t"
    assert job.language == "zh"
    assert job.label == "paper.pdf"
    assert job.prompt == build_digest_prompt("# t", "zh")


def test_build_job_from_bytes_requires_filename():
    with pytest.raises(ValueError, match="filename"):
        build_job(b"\x89PNG", "# t")


def test_build_job_from_bytes(tmp_path):
    job = build_job(b"\x89PNG", "# t", filename="figure.png")
    assert job.mime_type == "image/png"
    assert job.label == "figure.png"

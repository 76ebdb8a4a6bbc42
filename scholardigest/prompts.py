"""Digest request builder.

``build_job`` packages one document, one template and one target language
into a ``DigestJob``: the raw document bytes, their mime type, and a
self-contained instruction prompt embedding the template verbatim.  The
prompt is forwarded to the model as data; nothing in it is evaluated
locally.
"""

from pathlib import Path

from scholardigest.defaults import TITLE_PLACEHOLDER
from scholardigest.models import LANGUAGE_NAMES, DigestJob, Language

_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}

SUPPORTED_SUFFIXES = frozenset(_MIME_TYPES)


def guess_mime_type(filename: str) -> str:
    """Map a document filename to the mime type sent to the model.

    Anything that is not a recognised image is treated as a PDF.
    """
    return _MIME_TYPES.get(Path(filename).suffix.lower(), "application/pdf")


def build_digest_prompt(template_content: str, language: Language = "en") -> str:
    """Build the instruction prompt for one digest.

    Args:
        template_content: The markdown template, embedded verbatim.
        language: ``"en"`` or ``"zh"``; selects the language of the prose.

    Returns:
        A prompt string ready to send alongside the document.
    """
    language_name = LANGUAGE_NAMES[language]
    return f"""\
You are an expert academic researcher and data scientist.
Analyze the attached research paper and write a digest that follows the
Markdown template below exactly.

Output language: {language_name}

Template:

```markdown
{template_content}
```

Instructions:
1. Title: replace "{TITLE_PLACEHOLDER}" with the actual title of the paper.
2. Structure: keep every heading and section of the template, in order.
3. Citation: extract authors, year, venue and DOI accurately.
4. WikiLinks: write methods, software and other key technical terms as
   [[WikiLink]]s, reusing the template's examples when they apply.
5. Accuracy: copy facts, figures and numbers exactly as the paper states them.
6. Missing information: write "N/A" or keep the section brief when the paper
   does not cover it.
7. Figures: summarise the key figures in the template's figure table, if any.
8. Personal Notes: leave this section empty for the reader.
9. Formatting: return ONLY the raw Markdown. Do not wrap it in ``` fences.
10. Language: write all prose in {language_name}; keep the paper title and
    technical terms conventionally written in English in their original form."""


def build_job(
    document: Path | bytes,
    template_content: str,
    language: Language = "en",
    filename: str | None = None,
) -> DigestJob:
    """Package a document and template into a ``DigestJob``.

    Args:
        document: Path to the document, or its raw bytes.
        template_content: Markdown template to fill.
        language: Output language.
        filename: Name used for mime detection and labelling when
            ``document`` is raw bytes.  Defaults to the path's name.

    Raises:
        ValueError: if ``document`` is bytes and no ``filename`` is given.
    """
    if isinstance(document, Path):
        source_bytes = document.read_bytes()
        filename = filename or document.name
    else:
        if filename is None:
            raise ValueError("filename is required when document is given as bytes")
        source_bytes = document

    return DigestJob(
        source_bytes=source_bytes,
        mime_type=guess_mime_type(filename),
        template_content=template_content,
        language=language,
        prompt=build_digest_prompt(template_content, language),
        label=filename,
    )

"""Built-in templates seeded at startup.

Every template starts with the ``<% tp.file.title %>`` placeholder (the
Obsidian Templater title token), which the model replaces with the paper
title.  Built-ins are immutable: the repository refuses to edit or delete
them.
"""

from scholardigest.models import Template

TITLE_PLACEHOLDER = "<% tp.file.title %>"

STANDARD_TEMPLATE = """
# <% tp.file.title %>

## Citation

> [!cite] Reference
> **Authors**:
> **Year**:
> **Journal**:
> **DOI**:

## Abstract

## Key Points

-
-
-

## Methods

### Sample Preparation
- Method used: [[SCoPE2]] / [[plexDIA]] / [[nPOP]]
- Cell type:
- Number of cells:

### Data Analysis
- Software: [[MaxQuant]] / [[DIA-NN]]
- Downstream: [[scp Package]]

## Results

### Main Findings
1.
2.
3.

### Figures

| Figure | Description |
|--------|-------------|
| Fig 1 | |
| Fig 2 | |

## Discussion

### Strengths
-

### Limitations
-

### Future Work
-

## Personal Notes

## Related Papers

-
"""

BRIEF_TEMPLATE = """
# <% tp.file.title %>

## TL;DR
<!-- A 1-2 sentence summary of the entire paper -->

## Key Takeaways
1.
2.
3.

## Practical Application
<!-- How can this be used? -->

## Citation
- **Year**:
- **Authors**:
"""

METHODS_TEMPLATE = """
# <% tp.file.title %>

## Methodological Deep Dive

### Experimental Design
- **Subjects/Samples**:
- **Controls**:
- **Variables**:

### Techniques Used
-
-

### Statistical Approach
-

## Results Validation
- Did the results support the hypothesis?
"""

DEFAULT_TEMPLATES: tuple[Template, ...] = (
    Template(
        id="standard",
        name="Standard Obsidian Digest",
        content=STANDARD_TEMPLATE,
        is_default=True,
    ),
    Template(
        id="brief",
        name="Brief Summary",
        content=BRIEF_TEMPLATE,
        is_default=True,
    ),
    Template(
        id="methods",
        name="Methods & Data Focus",
        content=METHODS_TEMPLATE,
        is_default=True,
    ),
)

DEFAULT_TEMPLATE_IDS = frozenset(t.id for t in DEFAULT_TEMPLATES)


def default_templates() -> list[Template]:
    """Return fresh copies of the built-in templates, in display order."""
    return [t.model_copy() for t in DEFAULT_TEMPLATES]

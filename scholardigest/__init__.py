"""
scholardigest — turn research papers into structured markdown digests.

Sends each PDF or image to a generative model together with an editable
markdown template, and keeps the template set in sync across a remote store,
a local fallback cache and the built-in defaults.
"""

__version__ = "0.1.0"

"""Map vault-relative markdown paths to URL-safe, hierarchy-preserving slugs."""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_INVALID_CHARS_RE = re.compile(r"[^\w\-/]")
_HYPHEN_RUN_RE = re.compile(r"-+")


def encode_slug(relative_path: str, markdown_ext: str = ".md") -> str:
    """Return the slug for a path relative to the vault root.

    ``Notes/Hello World.md`` becomes ``Notes/Hello-World``. Word characters
    are Unicode-aware, so Hangul or accented names survive. The result may be
    empty for degenerate input; callers reject empty slugs. Segments left
    with no word characters (an emoji-only folder, say) are dropped, so the
    slug never starts with ``/`` or contains ``//``.
    """
    slug = unicodedata.normalize("NFC", relative_path)
    if markdown_ext and slug.lower().endswith(markdown_ext.lower()):
        slug = slug[: -len(markdown_ext)]
    slug = slug.replace("\\", "/")
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _INVALID_CHARS_RE.sub("", slug)
    slug = _HYPHEN_RUN_RE.sub("-", slug)
    slug = "/".join(part for part in slug.split("/") if part.strip("-"))
    return slug.strip("-")

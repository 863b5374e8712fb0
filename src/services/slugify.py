# src/services/slugify.py
from __future__ import annotations

import re
import secrets
import unicodedata

MAX_SLUG_LENGTH = 80
SUFFIX_BYTES = 3

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str | None, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Lowercase ASCII slug with hyphens; 'recipe' when nothing survives."""
    ascii_text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM_RE.sub("-", ascii_text.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "recipe"


def recipe_slug(title: str | None) -> str:
    """Slug for a new recipe row. The hex suffix keeps same-titled recipes apart."""
    suffix = secrets.token_hex(SUFFIX_BYTES)  # e.g. garlic-butter-pasta-a1b2c3
    return f"{slugify(title, MAX_SLUG_LENGTH - len(suffix) - 1)}-{suffix}"

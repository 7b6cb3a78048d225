# catalog_sync/sync/components/util.py
from __future__ import annotations

import os
import re
import unicodedata
from urllib.parse import unquote, urlparse

_SEP_RE = re.compile(r"[\s_\-]+")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def basename(url_or_path: str) -> str:
    try:
        if url_or_path.startswith(("http://", "https://")):
            return unquote(os.path.basename(urlparse(url_or_path).path)) or "image.jpg"
        return os.path.basename(url_or_path)
    except Exception:
        return "image.jpg"


def remove_accents(text: str) -> str:
    """'Veličina' -> 'Velicina'. Letters without a decomposition are kept."""
    nfkd = unicodedata.normalize("NFKD", text or "")
    out = "".join(ch for ch in nfkd if not unicodedata.combining(ch))
    # letters that NFKD leaves alone
    return out.replace("đ", "dj").replace("Đ", "Dj").replace("ß", "ss")


def slugify(text: str | None) -> str:
    """Lowercase ascii slug, non-alnum runs -> single '-'."""
    s = remove_accents((text or "").strip().lower())
    return _NON_SLUG_RE.sub("-", s).strip("-")


def normalize_sku(sku: str | None) -> str:
    """
    Comparison key for SKUs typed by humans: case, surrounding whitespace,
    diacritics and dash/underscore/space differences are ignored.
    """
    s = remove_accents(str(sku or "")).strip().lower()
    return _SEP_RE.sub("-", s).strip("-")


def normalize_value(value: str | None) -> str:
    """Attribute value comparison key: 'Light-Blue ' == 'light blue'."""
    s = str(value or "").replace("-", " ")
    s = re.sub(r"\s+", " ", s)
    return s.strip().lower()


def is_non_zero(value) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def chunked(items, size: int):
    items = list(items)
    for i in range(0, len(items), size):
        yield items[i:i + size]

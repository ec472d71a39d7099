"""Object key sanitization.

Object stores reject many characters in keys. Source filenames (e.g. "Zdjęcie ź.HEIC")
are reduced to a safe ASCII form before they are used as object paths.
"""

from __future__ import annotations

import unicodedata
import uuid
from pathlib import PurePosixPath

_ALLOWED_PUNCTUATION = frozenset("-_.")


def _is_allowed(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char in _ALLOWED_PUNCTUATION)


def transliterate(text: str) -> str:
    """Transliterate text to ASCII by stripping diacritics and combining marks.

    Characters without an ASCII decomposition are dropped.
    """
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.encode("ascii", "ignore").decode("ascii")


def sanitize_filename(filename: str) -> str:
    """Sanitize a filename so it is a legal object key.

    The base name is transliterated to ASCII and reduced to alphanumerics,
    hyphens, underscores and dots. An empty result is replaced with a fresh
    unique token. The original extension is reattached unchanged.

    Args:
        filename: The source filename (a path is reduced to its last component).

    Returns:
        Sanitized filename.
    """
    name = PurePosixPath(filename.replace("\\", "/")).name
    path = PurePosixPath(name)
    ext = path.suffix[1:] if path.suffix else ""
    base = path.stem if ext else name

    safe_base = "".join(c for c in transliterate(base) if _is_allowed(c))
    if not safe_base:
        safe_base = str(uuid.uuid4()).upper()

    return f"{safe_base}.{ext}" if ext else safe_base

from __future__ import annotations

import re
import secrets
from pathlib import Path

from .config import DEFAULT_FILENAME, MAX_NAME_LENGTH, SVG_EXT


_RESULT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")
_MAX_SUFFIX_LENGTH = 16


def new_result_id() -> str:
    """Return a fresh 96-bit result id (24 hex chars).

    Result ids are capability tokens: anyone holding one can download the
    converted icons until they expire.
    """
    return secrets.token_hex(12)


def normalize_result_id(result_id: str) -> str:
    """Validate and normalize a result id."""
    if not isinstance(result_id, str):
        raise ValueError("Invalid result id")
    result_id = result_id.strip()
    if not _RESULT_ID_RE.match(result_id):
        raise ValueError("Invalid result id")
    return result_id.lower()


def safe_name(name: str | None) -> str:
    """Map an untrusted file name onto [A-Za-z0-9._-], at most MAX_NAME_LENGTH chars.

    Path separators become "_", so the result is always a single path component
    (though it may still be "." or ".."; use safe_join before touching disk).
    """
    raw = str(name) if name else DEFAULT_FILENAME
    cleaned = _UNSAFE_CHARS_RE.sub("_", raw)
    cleaned = _UNDERSCORE_RUN_RE.sub("_", cleaned)
    if len(cleaned) <= MAX_NAME_LENGTH:
        return cleaned

    # Shorten the stem, keep a short extension such as ".svg".
    stem, dot, ext = cleaned.rpartition(".")
    suffix = dot + ext
    if stem and len(suffix) <= _MAX_SUFFIX_LENGTH:
        return stem[: MAX_NAME_LENGTH - len(suffix)] + suffix
    return cleaned[:MAX_NAME_LENGTH]


def is_svg_name(name: str) -> bool:
    return isinstance(name, str) and name.lower().endswith(SVG_EXT)


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays strictly inside base_dir.

    This defends against path traversal when serving or extracting user-controlled paths.
    """
    base_dir = Path(base_dir).resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if base_dir not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved

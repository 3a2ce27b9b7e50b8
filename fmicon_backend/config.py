from __future__ import annotations

import os
import tempfile
from pathlib import Path


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


# Parent directory for all per-request workspaces.
# Default: the OS temp dir. Override with env var FMCONV_WORKSPACES_ROOT.
_root_raw = os.environ.get("FMCONV_WORKSPACES_ROOT")
if _root_raw and _root_raw.strip():
    WORKSPACES_ROOT = Path(_root_raw)
else:
    WORKSPACES_ROOT = Path(tempfile.gettempdir())
WORKSPACES_ROOT = WORKSPACES_ROOT.resolve()

PORT = int(os.environ.get("PORT", "3000"))

# Hard ceiling for a single upload, checked before any workspace exists.
MAX_UPLOAD_MB = float(os.environ.get("MAX_UPLOAD_MB", "25"))
MAX_UPLOAD_BYTES = int(MAX_UPLOAD_MB * 1024 * 1024)

# Ceiling for the total decompressed size of accepted ZIP entries.
MAX_EXTRACTED_MB = float(os.environ.get("FMCONV_MAX_EXTRACTED_MB", "200"))
MAX_EXTRACTED_BYTES = int(MAX_EXTRACTED_MB * 1024 * 1024)

# How long a converted result stays downloadable.
RESULT_TTL_MS = int(os.environ.get("RESULT_TTL_MS", str(15 * 60 * 1000)))
RESULT_TTL_SECONDS = RESULT_TTL_MS / 1000.0
# Display only; rounded half-up.
TTL_MINUTES = int(RESULT_TTL_MS / 60000 + 0.5)

# How often the server sweeps expired results.
CLEANUP_INTERVAL_SECONDS = float(os.environ.get("FMCONV_CLEANUP_INTERVAL_SECONDS", "60"))

# Delete leftover fmconv-* workspaces (e.g. after a crash) at startup.
# Off by default: several instances may share the same temp dir.
PURGE_ON_STARTUP = _env_flag("FMCONV_PURGE_ON_STARTUP")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

WORKSPACE_PREFIX = "fmconv-"
SOURCE_SUBDIR = "standard-icons"
OUTPUT_SUBDIR = "fm-icons"

ACCEPTED_UPLOAD_EXTS = {".svg", ".zip"}
SVG_EXT = ".svg"
DEFAULT_FILENAME = "file.svg"
MAX_NAME_LENGTH = 140

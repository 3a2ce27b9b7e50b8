from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from .config import OUTPUT_SUBDIR, SOURCE_SUBDIR, WORKSPACE_PREFIX, WORKSPACES_ROOT
from .security import is_svg_name, normalize_result_id, safe_join, safe_name

logger = logging.getLogger(__name__)

_WORKSPACE_DIR_RE = re.compile(rf"^{re.escape(WORKSPACE_PREFIX)}[0-9a-f]{{24}}$")


@dataclass(frozen=True)
class Workspace:
    result_id: str
    root: Path
    src_dir: Path
    out_dir: Path


def workspace_for(result_id: str, base: Path | None = None) -> Workspace:
    rid = normalize_result_id(result_id)
    base_dir = Path(base if base is not None else WORKSPACES_ROOT).resolve()
    root = base_dir / f"{WORKSPACE_PREFIX}{rid}"
    return Workspace(
        result_id=rid,
        root=root,
        src_dir=root / SOURCE_SUBDIR,
        out_dir=root / OUTPUT_SUBDIR,
    )


def create_workspace(result_id: str, base: Path | None = None) -> Workspace:
    """Create the workspace tree for one conversion request.

    The root must not exist yet; a collision raises FileExistsError instead of
    silently sharing another request's files.
    """
    ws = workspace_for(result_id, base)
    ws.root.parent.mkdir(parents=True, exist_ok=True)
    ws.root.mkdir(exist_ok=False)
    ws.src_dir.mkdir()
    ws.out_dir.mkdir()
    return ws


def destroy_workspace(root: Path | None) -> None:
    """Remove a workspace tree. Missing or half-deleted trees are fine."""
    if root is None:
        return
    shutil.rmtree(root, ignore_errors=True)


def list_outputs(directory: Path) -> list[str]:
    """Return immediate .svg files in directory, sorted case-insensitively."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    names = [
        child.name
        for child in directory.iterdir()
        if child.is_file() and not child.is_symlink() and is_svg_name(child.name)
    ]
    return sorted(names, key=lambda n: (n.casefold(), n))


def write_upload(directory: Path, raw_name: str | None, data: bytes) -> str:
    """Write a single uploaded SVG under its sanitized name. Returns that name."""
    name = safe_name(Path(raw_name).name if raw_name else None)
    dest = safe_join(directory, name)
    dest.write_bytes(data)
    return name


def purge_orphan_workspaces(base: Path | None = None) -> int:
    """Delete workspaces left behind under base, e.g. by a crashed process.

    Only deletes directories that look like ours: fmconv-<24 hex>.
    Returns the number of deleted workspaces.
    """
    base_dir = Path(base if base is not None else WORKSPACES_ROOT)
    if not base_dir.is_dir():
        return 0

    deleted = 0
    for child in base_dir.iterdir():
        if not _WORKSPACE_DIR_RE.match(child.name):
            continue
        if child.is_symlink() or not child.is_dir():
            continue
        destroy_workspace(child)
        deleted += 1
    if deleted:
        logger.info("purged %d orphan workspace(s) under %s", deleted, base_dir)
    return deleted

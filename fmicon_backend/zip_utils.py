from __future__ import annotations

import io
import logging
import stat
import zipfile
import zlib
from pathlib import Path
from typing import Iterator

from .config import MAX_EXTRACTED_BYTES
from .security import is_svg_name, safe_join, safe_name

logger = logging.getLogger(__name__)

_COPY_CHUNK = 64 * 1024


def is_zip_bytes(data: bytes) -> bool:
    try:
        return zipfile.is_zipfile(io.BytesIO(data))
    except Exception:
        return False


def _is_regular_file(info: zipfile.ZipInfo) -> bool:
    if info.is_dir():
        return False
    # Unix mode lives in the high 16 bits; 0 means "not recorded".
    mode = info.external_attr >> 16
    if mode and not stat.S_ISREG(mode):
        return False
    return True


def _copy_limited(src, dst, budget: int) -> int:
    written = 0
    while True:
        chunk = src.read(_COPY_CHUNK)
        if not chunk:
            return written
        written += len(chunk)
        if written > budget:
            raise ValueError("ZIP content too large")
        dst.write(chunk)


def extract_svgs(
    zip_bytes: bytes,
    dest_dir: Path,
    max_total_bytes: int = MAX_EXTRACTED_BYTES,
) -> list[str]:
    """Extract the .svg entries of a ZIP into dest_dir (flat).

    Rules:
    - Directories, symlinks and other non-regular entries are skipped.
    - Only base names ending in .svg are kept; they are run through safe_name.
    - Entries whose final path would leave dest_dir are skipped (Zip Slip).
    - A failure on an accepted entry aborts the whole extraction.

    Returns the sorted list of written names.
    """
    if not is_zip_bytes(zip_bytes):
        raise ValueError("Invalid ZIP")

    dest_dir = Path(dest_dir)
    try:
        return _extract_svgs(zip_bytes, dest_dir, max_total_bytes)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise ValueError("Invalid ZIP") from e


def _extract_svgs(zip_bytes: bytes, dest_dir: Path, max_total_bytes: int) -> list[str]:
    written: set[str] = set()
    remaining = max_total_bytes

    with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
        for info in zf.infolist():
            if not _is_regular_file(info):
                continue

            # ZIP names use "/", but hostile archives may use "\" too.
            base = info.filename.replace("\\", "/").rsplit("/", 1)[-1]
            if not is_svg_name(base):
                continue

            name = safe_name(base)
            try:
                dest = safe_join(dest_dir, name)
            except ValueError:
                logger.warning("skipping zip entry outside destination: %r", info.filename)
                continue

            with zf.open(info) as src, open(dest, "wb") as dst:
                remaining -= _copy_limited(src, dst, remaining)
            written.add(name)

    return sorted(written)


class _ChunkSink(io.RawIOBase):
    """Write-only, non-seekable buffer that hands out what was written so far.

    zipfile falls back to data descriptors when it cannot seek, so the
    archive can be emitted piece by piece.
    """

    def __init__(self) -> None:
        super().__init__()
        self._buf = bytearray()

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._buf += data
        return len(data)

    def drain(self) -> bytes:
        out = bytes(self._buf)
        self._buf.clear()
        return out


def collect_zip_members(dir_path: Path) -> list[Path]:
    """List regular files under dir_path, sorted by relative path.

    Raises FileNotFoundError if dir_path is missing.
    """
    dir_path = Path(dir_path)
    if not dir_path.is_dir():
        raise FileNotFoundError(str(dir_path))
    members = [p for p in dir_path.rglob("*") if p.is_file() and not p.is_symlink()]
    return sorted(members, key=lambda p: p.relative_to(dir_path).as_posix())


def iter_zip_dir(
    dir_path: Path,
    members: list[Path] | None = None,
    chunk_size: int = _COPY_CHUNK,
) -> Iterator[bytes]:
    """Yield a deflated ZIP of dir_path incrementally.

    The archive is never held in memory as a whole; at most one file's
    compressed chunk plus the central directory are buffered.
    Errors propagate to the consumer.
    """
    dir_path = Path(dir_path)
    if members is None:
        members = collect_zip_members(dir_path)

    sink = _ChunkSink()
    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in members:
            zinfo = zipfile.ZipInfo.from_file(path, path.relative_to(dir_path).as_posix())
            zinfo.compress_type = zipfile.ZIP_DEFLATED
            with open(path, "rb") as src, zf.open(zinfo, mode="w") as dst:
                while True:
                    chunk = src.read(chunk_size)
                    if not chunk:
                        break
                    dst.write(chunk)
                    data = sink.drain()
                    if data:
                        yield data
            # Local header remainder and data descriptor.
            data = sink.drain()
            if data:
                yield data
    data = sink.drain()
    if data:
        yield data

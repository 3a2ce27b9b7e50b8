"""Unit tests for ZIP extraction and streamed ZIP export."""

from __future__ import annotations

import io
import stat
import zipfile
from pathlib import Path

import pytest

from conftest import ICON_SVG, make_zip
from fmicon_backend.zip_utils import collect_zip_members, extract_svgs, is_zip_bytes, iter_zip_dir


def test_extract_keeps_only_svg_entries(tmp_path: Path) -> None:
    """Three SVGs plus one non-SVG entry yield exactly three files."""
    data = make_zip(
        {
            "a.svg": ICON_SVG,
            "nested/dir/b.svg": ICON_SVG,
            "C.SVG": ICON_SVG,
            "readme.txt": b"hello",
        }
    )

    written = extract_svgs(data, tmp_path)

    assert written == ["C.SVG", "a.svg", "b.svg"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["C.SVG", "a.svg", "b.svg"]


@pytest.mark.parametrize(
    "entry",
    [
        "../evil.svg",
        "../../../../tmp/evil.svg",
        "/abs/evil.svg",
        "..\\..\\evil.svg",
        "ok/../../evil.svg",
    ],
)
def test_extract_never_escapes_destination(tmp_path: Path, entry: str) -> None:
    """Traversal attempts are flattened into the destination directory."""
    dest = tmp_path / "dest"
    dest.mkdir()

    written = extract_svgs(make_zip({entry: ICON_SVG}), dest)

    assert written == ["evil.svg"]
    assert (dest / "evil.svg").is_file()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["dest"]


def test_extract_skips_directories_and_symlinks(tmp_path: Path) -> None:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w") as zf:
        zf.writestr("folder.svg/", b"")
        link = zipfile.ZipInfo("link.svg")
        link.external_attr = (stat.S_IFLNK | 0o777) << 16
        zf.writestr(link, "/etc/passwd")
        zf.writestr("real.svg", ICON_SVG)

    assert extract_svgs(buf.getvalue(), tmp_path) == ["real.svg"]


def test_extract_without_svgs_writes_nothing(tmp_path: Path) -> None:
    assert extract_svgs(make_zip({"notes.txt": b"x", "img.png": b"y"}), tmp_path) == []
    assert list(tmp_path.iterdir()) == []


def test_extract_rejects_non_zip(tmp_path: Path) -> None:
    assert not is_zip_bytes(b"definitely not a zip")
    with pytest.raises(ValueError, match="Invalid ZIP"):
        extract_svgs(b"definitely not a zip", tmp_path)


def test_extract_enforces_decompressed_size_budget(tmp_path: Path) -> None:
    data = make_zip({"big.svg": b"<svg>" + b" " * 10_000 + b"</svg>"})
    with pytest.raises(ValueError, match="too large"):
        extract_svgs(data, tmp_path, max_total_bytes=1_000)


def test_iter_zip_dir_streams_all_files(tmp_path: Path) -> None:
    """The streamed archive is a valid ZIP holding every file, in chunks."""
    (tmp_path / "b.svg").write_bytes(ICON_SVG)
    (tmp_path / "a.svg").write_bytes(b"x" * 200_000)

    chunks = list(iter_zip_dir(tmp_path, chunk_size=16 * 1024))

    assert len(chunks) > 1
    with zipfile.ZipFile(io.BytesIO(b"".join(chunks))) as zf:
        assert zf.testzip() is None
        assert zf.namelist() == ["a.svg", "b.svg"]
        assert zf.read("a.svg") == b"x" * 200_000
        assert zf.read("b.svg") == ICON_SVG


def test_iter_zip_dir_of_empty_dir_is_valid_zip(tmp_path: Path) -> None:
    data = b"".join(iter_zip_dir(tmp_path))
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.namelist() == []


def test_collect_zip_members_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        collect_zip_members(tmp_path / "missing")


def test_extract_rejects_corrupt_central_directory(tmp_path: Path) -> None:
    """A readable end record with a broken central directory is still an invalid ZIP."""
    data = make_zip({"a.svg": ICON_SVG}).replace(b"PK\x01\x02", b"XX\x01\x02")

    with pytest.raises(ValueError, match="Invalid ZIP"):
        extract_svgs(data, tmp_path)


def test_extract_rejects_entry_with_bad_crc(tmp_path: Path) -> None:
    data = bytearray(make_zip({"a.svg": ICON_SVG}))
    # Stored entry: payload follows the 30-byte local header and the name.
    offset = data.index(ICON_SVG)
    data[offset] ^= 0xFF

    with pytest.raises(ValueError, match="Invalid ZIP"):
        extract_svgs(bytes(data), tmp_path)


def test_extract_keeps_long_svg_names(tmp_path: Path) -> None:
    long_name = "n" * 200 + ".svg"

    written = extract_svgs(make_zip({long_name: ICON_SVG}), tmp_path)

    assert len(written) == 1
    assert written[0].endswith(".svg")

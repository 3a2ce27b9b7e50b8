"""Shared pytest fixtures."""

from __future__ import annotations

import io
import zipfile

import pytest


ICON_SVG = (
    b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">'
    b'<path d="M0 0h24v24H0z" fill="#ff0000"/>'
    b"</svg>"
)


def make_zip(entries: dict[str, bytes]) -> bytes:
    """Build an in-memory ZIP from name -> content."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture
def icon_svg() -> bytes:
    return ICON_SVG

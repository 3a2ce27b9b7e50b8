from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .icon_transform import transform_icon_svg
from .security import is_svg_name
from .workspace import list_outputs

logger = logging.getLogger(__name__)


class ConversionError(RuntimeError):
    """The icon converter itself failed; its output must not be served."""


class IconConverter(Protocol):
    """Reads icons from src_dir and writes zero or one file per icon to out_dir."""

    def convert(self, src_dir: Path, out_dir: Path) -> None: ...


@dataclass(frozen=True)
class ConversionOutcome:
    files: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.files


class FmIconConverter:
    """Built-in converter producing FileMaker-colorable icons (see icon_transform)."""

    def convert(self, src_dir: Path, out_dir: Path) -> None:
        src_dir = Path(src_dir)
        out_dir = Path(out_dir)
        # The workspace root must already exist; never recreate a torn-down tree.
        out_dir.mkdir(exist_ok=True)

        for src in sorted(src_dir.iterdir()):
            if not src.is_file() or not is_svg_name(src.name):
                continue
            try:
                result = transform_icon_svg(src.read_bytes())
            except ValueError:
                logger.warning("skipping %s: not an SVG document", src.name)
                continue
            (out_dir / src.name).write_text(result.svg, encoding="utf-8")


async def run_conversion(converter: IconConverter, src_dir: Path, out_dir: Path) -> ConversionOutcome:
    """Run converter off the event loop and report what it produced.

    Raises ConversionError if the converter raised. Producing nothing is not
    an error here; callers check ``outcome.empty``.
    """
    try:
        await asyncio.to_thread(converter.convert, Path(src_dir), Path(out_dir))
    except Exception as exc:
        raise ConversionError("icon conversion failed") from exc
    return ConversionOutcome(files=list_outputs(out_dir))

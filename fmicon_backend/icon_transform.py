from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup
from bs4.element import Tag


FM_FILL_CLASS = "fm_fill"

SHAPE_TAGS = ("path", "rect", "circle", "ellipse", "line", "polyline", "polygon", "text")

_FILL_DECL_RE = re.compile(r"(?:^|;)\s*fill\s*:[^;]*", re.IGNORECASE)


@dataclass(frozen=True)
class IconTransformResult:
    svg: str
    recolored: int


def _with_class(existing: object, name: str) -> str:
    classes = str(existing or "").split()
    if name not in classes:
        classes.append(name)
    return " ".join(classes)


def _strip_fill_from_style(existing: object) -> str:
    style = _FILL_DECL_RE.sub("", str(existing or ""))
    parts = [p.strip() for p in style.split(";") if p.strip()]
    return "; ".join(parts)


def _is_unfilled(tag: Tag) -> bool:
    fill = str(tag.get("fill") or "").strip().lower()
    if fill == "none":
        return True
    style = str(tag.get("style") or "").lower().replace(" ", "")
    return "fill:none" in style


def transform_icon_svg(svg_text: str | bytes) -> IconTransformResult:
    """Rewrite a plain SVG icon into a FileMaker-colorable icon.

    Rules:
    - Every drawable shape gets the fm_fill class (merged with existing classes).
    - Its fill attribute and any inline fill: declaration are dropped, so
      FileMaker's fm_fill color wins.
    - Shapes explicitly drawn with fill="none" (outlines) are left alone.

    Raises ValueError if the document has no <svg> root.
    """
    soup = BeautifulSoup(svg_text or "", "xml")
    root = soup.find("svg")
    if not isinstance(root, Tag):
        raise ValueError("Not an SVG document")

    recolored = 0
    for shape in root.find_all(SHAPE_TAGS):
        if not isinstance(shape, Tag) or _is_unfilled(shape):
            continue

        shape["class"] = _with_class(shape.get("class"), FM_FILL_CLASS)
        if "fill" in shape.attrs:
            del shape["fill"]
        if "style" in shape.attrs:
            style = _strip_fill_from_style(shape.get("style"))
            if style:
                shape["style"] = style
            else:
                del shape["style"]
        recolored += 1

    return IconTransformResult(svg=str(soup), recolored=recolored)

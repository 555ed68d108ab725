import re
from dataclasses import dataclass
from typing import Optional

from marketpulse.taxonomy.catalog import Catalog, get_catalog


PAINT_TO_SAMPLE = re.compile(r"\bpaint[\s-]*to[\s-]*sample\b|\bpts\b", re.I)
MODIFIED_FINISH = re.compile(r"\b(wrap|wrapped|vinyl|graphics|mounted)\b", re.I)
CODES = re.compile(r"\([^)]*\)|\[[^\]]*\]")
BOILERPLATE = re.compile(r"\s+(?:over|with|w/|and|featuring)\s+.*$|\s+w/.*$|[,;/].*$", re.I)
EDGE_WORDS = re.compile(r"^(?:in|finished in)\s+|\s+(?:paint|exterior|color|colour)$", re.I)
PLAIN_NAME = re.compile(r"^[A-Za-z][A-Za-z\s]+$")


@dataclass(frozen=True)
class ColorResult:
    name: Optional[str]
    color_id: Optional[str]
    is_paint_to_sample: bool


def clean_color_text(text: str) -> str:
    cleaned = CODES.sub(" ", text)
    cleaned = PAINT_TO_SAMPLE.sub(" ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" -:")
    cleaned = BOILERPLATE.sub("", cleaned).strip(" -:")
    cleaned = EDGE_WORDS.sub("", cleaned).strip(" -:")
    return cleaned


def normalize_color(text: Optional[str], catalog: Optional[Catalog] = None) -> ColorResult:
    """Clean a free-text exterior color and map it onto the canonical color table.

    Paint to Sample phrasing is reported through ``is_paint_to_sample`` and never
    changes the color name. Wrapped or vinyl finishes yield no color.
    """
    catalog = catalog or get_catalog()
    if not text or not text.strip():
        return ColorResult(name=None, color_id=None, is_paint_to_sample=False)
    if MODIFIED_FINISH.search(text):
        return ColorResult(name=None, color_id=None, is_paint_to_sample=False)

    is_pts = bool(PAINT_TO_SAMPLE.search(text))
    cleaned = clean_color_text(text)

    color = catalog.color_by_alias(cleaned)
    if color is not None:
        return ColorResult(name=color.name, color_id=color.id, is_paint_to_sample=is_pts or color.paint_to_sample)

    if cleaned and PLAIN_NAME.match(cleaned) and len(cleaned.split()) <= 4:
        return ColorResult(name=cleaned.title(), color_id=None, is_paint_to_sample=is_pts)
    return ColorResult(name=None, color_id=None, is_paint_to_sample=is_pts)

"""Style compactor - replace per-run styles with ids into a shared table."""

import json
from dataclasses import dataclass

from epub2bundle.models import CompactedPage, CompactedTextRun, Page, TextStyle


@dataclass
class CompactedStyles:
    pages: list[CompactedPage]
    styles: list[TextStyle]


def style_key(style: TextStyle) -> str:
    """Canonical serialization of a style, used as its dedup key.

    Numbers are keyed as floats so ``16`` and ``16.0`` are the same style,
    just as they compare equal.
    """
    data = style.to_dict()
    data["fontSize"] = float(style.font_size)
    data["fontWeight"] = float(style.font_weight)
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def compact_page_styles(pages: list[Page]) -> CompactedStyles:
    """Deduplicate text styles across pages.

    Ids are handed out in order of first occurrence while walking the pages
    (and their runs) in input order, so a style seen again on a later page
    keeps the id it got the first time.
    """
    styles: list[TextStyle] = []
    style_ids: dict[str, int] = {}

    def get_style_id(style: TextStyle) -> int:
        key = style_key(style)
        style_id = style_ids.get(key)
        if style_id is None:
            style_id = len(styles)
            styles.append(style)
            style_ids[key] = style_id
        return style_id

    compacted = []
    for page in pages:
        runs = [
            CompactedTextRun(
                text=run.text,
                x=run.x,
                y=run.y,
                width=run.width,
                height=run.height,
                style_id=get_style_id(run.style),
                baseline_y=run.baseline_y,
                span_id=run.span_id,
            )
            for run in page.text_runs
        ]
        compacted.append(CompactedPage(
            page_id=page.page_id,
            chapter_id=page.chapter_id,
            page_index=page.page_index,
            width=page.width,
            height=page.height,
            text_runs=runs,
            span_rects=page.span_rects,
            first_span_id=page.first_span_id,
            last_span_id=page.last_span_id,
        ))

    return CompactedStyles(pages=compacted, styles=styles)

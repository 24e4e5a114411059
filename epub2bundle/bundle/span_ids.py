"""Replace verbose source span ids with short deterministic ones."""

import logging
from dataclasses import dataclass, field, replace

from epub2bundle.models import Page, PageSpanRect, Span

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass
class CompactedSpanIds:
    spans: list[Span]
    pages: list[Page]
    id_map: dict[str, str] = field(default_factory=dict)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def compact_span_ids(spans: list[Span], pages: list[Page]) -> CompactedSpanIds:
    """Rename span ``i`` to ``s<i in base 36>`` in spans and pages.

    SMIL/sentence-derived ids are long and repeated in every page file and in
    spans.jsonl; the short form keeps the bundle small. Ids on pages that do
    not belong to any span are left unchanged.
    """
    if not spans:
        return CompactedSpanIds(spans=spans, pages=pages)

    id_map: dict[str, str] = {}
    for index, span in enumerate(spans):
        if span.id in id_map:
            raise ValueError(f"Impossibile compattare gli id: span duplicato '{span.id}'")
        id_map[span.id] = f"s{to_base36(index)}"

    def remap(span_id):
        return id_map.get(span_id, span_id)

    new_spans = [replace(span, id=remap(span.id)) for span in spans]

    new_pages = []
    for page in pages:
        span_rects = [PageSpanRect(span_id=remap(sr.span_id), rects=sr.rects) for sr in page.span_rects]
        runs = [
            replace(run, span_id=remap(run.span_id)) if run.span_id else run
            for run in page.text_runs
        ]
        visible = [sr.span_id for sr in span_rects]
        first = remap(page.first_span_id) if page.first_span_id else (visible[0] if visible else "")
        last = remap(page.last_span_id) if page.last_span_id else (visible[-1] if visible else "")
        new_pages.append(replace(
            page,
            text_runs=runs,
            span_rects=span_rects,
            first_span_id=first,
            last_span_id=last,
        ))

    logger.debug("Compattati %d id di span", len(id_map))
    return CompactedSpanIds(spans=new_spans, pages=new_pages, id_map=id_map)

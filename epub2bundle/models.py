"""Data models for the epub2bundle pipeline."""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Optional

BUNDLE_VERSION = "1.0.0"

# pageIndex recorded for spans that pagination never placed on a page
UNASSIGNED_PAGE_INDEX = -1


@dataclass(frozen=True)
class Margins:
    top: int
    right: int
    bottom: int
    left: int


@dataclass(frozen=True)
class ContentArea:
    """Drawable area of a profile: viewport minus margins."""
    width: int
    height: int
    left: int
    top: int


@dataclass(frozen=True)
class DeviceProfile:
    """Immutable rendering configuration for a target device."""
    name: str
    viewport_width: int
    viewport_height: int
    margins: Margins
    font_size: int
    line_height: float
    font_family: str

    @property
    def content_area(self) -> ContentArea:
        return ContentArea(
            width=self.viewport_width - self.margins.left - self.margins.right,
            height=self.viewport_height - self.margins.top - self.margins.bottom,
            left=self.margins.left,
            top=self.margins.top,
        )


@dataclass
class Span:
    """A synchronized text+audio segment, as produced by SMIL parsing."""
    id: str
    chapter_id: str
    text_ref: str
    audio_src: str
    clip_begin_ms: int
    clip_end_ms: int

    def __post_init__(self):
        if self.clip_end_ms <= self.clip_begin_ms:
            raise ValueError(
                f"Span '{self.id}': clipEnd ({self.clip_end_ms}) deve essere "
                f"maggiore di clipBegin ({self.clip_begin_ms})"
            )


@dataclass(frozen=True)
class TextStyle:
    """Style of a text run. Equal values are the same style."""
    font_family: str
    font_size: float
    font_weight: int
    font_style: str = "normal"
    color: str = "#000000"

    def to_dict(self) -> dict:
        return {
            "fontFamily": self.font_family,
            "fontSize": self.font_size,
            "fontWeight": self.font_weight,
            "fontStyle": self.font_style,
            "color": self.color,
        }


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class PageSpanRect:
    """Rectangles covered by one span on a page (several when text wraps)."""
    span_id: str
    rects: list[Rect] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"spanId": self.span_id, "rects": [r.to_dict() for r in self.rects]}


@dataclass
class TextRun:
    """A positioned run of text carrying its full style."""
    text: str
    x: float
    y: float
    width: float
    height: float
    style: TextStyle
    baseline_y: Optional[float] = None
    span_id: Optional[str] = None


@dataclass
class CompactedTextRun:
    """A positioned run of text referencing the shared style table."""
    text: str
    x: float
    y: float
    width: float
    height: float
    style_id: int
    baseline_y: Optional[float] = None
    span_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "baselineY": self.baseline_y,
            "spanId": self.span_id,
            "styleId": self.style_id,
        }


@dataclass
class Page:
    """A rendered page, as returned by the pagination sidecar."""
    page_id: str
    chapter_id: str
    page_index: int
    width: int
    height: int
    text_runs: list[TextRun] = field(default_factory=list)
    span_rects: list[PageSpanRect] = field(default_factory=list)
    first_span_id: str = ""
    last_span_id: str = ""


@dataclass
class CompactedPage:
    """A page whose runs reference styles by id."""
    page_id: str
    chapter_id: str
    page_index: int
    width: int
    height: int
    text_runs: list[CompactedTextRun] = field(default_factory=list)
    span_rects: list[PageSpanRect] = field(default_factory=list)
    first_span_id: str = ""
    last_span_id: str = ""

    def to_dict(self) -> dict:
        return {
            "pageId": self.page_id,
            "chapterId": self.chapter_id,
            "pageIndex": self.page_index,
            "width": self.width,
            "height": self.height,
            "textRuns": [run.to_dict() for run in self.text_runs],
            "spanRects": [sr.to_dict() for sr in self.span_rects],
            "firstSpanId": self.first_span_id,
            "lastSpanId": self.last_span_id,
        }


@dataclass
class ManifestItem:
    """An OPF manifest entry."""
    id: str
    href: str
    media_type: str
    media_overlay: Optional[str] = None


@dataclass
class SpineItem:
    """An OPF spine reference."""
    idref: str
    linear: bool = True


@dataclass
class BundleMeta:
    """Top-level descriptor written to meta.json."""
    bundle_id: str
    profile: str
    title: str
    pages: int
    spans: int
    bundle_version: str = BUNDLE_VERSION

    def to_dict(self) -> dict:
        return {
            "bundleVersion": self.bundle_version,
            "bundleId": self.bundle_id,
            "profile": self.profile,
            "title": self.title,
            "pages": self.pages,
            "spans": self.spans,
        }


@dataclass
class TocEntry:
    """Chapter navigation entry pointing at a global page index."""
    title: str
    page_index: int

    def to_dict(self) -> dict:
        return {"title": self.title, "pageIndex": self.page_index}


@dataclass
class SpanEntry:
    """A span as serialized into spans.jsonl."""
    id: str
    audio_src: Optional[str]
    clip_begin_ms: int
    clip_end_ms: int
    page_index: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audioSrc": self.audio_src,
            "clipBeginMs": self.clip_begin_ms,
            "clipEndMs": self.clip_end_ms,
            "pageIndex": self.page_index,
        }


XHTML_MEDIA_TYPES = ("application/xhtml+xml", "text/html")


def spine_documents(manifest: list[ManifestItem], spine: list[SpineItem]) -> list[ManifestItem]:
    """Manifest entries of the linear XHTML spine documents, in reading order.

    Spine references to ids missing from the manifest are skipped.
    """
    by_id = {item.id: item for item in manifest}
    documents = []
    for ref in spine:
        if not ref.linear:
            continue
        item = by_id.get(ref.idref)
        if item is not None and item.media_type in XHTML_MEDIA_TYPES:
            documents.append(item)
    return documents


def make_bundle_id(identifier: Optional[str], title: str, spine: list[SpineItem]) -> str:
    """Derive a stable bundle id.

    Uses the package identifier (often an ISBN) when present, otherwise a
    hash of the title and spine order so recompiles of the same book agree.
    """
    if identifier and identifier.strip():
        return re.sub(r"\s+", "-", identifier.strip())

    digest_input = f"{title}|{','.join(ref.idref for ref in spine)}"
    return hashlib.sha256(digest_input.encode("utf-8")).hexdigest()[:16]

"""Pagination sidecar contract - request building and response validation.

Layout is computed by an external browser-engine process. This module only
speaks its JSON protocol: it builds the request for a device profile and a
set of normalized chapters, and turns the response into :class:`Page`
objects. Timeouts and retries are up to the caller that runs the sidecar.
"""

import json
import logging
from typing import Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from epub2bundle.errors import PaginationError
from epub2bundle.models import DeviceProfile, Page, PageSpanRect, Rect, TextRun, TextStyle

logger = logging.getLogger(__name__)

PAGINATION_SCHEMA_VERSION = 1


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request ---

class MarginsPayload(_WireModel):
    top: int
    right: int
    bottom: int
    left: int


class ProfilePayload(_WireModel):
    viewport_width: int
    viewport_height: int
    margins: MarginsPayload
    font_size: int
    line_height: float
    font_family: str


class ChapterPayload(_WireModel):
    chapter_id: str
    html: str


class PaginationRequest(_WireModel):
    schema_version: int = PAGINATION_SCHEMA_VERSION
    profile: ProfilePayload
    chapters: list[ChapterPayload]


# --- Response ---

class StylePayload(_WireModel):
    font_family: str
    font_size: float
    font_weight: int
    font_style: str = "normal"
    color: str = "#000000"


class TextRunPayload(_WireModel):
    text: str
    x: float
    y: float
    width: float
    height: float
    baseline_y: Optional[float] = None
    span_id: Optional[str] = None
    style: StylePayload


class RectPayload(_WireModel):
    x: float
    y: float
    width: float
    height: float


class SpanRectPayload(_WireModel):
    span_id: str
    rects: list[RectPayload] = Field(default_factory=list)


class PagePayload(_WireModel):
    page_id: str
    chapter_id: str
    page_index: int
    width: int
    height: int
    text_runs: list[TextRunPayload] = Field(default_factory=list)
    span_rects: list[SpanRectPayload] = Field(default_factory=list)
    first_span_id: str = ""
    last_span_id: str = ""


class ErrorPayload(_WireModel):
    code: str
    message: str


class PaginationResponse(_WireModel):
    schema_version: int
    pages: list[PagePayload] = Field(default_factory=list)
    error: Optional[ErrorPayload] = None


def build_pagination_request(
    profile: DeviceProfile, chapters: Iterable[tuple[str, str]]
) -> dict:
    """Build the JSON request for ``(chapter_id, html)`` pairs."""
    request = PaginationRequest(
        profile=ProfilePayload(
            viewport_width=profile.viewport_width,
            viewport_height=profile.viewport_height,
            margins=MarginsPayload(
                top=profile.margins.top,
                right=profile.margins.right,
                bottom=profile.margins.bottom,
                left=profile.margins.left,
            ),
            font_size=profile.font_size,
            line_height=profile.line_height,
            font_family=profile.font_family,
        ),
        chapters=[ChapterPayload(chapter_id=cid, html=html) for cid, html in chapters],
    )
    return request.model_dump(by_alias=True)


def parse_pagination_response(payload: Union[str, bytes, dict]) -> list[Page]:
    """Validate a sidecar response and convert it into pages.

    Raises:
        PaginationError: If the sidecar reported an error, or the payload is
            not a valid response for this schema version.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise PaginationError(f"Risposta non JSON: {e}") from e

    try:
        response = PaginationResponse.model_validate(payload)
    except ValidationError as e:
        raise PaginationError(f"Risposta non valida: {e}") from e

    if response.error is not None:
        raise PaginationError(response.error.message, code=response.error.code)

    if response.schema_version != PAGINATION_SCHEMA_VERSION:
        raise PaginationError(
            f"Versione schema {response.schema_version} non supportata "
            f"(attesa {PAGINATION_SCHEMA_VERSION})",
            code="schema_mismatch",
        )

    pages = [_to_page(p) for p in response.pages]
    logger.info("Ricevute %d pagine dal paginatore", len(pages))
    return pages


def _to_page(payload: PagePayload) -> Page:
    return Page(
        page_id=payload.page_id,
        chapter_id=payload.chapter_id,
        page_index=payload.page_index,
        width=payload.width,
        height=payload.height,
        text_runs=[
            TextRun(
                text=run.text,
                x=run.x,
                y=run.y,
                width=run.width,
                height=run.height,
                style=TextStyle(**run.style.model_dump()),
                baseline_y=run.baseline_y,
                span_id=run.span_id,
            )
            for run in payload.text_runs
        ],
        span_rects=[
            PageSpanRect(
                span_id=sr.span_id,
                rects=[Rect(x=r.x, y=r.y, width=r.width, height=r.height) for r in sr.rects],
            )
            for sr in payload.span_rects
        ],
        first_span_id=payload.first_span_id,
        last_span_id=payload.last_span_id,
    )

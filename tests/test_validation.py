"""Tests for compilation output validation."""

import logging

from epub2bundle.bundle.validation import log_validation_result, validate_compilation
from epub2bundle.models import Page, PageSpanRect, Rect, Span, TextRun, TextStyle
from epub2bundle.profiles import MANTA_PROFILE

STYLE = TextStyle(font_family="serif", font_size=48, font_weight=400)


def _span(span_id: str) -> Span:
    return Span(id=span_id, chapter_id="ch1", text_ref=f"ch1.xhtml#{span_id}",
                audio_src="a.mp3", clip_begin_ms=0, clip_end_ms=10)


def _page(rect: Rect = Rect(0, 0, 100, 50), runs: bool = True) -> Page:
    text_runs = [TextRun(text="a", x=0, y=0, width=100, height=50, style=STYLE, span_id="s1")] if runs else []
    return Page(page_id="p0", chapter_id="ch1", page_index=0, width=1920, height=2560,
                text_runs=text_runs, span_rects=[PageSpanRect("s1", [rect])])


class TestValidateCompilation:
    def test_clean_result(self):
        result = validate_compilation([_span("s1")], [_page()], {"s1": 0}, MANTA_PROFILE)

        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_empty_output_is_invalid(self):
        result = validate_compilation([], [], {}, MANTA_PROFILE)

        assert not result.valid
        assert len(result.errors) == 3

    def test_duplicate_span_ids(self):
        result = validate_compilation([_span("s1"), _span("s1")], [_page()], {"s1": 0}, MANTA_PROFILE)

        assert not result.valid
        assert any("s1" in e for e in result.errors)

    def test_unassigned_spans_warn(self):
        result = validate_compilation([_span("s1"), _span("s2")], [_page()], {"s1": 0, "s2": -1}, MANTA_PROFILE)

        assert result.valid
        assert result.warnings == ["1 span senza pagina assegnata"]

    def test_rect_geometry_warnings(self):
        result = validate_compilation([_span("s1")], [_page(Rect(-1, 0, 5000, 0))], {"s1": 0}, MANTA_PROFILE)

        assert result.valid
        assert len(result.warnings) == 3

    def test_page_without_runs(self):
        result = validate_compilation([_span("s1")], [_page(runs=False)], {"s1": 0}, MANTA_PROFILE)

        assert not result.valid
        assert any("p0" in w for w in result.warnings)

    def test_logging(self, caplog):
        result = validate_compilation([_span("s1")], [_page(runs=False)], {"s1": 0}, MANTA_PROFILE)

        with caplog.at_level(logging.WARNING):
            log_validation_result(result)

        assert "ERROR" in caplog.text
        assert "WARNING" in caplog.text

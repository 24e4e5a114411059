"""Bundle writer - assembles spans, pages, ToC and audio into a player bundle.

Bundle layout::

    meta.json            bundle descriptor (pretty JSON)
    toc.json             chapter navigation (pretty JSON array)
    spans.jsonl          one compact JSON object per span, in input order
    styles.json          shared text style table referenced by styleId
    pages/<pageId>.json  one file per page
    audio/<name>         audio assets copied from the EPUB
"""

import json
import logging
import os
import posixpath
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path
from typing import Callable, Optional, Union

from epub2bundle.bundle.styles import compact_page_styles
from epub2bundle.epub_container import EpubContainer, normalize_path
from epub2bundle.errors import BundleWriteError, NotFoundError
from epub2bundle.models import (
    UNASSIGNED_PAGE_INDEX,
    BundleMeta,
    Page,
    Span,
    SpanEntry,
    TocEntry,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]
PathLike = Union[str, Path]

AUDIO_DIR = "audio"
PAGES_DIR = "pages"

# Per-entry read failures; NotImplementedError (unknown compression) is a RuntimeError
_AUDIO_READ_ERRORS = (
    NotFoundError,
    OSError,
    EOFError,
    zipfile.BadZipFile,
    zlib.error,
    RuntimeError,
)


def resolve_audio_names(audio_files: list[str]) -> dict[str, str]:
    """Map each audio source path to a unique file name inside ``audio/``.

    The first source with a given basename keeps it; later ones get
    ``name_1.ext``, ``name_2.ext``, ... counted per basename in input order.
    A source listed twice maps to the same name.
    """
    names: dict[str, str] = {}
    used: set[str] = set()
    counters: dict[str, int] = {}

    for source in audio_files:
        key = normalize_path(source)
        if key in names:
            continue

        basename = posixpath.basename(key)
        if basename in ("", ".", ".."):
            basename = "audio"
        stem, ext = posixpath.splitext(basename)

        count = counters.get(basename, 0)
        candidate = basename
        while candidate in used:
            count += 1
            candidate = f"{stem}_{count}{ext}"

        counters[basename] = count
        used.add(candidate)
        names[key] = candidate

    return names


def build_span_entries(
    spans: list[Span],
    span_to_page_index: dict[str, int],
    audio_names: dict[str, str],
) -> list[SpanEntry]:
    """Resolve page index and bundle audio path for each span.

    Spans missing from ``span_to_page_index`` get ``-1``. Upstream
    inconsistencies are recorded, not rejected.
    """
    entries = []
    missing_audio: set[str] = set()

    for span in spans:
        name = audio_names.get(normalize_path(span.audio_src))
        if name is None:
            missing_audio.add(span.audio_src)
        entries.append(SpanEntry(
            id=span.id,
            audio_src=f"{AUDIO_DIR}/{name}" if name is not None else None,
            clip_begin_ms=span.clip_begin_ms,
            clip_end_ms=span.clip_end_ms,
            page_index=span_to_page_index.get(span.id, UNASSIGNED_PAGE_INDEX),
        ))

    for source in sorted(missing_audio):
        logger.warning("Audio '%s' referenziato da uno span ma assente dalla lista audio", source)

    unassigned = sum(1 for e in entries if e.page_index == UNASSIGNED_PAGE_INDEX)
    if unassigned:
        logger.warning("%d span senza pagina assegnata (pageIndex=-1)", unassigned)

    return entries


class BundleWriter:
    """Writes bundles either as a zip archive or as a plain directory."""

    def __init__(self, compresslevel: int = 9):
        self.compresslevel = compresslevel

    def write(
        self,
        output_path: PathLike,
        meta: BundleMeta,
        spans: list[Span],
        pages: list[Page],
        span_to_page_index: dict[str, int],
        toc: list[TocEntry],
        audio_files: list[str],
        container: EpubContainer,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Write the bundle archive to ``output_path``, replacing what is there.

        Everything is staged in a private temp directory and zipped next to
        the destination; the archive only takes the place of ``output_path``
        once it is complete. On failure ``output_path`` is left untouched and
        all temporary files are removed.

        Raises:
            BundleWriteError: If writing to disk fails.
        """
        out = Path(output_path)
        staging: Optional[Path] = None
        partial: Optional[Path] = None

        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix="e2b_"))
            logger.debug("Directory di staging: %s", staging)

            self._stage(
                staging, meta, spans, pages, span_to_page_index, toc,
                audio_files, container, on_progress,
            )

            fd, partial_name = tempfile.mkstemp(
                prefix=f".{out.name}.", suffix=".partial", dir=out.parent,
            )
            os.close(fd)
            partial = Path(partial_name)
            self._archive(staging, partial)

            if out.is_dir():
                shutil.rmtree(out)
            os.replace(partial, out)
            partial = None
        except OSError as e:
            raise BundleWriteError(f"Scrittura del bundle fallita ({out}): {e}") from e
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            if partial is not None:
                partial.unlink(missing_ok=True)

        logger.info("Bundle scritto: %s", out)

    def write_uncompressed(
        self,
        output_dir: PathLike,
        meta: BundleMeta,
        spans: list[Span],
        pages: list[Page],
        span_to_page_index: dict[str, int],
        toc: list[TocEntry],
        audio_files: list[str],
        container: EpubContainer,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Write the bundle as a plain directory. For debugging only.

        Any existing ``output_dir`` is removed first. There is no atomicity:
        a failure leaves a partial directory behind.
        """
        out = Path(output_dir)
        try:
            if out.is_dir():
                shutil.rmtree(out)
            elif out.exists():
                out.unlink()
            out.mkdir(parents=True)

            self._stage(
                out, meta, spans, pages, span_to_page_index, toc,
                audio_files, container, on_progress,
            )
        except OSError as e:
            raise BundleWriteError(f"Scrittura del bundle fallita ({out}): {e}") from e

        logger.info("Bundle (non compresso) scritto: %s", out)

    def _stage(
        self,
        target: Path,
        meta: BundleMeta,
        spans: list[Span],
        pages: list[Page],
        span_to_page_index: dict[str, int],
        toc: list[TocEntry],
        audio_files: list[str],
        container: EpubContainer,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        audio_names = resolve_audio_names(audio_files)
        total = len(audio_names) + len(pages)
        done = 0

        audio_dir = target / AUDIO_DIR
        audio_dir.mkdir(exist_ok=True)
        for source, name in audio_names.items():
            data = self._read_audio(container, source)
            if data is not None:
                (audio_dir / name).write_bytes(data)
            done += 1
            if on_progress:
                on_progress(done, total, name)

        _write_json(target / "meta.json", meta.to_dict(), pretty=True)
        _write_json(target / "toc.json", [entry.to_dict() for entry in toc], pretty=True)

        entries = build_span_entries(spans, span_to_page_index, audio_names)
        lines = [json.dumps(e.to_dict(), ensure_ascii=False, separators=(",", ":")) for e in entries]
        (target / "spans.jsonl").write_text(
            "\n".join(lines) + ("\n" if lines else ""), encoding="utf-8",
        )

        compacted = compact_page_styles(pages)
        _write_json(target / "styles.json", [style.to_dict() for style in compacted.styles])

        pages_dir = target / PAGES_DIR
        pages_dir.mkdir(exist_ok=True)
        for page in compacted.pages:
            _write_json(pages_dir / f"{page.page_id}.json", page.to_dict())
            done += 1
            if on_progress:
                on_progress(done, total, page.page_id)

        logger.info(
            "Bundle: %d span, %d pagine, %d stili, %d file audio",
            len(entries), len(compacted.pages), len(compacted.styles), len(audio_names),
        )

    @staticmethod
    def _read_audio(container: EpubContainer, source: str) -> Optional[bytes]:
        """Read an audio asset, or return None (with a warning) if it cannot be read."""
        try:
            return container.read_file(source)
        except _AUDIO_READ_ERRORS as e:
            logger.warning("Audio '%s' saltato: %s", source, e)
            return None

    def _archive(self, source_dir: Path, archive_path: Path) -> None:
        files = sorted(
            (p for p in source_dir.rglob("*") if p.is_file()),
            key=lambda p: p.relative_to(source_dir).as_posix(),
        )
        with zipfile.ZipFile(
            archive_path,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compresslevel,
        ) as zf:
            for path in files:
                zf.write(path, arcname=path.relative_to(source_dir).as_posix())


def _write_json(path: Path, data, pretty: bool = False) -> None:
    if pretty:
        text = json.dumps(data, ensure_ascii=False, indent=2) + "\n"
    else:
        text = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    path.write_text(text, encoding="utf-8")


def write_bundle(
    output_path: PathLike,
    meta: BundleMeta,
    spans: list[Span],
    pages: list[Page],
    span_to_page_index: dict[str, int],
    toc: list[TocEntry],
    audio_files: list[str],
    container: EpubContainer,
    on_progress: Optional[ProgressCallback] = None,
) -> None:
    """Write a zipped bundle with the default compression settings."""
    BundleWriter().write(
        output_path, meta, spans, pages, span_to_page_index, toc,
        audio_files, container, on_progress,
    )


def write_bundle_uncompressed(
    output_dir: PathLike,
    meta: BundleMeta,
    spans: list[Span],
    pages: list[Page],
    span_to_page_index: dict[str, int],
    toc: list[TocEntry],
    audio_files: list[str],
    container: EpubContainer,
    on_progress: Optional[ProgressCallback] = None,
) -> None:
    """Write the bundle as a plain directory (debugging aid)."""
    BundleWriter().write_uncompressed(
        output_dir, meta, spans, pages, span_to_page_index, toc,
        audio_files, container, on_progress,
    )

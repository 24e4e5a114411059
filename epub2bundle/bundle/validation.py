"""Sanity checks on compilation output before it is shipped."""

import logging
from dataclasses import dataclass, field

from epub2bundle.models import UNASSIGNED_PAGE_INDEX, DeviceProfile, Page, Span

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_compilation(
    spans: list[Span],
    pages: list[Page],
    span_to_page_index: dict[str, int],
    profile: DeviceProfile,
) -> ValidationResult:
    """Check spans and pages for fatal problems (errors) and oddities (warnings)."""
    result = ValidationResult()
    area = profile.content_area

    if not spans:
        result.errors.append("Nessuno span estratto dall'EPUB")
    if not pages:
        result.errors.append("Nessuna pagina generata")

    seen: set[str] = set()
    for span in spans:
        if span.id in seen:
            result.errors.append(f"Id di span duplicato: '{span.id}'")
        seen.add(span.id)

    unassigned = sum(
        1 for span in spans
        if span_to_page_index.get(span.id, UNASSIGNED_PAGE_INDEX) < 0
    )
    if unassigned:
        result.warnings.append(f"{unassigned} span senza pagina assegnata")

    for page in pages:
        for span_rect in page.span_rects:
            for rect in span_rect.rects:
                label = f"Rettangolo dello span '{span_rect.span_id}'"
                if rect.width <= 0:
                    result.warnings.append(f"{label} ha larghezza non positiva: {rect.width}")
                if rect.height <= 0:
                    result.warnings.append(f"{label} ha altezza non positiva: {rect.height}")
                if rect.x < 0:
                    result.warnings.append(f"{label} ha x negativa: {rect.x}")
                if rect.y < 0:
                    result.warnings.append(f"{label} ha y negativa: {rect.y}")
                if rect.x + rect.width > area.width:
                    result.warnings.append(
                        f"{label} supera la larghezza del contenuto "
                        f"({rect.x + rect.width} > {area.width})"
                    )
                if rect.y + rect.height > area.height:
                    result.warnings.append(
                        f"{label} supera l'altezza del contenuto "
                        f"({rect.y + rect.height} > {area.height})"
                    )

        if not page.text_runs:
            result.warnings.append(f"La pagina '{page.page_id}' non ha testo")

        for run in page.text_runs:
            if run.width <= 0 or run.height <= 0:
                result.warnings.append(f"Testo con dimensioni non positive nella pagina '{page.page_id}'")
            if run.x < 0 or run.y < 0:
                result.warnings.append(f"Testo in posizione negativa nella pagina '{page.page_id}'")
            if run.y + run.height > area.height:
                result.warnings.append(f"Testo fuori dai margini nella pagina '{page.page_id}'")

    if not any(page.text_runs for page in pages):
        result.errors.append("Nessun testo estratto da alcuna pagina")

    return result


def log_validation_result(result: ValidationResult) -> None:
    for error in result.errors:
        logger.error("Validazione: %s", error)
    for warning in result.warnings:
        logger.warning("Validazione: %s", warning)
    if not result.errors and not result.warnings:
        logger.info("Validazione superata")

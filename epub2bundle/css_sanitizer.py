"""CSS sanitizer - strip unsafe constructs from publisher stylesheets.

Publisher CSS is untrusted. Before it reaches the pagination engine we:

1. drop ``@import`` rules that point outside the package,
2. drop declarations that can execute script (``behavior``, ``-ms-behavior``,
   ``-moz-binding``, ``expression(...)``),
3. blank out every remaining ``url(...)`` that points outside the package.

The passes always run in that order. Each pass is a single forward scan over
the text (quote- and comment-aware), so run time stays linear in the input
size whatever the input looks like.
"""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"[a-z][a-z0-9+.\-]*:", re.IGNORECASE)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_QUOTES = ("'", '"')
_IMPORT_KEYWORD = "@import"
_EMPTY_URL = 'url("")'


@dataclass
class CssSanitizationSummary:
    """Counters describing what a sanitization run changed."""
    removed_import_count: int = 0
    rewritten_url_count: int = 0
    removed_declaration_count: int = 0

    @property
    def changed(self) -> bool:
        return (
            self.removed_import_count > 0
            or self.rewritten_url_count > 0
            or self.removed_declaration_count > 0
        )


@dataclass
class CssSanitizationResult:
    css: str
    summary: CssSanitizationSummary = field(default_factory=CssSanitizationSummary)


def sanitize_stylesheet(css: str) -> CssSanitizationResult:
    """Sanitize a full stylesheet: imports, dangerous declarations, then URLs."""
    summary = CssSanitizationSummary()
    sanitized = _strip_unsafe_imports(css, summary)
    sanitized = _strip_dangerous_declarations(sanitized, summary)
    sanitized = _rewrite_unsafe_urls(sanitized, summary)

    if summary.changed:
        logger.debug(
            "CSS sanificato: %d @import rimossi, %d url riscritti, %d dichiarazioni rimosse",
            summary.removed_import_count,
            summary.rewritten_url_count,
            summary.removed_declaration_count,
        )
    return CssSanitizationResult(css=sanitized, summary=summary)


def sanitize_declaration_list(declarations: str) -> CssSanitizationResult:
    """Sanitize a declaration list such as an inline ``style`` attribute."""
    summary = CssSanitizationSummary()
    sanitized = _strip_dangerous_declarations(declarations, summary)
    sanitized = _rewrite_unsafe_urls(sanitized, summary)
    return CssSanitizationResult(css=sanitized, summary=summary)


def is_safe_css_url(url: str) -> bool:
    """Whether a ``url()`` value may be kept.

    Fragments, ``data:`` URLs and package-relative paths are safe; anything
    with a scheme or a protocol-relative ``//host`` is not.
    """
    candidate = _normalize_url(url)
    if not candidate:
        return False
    if candidate.startswith("#"):
        return True
    if candidate.lower().startswith("data:"):
        return True
    if candidate.startswith("//"):
        return False
    return not _SCHEME_RE.match(candidate)


def is_safe_stylesheet_href(href: str) -> bool:
    """Whether a ``<link rel="stylesheet">`` href stays inside the package.

    Stricter than :func:`is_safe_css_url`: ``data:`` is rejected too.
    """
    candidate = _normalize_url(href, css_escapes=False)
    if not candidate:
        return False
    if candidate.startswith("//"):
        return False
    return not _SCHEME_RE.match(candidate)


# --- Pass 1: @import ---

def _strip_unsafe_imports(css: str, summary: CssSanitizationSummary) -> str:
    out: list[str] = []
    n = len(css)
    pos = 0
    i = 0
    while i < n:
        ch = css[i]
        if ch in _QUOTES:
            i = _skip_string(css, i)
        elif css.startswith("/*", i):
            i = _skip_comment(css, i)
        elif ch == "@" and css[i:i + len(_IMPORT_KEYWORD)].lower() == _IMPORT_KEYWORD:
            body_start = i + len(_IMPORT_KEYWORD)
            body_end, rule_end = _find_rule_end(css, body_start)
            url = _extract_import_url(css[body_start:body_end])
            if url is None or not is_safe_css_url(url):
                summary.removed_import_count += 1
                out.append(css[pos:i])
                while rule_end < n and css[rule_end].isspace():
                    rule_end += 1
                pos = rule_end
            i = rule_end
        else:
            i += 1
    out.append(css[pos:])
    return "".join(out)


def _find_rule_end(css: str, start: int) -> tuple[int, int]:
    """Return (end of the rule body, end of the rule) for an at-rule prelude.

    The rule ends after the first top-level ``;``. A brace or the end of the
    input also ends it (malformed rule), without consuming the brace.
    """
    n = len(css)
    depth = 0
    i = start
    while i < n:
        ch = css[i]
        if ch in _QUOTES:
            i = _skip_string(css, i)
            continue
        if css.startswith("/*", i):
            i = _skip_comment(css, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif ch == ";" and depth == 0:
            return i, i + 1
        elif ch in "{}":
            return i, i
        i += 1
    return n, n


def _extract_import_url(target: str):
    """Pull the URL out of an @import prelude, either url(...) or a string."""
    url_start = target.lower().find("url(")
    if url_start != -1:
        value, _ = _read_url_value(target, url_start + 4)
        return _unwrap_url_value(value)

    for i, ch in enumerate(target):
        if ch in _QUOTES:
            end = _skip_string(target, i)
            value = target[i + 1:end]
            if value.endswith(ch):
                value = value[:-1]
            return value.strip()
    return None


# --- Pass 2: script-capable declarations ---

def _strip_dangerous_declarations(css: str, summary: CssSanitizationSummary) -> str:
    out: list[str] = []
    for start, end, terminator in _iter_segments(css):
        segment = css[start:end]
        if terminator != "{" and _is_dangerous_declaration(segment):
            summary.removed_declaration_count += 1
            # keep leading whitespace, drop the declaration and its own ';'
            stripped = segment.lstrip()
            out.append(segment[: len(segment) - len(stripped)])
            if terminator not in (";", None):
                out.append(terminator)
            continue
        out.append(segment)
        if terminator is not None:
            out.append(terminator)
    return "".join(out)


def _iter_segments(css: str):
    """Yield (start, end, terminator) for text between ``;``, ``{`` and ``}``.

    Semicolons inside strings, comments or parentheses do not split. The
    last segment has terminator None.
    """
    n = len(css)
    depth = 0
    seg_start = 0
    i = 0
    while i < n:
        ch = css[i]
        if ch in _QUOTES:
            i = _skip_string(css, i)
            continue
        if css.startswith("/*", i):
            i = _skip_comment(css, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif ch in "{}" or (ch == ";" and depth == 0):
            yield seg_start, i, ch
            seg_start = i + 1
            depth = 0
        i += 1
    yield seg_start, n, None


def _is_dangerous_declaration(text: str) -> bool:
    name, sep, value = text.partition(":")
    if not sep:
        return False

    prop = _normalize_token(name).lstrip("*_")
    if prop.startswith("@"):
        return False
    # vendor forms too: -ms-behavior, -moz-binding
    if prop in ("behavior", "binding") or prop.endswith(("-behavior", "-binding")):
        return True
    return "expression(" in _normalize_token(value)


# --- Pass 3: url() ---

def _rewrite_unsafe_urls(css: str, summary: CssSanitizationSummary) -> str:
    out: list[str] = []
    n = len(css)
    pos = 0
    i = 0
    while i < n:
        ch = css[i]
        if ch in _QUOTES:
            i = _skip_string(css, i)
        elif css.startswith("/*", i):
            i = _skip_comment(css, i)
        elif ch in "uU" and css[i:i + 4].lower() == "url(" and not _is_ident_char(css, i - 1):
            value, end = _read_url_value(css, i + 4)
            if not is_safe_css_url(_unwrap_url_value(value)):
                summary.rewritten_url_count += 1
                out.append(css[pos:i])
                out.append(_EMPTY_URL)
                pos = end
            i = end
        else:
            i += 1
    out.append(css[pos:])
    return "".join(out)


def _read_url_value(css: str, start: int) -> tuple[str, int]:
    """Read the argument of ``url(`` starting at ``start``.

    Returns the raw argument and the index just past the closing ``)``. An
    unterminated value runs to the end of the input.
    """
    n = len(css)
    i = start
    while i < n and css[i].isspace():
        i += 1
    if i < n and css[i] in _QUOTES:
        i = _skip_string(css, i)
    close = css.find(")", i)
    if close == -1:
        return css[start:], n
    return css[start:close], close + 1


def _unwrap_url_value(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] in _QUOTES and trimmed[-1] == trimmed[0]:
        return trimmed[1:-1].strip()
    if trimmed[:1] in _QUOTES:
        # unterminated string
        return trimmed[1:].strip()
    return trimmed


# --- Scanning helpers ---

def _skip_string(css: str, start: int) -> int:
    """Index just past the string opened at ``start`` (or end of input)."""
    quote = css[start]
    n = len(css)
    i = start + 1
    while i < n:
        ch = css[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote or ch == "\n":
            return i + 1
        i += 1
    return n


def _skip_comment(css: str, start: int) -> int:
    end = css.find("*/", start + 2)
    return len(css) if end == -1 else end + 2


def _is_ident_char(css: str, index: int) -> bool:
    if index < 0:
        return False
    ch = css[index]
    return ch.isalnum() or ch in "-_"


def _decode_escapes(text: str) -> str:
    """Decode CSS backslash escapes (``\\6a`` -> ``j``, ``\\:`` -> ``:``)."""
    if "\\" not in text:
        return text

    out: list[str] = []
    n = len(text)
    i = 0
    while i < n:
        ch = text[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        j = i + 1
        while j < n and j - i <= 6 and text[j] in _HEX_DIGITS:
            j += 1
        if j > i + 1:
            codepoint = int(text[i + 1:j], 16)
            out.append(chr(codepoint) if 0 < codepoint <= 0x10FFFF else "\ufffd")
            if j < n and text[j] in " \t\n\r\f":
                j += 1
            i = j
        elif j < n:
            # escaped newline is a line continuation
            if text[j] != "\n":
                out.append(text[j])
            i = j + 1
        else:
            i = j
    return "".join(out)


def _strip_controls(text: str) -> str:
    return "".join(ch for ch in text if ch > " " and ch != "\x7f")


def _normalize_token(text: str) -> str:
    """Lower-case token with comments, escapes and whitespace removed."""
    if "/*" in text:
        parts = []
        i = 0
        while i < len(text):
            start = text.find("/*", i)
            if start == -1:
                parts.append(text[i:])
                break
            parts.append(text[i:start])
            i = _skip_comment(text, start)
        text = "".join(parts)
    return _strip_controls(_decode_escapes(text)).lower()


def _normalize_url(url: str, css_escapes: bool = True) -> str:
    """URL as a browser would see it when deciding its scheme.

    Attribute values (stylesheet hrefs) are not CSS, so their backslashes are
    not escapes.
    """
    if css_escapes:
        url = _decode_escapes(url)
    return _strip_controls(url).replace("\\", "/")

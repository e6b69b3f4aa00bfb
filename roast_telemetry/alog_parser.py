"""
ALOG Parser

Roast logs exported by Artisan are Python literal dictionaries. Files that
went through other tools, or were edited by hand, drift from that syntax:
JSON-style literals mixed with Python ones, single-quoted strings holding
apostrophes, inline comments, raw newlines inside notes, stray commas and
the occasional truncated array. This module turns such a document into a
plain dict, repairing what it can and reporting what it repaired.

Pipeline (each pass produces a corrected buffer for the next):
    1. True/False/None/nan/inf -> JSON literals (outside strings only)
    2. strip '#' comments (a '#' inside a string is content)
    3. single-quoted strings -> double-quoted strings
    4. escape raw control characters inside strings
    5. structural repair (separators, unbounded arrays -> [])
    6. strict JSON parse
"""

import ast
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, NamedTuple, Tuple, Union

from .errors import AlogFormatError

logger = logging.getLogger(__name__)

CONTEXT_RADIUS = 50

_CODE, _STRING, _COMMENT = "code", "string", "comment"

# Marks a string that pass 3 had to close itself; pass 5 consumes it.
_UNTERMINATED = "\x00"

_LITERALS = {
    "True": "true",
    "False": "false",
    "None": "null",
    "nan": "NaN",
    "inf": "Infinity",
}
_LITERAL_RE = re.compile(r"\b(?:True|False|None|nan|inf)\b")

# A raw line break inside a string ends it when the next line opens a new
# member or closes a container.
_STRING_BREAK_RE = re.compile(r"[ \t]*(?:(['\"])[^'\"\n]*\1[ \t]*:|[\]}])")

# On a single line, a closing bracket followed by the next quoted member name
# ends a string whose closing quote went missing.
_INLINE_BREAK_RE = re.compile(r"[\]}][\s\]}]*,\s*(['\"])[^'\"\n]*\1\s*:")
_TRAILING_CLOSERS_RE = re.compile(r"[\s,\]}]*\Z")

_CONTROL_RE = re.compile(r"[\x00-\x1f]")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}
_HEX_ESCAPE_RE = re.compile(r"[0-9a-fA-F]{2}")
_UNICODE_ESCAPE_RE = re.compile(r"[0-9a-fA-F]{4}")
_JSON_ESCAPES = set('"\\/bfnrtu')

_BARE_TOKEN_RE = re.compile(r"[^\s,\[\]{}:\"\x00]+")
_JSON_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?\Z")
_PY_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?\Z")
_JSON_WORDS = {"true", "false", "null", "NaN", "Infinity", "-Infinity"}


@dataclass
class ParsedDocument:
    """Result of parsing one roast log document."""

    data: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    recovered: bool = False


class _Segment(NamedTuple):
    kind: str
    text: str
    closed: bool = True


# =============================================================================
# SCANNER
# =============================================================================

def _is_contraction(text: str, i: int) -> bool:
    """An apostrophe with letters on both sides (don't, Kenya's) is not a quote."""
    return 0 < i < len(text) - 1 and text[i - 1].isalpha() and text[i + 1].isalpha()


def _opens_string(text: str, i: int) -> bool:
    ch = text[i]
    return ch == '"' or (ch == "'" and not _is_contraction(text, i))


def _string_end(text: str, start: int) -> Tuple[int, bool]:
    """
    Find the end of the quoted string starting at ``start``.

    A string with no closing quote ends at a line break or bracket that
    leads into the next member, or before the closers that end the document.

    Returns:
        (index just past the string, whether a closing quote was found)
    """
    quote = text[start]
    n = len(text)
    i = start + 1
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote and not (quote == "'" and _is_contraction(text, i)):
            return i + 1, True
        if ch == "\n" and _STRING_BREAK_RE.match(text, i + 1):
            return i, False
        if ch in "]}":
            m = _INLINE_BREAK_RE.match(text, i)
            if m and m.group(1) == quote:
                return i, False
        i += 1
    return _TRAILING_CLOSERS_RE.search(text, start + 1).start(), False


def _segments(text: str) -> Iterator[_Segment]:
    """Split a buffer into code, string and comment segments."""
    n = len(text)
    start = i = 0
    while i < n:
        ch = text[i]
        if ch == "#":
            if i > start:
                yield _Segment(_CODE, text[start:i])
            eol = text.find("\n", i)
            end = n if eol < 0 else eol
            yield _Segment(_COMMENT, text[i:end])
            start = i = end
        elif _opens_string(text, i):
            if i > start:
                yield _Segment(_CODE, text[start:i])
            end, closed = _string_end(text, i)
            yield _Segment(_STRING, text[i:end], closed)
            start = i = end
        else:
            i += 1
    if start < n:
        yield _Segment(_CODE, text[start:])


# =============================================================================
# RECOVERY PASSES
# =============================================================================

def preprocess_alog_content(content: str) -> str:
    """Drop a byte-order mark, normalize line endings and trim whitespace."""
    if content.startswith("\ufeff"):
        content = content[1:]
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    return content.strip()


def _replace_literals(text: str) -> str:
    parts = []
    for seg in _segments(text):
        if seg.kind == _CODE:
            parts.append(_LITERAL_RE.sub(lambda m: _LITERALS[m.group(0)], seg.text))
        else:
            parts.append(seg.text)
    return "".join(parts)


def _strip_comments(text: str) -> str:
    return "".join(seg.text for seg in _segments(text) if seg.kind != _COMMENT)


def _requote(segment: _Segment) -> str:
    """Rewrite one string segment as a double-quoted JSON string body."""
    raw = segment.text
    quote = raw[0]
    body = raw[1:-1] if segment.closed else raw[1:]

    out = ['"']
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch == "\\":
            if i + 1 >= n:
                out.append("\\\\")
                i += 1
                continue
            nxt = body[i + 1]
            if nxt == "'":
                out.append("'")
            elif nxt == "\n":
                pass  # line continuation
            elif nxt == "x" and _HEX_ESCAPE_RE.match(body, i + 2):
                out.append("\\u00" + body[i + 2:i + 4])
                i += 4
                continue
            elif nxt == "u" and not _UNICODE_ESCAPE_RE.match(body, i + 2):
                out.append("\\\\u")
            elif nxt in _JSON_ESCAPES:
                out.append(ch + nxt)
            else:
                out.append("\\\\" + nxt)
            i += 2
            continue
        if ch == '"' and quote == "'":
            out.append('\\"')
        else:
            out.append(ch)
        i += 1
    out.append('"')
    if not segment.closed:
        out.append(_UNTERMINATED)
    return "".join(out)


def _convert_quotes(text: str, warnings: List[str]) -> str:
    parts = []
    offset = 0
    for seg in _segments(text):
        if seg.kind == _STRING:
            if not seg.closed:
                warnings.append(f"Unterminated string at offset {offset} was closed")
            parts.append(_requote(seg))
        else:
            parts.append(seg.text)
        offset += len(seg.text)
    return "".join(parts)


def _escape_control(match: "re.Match[str]") -> str:
    ch = match.group(0)
    return _CONTROL_ESCAPES.get(ch, "\\u%04x" % ord(ch))


def _escape_control_characters(text: str) -> str:
    parts = []
    for seg in _segments(text):
        if seg.kind == _STRING:
            parts.append(_CONTROL_RE.sub(_escape_control, seg.text))
        else:
            parts.append(seg.text)
    return "".join(parts)


class _RepairFailed(Exception):
    """Structural repair met something it cannot bound (outside an array)."""


class _StructureRepairer:
    """
    Re-emit a JSON-like buffer as strict JSON.

    Objects are repaired in place (separators normalized). An array that
    cannot be bounded is replaced with ``[]`` and parsing resumes at the
    array's closing bracket or at the parent's next member.
    """

    def __init__(self, text: str):
        self.text = text
        self.n = len(text)
        self.pos = 0
        self.out: List[str] = []
        self.warnings: List[str] = []
        self.stray_commas = 0
        self.missing_commas = 0

    def run(self) -> str:
        self._skip_ws()
        if self._peek() != "{":
            raise _RepairFailed("document root is not an object")
        self._object("")
        self._skip_ws()
        if self.pos < self.n:
            raise _RepairFailed("trailing content after the document")
        if self.stray_commas:
            self.warnings.append(f"Removed {self.stray_commas} stray comma(s)")
        if self.missing_commas:
            self.warnings.append(f"Inserted {self.missing_commas} missing comma(s)")
        return "".join(self.out)

    # -- low level --------------------------------------------------------

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < self.n else ""

    def _skip_ws(self) -> None:
        while self.pos < self.n and self.text[self.pos].isspace():
            self.pos += 1

    def _skip_separators(self) -> int:
        commas = 0
        while self.pos < self.n:
            ch = self.text[self.pos]
            if ch == ",":
                commas += 1
            elif not ch.isspace():
                break
            self.pos += 1
        return commas

    def _scan_string(self, pos: int) -> int:
        """Index just past the string starting at ``pos``; -1 if it never closes."""
        i = pos + 1
        while i < self.n:
            ch = self.text[i]
            if ch == "\\":
                i += 2
            elif ch == '"':
                return i + 1
            else:
                i += 1
        return -1

    def _followed_by_colon(self, pos: int) -> bool:
        while pos < self.n and self.text[pos].isspace():
            pos += 1
        return pos < self.n and self.text[pos] == ":"

    def _bare_token(self) -> str:
        match = _BARE_TOKEN_RE.match(self.text, self.pos)
        return match.group(0) if match else ""

    @staticmethod
    def _scalar(token: str) -> str:
        """JSON text for a bare scalar token, or '' when it is not one."""
        if token in _JSON_WORDS or _JSON_NUMBER_RE.match(token):
            return token
        if _PY_NUMBER_RE.match(token):
            return repr(float(token)) if any(c in token for c in ".eE") else str(int(token))
        return ""

    def _count_separators(self, commas: int, first: bool, closing: bool) -> bool:
        """Book-keep separators; returns False when a required comma is missing."""
        if first or closing:
            self.stray_commas += commas
            return True
        if commas == 0:
            return False
        self.stray_commas += commas - 1
        return True

    # -- grammar ----------------------------------------------------------

    def _object(self, path: str) -> None:
        self.pos += 1
        self.out.append("{")
        first = True
        while True:
            commas = self._skip_separators()
            ch = self._peek()
            if ch == "}":
                self._count_separators(commas, first, True)
                self.pos += 1
                self.out.append("}")
                return
            if ch == "":
                self._count_separators(commas, first, True)
                self.out.append("}")
                self.warnings.append(f"Document ended before '{path or 'document'}' was closed")
                return
            if ch != '"':
                raise _RepairFailed(f"expected a member name in '{path or 'document'}'")
            if not self._count_separators(commas, first, False):
                self.missing_commas += 1

            end = self._scan_string(self.pos)
            if end < 0 or not self._followed_by_colon(end):
                raise _RepairFailed(f"malformed member name in '{path or 'document'}'")
            name_token = self.text[self.pos:end]
            try:
                name = json.loads(name_token)
            except ValueError as e:
                raise _RepairFailed(f"malformed member name in '{path or 'document'}'") from e
            self.pos = self.text.index(":", end) + 1

            if not first:
                self.out.append(",")
            self.out.append(name_token)
            self.out.append(":")
            self._value(f"{path}.{name}" if path else name)
            first = False

    def _value(self, path: str) -> None:
        self._skip_ws()
        ch = self._peek()
        if ch == "{":
            self._object(path)
        elif ch == "[":
            self._array(path)
        elif ch == '"':
            end = self._scan_string(self.pos)
            if end < 0:
                raise _RepairFailed(f"unterminated string in '{path}'")
            self.out.append(self.text[self.pos:end])
            self.pos = end
            if self._peek() == _UNTERMINATED:
                self.pos += 1
                self.warnings.append(f"Value of '{path}' had an unterminated string")
        else:
            scalar = self._scalar(self._bare_token())
            if not scalar:
                raise _RepairFailed(f"unreadable value in '{path}'")
            self.out.append(scalar)
            self.pos += len(self._bare_token())

    def _array(self, path: str) -> None:
        mark = len(self.out)
        self.pos += 1
        self.out.append("[")
        count = 0
        last_end = self.pos
        while True:
            commas = self._skip_separators()
            ch = self._peek()
            if ch == "]":
                self._count_separators(commas, count == 0, True)
                self.pos += 1
                self.out.append("]")
                return
            if ch == "":
                return self._abandon(path, mark, "reached end of document", self.n)
            if ch == "}":
                return self._abandon(path, mark, "missing closing bracket", last_end)
            if ch == _UNTERMINATED:
                return self._abandon(path, mark, "unterminated string", self._bound_after(self.pos + 1))
            if ch == '"':
                end = self._scan_string(self.pos)
                if end < 0:
                    return self._abandon(path, mark, "unterminated string", self.n)
                if self._followed_by_colon(end):
                    return self._abandon(path, mark, "missing closing bracket", last_end)
            if not self._count_separators(commas, count == 0, False):
                return self._abandon(path, mark, "missing separator", self._bound_after(self.pos))

            if count:
                self.out.append(",")
            if ch in "[{":
                self._value(f"{path}[{count}]")
            elif ch == '"':
                end = self._scan_string(self.pos)
                self.out.append(self.text[self.pos:end])
                self.pos = end
            else:
                token = self._bare_token()
                scalar = self._scalar(token)
                if not scalar:
                    return self._abandon(path, mark, "partial element", self._bound_after(self.pos))
                self.out.append(scalar)
                self.pos += len(token)
            count += 1
            last_end = self.pos

    def _bound_after(self, pos: int) -> int:
        """Resume point for an abandoned array: past its ']' or at the next member."""
        depth = 0
        while pos < self.n:
            ch = self.text[pos]
            if ch == '"':
                end = self._scan_string(pos)
                if end < 0:
                    return self.n
                if depth == 0 and self._followed_by_colon(end):
                    return pos
                pos = end
                continue
            if ch in "[{":
                depth += 1
            elif ch == "}":
                if depth == 0:
                    return pos
                depth -= 1
            elif ch == "]":
                if depth == 0:
                    return pos + 1
                depth -= 1
            pos += 1
        return self.n

    def _abandon(self, path: str, mark: int, reason: str, resume: int) -> None:
        del self.out[mark:]
        self.out.append("[]")
        self.pos = resume
        self.warnings.append(f"Array '{path}' could not be recovered ({reason}); replaced with []")
        logger.warning("Replaced unrecoverable array %r with [] (%s)", path, reason)


def _repair_separators(text: str) -> str:
    """Plain comma clean-up, used when the structure cannot be walked."""
    text = text.replace(_UNTERMINATED, "")
    text = re.sub(r",(\s*,)+", ",", text)
    text = re.sub(r"\[\s*,", "[", text)
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    return text


def _repair_structure(text: str, warnings: List[str]) -> str:
    repairer = _StructureRepairer(text)
    try:
        repaired = repairer.run()
    except _RepairFailed as e:
        logger.debug("Structural repair gave up: %s", e)
        return _repair_separators(text)
    warnings.extend(repairer.warnings)
    return repaired


# =============================================================================
# PUBLIC API
# =============================================================================

def error_context(text: str, position: int, radius: int = CONTEXT_RADIUS) -> str:
    """Return the text around ``position`` (about 2 * radius characters)."""
    start = max(0, position - radius)
    end = min(len(text), position + radius)
    return text[start:end]


def _as_lists(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _as_lists(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    return value


def parse_alog(content: str) -> ParsedDocument:
    """
    Parse a permissive roast log document into a dict.

    Args:
        content: Full text of the document

    Returns:
        The parsed document with any recovery warnings

    Raises:
        AlogFormatError: If the document cannot be parsed even after recovery
    """
    text = preprocess_alog_content(content)
    if not text:
        raise AlogFormatError("Empty document", 0, "")

    try:
        data = ast.literal_eval(text)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
        data = None
    else:
        if not isinstance(data, dict):
            raise AlogFormatError("Document root is not an object", 0, error_context(text, 0))
        return ParsedDocument(_as_lists(data))

    logger.debug("Document is not a plain literal; running recovery passes")
    warnings: List[str] = []
    buffer = _replace_literals(text)
    buffer = _strip_comments(buffer)
    buffer = _convert_quotes(buffer, warnings)
    buffer = _escape_control_characters(buffer)
    buffer = _repair_structure(buffer, warnings)

    try:
        data = json.loads(buffer)
    except json.JSONDecodeError as e:
        raise AlogFormatError(
            f"Invalid roast log format: {e.msg}", e.pos, error_context(buffer, e.pos)
        ) from e

    if not isinstance(data, dict):
        raise AlogFormatError("Document root is not an object", 0, error_context(buffer, 0))

    if warnings:
        logger.info("Recovered roast log with %d repair(s)", len(warnings))
    return ParsedDocument(data, warnings, recovered=True)


def looks_like_alog(content: str) -> bool:
    """Cheap check that a text is a roast log object with time-series markers."""
    trimmed = preprocess_alog_content(content)
    if not (trimmed.startswith("{") and trimmed.endswith("}")):
        return False
    return any(
        f"{q}{key}{q}" in trimmed
        for key in ("timex", "temp1", "timeindex")
        for q in ("'", '"')
    )


def load_alog(alog_path: Union[str, Path]) -> ParsedDocument:
    """
    Read and parse a roast log file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        AlogFormatError: If the document cannot be parsed
    """
    alog_path = Path(alog_path)
    if not alog_path.exists():
        raise FileNotFoundError(f"ALOG file not found: {alog_path}")

    with open(alog_path, "r", encoding="utf-8", errors="replace") as f:
        return parse_alog(f.read())


__all__ = [
    "ParsedDocument",
    "error_context",
    "load_alog",
    "looks_like_alog",
    "parse_alog",
    "preprocess_alog_content",
]

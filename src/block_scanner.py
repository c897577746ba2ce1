"""
Block Scanner: lifts complete registration statements out of a source buffer.

Given the offset of a registration keyword (``server.tool(`` and friends),
scan() walks forward from the call's opening parenthesis with a string-,
escape- and comment-aware balanced-parenthesis reader and returns either the
whole statement as an ExtractedUnit or a ScanFailure describing why it could
not be delimited.

Reader state:
  - depth          parenthesis depth, only updated outside strings
  - quote          active quote character while inside a string literal
  - escaped        the next character is consumed without interpretation
  - substitutions  one brace counter per open ``${`` inside a template literal

Template literal substitutions are tracked as code, so quotes and
parentheses inside ``${ ... }`` do not desynchronize the reader. Regular
expression literals are not recognized.

Usage:
    from block_scanner import scan, iter_registrations

    result = scan(buffer, buffer.index("server.tool("))
    for keyword, result in iter_registrations(buffer, DEFAULT_KEYWORDS):
        ...
"""

from __future__ import annotations

from typing import Iterator, Mapping

from lark.exceptions import LarkError

from call_head import parse_call_head
from split_ir import (
    ExtractedUnit,
    FailureReason,
    ScanFailure,
    ScanResult,
    SourceRange,
    UnitKind,
)

DEFAULT_KEYWORDS: dict[str, UnitKind] = {
    "server.tool(": UnitKind.OPERATION,
    "server.prompt(": UnitKind.PROMPT_TEMPLATE,
}

QUOTE_CHARS = frozenset({'"', "'", "`"})
TERMINATOR = ";"

_EXCERPT_LEN = 60


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def _excerpt(buffer: str, offset: int) -> str:
    """First line of the buffer from offset, clipped for log output."""
    line = buffer[offset:offset + _EXCERPT_LEN].split("\n", 1)[0]
    return line.rstrip()


def _failure(
    buffer: str,
    offset: int,
    reason: FailureReason,
    message: str,
    resume_offset: int,
) -> ScanFailure:
    return ScanFailure(
        offset=offset,
        reason=reason,
        message=message,
        resume_offset=resume_offset,
        excerpt=_excerpt(buffer, offset),
    )


# ============================================================
# Balanced-Parenthesis Reader
# ============================================================


def _match_call(buffer: str, open_idx: int) -> tuple[int, int | None, ScanFailure | None]:
    """Find the parenthesis closing the one at open_idx.

    Returns (close_idx, name_end, failure). name_end is the index just past
    the first string literal that closes at call depth 1, or None if there
    is none. On failure close_idx is -1.
    """
    n = len(buffer)
    depth = 0
    quote: str | None = None
    string_start = -1
    escaped = False
    substitutions: list[int] = []
    name_end: int | None = None

    i = open_idx
    while i < n:
        ch = buffer[i]

        if escaped:
            escaped = False
            i += 1
            continue

        if ch == "\\":
            escaped = True
            i += 1
            continue

        # --- Inside a string literal ---
        if quote is not None:
            if ch == quote:
                quote = None
                if depth == 1 and not substitutions and name_end is None:
                    name_end = i + 1
            elif quote == "`" and ch == "$" and buffer.startswith("{", i + 1):
                substitutions.append(0)
                quote = None
                i += 2
                continue
            i += 1
            continue

        # --- Code ---
        if ch == "/" and i + 1 < n and buffer[i + 1] == "/":
            newline = buffer.find("\n", i + 2)
            i = n if newline == -1 else newline + 1
            continue

        if ch == "/" and i + 1 < n and buffer[i + 1] == "*":
            close = buffer.find("*/", i + 2)
            if close == -1:
                return -1, name_end, _failure(
                    buffer, i, FailureReason.UNTERMINATED_COMMENT,
                    f"block comment opened at offset {i} is never closed", i + 1,
                )
            i = close + 2
            continue

        if ch in QUOTE_CHARS:
            quote = ch
            string_start = i
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i, name_end, None
        elif substitutions and ch == "{":
            substitutions[-1] += 1
        elif substitutions and ch == "}":
            if substitutions[-1] == 0:
                # Closes the ${ ... } substitution; back inside the template.
                substitutions.pop()
                quote = "`"
            else:
                substitutions[-1] -= 1
        i += 1

    if quote is not None:
        return -1, name_end, _failure(
            buffer, string_start, FailureReason.UNTERMINATED_STRING,
            f"string literal opened with {quote} at offset {string_start} "
            f"is never closed", string_start + 1,
        )
    if substitutions:
        return -1, name_end, _failure(
            buffer, open_idx, FailureReason.UNTERMINATED_STRING,
            f"template substitution inside the call at offset {open_idx} "
            f"is never closed", open_idx + 1,
        )
    return -1, name_end, _failure(
        buffer, open_idx, FailureReason.UNBALANCED_DELIMITERS,
        f"reached end of buffer with {depth} unclosed parenthes"
        f"{'is' if depth == 1 else 'es'}", open_idx + 1,
    )


def _skip_trivia(buffer: str, i: int) -> int:
    """First index at or after i that is not whitespace or a comment.

    Returns len(buffer) if only trivia (or an unclosed comment) remains.
    """
    n = len(buffer)
    while i < n:
        if buffer[i].isspace():
            i += 1
        elif buffer.startswith("//", i):
            newline = buffer.find("\n", i + 2)
            i = n if newline == -1 else newline + 1
        elif buffer.startswith("/*", i):
            close = buffer.find("*/", i + 2)
            i = n if close == -1 else close + 2
        else:
            break
    return i


# ============================================================
# Public API
# ============================================================


def scan(
    buffer: str,
    keyword_offset: int,
    kind: UnitKind = UnitKind.OPERATION,
    floor: int = 0,
) -> ScanResult:
    """Extract the registration statement whose keyword starts at keyword_offset.

    Args:
        buffer: The full source text.
        keyword_offset: Offset of the keyword; must be at or before the
            call's opening parenthesis.
        kind: Kind recorded on the extracted unit.
        floor: The unit never starts before this offset (end of the
            previously extracted unit), even if it shares its line.

    Returns:
        ExtractedUnit spanning from the start of the keyword's line through
        the terminator, or ScanFailure. Never raises for malformed input.
    """
    open_idx = buffer.find("(", keyword_offset)
    if open_idx == -1:
        return _failure(
            buffer, keyword_offset, FailureReason.UNBALANCED_DELIMITERS,
            "no opening parenthesis after keyword", keyword_offset + 1,
        )

    close_idx, name_end, failure = _match_call(buffer, open_idx)
    if failure is not None:
        # Resume just past the keyword; the next occurrence may still be sound.
        return ScanFailure(
            offset=keyword_offset,
            reason=failure.reason,
            message=failure.message,
            resume_offset=keyword_offset + 1,
            excerpt=_excerpt(buffer, keyword_offset),
        )

    # Only whitespace and comments may separate the call from its terminator.
    term_idx = _skip_trivia(buffer, close_idx + 1)
    if not buffer.startswith(TERMINATOR, term_idx):
        following = buffer[term_idx:term_idx + 1]
        found = f"found {following!r}" if following else "reached end of buffer"
        return _failure(
            buffer, keyword_offset, FailureReason.MISSING_TERMINATOR,
            f"expected '{TERMINATOR}' after the call closing at offset "
            f"{close_idx}, {found}", close_idx + 1,
        )
    end = term_idx + 1

    if name_end is None:
        return _failure(
            buffer, keyword_offset, FailureReason.MISSING_NAME,
            "call has no string literal argument to name it", end,
        )
    try:
        head = parse_call_head(buffer[keyword_offset:name_end])
    except LarkError as e:
        first_line = str(e).strip().split("\n", 1)[0]
        return _failure(
            buffer, keyword_offset, FailureReason.MISSING_NAME,
            f"first argument is not a plain string literal ({first_line})", end,
        )

    line_start = buffer.rfind("\n", 0, keyword_offset) + 1
    start = max(line_start, min(floor, keyword_offset))
    return ExtractedUnit(
        name=head.name,
        kind=kind,
        raw_text=buffer[start:end],
        source_range=SourceRange(start, end),
        keyword_offset=keyword_offset,
    )


def find_next_keyword(
    buffer: str,
    keywords: Mapping[str, UnitKind],
    start: int = 0,
) -> tuple[int, str] | None:
    """Find the earliest live occurrence of any keyword at or after start.

    start must be a code position (not inside a string or comment). The
    walk from there tracks the same string, template and comment state as
    the call reader, so keywords inside literals and comments are never
    reported, and a ``//`` inside a string does not hide the rest of its
    line. A match preceded by an identifier character (``myserver.tool(``)
    is not live.

    A ``'`` or ``"`` literal that reaches a newline is treated as ending
    there, so one unterminated quote cannot hide the rest of the buffer.
    """
    firsts = {keyword[:1] for keyword in keywords}
    n = len(buffer)
    quote: str | None = None
    substitutions: list[int] = []

    i = start
    while i < n:
        ch = buffer[i]

        if ch == "\\":
            i += 2
            continue

        # --- Inside a string literal ---
        if quote is not None:
            if ch == quote or (ch == "\n" and quote != "`"):
                quote = None
            elif quote == "`" and ch == "$" and buffer.startswith("{", i + 1):
                substitutions.append(0)
                quote = None
                i += 2
                continue
            i += 1
            continue

        # --- Code ---
        if buffer.startswith("//", i):
            newline = buffer.find("\n", i + 2)
            i = n if newline == -1 else newline + 1
            continue
        if buffer.startswith("/*", i):
            close = buffer.find("*/", i + 2)
            i = n if close == -1 else close + 2
            continue

        if ch in QUOTE_CHARS:
            quote = ch
        elif substitutions and ch == "{":
            substitutions[-1] += 1
        elif substitutions and ch == "}":
            if substitutions[-1] == 0:
                substitutions.pop()
                quote = "`"
            else:
                substitutions[-1] -= 1
        elif ch in firsts and (i == 0 or not _is_ident_char(buffer[i - 1])):
            for keyword in keywords:
                if buffer.startswith(keyword, i):
                    return i, keyword
        i += 1
    return None


def iter_registrations(
    buffer: str,
    keywords: Mapping[str, UnitKind] | None = None,
) -> Iterator[tuple[str, ScanResult]]:
    """Scan every keyword occurrence in order of appearance.

    Yields (keyword, ExtractedUnit | ScanFailure). After a unit, scanning
    resumes at the unit's end; after a failure, at its resume offset.
    """
    if keywords is None:
        keywords = DEFAULT_KEYWORDS

    pos = 0
    floor = 0
    while True:
        found = find_next_keyword(buffer, keywords, pos)
        if found is None:
            return
        offset, keyword = found
        result = scan(buffer, offset, keywords[keyword], floor=floor)
        yield keyword, result
        if isinstance(result, ExtractedUnit):
            pos = floor = result.source_range.end
        else:
            pos = max(result.resume_offset, offset + 1)

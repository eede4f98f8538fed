"""
Parsers for raw scanner output.

ripgrep (``--line-number --no-heading --with-filename``) prints one match per
line as ``path:line:content``.

weggli prints match blocks separated by ``====`` lines. Each block carries a
``File: <path>`` line and a ``Line: <start>[-<end>]`` line, and the matched
source starts three lines into the block::

    ====
    File: src/copy.c
    Line: 12-14
    {
        char buf[16];
        memcpy(buf, src, len);

A malformed line or block is skipped; the rest of the output is still parsed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from pattern_scanner.models import RawMatch, ScannerKind

logger = logging.getLogger(__name__)

BLOCK_DELIMITER = "===="
BLOCK_HEADER_LINES = 3

_FILE_RE = re.compile(r"File: (\S+)")
_LINE_RE = re.compile(r"Line: (\d+)(?:-\d+)?")


class ParseError(ValueError):
    pass


def parse_line_search_output(output: str) -> list[RawMatch]:
    matches: list[RawMatch] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        try:
            matches.append(parse_line_search_line(line))
        except ParseError as exc:
            logger.debug("Skipping ripgrep line %r: %s", line[:200], exc)
    return matches


def parse_line_search_line(line: str) -> RawMatch:
    path, sep, rest = line.partition(":")
    if not sep:
        raise ParseError("missing path separator")
    line_text, sep, content = rest.partition(":")
    if not sep:
        raise ParseError("missing line number separator")
    if not path:
        raise ParseError("empty path")
    try:
        line_number = int(line_text)
    except ValueError as exc:
        raise ParseError(f"invalid line number {line_text!r}") from exc
    return RawMatch(file_path=path, line_number=line_number, matched_text=content.strip())


def parse_structural_output(output: str) -> list[RawMatch]:
    matches: list[RawMatch] = []
    for block in _split_blocks(output):
        try:
            matches.append(parse_structural_block(block))
        except ParseError as exc:
            logger.debug("Skipping weggli block: %s", exc)
    return matches


def parse_structural_block(block: str) -> RawMatch:
    file_match = _FILE_RE.search(block)
    if not file_match:
        raise ParseError("missing 'File:' line")
    line_match = _LINE_RE.search(block)
    if not line_match:
        raise ParseError("missing 'Line:' line")

    matched_text = ""
    for line in block.split("\n")[BLOCK_HEADER_LINES:]:
        content = line.strip()
        if content:
            matched_text = content
            break

    return RawMatch(
        file_path=file_match.group(1),
        line_number=int(line_match.group(1)),
        matched_text=matched_text,
    )


def _split_blocks(output: str) -> list[str]:
    if not output.strip():
        return []
    # Text ahead of the first delimiter is not a match block.
    return output.split(BLOCK_DELIMITER)[1:]


PARSERS: dict[ScannerKind, Callable[[str], list[RawMatch]]] = {
    ScannerKind.LINE_SEARCH: parse_line_search_output,
    ScannerKind.STRUCTURAL_QUERY: parse_structural_output,
}


def parse_output(kind: ScannerKind, output: str) -> list[RawMatch]:
    return PARSERS[kind](output)


_missing = set(ScannerKind) - set(PARSERS)
if _missing:
    raise RuntimeError(f"No output parser registered for {sorted(kind.value for kind in _missing)}")

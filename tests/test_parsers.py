import pytest

from pattern_scanner.models import RawMatch, ScannerKind
from pattern_scanner.scanners.parsers import (
    ParseError,
    parse_line_search_line,
    parse_line_search_output,
    parse_output,
    parse_structural_output,
)

WEGGLI_OUTPUT = """weggli 0.2.4
====
File: src/copy.c
Line: 12-14

    char buf[16];
    memcpy(buf, src, len);
====
File: src/broken.c
no line header here
====
File: src/free.c
Line: 40

  free(p);
  use(p);
"""


def test_line_search_output():
    output = (
        "/ws/app/settings.py:10:    password = \"abc12345\"\n"
        "/ws/app/urls.py:3:api_key = 'a:b:c'\n"
    )

    assert parse_line_search_output(output) == [
        RawMatch("/ws/app/settings.py", 10, 'password = "abc12345"'),
        RawMatch("/ws/app/urls.py", 3, "api_key = 'a:b:c'"),
    ]


def test_line_search_skips_malformed_lines():
    output = "no separators at all\nfile.py:notanumber:content\n\nfile.py:7:ok\n"

    assert parse_line_search_output(output) == [RawMatch("file.py", 7, "ok")]


@pytest.mark.parametrize("line", ["nocolon", "only:one", ":5:x", "a.py:x:y"])
def test_line_search_line_errors(line):
    with pytest.raises(ParseError):
        parse_line_search_line(line)


def test_empty_output_has_no_matches():
    assert parse_line_search_output("") == []
    assert parse_structural_output("   \n") == []


def test_structural_blocks():
    matches = parse_structural_output(WEGGLI_OUTPUT)

    assert matches == [
        RawMatch("src/copy.c", 12, "char buf[16];"),
        RawMatch("src/free.c", 40, "free(p);"),
    ]


def test_structural_block_without_content_has_empty_text():
    output = "====\nFile: a.c\nLine: 3\n\n   \n"

    assert parse_structural_output(output) == [RawMatch("a.c", 3, "")]


def test_dispatch_by_scanner_kind():
    assert parse_output(ScannerKind.LINE_SEARCH, "a.py:1:x\n") == [RawMatch("a.py", 1, "x")]
    assert parse_output(ScannerKind.STRUCTURAL_QUERY, "====\nFile: a.c\nLine: 2\nbody\n") == [
        RawMatch("a.c", 2, "body")
    ]

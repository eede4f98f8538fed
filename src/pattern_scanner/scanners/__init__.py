from pattern_scanner.scanners.adapter import (
    ScannerAdapter,
    ScannerError,
    ScannerExecutionError,
    ToolNotFoundError,
)
from pattern_scanner.scanners.parsers import ParseError, parse_output

__all__ = [
    "ParseError",
    "ScannerAdapter",
    "ScannerError",
    "ScannerExecutionError",
    "ToolNotFoundError",
    "parse_output",
]

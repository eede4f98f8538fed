from __future__ import annotations

import logging
from pathlib import Path

from pattern_scanner.models import ContextWindow

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_RADIUS = 3


class ContextReadError(OSError):
    pass


class FileLineCache:
    """Lines of the files touched by one analysis run.

    The cache belongs to a single run and is cleared when the run ends.
    """

    def __init__(self) -> None:
        self._lines: dict[Path, list[str]] = {}

    def lines(self, path: Path) -> list[str]:
        key = path.resolve()
        cached = self._lines.get(key)
        if cached is None:
            cached = _read_lines(key)
            self._lines[key] = cached
        return cached

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


def extract_context(
    file_path: str | Path,
    line_number: int,
    radius: int = DEFAULT_CONTEXT_RADIUS,
    *,
    cache: FileLineCache | None = None,
) -> ContextWindow | None:
    try:
        return read_window(Path(file_path), line_number, radius, cache=cache)
    except ContextReadError as exc:
        logger.debug("No context for %s:%s: %s", file_path, line_number, exc)
        return None


def read_window(
    path: Path,
    line_number: int,
    radius: int,
    *,
    cache: FileLineCache | None = None,
) -> ContextWindow:
    lines = cache.lines(path) if cache is not None else _read_lines(path)
    last_line = len(lines)
    if line_number < 1 or line_number > last_line:
        raise ContextReadError(f"line {line_number} outside 1..{last_line}")

    radius = max(0, radius)
    start = max(1, line_number - radius)
    end = min(last_line, line_number + radius)
    return ContextWindow(text="\n".join(lines[start - 1 : end]), start_line=start, end_line=end)


def _read_lines(path: Path) -> list[str]:
    # Lines end at "\n" only, the way ripgrep numbers them.
    try:
        with path.open("r", encoding="utf-8", newline="") as handle:
            text = handle.read()
    except UnicodeDecodeError as exc:
        raise ContextReadError(f"cannot decode {path}: {exc}") from exc
    except OSError as exc:
        raise ContextReadError(str(exc)) from exc
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]

from __future__ import annotations

from pathlib import PurePath

from pattern_scanner.models import PatternRule, ScannerKind

# weggli only parses C and C++ sources.
STRUCTURAL_EXTENSIONS = frozenset({"c", "h", "cc", "cpp", "cxx", "hh", "hpp", "hxx"})

SCANNER_EXTENSION_LIMITS: dict[ScannerKind, frozenset[str] | None] = {
    ScannerKind.LINE_SEARCH: None,
    ScannerKind.STRUCTURAL_QUERY: STRUCTURAL_EXTENSIONS,
}

_LANGUAGES = {
    "js": "js",
    "ts": "js",
    "jsx": "js",
    "tsx": "js",
    "py": "python",
    "c": "c",
    "cpp": "c",
    "h": "c",
    "hpp": "c",
    "java": "java",
    "go": "go",
    "php": "php",
    "rb": "ruby",
    "html": "html",
    "htm": "html",
    "css": "css",
    "scss": "css",
    "sass": "css",
    "less": "css",
    "json": "json",
    "xml": "xml",
    "md": "markdown",
    "markdown": "markdown",
    "sh": "bash",
    "bash": "bash",
}


def extension_of(path: str | PurePath) -> str:
    return PurePath(path).suffix.lower().lstrip(".")


def language_for(path: str | PurePath) -> str:
    ext = extension_of(path)
    return _LANGUAGES.get(ext, ext or "text")


def rule_applies_to(rule: PatternRule, path: str | PurePath) -> bool:
    ext = extension_of(path)
    limit = SCANNER_EXTENSION_LIMITS[rule.scanner_kind]
    if limit is not None and ext not in limit:
        return False
    return rule.applies_to_all_files or ext in rule.supported_file_types


def effective_extensions(rule: PatternRule) -> frozenset[str] | None:
    """Extensions a workspace scan should be limited to, or None for all files."""
    limit = SCANNER_EXTENSION_LIMITS[rule.scanner_kind]
    if rule.applies_to_all_files:
        return limit
    if limit is None:
        return rule.supported_file_types
    return rule.supported_file_types & limit


def glob_patterns(extensions: frozenset[str]) -> list[str]:
    return [f"*.{ext}" for ext in sorted(extensions)]


_missing = set(ScannerKind) - set(SCANNER_EXTENSION_LIMITS)
if _missing:
    raise RuntimeError(f"No extension limits registered for {sorted(kind.value for kind in _missing)}")

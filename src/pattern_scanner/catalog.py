from __future__ import annotations

import logging

from pattern_scanner.models import AppConfig, PatternRule, ScannerKind, Severity

logger = logging.getLogger(__name__)

NO_BUILT_IN_SET = "none"

_RG = ScannerKind.LINE_SEARCH
_WEGGLI = ScannerKind.STRUCTURAL_QUERY

GENERAL_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        name="Hard-coded Credentials",
        description="Finds hard-coded passwords and API keys",
        scanner_kind=_RG,
        pattern=r"""(password|api.?key)\s*=\s*['"]([\w\W]{5,}?)['"]""",
        severity=Severity.CRITICAL,
    ),
    PatternRule(
        name="Debug Print Statements",
        description="Finds debug print statements that should be removed",
        scanner_kind=_RG,
        pattern=r"(console\.log|print|printf|System\.out\.print)\(",
        severity=Severity.INFO,
    ),
    PatternRule(
        name="Insecure Functions",
        description="Detects usage of insecure functions",
        scanner_kind=_RG,
        pattern=r"(eval|exec)\(",
        severity=Severity.CRITICAL,
    ),
)

CPP_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        name="Potential Memory Issues",
        description="Finds potential memory allocation functions",
        scanner_kind=_RG,
        pattern=r"(malloc|calloc|realloc)\(",
        severity=Severity.WARNING,
        options=("--pcre2",),
        supported_file_types=frozenset({"c", "h", "cc", "cpp", "cxx", "hpp"}),
    ),
    PatternRule(
        name="Insecure C Functions",
        description="Detects usage of insecure C functions",
        scanner_kind=_RG,
        pattern=r"(strcpy|strcat|gets|sprintf)\(",
        severity=Severity.CRITICAL,
        supported_file_types=frozenset({"c", "h", "cc", "cpp", "cxx", "hpp"}),
    ),
    PatternRule(
        name="Potential Integer Overflow",
        description="Detects patterns that might cause integer overflows",
        scanner_kind=_RG,
        pattern=r"\(.*\s*\+\s*.*\)\s*\*|\*\s*\(.*\s*\+\s*.*\)",
        severity=Severity.WARNING,
        supported_file_types=frozenset({"c", "h", "cc", "cpp", "cxx", "hpp"}),
    ),
    PatternRule(
        name="Vulnerable Memcpy Usage",
        description="Detects potentially vulnerable memcpy calls",
        scanner_kind=_WEGGLI,
        pattern="{ _ $buf[_]; memcpy($buf,_,_); }",
        severity=Severity.CRITICAL,
    ),
    PatternRule(
        name="Missing NULL Check",
        description="Finds pointer dereferences without NULL checks",
        scanner_kind=_WEGGLI,
        pattern="{ _* $p; not: if ($p == NULL) _; not: if ($p != NULL) _; *$p; }",
        severity=Severity.WARNING,
    ),
    PatternRule(
        name="Use After Free Risk",
        description="Detects potential use-after-free vulnerabilities",
        scanner_kind=_WEGGLI,
        pattern="{ free($p); _($p); }",
        severity=Severity.CRITICAL,
    ),
    PatternRule(
        name="Uninitialized Variable Usage",
        description="Detects usage of potentially uninitialized variables",
        scanner_kind=_WEGGLI,
        pattern="{ _* $p; NOT: $p = _; $func(&$p); }",
        severity=Severity.WARNING,
    ),
)

WEB_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        name="XSS Vulnerabilities",
        description="Finds potential Cross-Site Scripting vulnerabilities",
        scanner_kind=_RG,
        pattern=r"innerHTML|outerHTML|document\.write\(",
        severity=Severity.CRITICAL,
    ),
    PatternRule(
        name="Improper Content-Security-Policy",
        description="Detects unsafe CSP directives",
        scanner_kind=_RG,
        pattern=r"Content-Security-Policy.*unsafe-inline|Content-Security-Policy.*unsafe-eval",
        severity=Severity.CRITICAL,
    ),
    PatternRule(
        name="CSRF Token Missing",
        description="Detects forms without CSRF protection",
        scanner_kind=_RG,
        pattern=r"<form[^>]*>(?!.*csrf)",
        severity=Severity.WARNING,
        options=("--pcre2",),
        supported_file_types=frozenset({"html", "htm", "php", "jsx", "tsx", "vue"}),
    ),
    PatternRule(
        name="SQL Query Construction",
        description="Finds SQL queries being constructed with variables",
        scanner_kind=_RG,
        pattern=r"SELECT.*\+|INSERT.*\+|UPDATE.*\+|DELETE.*\+",
        severity=Severity.WARNING,
    ),
    PatternRule(
        name="JWT Without Verification",
        description="Finds JWT usage without verification",
        scanner_kind=_RG,
        pattern=r"jwt\.decode\(|jwt\.verify\(",
        severity=Severity.WARNING,
    ),
    PatternRule(
        name="Insecure Cookie Settings",
        description="Finds cookies set without secure flags",
        scanner_kind=_RG,
        pattern=r"setCookie|set-cookie|document\.cookie",
        severity=Severity.INFO,
    ),
    PatternRule(
        name="Potential Path Traversal",
        description="Detects patterns that might allow path traversal",
        scanner_kind=_RG,
        pattern=r"\.\./|\.\.\\",
        severity=Severity.CRITICAL,
    ),
)

BUILT_IN_SETS: dict[str, tuple[PatternRule, ...]] = {
    "general": GENERAL_RULES,
    "cpp": GENERAL_RULES + CPP_RULES,
    "web": GENERAL_RULES + WEB_RULES,
}


def resolve_rules(config: AppConfig) -> list[PatternRule]:
    """Return the ordered rule list for the configured pattern set.

    User rules stored under the active set extend the built-in set, and custom
    rules are appended last. A later rule never replaces an earlier one with the
    same name.
    """
    active = config.active_pattern_set
    if active == NO_BUILT_IN_SET:
        return _merge_unique((), config.patterns)

    if active not in BUILT_IN_SETS and active not in config.pattern_sets:
        logger.warning("Unknown pattern set %r, falling back to 'general'", active)
    base = BUILT_IN_SETS.get(active, GENERAL_RULES)

    rules = _merge_unique(base, config.pattern_sets.get(active, ()))
    return _merge_unique(rules, config.patterns)


def _merge_unique(first, second) -> list[PatternRule]:
    merged: list[PatternRule] = []
    seen: set[str] = set()
    for rule in (*first, *second):
        if rule.name in seen:
            continue
        seen.add(rule.name)
        merged.append(rule)
    return merged

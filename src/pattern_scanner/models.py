from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

WILDCARD = "*"


class ScannerKind(str, Enum):
    LINE_SEARCH = "ripgrep"
    STRUCTURAL_QUERY = "weggli"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    MEDIUM = "medium"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ScanSettings:
    context_radius: int = 3
    timeout_seconds: float = 60.0
    max_workers: int = 1


@dataclass(frozen=True)
class AppConfig:
    rg_path: str = "rg"
    weggli_path: str = "weggli"
    active_pattern_set: str = "general"
    patterns: tuple[PatternRule, ...] = ()
    pattern_sets: dict[str, tuple[PatternRule, ...]] = field(default_factory=dict)
    scan: ScanSettings = ScanSettings()

    def executable_for(self, kind: ScannerKind) -> str:
        if kind is ScannerKind.LINE_SEARCH:
            return self.rg_path
        return self.weggli_path


@dataclass(frozen=True)
class PatternRule:
    name: str
    description: str
    scanner_kind: ScannerKind
    pattern: str
    severity: Severity
    options: tuple[str, ...] = ()
    supported_file_types: frozenset[str] = frozenset({WILDCARD})

    @property
    def applies_to_all_files(self) -> bool:
        return WILDCARD in self.supported_file_types


@dataclass(frozen=True)
class RawMatch:
    file_path: str
    line_number: int
    matched_text: str


@dataclass(frozen=True)
class ContextWindow:
    text: str
    start_line: int
    end_line: int


@dataclass(frozen=True)
class Finding:
    file_path: str
    line_number: int
    matched_text: str
    rule_name: str
    rule_description: str
    scanner_kind: ScannerKind
    severity: Severity
    session_id: str
    fingerprint: str
    created_at: str
    language: str = "text"
    context_text: str | None = None
    context_start_line: int | None = None
    context_end_line: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["scanner_kind"] = self.scanner_kind.value
        payload["severity"] = self.severity.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Finding:
        values = {key: payload[key] for key in cls.__dataclass_fields__ if key in payload}
        values["scanner_kind"] = ScannerKind(values["scanner_kind"])
        values["severity"] = Severity(values["severity"])
        values["line_number"] = int(values["line_number"])
        return cls(**values)


@dataclass(frozen=True)
class SuppressionRecord:
    fingerprint: str
    session_id_at_suppression: str
    rule_name: str
    file_path: str
    line_number: int
    matched_text: str
    suppressed_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "sessionIdAtSuppression": self.session_id_at_suppression,
            "ruleName": self.rule_name,
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "matchedText": self.matched_text,
            "suppressedAt": self.suppressed_at,
        }


@dataclass(frozen=True)
class RuleFailure:
    rule_name: str
    reason: str


@dataclass(frozen=True)
class AnalysisResult:
    run_id: str
    workspace: str
    findings: tuple[Finding, ...]
    suppressed_count: int
    skipped_rules: tuple[RuleFailure, ...]
    unavailable_scanners: tuple[str, ...]
    started_at: str
    finished_at: str
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workspace": self.workspace,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "cancelled": self.cancelled,
            "findings_count": len(self.findings),
            "suppressed_count": self.suppressed_count,
            "unavailable_scanners": list(self.unavailable_scanners),
            "skipped_rules": [asdict(item) for item in self.skipped_rules],
            "findings": [item.to_dict() for item in self.findings],
        }

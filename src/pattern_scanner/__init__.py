from pattern_scanner.models import Finding, PatternRule, ScannerKind, Severity, SuppressionRecord
from pattern_scanner.pipeline import AnalysisOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AnalysisOrchestrator",
    "Finding",
    "PatternRule",
    "ScannerKind",
    "Severity",
    "SuppressionRecord",
]

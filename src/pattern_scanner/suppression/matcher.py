"""
Re-identification of suppressed findings.

A finding is suppressed when its fingerprint equals a record's fingerprint, or
failing that when the first record in store order passes every fuzzy check:

- same rule name
- same relative path, or the same file name (a moved file)
- line numbers at most ``MAX_LINE_DELTA`` apart
- matched text similarity of at least ``MIN_SIMILARITY``

The first fuzzy candidate wins even if a later record is more similar.
Levenshtein cost is O(len(a) * len(b)) per candidate, so large stores with long
matched lines are the scaling limit. The length-ratio check skips pairs that
cannot reach the threshold before any distance is computed.
"""

from __future__ import annotations

from collections.abc import Iterable

from rapidfuzz.distance import Levenshtein

from pattern_scanner.fingerprint import basename
from pattern_scanner.models import Finding, SuppressionRecord

MAX_LINE_DELTA = 15
MIN_SIMILARITY = 0.70


def text_similarity(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))``; 0.0 if either is empty."""
    if not a or not b:
        return 0.0
    return 1.0 - Levenshtein.distance(a, b) / max(len(a), len(b))


def _may_reach(a: str, b: str, threshold: float) -> bool:
    # distance >= |len(a) - len(b)|, so similarity <= min_len / max_len.
    shorter, longer = sorted((len(a), len(b)))
    return longer > 0 and shorter / longer >= threshold


def same_file(record_path: str, finding_path: str) -> bool:
    if record_path == finding_path:
        return True
    return basename(record_path) == basename(finding_path)


class SuppressionMatcher:
    def __init__(
        self,
        records: Iterable[SuppressionRecord],
        *,
        max_line_delta: int = MAX_LINE_DELTA,
        min_similarity: float = MIN_SIMILARITY,
    ):
        self.records = list(records)
        self.max_line_delta = max_line_delta
        self.min_similarity = min_similarity
        self._by_fingerprint: dict[str, SuppressionRecord] = {}
        for record in self.records:
            self._by_fingerprint.setdefault(record.fingerprint, record)

    def match(self, finding: Finding) -> SuppressionRecord | None:
        exact = self._by_fingerprint.get(finding.fingerprint)
        if exact is not None:
            return exact
        return self.fuzzy_match(finding)

    def fuzzy_match(self, finding: Finding) -> SuppressionRecord | None:
        for record in self.records:
            if record.rule_name != finding.rule_name:
                continue
            if not same_file(record.file_path, finding.file_path):
                continue
            if abs(record.line_number - finding.line_number) > self.max_line_delta:
                continue
            if not _may_reach(record.matched_text, finding.matched_text, self.min_similarity):
                continue
            if text_similarity(record.matched_text, finding.matched_text) >= self.min_similarity:
                return record
        return None

    def is_suppressed(self, finding: Finding) -> bool:
        return self.match(finding) is not None

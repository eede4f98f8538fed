from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from pattern_scanner.catalog import resolve_rules
from pattern_scanner.context import FileLineCache, extract_context
from pattern_scanner.fingerprint import fingerprint, relative_path
from pattern_scanner.models import (
    AnalysisResult,
    AppConfig,
    Finding,
    PatternRule,
    RawMatch,
    RuleFailure,
    ScannerKind,
    SuppressionRecord,
)
from pattern_scanner.scanners.adapter import ScannerAdapter, ScannerError, ToolNotFoundError
from pattern_scanner.scanners.filetypes import (
    STRUCTURAL_EXTENSIONS,
    effective_extensions,
    language_for,
    rule_applies_to,
)
from pattern_scanner.scanners.parsers import parse_output
from pattern_scanner.suppression.matcher import SuppressionMatcher
from pattern_scanner.suppression.store import SuppressionStore

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunCancelled(Exception):
    pass


class CancelScope:
    """Cancellation seen by one run: the caller's event or an internal abort.

    Aborting never touches the caller's event.
    """

    def __init__(self, requested: threading.Event | None = None):
        self._requested = requested
        self._aborted = threading.Event()

    def is_set(self) -> bool:
        return self._aborted.is_set() or (self._requested is not None and self._requested.is_set())

    def abort(self) -> None:
        self._aborted.set()


class AnalysisOrchestrator:
    """Runs pattern rules over a workspace and filters out dismissed findings.

    One run goes through: discover rules, drop rules whose scanner is missing,
    drop rules that cannot apply to the target, execute, parse, enrich with
    context and fingerprint, and finally drop suppressed findings.

    A failing rule is recorded in ``AnalysisResult.skipped_rules`` and the run
    goes on. Only :class:`ToolNotFoundError` aborts a run.
    """

    def __init__(
        self,
        workspace: str | Path,
        config: AppConfig | None = None,
        *,
        rules: Iterable[PatternRule] | None = None,
        adapter: ScannerAdapter | None = None,
        store: SuppressionStore | None = None,
    ):
        self.workspace = Path(workspace).resolve()
        if not self.workspace.is_dir():
            raise ValueError(f"workspace must be an existing directory: {self.workspace}")
        self.config = config or AppConfig()
        self._rules = list(rules) if rules is not None else None
        self.adapter = adapter or ScannerAdapter(self.config)
        self.store = store or SuppressionStore(self.workspace)
        self.store.load()
        # Findings of the most recent run, by session id; replaced on every run.
        self._session_findings: dict[str, Finding] = {}

    def discover_rules(self) -> list[PatternRule]:
        if self._rules is not None:
            return list(self._rules)
        return resolve_rules(self.config)

    def check_tools(self, rules: Iterable[PatternRule]) -> dict[ScannerKind, bool]:
        kinds = {rule.scanner_kind for rule in rules}
        if ScannerKind.STRUCTURAL_QUERY in kinds:
            # The structural scanner gets its file list from the line-search scanner.
            kinds.add(ScannerKind.LINE_SEARCH)
        return {kind: self.adapter.is_available(kind) for kind in sorted(kinds, key=lambda item: item.value)}

    def run_analysis(self, cancel_event: threading.Event | None = None) -> AnalysisResult:
        return self._run(None, cancel_event)

    def run_file_analysis(
        self,
        target: str | Path,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisResult:
        path = Path(target)
        if not path.is_absolute():
            path = self.workspace / path
        path = path.resolve()
        if not path.is_file():
            raise ValueError(f"target must be an existing file: {path}")
        return self._run(path, cancel_event)

    def ignore(self, session_id: str) -> SuppressionRecord | None:
        finding = self._session_findings.get(session_id)
        if finding is None:
            logger.warning("No finding with session id %s in the last run", session_id)
            return None
        return self.ignore_finding(finding)

    def ignore_finding(self, finding: Finding) -> SuppressionRecord:
        record = SuppressionRecord(
            fingerprint=finding.fingerprint,
            session_id_at_suppression=finding.session_id,
            rule_name=finding.rule_name,
            file_path=finding.file_path,
            line_number=finding.line_number,
            matched_text=finding.matched_text,
            suppressed_at=utc_now(),
        )
        if self.store.add(record):
            return record
        existing = next(item for item in self.store.records() if item.fingerprint == record.fingerprint)
        logger.info("Finding %s is already suppressed", finding.fingerprint)
        return existing

    def unignore(self, fingerprint_value: str) -> bool:
        return self.store.remove(fingerprint_value)

    def is_suppressed(self, session_id: str) -> bool:
        finding = self._session_findings.get(session_id)
        if finding is None:
            return False
        return SuppressionMatcher(self.store.records()).is_suppressed(finding)

    def _run(self, target: Path | None, cancel_event: threading.Event | None) -> AnalysisResult:
        started_at = utc_now()
        run_id = uuid.uuid4().hex
        cancel = CancelScope(cancel_event)
        scope = str(target) if target is not None else str(self.workspace)

        rules = self.discover_rules()
        if not rules:
            logger.warning("No pattern rules configured")

        availability = self.check_tools(rules)
        unavailable = tuple(kind.value for kind, ok in availability.items() if not ok)
        skipped: list[RuleFailure] = []
        runnable: list[PatternRule] = []

        for rule in rules:
            if not self._scanner_ready(rule.scanner_kind, availability, target):
                reason = f"{rule.scanner_kind.value} is not available"
                logger.warning("Skipping rule %r: %s", rule.name, reason)
                skipped.append(RuleFailure(rule_name=rule.name, reason=reason))
                continue
            if target is not None and not rule_applies_to(rule, target):
                logger.debug("Rule %r does not apply to %s", rule.name, target)
                continue
            if target is None and effective_extensions(rule) == frozenset():
                logger.debug("Rule %r has no file types its scanner can read", rule.name)
                continue
            runnable.append(rule)

        logger.info("Running %d of %d rules on %s", len(runnable), len(rules), scope)

        cache = FileLineCache()
        try:
            results, failures, cancelled = self._execute_rules(runnable, target, cancel)
            skipped.extend(failures)
            findings = [self._enrich(rule, raw, cache) for rule, matches in results for raw in matches]
        finally:
            cache.clear()

        self.store.load()
        matcher = SuppressionMatcher(self.store.records())
        visible = [finding for finding in findings if not matcher.is_suppressed(finding)]
        self._session_findings = {finding.session_id: finding for finding in findings}

        logger.info(
            "Analysis of %s finished: %d findings, %d suppressed, %d rules skipped",
            scope,
            len(visible),
            len(findings) - len(visible),
            len(skipped),
        )
        return AnalysisResult(
            run_id=run_id,
            workspace=str(self.workspace),
            findings=tuple(visible),
            suppressed_count=len(findings) - len(visible),
            skipped_rules=tuple(skipped),
            unavailable_scanners=unavailable,
            started_at=started_at,
            finished_at=utc_now(),
            cancelled=cancelled,
        )

    @staticmethod
    def _scanner_ready(
        kind: ScannerKind,
        availability: dict[ScannerKind, bool],
        target: Path | None,
    ) -> bool:
        if not availability.get(kind, False):
            return False
        if kind is ScannerKind.STRUCTURAL_QUERY and target is None:
            return availability.get(ScannerKind.LINE_SEARCH, False)
        return True

    def _execute_rules(
        self,
        rules: list[PatternRule],
        target: Path | None,
        cancel: CancelScope,
    ) -> tuple[list[tuple[PatternRule, list[RawMatch]]], list[RuleFailure], bool]:
        # Rules are kept by position, since names are only unique per rule set.
        results: list[tuple[PatternRule, list[RawMatch]]] = []
        failures: list[RuleFailure] = []

        try:
            structural_files = self._structural_files(rules, target)
        except ToolNotFoundError:
            raise
        except ScannerError as exc:
            logger.error("Could not list files for structural rules: %s", exc)
            reason = f"file listing failed: {exc}"
            failures.extend(
                RuleFailure(rule_name=rule.name, reason=reason)
                for rule in rules
                if rule.scanner_kind is ScannerKind.STRUCTURAL_QUERY
            )
            rules = [rule for rule in rules if rule.scanner_kind is not ScannerKind.STRUCTURAL_QUERY]
            structural_files = []

        workers = min(self.config.scan.max_workers, len(rules))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    (rule, executor.submit(self._run_rule, rule, target, structural_files, cancel))
                    for rule in rules
                ]
                try:
                    for rule, future in futures:
                        self._collect(rule, future.result, results, failures)
                except ToolNotFoundError:
                    cancel.abort()
                    raise
        else:
            for rule in rules:
                if cancel.is_set():
                    break
                self._collect(
                    rule,
                    lambda rule=rule: self._run_rule(rule, target, structural_files, cancel),
                    results,
                    failures,
                )

        cancelled = cancel.is_set()
        if cancelled:
            logger.warning("Analysis cancelled; returning partial results")
        return results, failures, cancelled

    @staticmethod
    def _collect(rule, produce, results, failures) -> None:
        try:
            results.append((rule, produce()))
        except ToolNotFoundError:
            raise
        except RunCancelled:
            logger.debug("Rule %r interrupted by cancellation", rule.name)
        except ScannerError as exc:
            logger.error("Rule %r failed: %s", rule.name, exc)
            failures.append(RuleFailure(rule_name=rule.name, reason=str(exc)))
        except Exception as exc:
            logger.exception("Rule %r produced unreadable output", rule.name)
            failures.append(RuleFailure(rule_name=rule.name, reason=f"unexpected error: {exc}"))

    def _structural_files(self, rules: list[PatternRule], target: Path | None) -> list[Path]:
        if not any(rule.scanner_kind is ScannerKind.STRUCTURAL_QUERY for rule in rules):
            return []
        if target is not None:
            return [target]
        files = self.adapter.list_files(self.workspace, STRUCTURAL_EXTENSIONS)
        logger.debug("Structural rules will scan %d files", len(files))
        return files

    def _run_rule(
        self,
        rule: PatternRule,
        target: Path | None,
        structural_files: list[Path],
        cancel: CancelScope,
    ) -> list[RawMatch]:
        if cancel.is_set():
            raise RunCancelled()

        if rule.scanner_kind is ScannerKind.LINE_SEARCH:
            if target is not None:
                output = self.adapter.search(rule, target)
            else:
                output = self.adapter.search(rule, self.workspace, extensions=effective_extensions(rule))
            return parse_output(rule.scanner_kind, output.stdout)

        matches: list[RawMatch] = []
        for path in structural_files:
            if cancel.is_set():
                break
            if not rule_applies_to(rule, path):
                continue
            output = self.adapter.search(rule, path)
            matches.extend(parse_output(rule.scanner_kind, output.stdout))
        return matches

    def _enrich(self, rule: PatternRule, raw: RawMatch, cache: FileLineCache) -> Finding:
        absolute = Path(raw.file_path)
        if not absolute.is_absolute():
            absolute = self.workspace / absolute
        rel = relative_path(self.workspace, absolute)
        context = extract_context(absolute, raw.line_number, self.config.scan.context_radius, cache=cache)

        return Finding(
            file_path=rel,
            line_number=raw.line_number,
            matched_text=raw.matched_text,
            rule_name=rule.name,
            rule_description=rule.description,
            scanner_kind=rule.scanner_kind,
            severity=rule.severity,
            session_id=uuid.uuid4().hex,
            fingerprint=fingerprint(rule.name, rel, raw.matched_text),
            created_at=utc_now(),
            language=language_for(rel),
            context_text=context.text if context else None,
            context_start_line=context.start_line if context else None,
            context_end_line=context.end_line if context else None,
        )

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from pattern_scanner.config import METADATA_DIR, ConfigError, load_config, load_rules
from pattern_scanner.models import AnalysisResult, Finding, ScannerKind
from pattern_scanner.pipeline import AnalysisOrchestrator
from pattern_scanner.scanners.adapter import ScannerAdapter, ToolNotFoundError
from pattern_scanner.suppression.store import SuppressionStore, SuppressionStoreError

LAST_SCAN_FILENAME = "last_scan.json"

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_TOOL_NOT_FOUND = 3


def last_scan_path(workspace: str | Path) -> Path:
    return Path(workspace).resolve() / METADATA_DIR / LAST_SCAN_FILENAME


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pattern-scanner",
        description="Run ripgrep/weggli pattern rules and track dismissed findings across scans",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Run the configured rules")
    _add_common(scan_parser)
    scan_parser.add_argument("--file", default=None, help="Scan a single file instead of the workspace")
    scan_parser.add_argument("--pattern-set", default=None, help="general, cpp, web, none or a custom set")
    scan_parser.add_argument("--rules", default=None, help="JSON rules file replacing the pattern sets")
    scan_parser.add_argument("--output", default=None, help="Also write the result JSON to this path")

    ignore_parser = subparsers.add_parser("ignore", help="Dismiss a finding from the last scan")
    _add_common(ignore_parser)
    ignore_parser.add_argument("finding_id", help="Session id or fingerprint of the finding")
    ignore_parser.add_argument("--from", dest="source", default=None, help="Scan result JSON to read")

    unignore_parser = subparsers.add_parser("unignore", help="Restore a dismissed finding")
    _add_common(unignore_parser)
    unignore_parser.add_argument("fingerprint")

    ignored_parser = subparsers.add_parser("ignored", help="List dismissed findings")
    _add_common(ignored_parser)

    tools_parser = subparsers.add_parser("tools", help="Check that the scanners can be run")
    _add_common(tools_parser)

    return parser


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace", default=".", help="Workspace root (default: current directory)")
    parser.add_argument("--config", default=None, help="Config JSON (default: .pattern-scanner/config.json)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    workspace = Path(args.workspace)
    if not workspace.is_dir():
        parser.error(f"Workspace is not a directory: {workspace}")
        return EXIT_USAGE

    try:
        config = load_config(args.config, workspace=workspace)
    except ConfigError as exc:
        parser.error(str(exc))
        return EXIT_USAGE

    if args.command == "scan":
        return _scan(parser, args, workspace, config)

    if args.command == "ignore":
        return _ignore(parser, args, workspace, config)

    if args.command == "unignore":
        orchestrator = AnalysisOrchestrator(workspace, config, rules=[])
        try:
            removed = orchestrator.unignore(args.fingerprint)
        except SuppressionStoreError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        _print({"fingerprint": args.fingerprint, "removed": removed})
        return EXIT_OK

    if args.command == "ignored":
        store = SuppressionStore(workspace)
        records = store.load()
        _print({"count": len(records), "suppressions": [item.to_dict() for item in records]})
        return EXIT_OK

    if args.command == "tools":
        adapter = ScannerAdapter(config)
        _print(
            {
                kind.value: {"executable": adapter.executable(kind), "available": adapter.is_available(kind)}
                for kind in ScannerKind
            }
        )
        return EXIT_OK

    parser.error(f"Unsupported command: {args.command}")
    return EXIT_USAGE


def _scan(parser, args, workspace: Path, config) -> int:
    if args.pattern_set:
        config = replace(config, active_pattern_set=args.pattern_set)

    rules = None
    if args.rules:
        try:
            rules = load_rules(args.rules)
        except ConfigError as exc:
            parser.error(str(exc))
            return EXIT_USAGE

    orchestrator = AnalysisOrchestrator(workspace, config, rules=rules)
    try:
        if args.file:
            result = orchestrator.run_file_analysis(args.file)
        else:
            result = orchestrator.run_analysis()
    except ToolNotFoundError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_TOOL_NOT_FOUND
    except ValueError as exc:
        parser.error(str(exc))
        return EXIT_USAGE

    _write_result(last_scan_path(workspace), result)
    if args.output:
        _write_result(Path(args.output), result)
    _print(result.to_dict())
    return EXIT_OK


def _ignore(parser, args, workspace: Path, config) -> int:
    source = Path(args.source) if args.source else last_scan_path(workspace)
    if not source.exists():
        parser.error(f"No scan result at {source}. Run a scan first.")
        return EXIT_USAGE

    try:
        with source.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        parser.error(f"Could not read scan result {source}: {exc}")
        return EXIT_USAGE
    if not isinstance(payload, dict) or not isinstance(payload.get("findings", []), list):
        parser.error(f"Not a scan result: {source}")
        return EXIT_USAGE

    finding = _find_finding(payload.get("findings", []), args.finding_id)
    if finding is None:
        parser.error(f"Finding not found in {source}: {args.finding_id}")
        return EXIT_USAGE

    orchestrator = AnalysisOrchestrator(workspace, config, rules=[])
    try:
        record = orchestrator.ignore_finding(finding)
    except SuppressionStoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    _print(record.to_dict())
    return EXIT_OK


def _find_finding(items: list[dict], finding_id: str) -> Finding | None:
    for item in items:
        if finding_id in (item.get("session_id"), item.get("fingerprint")):
            return Finding.from_dict(item)
    return None


def _write_result(path: Path, result: AnalysisResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(result.to_dict(), handle, indent=2, ensure_ascii=True)


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=True))


if __name__ == "__main__":
    raise SystemExit(main())

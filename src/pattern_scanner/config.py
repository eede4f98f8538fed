from __future__ import annotations

import json
from pathlib import Path

from pattern_scanner.models import (
    WILDCARD,
    AppConfig,
    PatternRule,
    ScannerKind,
    ScanSettings,
    Severity,
)

METADATA_DIR = ".pattern-scanner"
CONFIG_FILENAME = "config.json"


class ConfigError(ValueError):
    pass


def default_config_path(workspace: str | Path) -> Path:
    return Path(workspace) / METADATA_DIR / CONFIG_FILENAME


def load_config(path: str | Path | None = None, *, workspace: str | Path | None = None) -> AppConfig:
    """Load the JSON config at ``path``.

    Without an explicit path the workspace's ``.pattern-scanner/config.json``
    is used when it exists; otherwise the built-in defaults apply.
    """
    if path is None:
        if workspace is None:
            return AppConfig()
        candidate = default_config_path(workspace)
        if not candidate.exists():
            return AppConfig()
        config_path = candidate
    else:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

    raw = _read_json(config_path)
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a JSON object")

    scan_raw = raw.get("scan", {})
    if not isinstance(scan_raw, dict):
        raise ConfigError("'scan' must be an object")

    try:
        scan = ScanSettings(
            context_radius=int(scan_raw.get("context_radius", 3)),
            timeout_seconds=float(scan_raw.get("timeout_seconds", 60.0)),
            max_workers=max(1, int(scan_raw.get("max_workers", 1))),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid 'scan' settings: {exc}") from exc

    sets_raw = raw.get("pattern_sets", {})
    if not isinstance(sets_raw, dict):
        raise ConfigError("'pattern_sets' must be an object")

    return AppConfig(
        rg_path=str(raw.get("rg_path", "rg")),
        weggli_path=str(raw.get("weggli_path", "weggli")),
        active_pattern_set=str(raw.get("active_pattern_set", "general")).strip() or "general",
        patterns=tuple(parse_rules(raw.get("patterns", []), allow_empty=True)),
        pattern_sets={
            str(name): tuple(parse_rules(items, allow_empty=True)) for name, items in sets_raw.items()
        },
        scan=scan,
    )


def load_rules(path: str | Path) -> list[PatternRule]:
    rules_path = Path(path)
    if not rules_path.exists():
        raise ConfigError(f"Rules file not found: {rules_path}")
    return parse_rules(_read_json(rules_path))


def parse_rules(raw: object, *, allow_empty: bool = False) -> list[PatternRule]:
    if not isinstance(raw, list):
        raise ConfigError("Rules must be a JSON list")
    if not raw and not allow_empty:
        raise ConfigError("Rules file must contain a non-empty list")
    rules = [parse_rule(item) for item in raw]
    seen: set[str] = set()
    for rule in rules:
        if rule.name in seen:
            raise ConfigError(f"Duplicate rule name: {rule.name!r}")
        seen.add(rule.name)
    return rules


def parse_rule(item: object) -> PatternRule:
    if not isinstance(item, dict):
        raise ConfigError("Each rule entry must be an object")

    missing = [key for key in ("name", "description", "pattern", "severity") if key not in item]
    if "scannerKind" not in item and "tool" not in item:
        missing.append("scannerKind")
    if missing:
        raise ConfigError(f"Rule is missing keys: {', '.join(missing)}")

    name = str(item["name"]).strip()
    if not name:
        raise ConfigError("Rule name must not be empty")

    kind_raw = str(item.get("scannerKind", item.get("tool"))).strip().lower()
    try:
        scanner_kind = ScannerKind(kind_raw)
    except ValueError as exc:
        raise ConfigError(f"Rule {name!r} has unknown scannerKind: {kind_raw}") from exc

    severity_raw = str(item["severity"]).strip().lower()
    try:
        severity = Severity(severity_raw)
    except ValueError as exc:
        raise ConfigError(f"Rule {name!r} has unknown severity: {severity_raw}") from exc

    return PatternRule(
        name=name,
        description=str(item["description"]),
        scanner_kind=scanner_kind,
        pattern=str(item["pattern"]),
        severity=severity,
        options=tuple(_ensure_string_list(item.get("options", []))),
        supported_file_types=_file_types(item.get("supportedFileTypes")),
    )


def _file_types(value: object) -> frozenset[str]:
    types = {item.strip().lower().lstrip(".") for item in _ensure_string_list(value)}
    types.discard("")
    return frozenset(types) if types else frozenset({WILDCARD})


def _read_json(path: Path) -> object:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc


def _ensure_string_list(value: object) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError("Expected a list of strings")
    return [str(item) for item in value]

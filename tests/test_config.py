import json
from pathlib import Path

import pytest

from pattern_scanner.catalog import BUILT_IN_SETS, GENERAL_RULES, resolve_rules
from pattern_scanner.config import ConfigError, load_config, load_rules, parse_rule
from pattern_scanner.models import WILDCARD, AppConfig, ScannerKind, Severity


def _rule_entry(name="Custom", **overrides) -> dict:
    entry = {
        "name": name,
        "description": "custom rule",
        "scannerKind": "ripgrep",
        "pattern": "TODO",
        "severity": "info",
    }
    entry.update(overrides)
    return entry


def _weggli_entry() -> dict:
    entry = _rule_entry("Team rule", tool="weggli", pattern="{ _; }")
    del entry["scannerKind"]
    return entry


def _write(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_without_a_config_file(tmp_path: Path):
    config = load_config(workspace=tmp_path)

    assert config == AppConfig()
    assert config.executable_for(ScannerKind.LINE_SEARCH) == "rg"
    assert config.executable_for(ScannerKind.STRUCTURAL_QUERY) == "weggli"


def test_workspace_config_is_picked_up(tmp_path: Path):
    _write(
        tmp_path / ".pattern-scanner" / "config.json",
        {
            "rg_path": "/usr/local/bin/rg",
            "active_pattern_set": "cpp",
            "scan": {"context_radius": 5, "timeout_seconds": 12, "max_workers": 0},
            "patterns": [_rule_entry()],
            "pattern_sets": {"team": [_weggli_entry()]},
        },
    )

    config = load_config(workspace=tmp_path)

    assert config.rg_path == "/usr/local/bin/rg"
    assert config.weggli_path == "weggli"
    assert config.active_pattern_set == "cpp"
    assert config.scan.context_radius == 5
    assert config.scan.timeout_seconds == 12.0
    assert config.scan.max_workers == 1
    assert [rule.name for rule in config.patterns] == ["Custom"]
    assert config.pattern_sets["team"][0].scanner_kind is ScannerKind.STRUCTURAL_QUERY


def test_explicit_missing_config_is_an_error(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.json")


def test_invalid_json_is_a_config_error(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_config(path)


def test_bad_scan_settings(tmp_path: Path):
    path = _write(tmp_path / "config.json", {"scan": {"timeout_seconds": "soon"}})

    with pytest.raises(ConfigError, match="scan"):
        load_config(path)


def test_load_rules_file(tmp_path: Path):
    path = _write(
        tmp_path / "rules.json",
        [_rule_entry(supportedFileTypes=[".PY", "js", ""]), _rule_entry("Second", severity="Critical")],
    )

    rules = load_rules(path)

    assert [rule.name for rule in rules] == ["Custom", "Second"]
    assert rules[0].supported_file_types == frozenset({"py", "js"})
    assert rules[1].severity is Severity.CRITICAL
    assert rules[1].applies_to_all_files


def test_empty_rules_file_is_rejected(tmp_path: Path):
    with pytest.raises(ConfigError, match="non-empty"):
        load_rules(_write(tmp_path / "rules.json", []))


@pytest.mark.parametrize(
    ("entry", "message"),
    [
        ("not an object", "object"),
        ({"name": "x"}, "missing keys"),
        (_rule_entry(name="  "), "must not be empty"),
        (_rule_entry(scannerKind="semgrep"), "unknown scannerKind"),
        (_rule_entry(severity="fatal"), "unknown severity"),
        (_rule_entry(options="--pcre2"), "list of strings"),
    ],
)
def test_parse_rule_errors(entry, message):
    with pytest.raises(ConfigError, match=message):
        parse_rule(entry)


def test_empty_file_type_list_means_every_file():
    rule = parse_rule(_rule_entry(supportedFileTypes=[]))

    assert rule.supported_file_types == frozenset({WILDCARD})


def test_general_set_is_the_default():
    assert resolve_rules(AppConfig()) == list(GENERAL_RULES)


def test_cpp_set_extends_general():
    names = [rule.name for rule in resolve_rules(AppConfig(active_pattern_set="cpp"))]

    assert names[: len(GENERAL_RULES)] == [rule.name for rule in GENERAL_RULES]
    assert "Use After Free Risk" in names
    assert len(names) == len(BUILT_IN_SETS["cpp"])


def test_none_set_keeps_only_custom_rules():
    custom = parse_rule(_rule_entry())

    assert resolve_rules(AppConfig(active_pattern_set="none", patterns=(custom,))) == [custom]


def test_user_set_and_custom_rules_are_appended_without_duplicates():
    team = parse_rule(_rule_entry("Team rule"))
    clash = parse_rule(_rule_entry("Hard-coded Credentials", pattern="secret"))
    custom = parse_rule(_rule_entry())
    config = AppConfig(
        active_pattern_set="web",
        pattern_sets={"web": (team, clash)},
        patterns=(custom, team),
    )

    rules = resolve_rules(config)

    names = [rule.name for rule in rules]
    assert names == [rule.name for rule in BUILT_IN_SETS["web"]] + ["Team rule", "Custom"]
    credentials = next(rule for rule in rules if rule.name == "Hard-coded Credentials")
    assert credentials.pattern != "secret"


def test_user_defined_set_builds_on_general():
    team = parse_rule(_rule_entry("Team rule"))

    rules = resolve_rules(AppConfig(active_pattern_set="team", pattern_sets={"team": (team,)}))

    assert [rule.name for rule in rules] == [rule.name for rule in GENERAL_RULES] + ["Team rule"]


def test_unknown_set_falls_back_to_general(caplog):
    with caplog.at_level("WARNING"):
        rules = resolve_rules(AppConfig(active_pattern_set="mystery"))

    assert rules == list(GENERAL_RULES)
    assert "mystery" in caplog.text


def test_duplicate_rule_names_are_rejected(tmp_path: Path):
    path = _write(tmp_path / "rules.json", [_rule_entry("Dup"), _rule_entry("Dup", pattern="other")])

    with pytest.raises(ConfigError, match="Duplicate rule name"):
        load_rules(path)

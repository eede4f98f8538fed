from __future__ import annotations

import fnmatch
import re
import subprocess
from pathlib import Path

import pytest

from pattern_scanner.models import AppConfig, PatternRule, ScannerKind, ScanSettings, Severity
from pattern_scanner.scanners.adapter import ScannerAdapter


class FakeScanners:
    """Stands in for subprocess.run and answers like rg and weggli would."""

    def __init__(self) -> None:
        self.missing: set[str] = set()
        self.broken: set[str] = set()
        self.weggli_output: dict[str, str] = {}
        self.failures: dict[str, tuple[int, str]] = {}
        self.calls: list[list[str]] = []

    def __call__(self, cmd, text=True, capture_output=True, timeout=None, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        exe = cmd[0]
        if exe in self.missing:
            raise FileNotFoundError(2, "No such file or directory", exe)
        if cmd[1:] == ["--version"]:
            if exe in self.broken:
                return subprocess.CompletedProcess(cmd, 2, "", "broken install")
            return subprocess.CompletedProcess(cmd, 0, f"{exe} 1.0.0\n", "")
        if exe == "rg":
            return self._rg(cmd)
        if exe == "weggli":
            return self._weggli(cmd)
        raise FileNotFoundError(2, "No such file or directory", exe)

    def calls_for(self, exe: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == exe and call[1:] != ["--version"]]

    def _rg(self, cmd):
        globs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "--glob"]
        target = Path(cmd[-1])
        files = [target] if target.is_file() else sorted(p for p in target.rglob("*") if p.is_file())
        files = [p for p in files if ".pattern-scanner" not in p.parts]
        if globs:
            files = [p for p in files if any(fnmatch.fnmatch(p.name, glob) for glob in globs)]

        if "--files" in cmd:
            return subprocess.CompletedProcess(cmd, 0, "".join(f"{p}\n" for p in files), "")

        pattern = cmd[cmd.index("-e") + 1]
        if pattern in self.failures:
            code, stderr = self.failures[pattern]
            return subprocess.CompletedProcess(cmd, code, "", stderr)

        regex = re.compile(pattern)
        lines = []
        for path in files:
            for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
                if regex.search(line):
                    lines.append(f"{path}:{number}:{line}\n")
        if not lines:
            return subprocess.CompletedProcess(cmd, 1, "", "")
        return subprocess.CompletedProcess(cmd, 0, "".join(lines), "")

    def _weggli(self, cmd):
        target = cmd[-1]
        pattern = cmd[-2]
        if pattern in self.failures:
            code, stderr = self.failures[pattern]
            return subprocess.CompletedProcess(cmd, code, "", stderr)
        return subprocess.CompletedProcess(cmd, 0, self.weggli_output.get(Path(target).name, ""), "")


@pytest.fixture
def fake_scanners() -> FakeScanners:
    return FakeScanners()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(scan=ScanSettings(context_radius=3, timeout_seconds=5.0, max_workers=1))


@pytest.fixture
def adapter(config: AppConfig, fake_scanners: FakeScanners) -> ScannerAdapter:
    return ScannerAdapter(config, runner=fake_scanners)


@pytest.fixture
def credentials_rule() -> PatternRule:
    return PatternRule(
        name="Hard-coded Credentials",
        description="Finds hard-coded passwords and API keys",
        scanner_kind=ScannerKind.LINE_SEARCH,
        pattern=r"""(password|api.?key)\s*=\s*['"]([\w\W]{5,}?)['"]""",
        severity=Severity.CRITICAL,
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    lines = [f"line_{index} = {index}" for index in range(1, 10)]
    lines.append('password = "abc12345"')
    lines.extend(f"tail_{index} = {index}" for index in range(11, 15))
    (root / "settings.py").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return root

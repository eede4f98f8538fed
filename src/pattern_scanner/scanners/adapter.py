from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from pattern_scanner.models import AppConfig, PatternRule, ScannerKind
from pattern_scanner.scanners.filetypes import STRUCTURAL_EXTENSIONS, glob_patterns

logger = logging.getLogger(__name__)

NO_MATCHES_EXIT_CODE = 1

CONFIG_KEYS = {
    ScannerKind.LINE_SEARCH: "rg_path",
    ScannerKind.STRUCTURAL_QUERY: "weggli_path",
}

INSTALL_HINTS = {
    ScannerKind.LINE_SEARCH: "https://github.com/BurntSushi/ripgrep#installation",
    ScannerKind.STRUCTURAL_QUERY: "https://github.com/weggli-rs/weggli#installation",
}

Runner = Callable[..., subprocess.CompletedProcess]


class ScannerError(RuntimeError):
    pass


class ToolNotFoundError(ScannerError):
    def __init__(self, kind: ScannerKind, executable: str):
        self.kind = kind
        self.executable = executable
        super().__init__(
            f"{kind.value} executable not found: {executable!r}. "
            f"Install it ({INSTALL_HINTS[kind]}) or set '{CONFIG_KEYS[kind]}' in the config."
        )


class ScannerExecutionError(ScannerError):
    pass


@dataclass(frozen=True)
class ScannerOutput:
    stdout: str
    returncode: int


class ScannerAdapter:
    """Runs the external scanners and returns their raw output.

    ``runner`` has the signature of :func:`subprocess.run`; tests swap it for a
    fake that emulates the tools.
    """

    def __init__(self, config: AppConfig, runner: Runner | None = None):
        self.config = config
        self.timeout = config.scan.timeout_seconds
        self._runner = runner or subprocess.run

    def executable(self, kind: ScannerKind) -> str:
        return self.config.executable_for(kind)

    def is_available(self, kind: ScannerKind) -> bool:
        exe = self.executable(kind)
        try:
            process = self._runner(
                [exe, "--version"],
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.info("%s health check failed for %r: %s", kind.value, exe, exc)
            return False
        if process.returncode != 0:
            logger.info("%s health check for %r exited with %s", kind.value, exe, process.returncode)
            return False
        return True

    def search(
        self,
        rule: PatternRule,
        target: Path,
        *,
        extensions: frozenset[str] | None = None,
    ) -> ScannerOutput:
        """Run ``rule`` against ``target``.

        A structural rule must be given a single file; ``extensions`` only
        applies to line search over a directory.
        """
        return self._execute(rule.scanner_kind, COMMAND_BUILDERS[rule.scanner_kind](self, rule, target, extensions))

    def list_files(self, root: Path, extensions: frozenset[str] = STRUCTURAL_EXTENSIONS) -> list[Path]:
        cmd = [self.executable(ScannerKind.LINE_SEARCH), "--files", "--color", "never"]
        for glob in glob_patterns(extensions):
            cmd.extend(["--glob", glob])
        cmd.append(str(root))

        output = self._execute(ScannerKind.LINE_SEARCH, cmd)
        files = [Path(line.strip()) for line in output.stdout.splitlines() if line.strip()]
        return sorted(files)

    def _line_search_command(
        self,
        rule: PatternRule,
        target: Path,
        extensions: frozenset[str] | None,
    ) -> list[str]:
        cmd = [
            self.executable(ScannerKind.LINE_SEARCH),
            "--line-number",
            "--no-heading",
            "--with-filename",
            "--color",
            "never",
            *rule.options,
        ]
        if extensions is not None and target.is_dir():
            for glob in glob_patterns(extensions):
                cmd.extend(["--glob", glob])
        cmd.extend(["-e", rule.pattern, str(target)])
        return cmd

    def _structural_command(
        self,
        rule: PatternRule,
        target: Path,
        extensions: frozenset[str] | None,
    ) -> list[str]:
        return [self.executable(ScannerKind.STRUCTURAL_QUERY), *rule.options, rule.pattern, str(target)]

    def _execute(self, kind: ScannerKind, cmd: Sequence[str]) -> ScannerOutput:
        logger.debug("Running %s", " ".join(cmd))
        try:
            process = self._runner(list(cmd), text=True, capture_output=True, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise ToolNotFoundError(kind, cmd[0]) from exc
        except subprocess.TimeoutExpired as exc:
            raise ScannerExecutionError(f"{kind.value} timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise ScannerExecutionError(f"{kind.value} could not be started: {exc}") from exc

        stdout = process.stdout or ""
        stderr = (process.stderr or "").strip()
        if process.returncode == 0:
            return ScannerOutput(stdout=stdout, returncode=0)
        if process.returncode == NO_MATCHES_EXIT_CODE and not stderr:
            return ScannerOutput(stdout="", returncode=process.returncode)
        if not stderr:
            # Some exits are nonzero without a diagnostic; keep whatever was printed.
            logger.debug("%s exited with %s and no stderr", kind.value, process.returncode)
            return ScannerOutput(stdout=stdout, returncode=process.returncode)
        raise ScannerExecutionError(f"{kind.value} exited with {process.returncode}: {stderr[:500]}")


COMMAND_BUILDERS: dict[ScannerKind, Callable[..., list[str]]] = {
    ScannerKind.LINE_SEARCH: ScannerAdapter._line_search_command,
    ScannerKind.STRUCTURAL_QUERY: ScannerAdapter._structural_command,
}

_missing = set(ScannerKind) - set(COMMAND_BUILDERS)
if _missing:
    raise RuntimeError(f"No command builder registered for {sorted(kind.value for kind in _missing)}")

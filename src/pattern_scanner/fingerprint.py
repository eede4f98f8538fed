"""
Content fingerprints for findings.

A fingerprint is the SHA-256 of ``rule:relative_path:matched_text`` cut down to
24 hex characters. Paths must be workspace-relative so that two clones of the
same repository produce the same fingerprints. The truncation keeps ids short
in the suppression file at the cost of a small collision probability
(96 bits).
"""

from __future__ import annotations

import hashlib
from pathlib import Path, PurePosixPath

FINGERPRINT_LENGTH = 24


def fingerprint(rule_name: str, relative_path: str, matched_text: str) -> str:
    content = f"{rule_name}:{relative_path}:{matched_text}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def relative_path(workspace: str | Path, file_path: str | Path) -> str:
    """Express ``file_path`` relative to ``workspace`` with forward slashes.

    Relative inputs are taken as already relative to the workspace. Paths
    outside the workspace are returned unchanged (normalized to forward
    slashes).
    """
    path = Path(file_path)
    if not path.is_absolute():
        return path.as_posix()

    root = Path(workspace).resolve()
    try:
        return path.resolve().relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def basename(path: str) -> str:
    return PurePosixPath(path.replace("\\", "/")).name

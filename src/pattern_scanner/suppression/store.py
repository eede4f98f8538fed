from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from pattern_scanner.config import METADATA_DIR
from pattern_scanner.models import SuppressionRecord

logger = logging.getLogger(__name__)

IGNORED_FILENAME = "ignored.json"

_locks_guard = threading.Lock()
_workspace_locks: dict[Path, threading.Lock] = {}


class SuppressionStoreError(RuntimeError):
    pass


def workspace_lock(workspace: str | Path) -> threading.Lock:
    key = Path(workspace).resolve()
    with _locks_guard:
        lock = _workspace_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _workspace_locks[key] = lock
        return lock


class SuppressionStore:
    """Dismissed findings of one workspace, kept in ``.pattern-scanner/ignored.json``.

    Every mutation re-reads the file, applies the change and rewrites it under
    the workspace lock, so concurrent writers in this process never lose an
    update. Loading tolerates a damaged file; a mutation refuses to overwrite one.
    """

    def __init__(self, workspace: str | Path):
        self.workspace = Path(workspace).resolve()
        self.path = self.workspace / METADATA_DIR / IGNORED_FILENAME
        self._lock = workspace_lock(self.workspace)
        self._records: list[SuppressionRecord] = []

    def load(self) -> list[SuppressionRecord]:
        with self._lock:
            self._records = self._read()
            return list(self._records)

    def records(self) -> list[SuppressionRecord]:
        return list(self._records)

    def add(self, record: SuppressionRecord) -> bool:
        """Persist ``record``. Returns False if its fingerprint is already stored."""
        with self._lock:
            records = self._read(strict=True)
            if any(item.fingerprint == record.fingerprint for item in records):
                self._records = records
                return False
            records.append(record)
            self._write(records)
            self._records = records
        logger.info("Suppressed %s (%s:%s)", record.fingerprint, record.file_path, record.line_number)
        return True

    def remove(self, fingerprint: str) -> bool:
        with self._lock:
            records = self._read(strict=True)
            kept = [item for item in records if item.fingerprint != fingerprint]
            if len(kept) == len(records):
                self._records = records
                return False
            self._write(kept)
            self._records = kept
        logger.info("Removed suppression %s", fingerprint)
        return True

    def _read(self, *, strict: bool = False) -> list[SuppressionRecord]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            return self._damaged(f"could not read {self.path}: {exc}", strict)

        if not isinstance(raw, list):
            return self._damaged(f"{self.path} does not contain a list", strict)

        records: list[SuppressionRecord] = []
        seen: set[str] = set()
        for item in raw:
            record = _record_from_dict(item)
            if record is None:
                if strict:
                    raise SuppressionStoreError(
                        f"Refusing to overwrite suppressions: malformed entry in {self.path}"
                    )
                logger.warning("Skipping malformed suppression entry in %s", self.path)
                continue
            if record.fingerprint in seen:
                continue
            seen.add(record.fingerprint)
            records.append(record)
        return records

    def _damaged(self, reason: str, strict: bool) -> list[SuppressionRecord]:
        if strict:
            raise SuppressionStoreError(f"Refusing to overwrite suppressions: {reason}")
        logger.error("Ignoring suppressions: %s", reason)
        return []

    def _write(self, records: list[SuppressionRecord]) -> None:
        payload = [record.to_dict() for record in records]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".ignored-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2, ensure_ascii=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SuppressionStoreError(f"Failed to save suppressions to {self.path}: {exc}") from exc
        logger.debug("Saved %d suppressions to %s", len(records), self.path)


def _record_from_dict(item: object) -> SuppressionRecord | None:
    if not isinstance(item, dict):
        return None
    try:
        return SuppressionRecord(
            fingerprint=str(item["fingerprint"]),
            session_id_at_suppression=str(item.get("sessionIdAtSuppression", "")),
            rule_name=str(item["ruleName"]),
            file_path=str(item["filePath"]),
            line_number=int(item["lineNumber"]),
            matched_text=str(item.get("matchedText", "")),
            suppressed_at=str(item.get("suppressedAt", "")),
        )
    except (KeyError, TypeError, ValueError):
        return None

"""
Durable scan state: last successful scan time plus the fingerprint -> path registry.

Two document shapes exist on disk:

    current:  {"schemaVersion": 2, "lastScanTime": ..., "knownFiles": [{"fingerprint", "canonicalPath"}]}
    legacy:   {"lastScanTime": ..., "knownHashes": ["<fingerprint>", ...]}

Both are normalized to a ScanState in load(); nothing downstream ever sees
the legacy shape. save() always writes the current shape.
"""
import json
import logging
import os
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict

from .. import config
from ..exceptions import StateFileError
from ..models import ScanState


def _parse_timestamp(raw: str) -> datetime:
    # Legacy documents carry JS-style ISO strings ("...000Z")
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def normalize_document(doc: Dict[str, Any], min_date: datetime) -> ScanState:
    """Converts any known document shape into a ScanState."""
    if not isinstance(doc, dict):
        raise StateFileError(f"Scan state must be a JSON object, got {type(doc).__name__}")

    raw_time = doc.get("lastScanTime")
    try:
        last_scan_time = _parse_timestamp(raw_time) if raw_time else min_date
    except (TypeError, ValueError) as e:
        raise StateFileError(f"Invalid lastScanTime {raw_time!r}: {e}") from e

    known: Dict[str, str] = {}

    # Legacy: fingerprint-only list, no paths
    for fp in doc.get("knownHashes") or []:
        if not isinstance(fp, str) or not fp:
            raise StateFileError(f"Malformed knownHashes entry: {fp!r}")
        known.setdefault(fp, "")

    # Current: fingerprint + canonical path. Plain strings tolerated too.
    for entry in doc.get("knownFiles") or []:
        if isinstance(entry, str):
            known.setdefault(entry, "")
        elif isinstance(entry, dict) and entry.get("fingerprint"):
            known[str(entry["fingerprint"])] = entry.get("canonicalPath") or ""
        else:
            raise StateFileError(f"Malformed knownFiles entry: {entry!r}")

    return ScanState(last_scan_time=last_scan_time, known_files=known)


def to_document(state: ScanState) -> Dict[str, Any]:
    return {
        "schemaVersion": config.STATE_SCHEMA_VERSION,
        "lastScanTime": state.last_scan_time.isoformat(),
        "knownFiles": [
            {"fingerprint": k.fingerprint, "canonicalPath": k.canonical_path}
            for k in state.entries()
        ],
    }


class StateStore:
    def __init__(self, path: Path, min_date: datetime):
        self.path = Path(path)
        self.min_date = min_date

    def load(self) -> ScanState:
        """
        Loads the persisted state, migrating the legacy shape on the fly.
        A missing file means first run. A corrupt file is an error: silently
        starting over would re-ingest the whole share.
        """
        if not self.path.exists():
            logging.info(f"No scan state at {self.path}; starting fresh.")
            return ScanState(last_scan_time=self.min_date)

        try:
            with self.path.open("r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, ValueError) as e:
            raise StateFileError(f"Cannot read scan state {self.path}: {e}") from e

        state = normalize_document(doc, self.min_date)
        if "knownHashes" in doc:
            logging.info(f"Migrated legacy scan state ({len(state.known_files)} fingerprints).")
        return state

    def save(self, state: ScanState):
        """Atomic write: temp file in the same directory, then os.replace()."""
        payload = json.dumps(to_document(state), indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".scan-state-", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateFileError(f"Cannot write scan state {self.path}: {e}") from e

        logging.debug(f"Saved scan state: {len(state.known_files)} known files.")

    def reset(self) -> bool:
        """Deletes the state file. Returns True if one existed."""
        if self.path.exists():
            self.path.unlink()
            logging.info(f"Removed scan state {self.path}")
            return True
        return False

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple, Union


@dataclass(frozen=True)
class ScannedFile:
    """
    Represents a candidate design file found during a scan.
    """
    filename: str
    file_path: Path         # Local I/O path (inside the mount)
    canonical_path: str     # Path as recorded in the catalog (UNC style)
    file_type: str          # psd/ai
    size_bytes: int
    modified_at: datetime
    created_at: datetime
    fingerprint: str


@dataclass(frozen=True)
class KnownFile:
    fingerprint: str
    canonical_path: str = ""    # Empty for entries migrated from the legacy format


@dataclass
class ScanState:
    """
    Persisted registry of already-ingested content plus the last successful scan time.
    Keyed by fingerprint, so one fingerprint can never map to two paths.
    """
    last_scan_time: datetime
    known_files: Dict[str, str] = field(default_factory=dict)

    @property
    def known_paths(self) -> set:
        return {p for p in self.known_files.values() if p}

    def entries(self) -> List[KnownFile]:
        return [KnownFile(fp, path) for fp, path in self.known_files.items()]


@dataclass(frozen=True)
class MoveEvent:
    fingerprint: str
    old_path: str
    new_path: str


@dataclass(frozen=True)
class ScanResult:
    """
    Outcome of a single full walk. Nothing here has been persisted yet;
    the ingestion driver decides what becomes durable.
    """
    new_files: Tuple[ScannedFile, ...]
    known_files: Mapping[str, str]      # previous registry + confirmed moves
    moves: Tuple[MoveEvent, ...]
    previous_scan_time: datetime
    started_at: datetime
    enumerated: int = 0
    too_old: int = 0
    unchanged: int = 0
    fingerprinted: int = 0
    duplicates: int = 0
    errors: int = 0

    def __post_init__(self):
        # Freeze the registry view handed to consumers
        object.__setattr__(self, "known_files", MappingProxyType(dict(self.known_files)))


@dataclass(frozen=True)
class ThumbnailSuccess:
    path: Path
    width: int      # Source dimensions, not thumbnail dimensions
    height: int
    strategy: str = ""


@dataclass(frozen=True)
class ThumbnailFailure:
    reason: str     # Machine-readable code, e.g. 'no_pdf_compat'
    message: str


ThumbnailOutcome = Union[ThumbnailSuccess, ThumbnailFailure]


@dataclass
class IngestionReport:
    total: int = 0
    ingested: int = 0
    failed: int = 0
    thumbnails: int = 0
    render_queued: int = 0
    checkpoints: int = 0
    confirmed: List[str] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)

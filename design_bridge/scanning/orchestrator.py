import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC
from itertools import islice
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .. import config
from ..config import Settings
from ..exceptions import FileHashError
from ..models import ScannedFile, ScanResult, ScanState
from .filesystem import DirectoryWalker, to_canonical_path
from .hasher import FileHasher
from .moves import MoveDetector

# Per-file inspection outcomes
TOO_OLD = 'too_old'
UNCHANGED = 'unchanged'
HASHED = 'hashed'
ERROR = 'error'


def _windows(items: Iterable[Path], size: int) -> Iterator[List[Path]]:
    it = iter(items)
    while window := list(islice(it, size)):
        yield window


class ScanOrchestrator:
    """
    Runs one full pass over the scan roots and works out what is new.

    Filters run cheapest-first (mtime, then known path) so that unchanged
    files are never opened. The result is returned, not persisted.
    """

    def __init__(self,
                 settings: Settings,
                 walker: Optional[DirectoryWalker] = None,
                 hasher: Optional[FileHasher] = None,
                 move_detector: Optional[MoveDetector] = None):
        self.settings = settings
        self.walker = walker or DirectoryWalker(settings.scan_roots, settings.scan_extensions)
        self.hasher = hasher or FileHasher()
        self.move_detector = move_detector or MoveDetector()

    def canonical_path(self, path: Path) -> str:
        return to_canonical_path(path, self.settings.nas_mount_root, self.settings.agent_name)

    def scan(self, state: ScanState) -> ScanResult:
        """
        Walks every root once and returns the new-file batch plus the
        registry with move updates applied.

        Raises:
            ScanRootError: if a root is missing (checked before walking).
        """
        self.walker.validate_roots()

        started_at = datetime.now(UTC)
        since = state.last_scan_time
        known = dict(state.known_files)
        known_paths = state.known_paths

        logging.info(f"Starting incremental scan since {since.isoformat()}")
        logging.info(f"Roots: {', '.join(str(r) for r in self.walker.roots)}")
        logging.info(f"Known files: {len(known)}")

        observed: Dict[str, Set[str]] = defaultdict(set)
        enumerated: Set[str] = set()
        new_files: List[ScannedFile] = []
        new_fingerprints: Set[str] = set()
        counts = {TOO_OLD: 0, UNCHANGED: 0, HASHED: 0, ERROR: 0, 'duplicates': 0}

        workers = max(1, self.settings.scan_workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for window in _windows(self.walker, workers * 32):
                canonicals = [self.canonical_path(p) for p in window]
                outcomes = executor.map(
                    lambda item: self._inspect(item[0], item[1], since, known_paths),
                    zip(window, canonicals),
                )

                # Single writer: every mutation below happens on this thread
                for canonical, (status, record) in zip(canonicals, outcomes):
                    enumerated.add(canonical)
                    counts[status] += 1
                    if len(enumerated) % 10000 == 0:
                        logging.info(f"Scanned {len(enumerated)} files...")

                    if status != HASHED:
                        continue

                    fp = record.fingerprint
                    if fp in known:
                        observed[fp].add(canonical)
                    elif fp in new_fingerprints:
                        counts['duplicates'] += 1
                        logging.debug(f"Duplicate new content, skipping {canonical}")
                    else:
                        new_fingerprints.add(fp)
                        new_files.append(record)

        # Network calls only once enumeration is complete
        moves = self.move_detector.reconcile(known, observed, enumerated)

        logging.info(
            f"Scan complete. Scanned {len(enumerated)} files, "
            f"found {len(new_files)} new, {len(moves)} moved, {counts[ERROR]} errors."
        )

        return ScanResult(
            new_files=tuple(new_files),
            known_files=known,
            moves=tuple(moves),
            previous_scan_time=since,
            started_at=started_at,
            enumerated=len(enumerated),
            too_old=counts[TOO_OLD],
            unchanged=counts[UNCHANGED],
            fingerprinted=counts[HASHED],
            duplicates=counts['duplicates'],
            errors=counts[ERROR],
        )

    def _inspect(self,
                 path: Path,
                 canonical: str,
                 since: datetime,
                 known_paths: Set[str]) -> Tuple[str, Optional[ScannedFile]]:
        """Runs on a worker thread: stat, filter, fingerprint. No shared state is written."""
        try:
            st = path.stat()
            modified_at = datetime.fromtimestamp(st.st_mtime, UTC)

            # 1. Older than the configured cutoff
            if modified_at < self.settings.scan_min_date:
                return TOO_OLD, None

            # 2. Unchanged-file fast path
            if modified_at <= since and canonical in known_paths:
                return UNCHANGED, None

            # 3. Fingerprint
            fingerprint = self.hasher.fingerprint(path)
            created_ts = getattr(st, 'st_birthtime', st.st_ctime)
            ext = path.suffix.lower()

            return HASHED, ScannedFile(
                filename=path.name,
                file_path=path,
                canonical_path=canonical,
                file_type=config.EXT_TO_TYPE.get(ext, ext.lstrip('.')),
                size_bytes=st.st_size,
                modified_at=modified_at,
                created_at=datetime.fromtimestamp(created_ts, UTC),
                fingerprint=fingerprint,
            )
        except (OSError, FileHashError) as e:
            logging.warning(f"Failed to scan {path}: {e}")
            return ERROR, None

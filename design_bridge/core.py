import enum
import logging
import threading
import time
from datetime import datetime, UTC
from typing import Dict, Optional

from tqdm import tqdm

from . import config
from .config import Settings
from .exceptions import CatalogError, DesignBridgeError, ScanRootError, StateFileError, ThumbnailError
from .models import IngestionReport, ScanResult, ThumbnailSuccess
from .catalog.progress import ProgressReporter
from .ingestion.driver import IngestionDriver
from .scanning.filesystem import to_local_path
from .scanning.moves import MoveDetector
from .scanning.orchestrator import ScanOrchestrator
from .state.registry import StateStore
from .thumbnails.pipeline import ThumbnailPipeline


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class BridgeAgent:
    """
    Ties scan, ingestion and scheduling together.

    Cycles never overlap: a scheduled tick and a manual request both go
    through run_cycle(), which refuses to start while another cycle runs.
    """

    def __init__(self, settings: Settings, catalog, uploader=None, pipeline: Optional[ThumbnailPipeline] = None):
        self.settings = settings
        self.catalog = catalog
        self.store = StateStore(settings.state_path, settings.scan_min_date)
        self.progress = ProgressReporter(catalog)
        self.pipeline = pipeline or ThumbnailPipeline(settings)
        self.orchestrator = ScanOrchestrator(settings, move_detector=MoveDetector(catalog))
        self.driver = IngestionDriver(catalog, self.pipeline, self.store, settings,
                                      progress=self.progress, uploader=uploader)

        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._stop = threading.Event()

    @property
    def state(self) -> RunState:
        return self._state

    def _try_begin(self) -> bool:
        with self._state_lock:
            if self._state is RunState.RUNNING:
                return False
            self._state = RunState.RUNNING
            return True

    def _finish(self):
        with self._state_lock:
            self._state = RunState.IDLE

    def run_cycle(self) -> bool:
        """
        One scan + ingestion cycle. Returns False if a cycle was already running.

        Raises:
            ScanRootError: a scan root is missing; this is configuration, not transient.
            StateFileError: the scan state could not be read or checkpointed.
        """
        if not self._try_begin():
            logging.info("Scan already in progress; skipping trigger.")
            return False

        try:
            self.progress.scan("scanning")
            state = self.store.load()
            result = self.orchestrator.scan(state)
            self.progress.scan("processing", result.enumerated, len(result.new_files))
            self.driver.run(result)
            self.progress.scan("idle", result.enumerated, len(result.new_files))
        finally:
            self._finish()
        return True

    def dry_run(self) -> ScanResult:
        """Walk + fingerprint only. No catalog calls, nothing persisted."""
        orchestrator = ScanOrchestrator(self.settings, move_detector=MoveDetector(None))
        result = orchestrator.scan(self.store.load())
        for f in result.new_files:
            logging.info(f"[DRY RUN] New: {f.canonical_path} ({f.file_type}, {f.size_bytes} bytes)")
        for m in result.moves:
            logging.info(f"[DRY RUN] Move: {m.old_path} -> {m.new_path}")
        return result

    def run_forever(self):
        """Startup cycle, then interval-driven cycles plus polled manual requests."""
        interval = self.settings.scan_interval_minutes * 60
        heartbeat_every = self.settings.heartbeat_minutes * 60
        last_heartbeat = None
        last_cycle = None

        while not self._stop.is_set():
            now = time.monotonic()

            if last_heartbeat is None or now - last_heartbeat >= heartbeat_every:
                self._best_effort(self.catalog.heartbeat, "Heartbeat")
                last_heartbeat = now

            due = last_cycle is None or now - last_cycle >= interval
            requested = not due and self._best_effort(self.catalog.check_scan_request, "Scan request check")
            if due or requested:
                if requested:
                    logging.info("Manual scan requested.")
                self._guarded_cycle()
                last_cycle = time.monotonic()

            self._stop.wait(self.settings.poll_seconds)

    def stop(self):
        self._stop.set()

    def _guarded_cycle(self):
        try:
            self.run_cycle()
        except (ScanRootError, StateFileError):
            # Broken mount or unreadable state: retrying on a timer will not help
            raise
        except (DesignBridgeError, OSError) as e:
            logging.error(f"Scan cycle failed: {e}")

    def _best_effort(self, fn, label: str):
        try:
            return fn()
        except CatalogError as e:
            logging.warning(f"{label} failed: {e}")
            return None

    def reprocess(self) -> IngestionReport:
        """Regenerates thumbnails for catalog assets that have none."""
        assets = self.catalog.fetch_assets_missing_thumbnails()
        logging.info(f"Found {len(assets)} assets to process")
        report = IngestionReport(total=len(assets))
        skipped = 0

        for asset in tqdm(assets, desc="Reprocessing"):
            try:
                local = to_local_path(asset["file_path"], self.settings.nas_mount_root, self.settings.agent_name)
            except ValueError:
                skipped += 1
                continue

            asset_id = str(asset["id"])
            output = self.settings.thumbnail_dir / f"{asset_id}.jpg"
            try:
                outcome = self.pipeline.extract_path(local, asset["file_type"], output)
                self.driver.publish(asset_id, outcome, report)
                if isinstance(outcome, ThumbnailSuccess):
                    report.ingested += 1
                else:
                    report.failed += 1
            except (ThumbnailError, CatalogError, OSError) as e:
                report.failed += 1
                report.failed_files.append(asset["file_path"])
                logging.warning(f"{asset_id}: {e}")

        logging.info(
            f"Reprocess done. Success: {report.thumbnails}, Failed: {report.failed}, "
            f"Queued: {report.render_queued}, Skipped: {skipped}"
        )
        return report

    def queue_failed_thumbnails(self) -> int:
        """Queues every AI asset without a thumbnail for the desktop render agent."""
        assets = self.catalog.fetch_ai_assets_without_thumbnails()
        logging.info(f"Found {len(assets)} AI assets to queue")
        queued = 0

        for asset in tqdm(assets, desc="Queueing renders"):
            asset_id = str(asset["id"])
            try:
                self.catalog.queue_render(asset_id, config.REASON_NO_PDF_COMPAT)
                self.catalog.update_asset(asset_id, thumbnail_error=config.REASON_NO_PDF_COMPAT)
                queued += 1
            except CatalogError as e:
                logging.warning(f"Failed to queue {asset_id}: {e}")

        logging.info(f"Queue done. Queued: {queued}")
        return queued

    def backfill_dates(self) -> Dict[str, int]:
        """Re-stats every catalog asset on this host and pushes its real file dates."""
        assets = self.catalog.fetch_asset_paths()
        logging.info(f"Found {len(assets)} assets to check")
        counts = {"updated": 0, "skipped": 0, "failed": 0}

        for asset in tqdm(assets, desc="Backfilling dates"):
            try:
                local = to_local_path(asset["file_path"], self.settings.nas_mount_root, self.settings.agent_name)
            except ValueError:
                counts["skipped"] += 1
                continue

            try:
                st = local.stat()
                created_ts = getattr(st, 'st_birthtime', st.st_ctime)
                self.catalog.update_asset(
                    str(asset["id"]),
                    modified_at=datetime.fromtimestamp(st.st_mtime, UTC).isoformat(),
                    file_created_at=datetime.fromtimestamp(created_ts, UTC).isoformat(),
                )
                counts["updated"] += 1
            except (OSError, CatalogError) as e:
                counts["failed"] += 1
                logging.debug(f"Backfill failed for {asset['file_path']}: {e}")

        logging.info(
            f"Backfill done. Updated: {counts['updated']}, "
            f"Skipped: {counts['skipped']}, Failed: {counts['failed']}"
        )
        return counts

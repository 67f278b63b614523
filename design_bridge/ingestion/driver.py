import logging
from datetime import datetime
from typing import Dict, List

from tqdm import tqdm

from ..config import Settings
from ..exceptions import CatalogError, ThumbnailError
from ..models import (
    IngestionReport,
    ScannedFile,
    ScanResult,
    ScanState,
    ThumbnailOutcome,
    ThumbnailSuccess,
)
from ..catalog.progress import ProgressReporter
from ..state.registry import StateStore


class IngestionDriver:
    """
    Feeds a scan's new files to the catalog and owns every write of the scan state.

    Checkpoint rule: a snapshot contains the registry the scan started from
    (plus confirmed moves) and only those new fingerprints whose ingest and
    thumbnail stage completed. A file that fails is left out, so the next
    scan sees it as new again instead of losing it. Confirmed moves are
    written before the first file is ingested.
    """

    def __init__(self,
                 catalog,
                 pipeline,
                 store: StateStore,
                 settings: Settings,
                 progress: ProgressReporter = None,
                 uploader=None):
        self.catalog = catalog
        self.pipeline = pipeline
        self.store = store
        self.settings = settings
        self.progress = progress or ProgressReporter(catalog)
        # uploader: optional object exposing upload(path, asset_id) -> url
        self.uploader = uploader

    def run(self, result: ScanResult) -> IngestionReport:
        files = list(result.new_files)
        report = IngestionReport(total=len(files))
        base = dict(result.known_files)
        confirmed: Dict[str, str] = {}

        if not files:
            # Nothing to race against: advance the scan time and keep the moves
            self._checkpoint(base, confirmed, result.started_at, report)
            return report

        size = max(1, self.settings.ingest_batch_size)
        every = max(1, self.settings.checkpoint_every)
        batches: List[List[ScannedFile]] = [files[i:i + size] for i in range(0, len(files), size)]
        logging.info(f"Processing {len(files)} new files in {len(batches)} batches...")

        if result.moves:
            # The catalog has already applied these moves; record them before any ingest
            self._checkpoint(base, confirmed, result.previous_scan_time, report)

        with tqdm(total=len(files), desc="Ingesting") as bar:
            for index, batch in enumerate(batches, start=1):
                for file in batch:
                    if self._process(file, report):
                        confirmed[file.fingerprint] = file.canonical_path
                        report.ingested += 1
                    else:
                        report.failed += 1
                        report.failed_files.append(file.canonical_path)
                    bar.update(1)

                self.progress.ingestion(report.total, report.ingested + report.failed)

                if index % every == 0 and index < len(batches):
                    # Mid-run checkpoints never advance the scan time
                    self._checkpoint(base, confirmed, result.previous_scan_time, report)

        # Only move the fast-path cutoff forward when nothing is left to retry
        final_time = result.started_at if report.failed == 0 else result.previous_scan_time
        self._checkpoint(base, confirmed, final_time, report)

        report.confirmed = list(confirmed)
        logging.info(
            f"Ingestion complete. {report.ingested} ingested, {report.failed} failed, "
            f"{report.thumbnails} thumbnails, {report.render_queued} queued for render."
        )
        return report

    def _checkpoint(self,
                    base: Dict[str, str],
                    confirmed: Dict[str, str],
                    scan_time: datetime,
                    report: IngestionReport):
        snapshot = dict(base)
        snapshot.update(confirmed)
        self.store.save(ScanState(last_scan_time=scan_time, known_files=snapshot))
        report.checkpoints += 1
        logging.debug(f"Checkpoint {report.checkpoints}: {len(snapshot)} known files.")

    def _process(self, file: ScannedFile, report: IngestionReport) -> bool:
        """Ingest + thumbnail for one file. True only if both stages completed."""
        logging.info(f"Ingesting: {file.filename}")
        try:
            asset_id = self.catalog.ingest_asset(file)
        except CatalogError as e:
            logging.error(f"Failed to ingest {file.filename}: {e}")
            return False

        try:
            outcome = self.pipeline.extract(file, asset_id)
            self.publish(asset_id, outcome, report)
        except (ThumbnailError, CatalogError, OSError) as e:
            logging.error(f"Thumbnail stage failed for {file.filename}: {e}")
            return False

        return True

    def publish(self, asset_id: str, outcome: ThumbnailOutcome, report: IngestionReport):
        """
        Pushes a thumbnail outcome to the catalog. A typed failure is flagged on
        the asset and queued for the desktop render agent.

        Raises:
            CatalogError / OSError: the asset update or thumbnail upload failed.
        """
        if isinstance(outcome, ThumbnailSuccess):
            updates = {"width": outcome.width, "height": outcome.height, "status": "processing"}
            if self.uploader is not None:
                updates["thumbnail_url"] = self.uploader.upload(outcome.path, asset_id)
            self.catalog.update_asset(asset_id, **updates)
            report.thumbnails += 1
            logging.info(f"Thumbnail ready: {outcome.width}x{outcome.height} via {outcome.strategy}")
        else:
            logging.warning(f"Thumbnail failed ({outcome.reason}) for asset {asset_id}: {outcome.message}")
            self.catalog.update_asset(asset_id, thumbnail_error=outcome.reason)
            self._queue_render(asset_id, outcome.reason, report)

    def _queue_render(self, asset_id: str, reason: str, report: IngestionReport):
        try:
            self.catalog.queue_render(asset_id, reason)
            report.render_queued += 1
        except CatalogError as e:
            logging.warning(f"Failed to queue render for {asset_id}: {e}")

import logging


class ProgressReporter:
    """
    Best-effort telemetry. Progress must never block or abort ingestion,
    so every failure is logged and dropped.
    """

    def __init__(self, catalog=None):
        self.catalog = catalog

    def scan(self, status: str, scanned: int = 0, new: int = 0):
        if self.catalog is None:
            return
        try:
            self.catalog.report_scan_progress(status, scanned, new)
        except Exception as e:
            logging.warning(f"Scan progress report failed: {e}")

    def ingestion(self, total: int, done: int):
        if self.catalog is None:
            return
        try:
            self.catalog.report_ingestion_progress(total, done)
        except Exception as e:
            logging.warning(f"Ingestion progress report failed: {e}")

import os
from datetime import datetime, UTC
from pathlib import Path

import pytest

from design_bridge.config import Settings
from design_bridge.exceptions import CatalogError, CatalogNotFoundError
from design_bridge.models import ThumbnailSuccess


class FakeCatalog:
    """In-memory stand-in for CatalogClient. Records every call."""

    def __init__(self):
        self.ingested = []
        self.updates = []
        self.moves = []
        self.queued = []
        self.scan_progress = []
        self.ingestion_progress = []
        self.heartbeats = 0
        self.scan_requested = False
        self.fail_ingest = set()        # filenames whose ingest raises
        self.fail_moves = False
        self.gone_paths = set()          # old paths the catalog no longer has (404 on move)
        self.fail_progress = False
        self.assets_missing_thumbnails = []
        self.ai_assets_without_thumbnails = []
        self.asset_paths = []
        self._next_id = 0

    def ingest_asset(self, file):
        if file.filename in self.fail_ingest:
            raise CatalogError(f"ingest rejected {file.filename}")
        self._next_id += 1
        self.ingested.append(file)
        return f"asset-{self._next_id}"

    def update_asset(self, asset_id, **updates):
        self.updates.append((asset_id, updates))
        return {}

    def move_asset(self, old_path, new_path):
        if self.fail_moves:
            raise CatalogError("move-asset unavailable")
        if old_path in self.gone_paths:
            raise CatalogNotFoundError(f"Asset not found at old_path: {old_path}")
        self.moves.append((old_path, new_path))
        return {}

    def queue_render(self, asset_id, reason):
        self.queued.append((asset_id, reason))
        return {}

    def report_scan_progress(self, status, scanned, new, total_estimate=0):
        if self.fail_progress:
            raise CatalogError("scan-progress unavailable")
        self.scan_progress.append((status, scanned, new))

    def report_ingestion_progress(self, total, done):
        if self.fail_progress:
            raise CatalogError("ingestion-progress unavailable")
        self.ingestion_progress.append((total, done))

    def heartbeat(self):
        self.heartbeats += 1
        return {}

    def check_scan_request(self):
        return self.scan_requested

    def fetch_assets_missing_thumbnails(self):
        return list(self.assets_missing_thumbnails)

    def fetch_ai_assets_without_thumbnails(self):
        return list(self.ai_assets_without_thumbnails)

    def fetch_asset_paths(self):
        return list(self.asset_paths)


class FakePipeline:
    """Thumbnail pipeline double: succeeds unless the filename is listed in `fail`."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    def extract(self, file, asset_id):
        self.calls.append((file.filename, asset_id))
        if file.filename in self.fail:
            raise OSError(f"cannot read {file.filename}")
        return ThumbnailSuccess(Path(f"/tmp/{asset_id}.jpg"), 100, 50, "fake")


def write_file(path: Path, data: bytes, mtime: datetime = None) -> Path:
    """Writes `data` to `path` and optionally pins its modification time."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if mtime is not None:
        ts = mtime.timestamp()
        os.utime(path, (ts, ts))
    return path


@pytest.fixture
def share(tmp_path):
    """The NAS mount root. Scanning happens under share/Design."""
    root = tmp_path / "share"
    (root / "Design").mkdir(parents=True)
    return root


@pytest.fixture
def settings(tmp_path, share):
    return Settings(
        catalog_url="http://catalog.invalid",
        catalog_anon_key="anon",
        agent_name="nas",
        agent_key="bridge-agent-nas",
        scan_roots=[share / "Design"],
        scan_min_date=datetime(2020, 1, 1, tzinfo=UTC),
        scan_workers=2,
        nas_mount_root=share,
        ingest_batch_size=2,
        checkpoint_every=1,
        strategy_timeout_seconds=5.0,
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def catalog():
    return FakeCatalog()

"""
Configuration constants and environment-driven settings for the bridge agent.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import List, Optional

from .exceptions import ConfigError

# --- File Type Definitions ---
PSD_EXTS = {'.psd', '.psb'}
AI_EXTS = {'.ai'}

# Extension to Type Mapping
EXT_TO_TYPE = {}
for ext in PSD_EXTS: EXT_TO_TYPE[ext] = 'psd'
for ext in AI_EXTS: EXT_TO_TYPE[ext] = 'ai'

# Types expected to always yield a preview; every other type may lack one
ALWAYS_RENDERABLE_TYPES = {'psd'}

# --- Fingerprinting ---
# Head and tail samples; total I/O per file is bounded by 2x this value.
FINGERPRINT_SAMPLE_SIZE = 64 * 1024  # 64 KB

# --- Persistence ---
STATE_FILE_NAME = "scan-state.json"
STATE_SCHEMA_VERSION = 2

# --- Thumbnails ---
RENDER_DPI = 150
REASON_NO_PDF_COMPAT = "no_pdf_compat"
REASON_PLACEHOLDER = "placeholder_preview"

# --- Catalog API ---
CATALOG_PAGE_SIZE = 1000
HTTP_TIMEOUT_SECONDS = 30


def _env(key: str, fallback: Optional[str] = None) -> str:
    val = os.environ.get(key)
    if val is not None:
        return val
    if fallback is not None:
        return fallback
    raise ConfigError(f"Missing required environment variable: {key}")


def _env_int(key: str, fallback: int) -> int:
    raw = _env(key, str(fallback))
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _env_float(key: str, fallback: float) -> float:
    raw = _env(key, str(fallback))
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


def _split_list(raw: str) -> List[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


def parse_min_date(raw: str) -> datetime:
    """Parses SCAN_MIN_DATE ('YYYY-MM-DD' or full ISO) into an aware UTC datetime."""
    try:
        dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        raise ConfigError(f"SCAN_MIN_DATE is not a valid date: {raw!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


@dataclass
class Settings:
    # Catalog API
    catalog_url: str = ""
    catalog_anon_key: str = ""

    # Agent identity
    agent_name: str = "edgesynology2"
    agent_key: str = "bridge-agent-edgesynology2"

    # Scanning
    scan_roots: List[Path] = field(default_factory=lambda: [Path("/mnt/nas/Design")])
    scan_min_date: datetime = field(default_factory=lambda: datetime(2020, 1, 1, tzinfo=UTC))
    scan_interval_minutes: int = 10
    scan_extensions: List[str] = field(default_factory=lambda: ["psd", "ai"])
    scan_workers: int = 4
    nas_mount_root: Path = Path("/mnt/nas")

    # Ingestion / checkpointing
    ingest_batch_size: int = 20
    checkpoint_every: int = 5

    # Thumbnails
    thumbnail_max_size: int = 800
    thumbnail_quality: int = 85
    strategy_timeout_seconds: float = 180.0
    placeholder_white_mean: float = 240.0
    placeholder_max_stddev: float = 8.0
    placeholder_small_bytes: int = 6 * 1024

    # Agent loop
    poll_seconds: int = 30
    heartbeat_minutes: int = 5

    # Internal paths
    data_dir: Path = Path("data")

    @property
    def state_path(self) -> Path:
        return self.data_dir / STATE_FILE_NAME

    @property
    def thumbnail_dir(self) -> Path:
        return self.data_dir / "thumbnails"

    @classmethod
    def from_env(cls, require_catalog: bool = True) -> "Settings":
        """Builds settings from environment variables. Raises ConfigError on bad input."""
        return cls(
            catalog_url=_env("CATALOG_URL", None if require_catalog else "").rstrip("/"),
            catalog_anon_key=_env("CATALOG_ANON_KEY", None if require_catalog else ""),
            agent_name=_env("AGENT_NAME", "edgesynology2"),
            agent_key=_env("AGENT_KEY", "bridge-agent-edgesynology2"),
            scan_roots=[Path(p) for p in _split_list(_env("SCAN_ROOTS", "/mnt/nas/Design"))],
            scan_min_date=parse_min_date(_env("SCAN_MIN_DATE", "2020-01-01")),
            scan_interval_minutes=_env_int("SCAN_INTERVAL_MINUTES", 10),
            scan_extensions=[e.lower().lstrip(".") for e in _split_list(_env("SCAN_EXTENSIONS", "psd,ai"))],
            scan_workers=_env_int("SCAN_WORKERS", 4),
            nas_mount_root=Path(_env("NAS_MOUNT_ROOT", "/mnt/nas")),
            ingest_batch_size=_env_int("INGEST_BATCH_SIZE", 20),
            checkpoint_every=_env_int("CHECKPOINT_EVERY", 5),
            thumbnail_max_size=_env_int("THUMBNAIL_MAX_SIZE", 800),
            thumbnail_quality=_env_int("THUMBNAIL_QUALITY", 85),
            strategy_timeout_seconds=_env_float("STRATEGY_TIMEOUT_SECONDS", 180.0),
            placeholder_white_mean=_env_float("PLACEHOLDER_WHITE_MEAN", 240.0),
            placeholder_max_stddev=_env_float("PLACEHOLDER_MAX_STDDEV", 8.0),
            placeholder_small_bytes=_env_int("PLACEHOLDER_SMALL_BYTES", 6 * 1024),
            poll_seconds=_env_int("POLL_SECONDS", 30),
            heartbeat_minutes=_env_int("HEARTBEAT_MINUTES", 5),
            data_dir=Path(_env("DATA_DIR", str(Path.cwd() / "data"))),
        )

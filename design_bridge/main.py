import argparse
import logging
import sys
from pathlib import Path

from . import config
from .catalog.client import CatalogClient
from .config import Settings
from .core import BridgeAgent
from .exceptions import CatalogError, ConfigError, ScanRootError, StateFileError, ThumbnailError
from .models import ThumbnailSuccess
from .state.registry import StateStore
from .thumbnails.pipeline import ThumbnailPipeline


def setup_logging(data_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the data directory."""
    log_level = logging.DEBUG if verbose else logging.INFO

    data_dir.mkdir(parents=True, exist_ok=True)
    log_file = data_dir / "bridge-agent.log"

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("psd_tools").setLevel(logging.ERROR)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Design Bridge: NAS scanner and catalog ingestion agent")

    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single scan + ingestion cycle and exit")
    mode.add_argument("--dry-run", action="store_true", help="Walk and fingerprint only; no network, nothing persisted")
    mode.add_argument("--reset-state", action="store_true", help="Delete the scan state document and exit")
    mode.add_argument("--reprocess", action="store_true", help="Regenerate thumbnails for catalog assets without one")
    mode.add_argument("--queue-failed-thumbs", action="store_true", help="Queue every AI asset without a thumbnail for desktop render")
    mode.add_argument("--backfill-dates", action="store_true", help="Re-stat catalog assets and push their real file dates")
    mode.add_argument("--extract", type=Path, metavar="FILE", help="Extract a thumbnail for one file (no catalog)")

    p.add_argument("--out", type=Path, default=None, help="Output directory for --extract (default: current dir)")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)


def extract_one(settings: Settings, source: Path, out_dir: Path) -> int:
    file_type = config.EXT_TO_TYPE.get(source.suffix.lower())
    if file_type is None:
        logging.error(f"Unsupported file type: {source.suffix}")
        return 1

    out_dir.mkdir(parents=True, exist_ok=True)
    output = out_dir / f"{source.stem}.jpg"
    try:
        outcome = ThumbnailPipeline(settings).extract_path(source, file_type, output)
    except ThumbnailError as e:
        logging.error(f"Extraction failed: {e}")
        return 1

    if isinstance(outcome, ThumbnailSuccess):
        logging.info(f"Wrote {outcome.path} ({outcome.width}x{outcome.height}, {outcome.strategy})")
        return 0
    logging.warning(f"No thumbnail: {outcome.reason} ({outcome.message})")
    return 1


def main(argv=None):
    args = parse_args(argv)
    offline = args.dry_run or args.reset_state or args.extract is not None

    try:
        settings = Settings.from_env(require_catalog=not offline)
    except ConfigError as e:
        # The data dir may come from the broken env: log to stderr only
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s",
                            handlers=[logging.StreamHandler(sys.stderr)])
        logging.error(f"Configuration error: {e}")
        sys.exit(1)

    setup_logging(settings.data_dir, args.verbose)
    logging.info("=== Design Bridge Agent Started ===")
    logging.info(f"Agent: {settings.agent_name}")
    logging.info(f"Roots: {', '.join(str(r) for r in settings.scan_roots)}")

    if args.reset_state:
        removed = StateStore(settings.state_path, settings.scan_min_date).reset()
        logging.info("Scan state deleted." if removed else "No scan state to delete.")
        sys.exit(0)

    if args.extract is not None:
        sys.exit(extract_one(settings, args.extract, args.out or Path.cwd()))

    catalog = None if offline else CatalogClient(settings)
    agent = BridgeAgent(settings, catalog)

    try:
        if args.dry_run:
            logging.info("ENTERING DRY RUN MODE")
            result = agent.dry_run()
            logging.info(
                f"[DRY RUN] {result.enumerated} files, {len(result.new_files)} new, "
                f"{len(result.moves)} moved, {result.errors} errors"
            )
        elif args.reprocess:
            agent.reprocess()
        elif args.queue_failed_thumbs:
            agent.queue_failed_thumbnails()
        elif args.backfill_dates:
            agent.backfill_dates()
        elif args.once:
            agent.run_cycle()
        else:
            try:
                catalog.register_agent()
            except CatalogError as e:
                logging.warning(f"Agent registration failed: {e}")
            agent.run_forever()
    except (ScanRootError, StateFileError, CatalogError) as e:
        logging.error(f"Fatal: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        agent.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()

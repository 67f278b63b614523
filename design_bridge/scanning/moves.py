import logging
from typing import Dict, Iterable, List, Set, Tuple

from ..exceptions import CatalogError, CatalogNotFoundError
from ..models import MoveEvent


class MoveDetector:
    """
    Reconciles the registry against the canonical paths observed during a walk.

    A known fingerprint seen at a different path is a move, unless the recorded
    path was also enumerated this pass (then the new path is just a copy).
    Moves are only decided after the walk, so the catalog is never called while
    the share is still being enumerated.
    """

    def __init__(self, notifier=None):
        # notifier: any object exposing move_asset(old_path, new_path).
        # None means dry run: moves are detected and applied in memory only.
        self.notifier = notifier

    def detect(self,
               known_files: Dict[str, str],
               observed: Dict[str, Set[str]],
               enumerated_paths: Set[str]) -> Tuple[List[MoveEvent], Dict[str, str]]:
        """
        Pure decision step.

        Returns:
            (move_events, backfills) where backfills maps fingerprints migrated
            without a path to the path they were just seen at.
        """
        events: List[MoveEvent] = []
        backfills: Dict[str, str] = {}

        for fingerprint, paths in observed.items():
            recorded = known_files.get(fingerprint)
            if recorded is None or recorded in paths:
                continue

            new_path = sorted(paths)[0]
            if not recorded:
                # Legacy entry: nothing in the catalog to rename
                backfills[fingerprint] = new_path
            elif recorded in enumerated_paths:
                logging.debug(f"Duplicate content at {new_path} (original still at {recorded})")
            else:
                events.append(MoveEvent(fingerprint, recorded, new_path))

        return events, backfills

    def reconcile(self,
                  known_files: Dict[str, str],
                  observed: Dict[str, Set[str]],
                  enumerated_paths: Set[str]) -> List[MoveEvent]:
        """
        Notifies the catalog of each move, then updates `known_files` in place.
        A move whose notification fails keeps its old path so it is retried
        on the next cycle.
        """
        events, backfills = self.detect(known_files, observed, enumerated_paths)
        known_files.update(backfills)
        if backfills:
            logging.info(f"Back-filled paths for {len(backfills)} migrated entries.")

        return self.apply(known_files, events)

    def apply(self, known_files: Dict[str, str], events: Iterable[MoveEvent]) -> List[MoveEvent]:
        applied: List[MoveEvent] = []
        for event in events:
            if self.notifier is not None:
                try:
                    self.notifier.move_asset(event.old_path, event.new_path)
                except CatalogNotFoundError:
                    # Nothing left at the old path: the catalog took this move in an
                    # earlier cycle that crashed before checkpointing it
                    logging.info(f"Move already applied in catalog: {event.old_path} -> {event.new_path}")
                except CatalogError as e:
                    logging.warning(f"Move notify failed {event.old_path} -> {event.new_path}: {e}")
                    continue

            logging.info(f"Moved: {event.old_path} -> {event.new_path}")
            known_files[event.fingerprint] = event.new_path
            applied.append(event)

        return applied

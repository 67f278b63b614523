from design_bridge.scanning.moves import MoveDetector
from design_bridge.models import MoveEvent


def test_moved_file_notifies_and_updates(catalog):
    known = {"fp1": "/old/a.psd"}
    observed = {"fp1": {"/new/a.psd"}}

    moves = MoveDetector(catalog).reconcile(known, observed, {"/new/a.psd"})

    assert moves == [MoveEvent("fp1", "/old/a.psd", "/new/a.psd")]
    assert catalog.moves == [("/old/a.psd", "/new/a.psd")]
    assert known == {"fp1": "/new/a.psd"}


def test_unmoved_file_is_not_a_move(catalog):
    known = {"fp1": "/a.psd"}
    moves = MoveDetector(catalog).reconcile(known, {"fp1": {"/a.psd", "/copy/a.psd"}}, {"/a.psd", "/copy/a.psd"})

    assert moves == []
    assert catalog.moves == []
    assert known == {"fp1": "/a.psd"}


def test_copy_is_not_a_move(catalog):
    # Original path still enumerated, but its content changed; the new path is a copy
    known = {"fp1": "/a.psd"}
    moves = MoveDetector(catalog).reconcile(known, {"fp1": {"/copy/a.psd"}}, {"/a.psd", "/copy/a.psd"})

    assert moves == []
    assert known == {"fp1": "/a.psd"}


def test_legacy_entry_backfilled_without_notify(catalog):
    known = {"fp1": ""}
    moves = MoveDetector(catalog).reconcile(known, {"fp1": {"/a.psd"}}, {"/a.psd"})

    assert moves == []
    assert catalog.moves == []
    assert known == {"fp1": "/a.psd"}


def test_failed_notify_keeps_old_path(catalog):
    catalog.fail_moves = True
    known = {"fp1": "/old/a.psd"}

    moves = MoveDetector(catalog).reconcile(known, {"fp1": {"/new/a.psd"}}, {"/new/a.psd"})

    assert moves == []
    assert known == {"fp1": "/old/a.psd"}


def test_dry_run_detector_updates_in_memory():
    known = {"fp1": "/old/a.psd"}
    moves = MoveDetector(None).reconcile(known, {"fp1": {"/new/a.psd"}}, {"/new/a.psd"})
    assert len(moves) == 1
    assert known == {"fp1": "/new/a.psd"}


def test_detect_is_pure():
    known = {"fp1": "/old.psd", "fp2": ""}
    events, backfills = MoveDetector().detect(known, {"fp1": {"/b.psd", "/a.psd"}, "fp2": {"/c.psd"}}, set())

    # Deterministic choice when one fingerprint shows up at several paths
    assert events == [MoveEvent("fp1", "/old.psd", "/a.psd")]
    assert backfills == {"fp2": "/c.psd"}
    assert known == {"fp1": "/old.psd", "fp2": ""}


def test_move_already_applied_in_catalog_is_accepted(catalog):
    # Catalog renamed the asset in a cycle that crashed before checkpointing
    catalog.gone_paths = {"/old/a.psd"}
    known = {"fp1": "/old/a.psd"}

    moves = MoveDetector(catalog).reconcile(known, {"fp1": {"/new/a.psd"}}, {"/new/a.psd"})

    assert moves == [MoveEvent("fp1", "/old/a.psd", "/new/a.psd")]
    assert known == {"fp1": "/new/a.psd"}

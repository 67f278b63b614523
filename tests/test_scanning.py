import pytest
from pathlib import Path
from design_bridge.scanning.filesystem import DirectoryWalker, to_canonical_path, to_local_path
from design_bridge.scanning.hasher import FileHasher
from design_bridge.exceptions import FileHashError, ScanRootError
from design_bridge import config

from conftest import write_file


def test_walker_filters_extensions_case_insensitively(tmp_path):
    write_file(tmp_path / "a" / "poster.PSD", b"x")
    write_file(tmp_path / "a" / "logo.ai", b"x")
    write_file(tmp_path / "notes.txt", b"x")
    write_file(tmp_path / "._poster.psd", b"resource fork")

    walker = DirectoryWalker([tmp_path], ["psd", ".AI"])
    names = sorted(p.name for p in walker)

    assert names == ["logo.ai", "poster.PSD"]


def test_walker_is_restartable(tmp_path):
    write_file(tmp_path / "one.psd", b"1")
    write_file(tmp_path / "sub" / "two.psd", b"2")

    walker = DirectoryWalker([tmp_path], ["psd"])
    first = list(walker)
    second = list(walker)

    assert first == second
    assert len(first) == 2
    assert all(p.is_absolute() for p in first)


def test_walker_covers_multiple_roots(tmp_path):
    write_file(tmp_path / "r1" / "a.psd", b"a")
    write_file(tmp_path / "r2" / "b.psd", b"b")

    walker = DirectoryWalker([tmp_path / "r1", tmp_path / "r2"], ["psd"])
    assert sorted(p.name for p in walker) == ["a.psd", "b.psd"]


def test_validate_roots_missing(tmp_path):
    walker = DirectoryWalker([tmp_path / "not-mounted"], ["psd"])
    with pytest.raises(ScanRootError):
        walker.validate_roots()


def test_validate_roots_not_a_directory(tmp_path):
    f = write_file(tmp_path / "file.psd", b"x")
    with pytest.raises(ScanRootError):
        DirectoryWalker([f], ["psd"]).validate_roots()


def test_walker_skips_unreadable_subdirectory(tmp_path, monkeypatch):
    write_file(tmp_path / "ok" / "a.psd", b"a")
    write_file(tmp_path / "locked" / "b.psd", b"b")

    import os
    real_scandir = os.scandir

    def guarded(path):
        if Path(path).name == "locked":
            raise PermissionError("denied")
        return real_scandir(path)

    monkeypatch.setattr("design_bridge.scanning.filesystem.os.scandir", guarded)
    found = [p.name for p in DirectoryWalker([tmp_path], ["psd"])]

    assert found == ["a.psd"]


def test_fingerprint_is_stable(tmp_path):
    p = write_file(tmp_path / "a.psd", b"layer data" * 1000)
    hasher = FileHasher()
    assert hasher.fingerprint(p) == hasher.fingerprint(p)


def test_fingerprint_ignores_name_and_location(tmp_path):
    data = b"same content" * 500
    a = write_file(tmp_path / "a.psd", data)
    b = write_file(tmp_path / "moved" / "renamed.psd", data)
    hasher = FileHasher()
    assert hasher.fingerprint(a) == hasher.fingerprint(b)


def test_fingerprint_samples_head_and_tail_only(tmp_path):
    # Middle bytes are outside both samples
    sample = 16
    base = b"H" * sample + b"M" * 100 + b"T" * sample
    changed_middle = b"H" * sample + b"X" * 100 + b"T" * sample
    changed_tail = b"H" * sample + b"M" * 100 + b"Z" * sample

    hasher = FileHasher(sample_size=sample)
    fp = hasher.fingerprint(write_file(tmp_path / "base.psd", base))

    assert hasher.fingerprint(write_file(tmp_path / "mid.psd", changed_middle)) == fp
    assert hasher.fingerprint(write_file(tmp_path / "tail.psd", changed_tail)) != fp


def test_fingerprint_includes_size(tmp_path):
    # Identical head and tail windows, different lengths
    hasher = FileHasher(sample_size=4)
    a = write_file(tmp_path / "a.psd", b"AAAA" + b"\0" * 10 + b"ZZZZ")
    b = write_file(tmp_path / "b.psd", b"AAAA" + b"\0" * 20 + b"ZZZZ")
    assert hasher.fingerprint(a) != hasher.fingerprint(b)


def test_fingerprint_missing_file(tmp_path):
    with pytest.raises(FileHashError):
        FileHasher().fingerprint(tmp_path / "gone.psd")


def test_canonical_path_round_trip():
    mount = Path("/mnt/nas")
    canonical = to_canonical_path(Path("/mnt/nas/mac/Decor/Foo/bar.psd"), mount, "edgesynology2")

    assert canonical == "\\\\edgesynology2\\mac\\Decor\\Foo\\bar.psd"
    assert to_local_path(canonical, mount, "edgesynology2") == Path("/mnt/nas/mac/Decor/Foo/bar.psd")


def test_canonical_path_outside_mount_stays_posix():
    assert to_canonical_path(Path("/srv/other/a.ai"), Path("/mnt/nas"), "nas") == "/srv/other/a.ai"


def test_local_path_rejects_other_host():
    with pytest.raises(ValueError):
        to_local_path("\\\\otherhost\\share\\a.psd", Path("/mnt/nas"), "nas")


def test_classify_extension():
    assert config.EXT_TO_TYPE.get('.psd') == 'psd'
    assert config.EXT_TO_TYPE.get('.psb') == 'psd'
    assert config.EXT_TO_TYPE.get('.ai') == 'ai'
    assert config.EXT_TO_TYPE.get('.txt') is None


def test_local_path_rejects_unc_on_other_host_even_with_shared_prefix():
    # "nasbackup" must not be mistaken for "nas"
    with pytest.raises(ValueError):
        to_local_path("\\\\nasbackup\\Design\\a.psd", Path("/mnt/nas"), "nas")


def test_local_path_keeps_plain_posix_paths():
    assert to_local_path("/srv/other/a.ai", Path("/mnt/nas"), "nas") == Path("/srv/other/a.ai")

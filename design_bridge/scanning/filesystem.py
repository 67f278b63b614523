import os
import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, List

from ..exceptions import ScanRootError


class DirectoryWalker:
    """
    Lazy, restartable enumeration of candidate files under the scan roots.

    Each call to iter() starts a fresh depth-first walk, so the same walker
    can be reused across scan cycles.
    """

    def __init__(self, roots: Iterable[Path], extensions: Iterable[str]):
        self.roots: List[Path] = [Path(r) for r in roots]
        # Normalize 'PSD', '.psd' and 'psd' to '.psd'
        self.extensions = {'.' + e.lower().lstrip('.') for e in extensions}

    def validate_roots(self):
        """
        Fails fast on a broken mount. A missing root is a systemic problem,
        unlike one unreadable subfolder deep inside the share.
        """
        for root in self.roots:
            if not root.exists():
                raise ScanRootError(f"Scan root does not exist: {root}")
            if not root.is_dir():
                raise ScanRootError(f"Scan root is not a directory: {root}")

    def __iter__(self) -> Iterator[Path]:
        for root in self.roots:
            yield from self._iter_files(root)

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except (PermissionError, FileNotFoundError) as e:
                # Best-effort deep scan: skip the folder, keep walking
                logging.debug(f"Skipping unreadable directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            for e in entries:
                try:
                    if e.is_dir(follow_symlinks=False):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=False) and self._matches(e.name):
                        yield Path(e.path).absolute()
                except (PermissionError, FileNotFoundError):
                    continue

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

    def _matches(self, name: str) -> bool:
        # Skip AppleDouble resource forks that macOS leaves on SMB shares
        if name.startswith("._"):
            return False
        return os.path.splitext(name)[1].lower() in self.extensions


def to_canonical_path(local_path: Path, mount_root: Path, host: str) -> str:
    """
    Converts a mount path back to the UNC-style NAS path stored in the catalog.

    /mnt/nas/mac/Decor/Foo/bar.psd -> \\\\edgesynology2\\mac\\Decor\\Foo\\bar.psd
    Paths outside the mount keep their POSIX form.
    """
    posix = PurePosixPath(Path(local_path).as_posix())
    mount = PurePosixPath(Path(mount_root).as_posix())
    try:
        relative = posix.relative_to(mount)
    except ValueError:
        return str(posix)
    return "\\\\" + host + "\\" + "\\".join(relative.parts)


def to_local_path(canonical_path: str, mount_root: Path, host: str) -> Path:
    """Inverse of to_canonical_path. Raises ValueError for paths on another host."""
    normalized = canonical_path.replace("\\", "/")
    prefix = f"//{host}/"
    if normalized.lower().startswith(prefix.lower()):
        return Path(mount_root) / normalized[len(prefix):]
    if normalized.startswith("//"):
        raise ValueError(f"Path is not on {host}: {canonical_path}")
    if normalized.startswith("/"):
        return Path(normalized)
    raise ValueError(f"Path is not on {host}: {canonical_path}")

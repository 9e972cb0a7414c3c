"""Virtual disk file discovery."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from vdisk_consolidator.config.settings import normalize_extensions


def list_disk_files(root_dir: Path, extensions: Iterable[str]) -> list[Path]:
    """List disk files under a directory, recursively.

    Extensions match case-insensitively. Paths are absolute and sorted so a
    run over an unchanged folder always sees the same order.
    """
    root_dir = Path(root_dir)
    if not root_dir.is_dir():
        return []
    wanted = normalize_extensions(extensions)
    disk_files = []
    for entry in root_dir.rglob("*"):
        if entry.suffix.lower() in wanted and entry.is_file():
            disk_files.append(entry.resolve())
    return sorted(disk_files)


def get_last_modified(path: Path) -> datetime:
    """Modification time of a file as an aware UTC datetime."""
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

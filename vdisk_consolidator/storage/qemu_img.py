"""qemu-img backed disk query and merge adapters.

``qemu-img info --output=json`` reports ``backing-filename`` for overlays
(qcow2, qed, vmdk delta). ``full-backing-filename`` is used
when present, otherwise the backing name is resolved relative to the
overlay's directory.

``qemu-img commit -b`` writes the overlay's changes into the named backing
file but leaves the overlay in place, so the merger deletes it afterwards.
The merge executor's "source still exists" check therefore keeps its meaning
for this platform.

qemu cannot open differencing VHD/VHDX images (Hyper-V checkpoints), so
``.avhd``/``.avhdx`` files are rejected up front with an explicit reason
instead of a generic query failure.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from vdisk_consolidator.domain.models import DiskInfo, DiskType
from vdisk_consolidator.logging import LoggerFactory

from .command_runners import run_checked_command
from .exceptions import CommandError, DiskQueryError, MergeError

UNSUPPORTED_SUFFIXES = {
    ".avhd": "Hyper-V checkpoint (differencing VHD) is not supported by qemu-img",
    ".avhdx": "Hyper-V checkpoint (differencing VHDX) is not supported by qemu-img",
}


def resolve_backing_path(image_path: Path, info: dict) -> Path | None:
    """Resolve the absolute backing file path from qemu-img info JSON."""
    full = info.get("full-backing-filename")
    if full:
        return Path(full).resolve()
    backing = info.get("backing-filename")
    if not backing:
        return None
    backing_path = Path(backing)
    if not backing_path.is_absolute():
        backing_path = image_path.parent / backing_path
    return backing_path.resolve()


def parse_disk_info(image_path: Path, output: str) -> DiskInfo:
    """Convert qemu-img info JSON output into DiskInfo.

    Raises:
        DiskQueryError: If the output is not JSON or has no format field
    """
    try:
        info = json.loads(output)
    except json.JSONDecodeError as error:
        raise DiskQueryError(image_path, f"invalid qemu-img output: {error}") from error
    if not isinstance(info, dict) or not info.get("format"):
        raise DiskQueryError(image_path, "qemu-img did not report an image format")
    parent_path = resolve_backing_path(image_path, info)
    if parent_path is None:
        return DiskInfo(disk_type=DiskType.BASE)
    return DiskInfo(disk_type=DiskType.DIFFERENCING, parent_path=parent_path)


class QemuImg:
    """Disk query and merge adapter around the qemu-img binary."""

    def __init__(self, qemu_img_path: str = "qemu-img", log=None):
        self.qemu_img_path = qemu_img_path
        self.log = log or LoggerFactory.for_inventory()

    def _binary(self) -> str:
        found = shutil.which(self.qemu_img_path)
        return found or self.qemu_img_path

    def query_disk(self, path: Path) -> DiskInfo:
        unsupported = UNSUPPORTED_SUFFIXES.get(path.suffix.lower())
        if unsupported:
            raise DiskQueryError(path, unsupported)
        # --force-share lets us read images a running machine holds locked
        command = [self._binary(), "info", "--output=json", "--force-share", str(path)]
        try:
            output = run_checked_command(command)
        except CommandError as error:
            raise DiskQueryError(path, error.message) from error
        disk_info = parse_disk_info(path, output)
        self.log.trace(f"{path.name}: {disk_info.disk_type.value}")
        return disk_info

    def merge_disk(self, source: Path, destination: Path) -> None:
        command = [self._binary(), "commit", "-b", str(destination), str(source)]
        try:
            run_checked_command(command)
        except CommandError as error:
            raise MergeError(source, destination, error.message) from error
        try:
            source.unlink()
        except FileNotFoundError:
            pass
        except OSError as error:
            # Data is already committed; the executor reports the leftover file.
            self.log.warning(f"Unable to remove merged disk {source}: {error}")


__all__ = ["UNSUPPORTED_SUFFIXES", "QemuImg", "parse_disk_info", "resolve_backing_path"]

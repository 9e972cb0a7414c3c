"""Filesystem and qemu-img adapters for disk consolidation.

Main Functions:
    - list_disk_files(): Recursive disk file enumeration
    - QemuImg: Disk query and merge adapter

Command Execution:
    - run_checked_command(): Run command and raise CommandError on failure
"""

from .command_runners import run_checked_command
from .discovery import get_last_modified, list_disk_files
from .qemu_img import QemuImg, parse_disk_info, resolve_backing_path


__all__ = [
    "QemuImg",
    "get_last_modified",
    "list_disk_files",
    "parse_disk_info",
    "resolve_backing_path",
    "run_checked_command",
]

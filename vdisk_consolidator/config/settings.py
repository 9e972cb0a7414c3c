"""Settings storage for consolidation runs."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "VDISK_CONSOLIDATOR_SETTINGS_PATH",
        Path.home() / ".config" / "vdisk-consolidator" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
# Formats whose overlays qemu-img can both inspect and commit
DEFAULT_DISK_EXTENSIONS = (".qcow2", ".qed", ".vmdk")
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_STOP_TIMEOUT = 300.0

DEFAULT_SETTINGS: dict[str, Any] = {
    "disk_extensions": list(DEFAULT_DISK_EXTENSIONS),
    "poll_interval_seconds": DEFAULT_POLL_INTERVAL,
    "stop_timeout_seconds": DEFAULT_STOP_TIMEOUT,
    "qemu_img_path": "qemu-img",
    "virsh_path": "virsh",
    "libvirt_uri": None,
    "restart_machines": False,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Path | None = None) -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def get_float(key: str, default: float) -> float:
    value = get_setting(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def get_extensions() -> tuple[str, ...]:
    """Configured disk extensions, lower-cased and dot-prefixed."""
    raw = get_setting("disk_extensions") or DEFAULT_DISK_EXTENSIONS
    if isinstance(raw, str):
        raw = [raw]
    return normalize_extensions(raw)


def normalize_extensions(extensions) -> tuple[str, ...]:
    normalized = []
    for extension in extensions:
        extension = str(extension).strip().lower()
        if not extension:
            continue
        if not extension.startswith("."):
            extension = f".{extension}"
        if extension not in normalized:
            normalized.append(extension)
    return tuple(normalized)


load_settings()

"""
Pytest configuration and shared fixtures for vdisk-consolidator tests.

The three external ports (disk query, disk merge, machine control) are
replaced by small in-memory fakes that also append to a shared ``events``
list, so tests can assert on the exact order of side effects.
"""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List

import pytest
from loguru import logger

from vdisk_consolidator.domain import DiskInfo, DiskRecord, DiskType
from vdisk_consolidator.storage.exceptions import MachineControlError, MergeError


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ==============================================================================
# Fake Ports
# ==============================================================================


class FakeDiskQuery:
    """DiskQuery returning canned DiskInfo (or raising canned errors)."""

    def __init__(self, infos=None, events=None):
        self.infos: Dict[Path, object] = dict(infos or {})
        self.events = events if events is not None else []
        self.queried: List[Path] = []

    def query_disk(self, path):
        self.queried.append(path)
        self.events.append(("query", path))
        value = self.infos[path]
        if isinstance(value, Exception):
            raise value
        return value


class FakeMerger:
    """DiskMerger that deletes the source file unless told otherwise."""

    def __init__(self, events=None):
        self.events = events if events is not None else []
        self.calls: List[tuple] = []
        self.failures: Dict[Path, str] = {}
        self.keep_source: set = set()

    def merge_disk(self, source, destination):
        self.calls.append((source, destination))
        self.events.append(("merge", source, destination))
        if source in self.failures:
            raise MergeError(source, destination, self.failures[source])
        if source not in self.keep_source and source.exists():
            source.unlink()


class FakeMachineControl:
    """MachineControl with scripted state sequences per machine.

    ``states[name]`` is a list; each ``find_machine`` call pops the first
    entry until only one is left, which is then returned forever.
    """

    def __init__(self, events=None):
        self.events = events if events is not None else []
        self.states: Dict[str, List] = {}
        self.errors: Dict[str, str] = {}
        self.stopped: List[str] = []
        self.started: List[str] = []
        self.start_errors: Dict[str, str] = {}

    def find_machine(self, name):
        if name in self.errors:
            raise MachineControlError(name, self.errors[name])
        sequence = self.states.get(name)
        if not sequence:
            state = None
        elif len(sequence) > 1:
            state = sequence.pop(0)
        else:
            state = sequence[0]
        self.events.append(("find", name, state))
        return state

    def stop_machine(self, name):
        self.stopped.append(name)
        self.events.append(("stop", name))

    def start_machine(self, name):
        if name in self.start_errors:
            raise MachineControlError(name, self.start_errors[name])
        self.started.append(name)
        self.events.append(("start", name))


# ==============================================================================
# Fake Port Fixtures
# ==============================================================================


@pytest.fixture
def events() -> list:
    """Shared side-effect timeline for the fake ports."""
    return []


@pytest.fixture
def disk_query(events) -> FakeDiskQuery:
    return FakeDiskQuery(events=events)


@pytest.fixture
def merger(events) -> FakeMerger:
    return FakeMerger(events=events)


@pytest.fixture
def machine_control(events) -> FakeMachineControl:
    return FakeMachineControl(events=events)


# ==============================================================================
# Record Fixtures
# ==============================================================================


@pytest.fixture
def make_record():
    """
    Fixture providing a DiskRecord factory.

    ``minutes`` offsets last_modified from a fixed base time; a parent
    makes the record a differencing disk.
    """

    def _make(path, parent=None, minutes=0, disk_type=None):
        path = Path(path)
        parent = Path(parent) if parent is not None else None
        if disk_type is None:
            disk_type = DiskType.DIFFERENCING if parent else DiskType.BASE
        return DiskRecord(
            path=path,
            disk_type=disk_type,
            last_modified=BASE_TIME + timedelta(minutes=minutes),
            parent_path=parent,
        )

    return _make


@pytest.fixture
def linear_chain(make_record) -> Dict[Path, DiskRecord]:
    """
    Fixture providing Root <- A <- B <- C with C newest.

    Returns:
        Dict of path -> DiskRecord, as produced by an inventory.
    """
    records = [
        make_record("/vms/web.qcow2", minutes=0),
        make_record("/vms/web_a.qcow2", parent="/vms/web.qcow2", minutes=10),
        make_record("/vms/web_b.qcow2", parent="/vms/web_a.qcow2", minutes=20),
        make_record("/vms/web_c.qcow2", parent="/vms/web_b.qcow2", minutes=30),
    ]
    return {record.path: record for record in records}


# ==============================================================================
# File System Fixtures
# ==============================================================================


@pytest.fixture
def disk_dir(tmp_path) -> Path:
    """Fixture providing an empty, fully resolved directory for disk files."""
    directory = tmp_path.resolve() / "vms"
    directory.mkdir()
    return directory


@pytest.fixture
def write_disk():
    """
    Fixture providing a helper that creates a disk file with a given mtime.

    Returns:
        Callable (path, minutes) -> Path
    """

    def _write(path, minutes=0):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"QFI\xfb")
        stamp = (BASE_TIME + timedelta(minutes=minutes)).timestamp()
        os.utime(path, (stamp, stamp))
        return path

    return _write


@pytest.fixture
def chain_on_disk(disk_dir, write_disk, disk_query):
    """
    Fixture providing a linear chain on disk and a matching FakeDiskQuery.

    web.qcow2 <- web_a.qcow2 <- web_b.qcow2 <- web_c.qcow2 (c newest)
    """
    root = write_disk(disk_dir / "web.qcow2", minutes=0)
    a = write_disk(disk_dir / "web_a.qcow2", minutes=10)
    b = write_disk(disk_dir / "web_b.qcow2", minutes=20)
    c = write_disk(disk_dir / "web_c.qcow2", minutes=30)
    disk_query.infos.update(
        {
            root: DiskInfo(disk_type=DiskType.BASE),
            a: DiskInfo(disk_type=DiskType.DIFFERENCING, parent_path=root),
            b: DiskInfo(disk_type=DiskType.DIFFERENCING, parent_path=a),
            c: DiskInfo(disk_type=DiskType.DIFFERENCING, parent_path=b),
        }
    )
    return {"root": root, "a": a, "b": b, "c": c}


# ==============================================================================
# Logging Fixtures
# ==============================================================================


@pytest.fixture
def log_records():
    """
    Fixture capturing loguru records emitted during a test.

    Returns:
        List of loguru record dicts.
    """
    records: list = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)

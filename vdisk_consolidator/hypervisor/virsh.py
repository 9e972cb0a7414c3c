"""libvirt machine control through the virsh command line."""

from __future__ import annotations

import shutil

from vdisk_consolidator.domain.models import MachineState
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.command_runners import run_checked_command
from vdisk_consolidator.storage.exceptions import CommandError, MachineControlError


# virsh domstate output -> MachineState
DOMSTATE_MAP = {
    "running": MachineState.RUNNING,
    "idle": MachineState.RUNNING,
    "shut off": MachineState.OFF,
    "paused": MachineState.OTHER,
    "in shutdown": MachineState.OTHER,
    "crashed": MachineState.OTHER,
    "pmsuspended": MachineState.OTHER,
    "dying": MachineState.OTHER,
}

_NOT_FOUND_MARKERS = ("failed to get domain", "domain not found", "no domain with")


def parse_domstate(output: str) -> MachineState:
    """Map the first line of ``virsh domstate`` output to a MachineState."""
    lines = output.strip().splitlines()
    state = lines[0].strip().lower() if lines else ""
    return DOMSTATE_MAP.get(state, MachineState.OTHER)


def is_not_found_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


class Virsh:
    """MachineControl adapter for a local or remote libvirt daemon."""

    def __init__(self, virsh_path: str = "virsh", uri: str | None = None, log=None):
        self.virsh_path = virsh_path
        self.uri = uri
        self.log = log or LoggerFactory.for_machine()

    def _command(self, *args: str) -> list[str]:
        command = [shutil.which(self.virsh_path) or self.virsh_path]
        if self.uri:
            command += ["-c", self.uri]
        command += list(args)
        return command

    def find_machine(self, name: str) -> MachineState | None:
        try:
            output = run_checked_command(self._command("domstate", name))
        except CommandError as error:
            if is_not_found_error(error.message):
                return None
            raise MachineControlError(name, error.message) from error
        state = parse_domstate(output)
        self.log.trace(f"{name}: {output.strip()} ({state.value})")
        return state

    def stop_machine(self, name: str) -> None:
        try:
            run_checked_command(self._command("shutdown", name))
        except CommandError as error:
            raise MachineControlError(name, error.message) from error

    def start_machine(self, name: str) -> None:
        try:
            run_checked_command(self._command("start", name))
        except CommandError as error:
            raise MachineControlError(name, error.message) from error


__all__ = ["DOMSTATE_MAP", "Virsh", "is_not_found_error", "parse_domstate"]

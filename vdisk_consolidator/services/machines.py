"""Machine state controller: make sure a machine is off before merging."""

from __future__ import annotations

import time

from vdisk_consolidator.config.settings import DEFAULT_POLL_INTERVAL, DEFAULT_STOP_TIMEOUT
from vdisk_consolidator.domain.models import MachineState, StopResult
from vdisk_consolidator.domain.ports import MachineControl
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.exceptions import MachineStopTimeoutError


class MachineStateController:
    """Stops machines and waits for the hypervisor to confirm.

    Args:
        control: Hypervisor adapter
        poll_interval: Seconds between state polls while waiting
        stop_timeout: Seconds to wait for a stop; None waits forever
    """

    def __init__(
        self,
        control: MachineControl,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stop_timeout: float | None = DEFAULT_STOP_TIMEOUT,
        log=None,
    ):
        self.control = control
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout
        self.log = log or LoggerFactory.for_machine()

    def ensure_stopped(self, machine_name: str) -> StopResult:
        """Return once ``machine_name`` is off (or does not exist).

        Any state other than OFF gets a stop request, so a paused machine is
        never merged under.

        Raises:
            MachineControlError: If the hypervisor cannot be queried or
                rejects the stop request
            MachineStopTimeoutError: If the machine is still up after
                ``stop_timeout`` seconds
        """
        state = self.control.find_machine(machine_name)
        if state is None:
            self.log.info(f"No machine named {machine_name}; merging disks only")
            return StopResult.NOT_FOUND
        if state == MachineState.OFF:
            self.log.info(f"Machine {machine_name} is already stopped")
            return StopResult.ALREADY_STOPPED

        self.log.info(f"Stopping machine {machine_name} (state: {state.value})")
        self.control.stop_machine(machine_name)
        self._wait_until_stopped(machine_name)
        self.log.info(f"Machine {machine_name} stopped")
        return StopResult.STOPPED_NOW

    def _wait_until_stopped(self, machine_name: str) -> None:
        started = time.monotonic()
        while True:
            state = self.control.find_machine(machine_name)
            if state is None or state == MachineState.OFF:
                return
            elapsed = time.monotonic() - started
            if self.stop_timeout is not None and elapsed >= self.stop_timeout:
                raise MachineStopTimeoutError(machine_name, self.stop_timeout)
            self.log.debug(
                f"Waiting for {machine_name} to stop ({state.value}, {elapsed:.0f}s)"
            )
            time.sleep(self.poll_interval)

    def restart(self, machine_name: str) -> None:
        """Start a machine this controller stopped earlier."""
        self.log.info(f"Starting machine {machine_name}")
        self.control.start_machine(machine_name)

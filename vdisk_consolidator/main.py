import argparse
import signal
import threading
from pathlib import Path

from vdisk_consolidator.config import settings
from vdisk_consolidator.hypervisor import Virsh
from vdisk_consolidator.logging import operation_context, setup_logging
from vdisk_consolidator.services import RunOrchestrator
from vdisk_consolidator.storage import QemuImg
from vdisk_consolidator.storage.exceptions import NoDisksFoundError


def build_parser():
    parser = argparse.ArgumentParser(
        description="Merge differencing virtual disk chains into their base disks"
    )
    parser.add_argument("root_dir", type=Path, help="Folder to search for disk files")
    parser.add_argument(
        "-n", "--dry-run", action="store_true", help="Show merge plans without stopping machines or merging"
    )
    parser.add_argument(
        "--restart", action="store_true", default=None, help="Start machines again after their disks were merged"
    )
    parser.add_argument("--timeout", type=float, help="Seconds to wait for a machine to stop (0 waits forever)")
    parser.add_argument("--poll-interval", type=float, help="Seconds between machine state polls")
    parser.add_argument(
        "-e", "--extension", action="append", dest="extensions", help="Disk file extension (repeatable)"
    )
    parser.add_argument("-c", "--connect", help="libvirt connection URI")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw qemu-img and virsh output")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    return parser


def install_signal_handlers(cancel_event):
    def request_cancel(signum, _frame):
        cancel_event.set()

    signal.signal(signal.SIGINT, request_cancel)
    signal.signal(signal.SIGTERM, request_cancel)


def main(argv=None):
    args = build_parser().parse_args(argv)
    log = setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)

    extensions = (
        settings.normalize_extensions(args.extensions)
        if args.extensions
        else settings.get_extensions()
    )
    timeout = args.timeout
    if timeout is None:
        timeout = settings.get_float("stop_timeout_seconds", settings.DEFAULT_STOP_TIMEOUT)
    poll_interval = args.poll_interval
    if poll_interval is None:
        poll_interval = settings.get_float("poll_interval_seconds", settings.DEFAULT_POLL_INTERVAL)
    restart = args.restart if args.restart is not None else settings.get_bool("restart_machines")

    qemu_img = QemuImg(settings.get_setting("qemu_img_path", "qemu-img"))
    virsh = Virsh(
        settings.get_setting("virsh_path", "virsh"),
        uri=args.connect or settings.get_setting("libvirt_uri"),
    )
    cancel_event = threading.Event()
    install_signal_handlers(cancel_event)

    try:
        with operation_context("consolidate", root_dir=str(args.root_dir)) as run_log:
            orchestrator = RunOrchestrator(
                qemu_img,
                qemu_img,
                virsh,
                extensions=extensions,
                poll_interval=poll_interval,
                stop_timeout=timeout or None,
                dry_run=args.dry_run,
                restart_machines=restart,
                cancel_event=cancel_event,
                log=run_log,
            )
            report = orchestrator.run(args.root_dir)
    except NoDisksFoundError:
        return 1
    finally:
        log.complete()

    if report.cancelled:
        log.warning("Run was cancelled; remaining groups were not processed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

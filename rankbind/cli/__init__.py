import argparse
import logging
import sys

import rankbind
import rankbind.defaults as defaults
import rankbind.utils as utils
from rankbind.errors import RankbindError

log = logging.getLogger(__name__)


def add_discovery_arguments(command):
    """
    Arguments shared by every action that discovers devices.
    """
    command.add_argument("--config", help=f"yaml settings file (or set {defaults.config_envar})")
    command.add_argument(
        "--allow",
        action="append",
        help="only use devices whose architecture contains this substring (repeatable)",
    )
    command.add_argument("--sysfs-root", dest="sysfs_root", help="PCI bus registry root")
    command.add_argument("--rocminfo", help="path to the rocminfo executable")
    command.add_argument("--listing", help="read the device listing from a file instead of rocminfo")


def add_placement_arguments(command):
    """
    Arguments that shape the placement itself.
    """
    command.add_argument(
        "--policy", dest="mask_policy", choices=["mutex", "nomask"], help="compute unit mask policy"
    )
    command.add_argument("--bias", dest="device_bias", type=int, help="rotate device selection")
    command.add_argument(
        "--devices-per-set",
        dest="devices_per_set",
        type=int,
        help="give each rank a contiguous set of whole devices",
    )
    command.add_argument(
        "--local-size", dest="local_size", type=int, help="local rank count (default from launcher)"
    )
    command.add_argument("--verbose", action="store_true", default=False, help="print diagnostics")


def get_parser():
    parser = argparse.ArgumentParser(
        description="Bind node-local ranks to GPUs, compute units and NUMA-local CPUs",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--debug", default=False, action="store_true", help="use verbose logging")
    parser.add_argument("--version", default=False, action="store_true", help="show version")

    subparsers = parser.add_subparsers(
        help="actions",
        title="actions",
        description="actions",
        dest="command",
    )

    run = subparsers.add_parser(
        "run",
        formatter_class=argparse.RawTextHelpFormatter,
        description="place this rank and execute a command (rankbind run [options] -- command ...)",
    )
    add_discovery_arguments(run)
    add_placement_arguments(run)
    run.add_argument(
        "--local-rank", dest="local_rank", type=int, help="local rank (default from launcher)"
    )
    run.add_argument(
        "--cpu-bind",
        dest="cpu_bind",
        choices=defaults.cpu_bind_modes,
        help="bind to the device NUMA node(s), its local cores, or nothing",
    )

    show = subparsers.add_parser(
        "show",
        formatter_class=argparse.RawTextHelpFormatter,
        description="show the placement of every local rank",
    )
    add_discovery_arguments(show)
    add_placement_arguments(show)

    devices = subparsers.add_parser(
        "devices",
        formatter_class=argparse.RawTextHelpFormatter,
        description="show the canonical device table",
    )
    add_discovery_arguments(devices)
    return parser


def run():
    parser = get_parser()

    def help(return_code=0):
        parser.print_help()
        sys.exit(return_code)

    # If the user didn't provide any arguments, show the full help
    if len(sys.argv) == 1:
        help()

    # Everything after -- is the command to execute
    argv = sys.argv[1:]
    extra = []
    if "--" in argv:
        split = argv.index("--")
        argv, extra = argv[:split], argv[split + 1 :]

    args, unknown = parser.parse_known_args(argv)
    if unknown:
        if args.command == "run" and not extra:
            extra = unknown
        else:
            parser.error(f"unrecognized arguments: {' '.join(unknown)}")

    if args.version:
        print(rankbind.__version__)
        sys.exit(0)

    utils.setup_logging(args.debug)

    if args.command == "run":
        from .launch import main
    elif args.command == "show":
        from .show import main
    elif args.command == "devices":
        from .devices import main
    else:
        help(1)

    try:
        return_code = main(args=args, extra=extra)
    except (RankbindError, RuntimeError, ValueError, OSError) as e:
        log.error(str(e))
        sys.exit(1)
    sys.exit(return_code or 0)


if __name__ == "__main__":
    run()

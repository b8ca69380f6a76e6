#!/usr/bin/env python3
"""
Show2 - Command Line Interface

Entry point for the show2 package.
"""

import argparse
import logging
import sys

from show2.__version__ import __version__
from show2.conf import load_settings, parse_usb_id
from show2.errors import Show2Error


def _setup_logging(verbose=0):
    """Configure logging from the -v count."""
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
        if verbose < 3:
            logging.getLogger('usb').setLevel(logging.WARNING)
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING)


def _add_device_args(parser, settings):
    parser.add_argument("--vid", type=parse_usb_id, default=settings.vid,
                        help=f"USB vendor ID (default {settings.vid:04x})")
    parser.add_argument("--pid", type=parse_usb_id, default=settings.pid,
                        help=f"USB product ID (default {settings.pid:04x})")
    parser.add_argument("--interface", "-i", type=int, default=settings.interface,
                        help="Interface index to claim (default: the only one)")


def build_parser(settings=None):
    settings = settings or load_settings()
    parser = argparse.ArgumentParser(
        prog="show2",
        description="ODROID-SHOW2 USB display driver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    show2 list                     List openable USB devices
    show2 info                     Open the display and describe it
    show2 info --interface 1       Use interface 1 of a multi-interface device
    show2 handshake "Lorem Ipsum"  Run the request/acknowledge handshake
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv, -vvv)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List USB devices that can be opened")

    info_parser = subparsers.add_parser("info", help="Open the display and print its details")
    _add_device_args(info_parser, settings)

    hs_parser = subparsers.add_parser("handshake", help="Start a transaction for TEXT")
    hs_parser.add_argument("text", help="Payload (at most 255 bytes UTF-8)")
    _add_device_args(hs_parser, settings)
    hs_parser.add_argument("--timeout", "-t", type=int, default=settings.timeout_ms,
                           help=f"Write timeout in ms (default {settings.timeout_ms})")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    try:
        parser = build_parser()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    try:
        if args.command == "list":
            return list_devices()
        elif args.command == "info":
            return show_info(args.vid, args.pid, args.interface)
        elif args.command == "handshake":
            return handshake(args.text, args.vid, args.pid, args.interface, args.timeout)
    except Show2Error as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    return 0


def list_devices():
    """Print one line per openable USB device."""
    from show2.device_matcher import debug_devices

    lines = debug_devices()
    if not lines:
        print("No USB devices could be opened.")
        return 1
    for line in lines:
        print(line)
    return 0


def show_info(vid, pid, interface=None):
    """Open the display and print its description."""
    from show2.device_session import find_device_with_interface

    with find_device_with_interface(vid, pid, interface) as show:
        print(repr(show))
        print(f"  interface: {show.interface}")
        print(f"  read:      {show.io_in}")
        print(f"  write:     {show.io_out}")
    return 0


def handshake(text, vid, pid, interface=None, timeout=500):
    """Run start_transaction for *text* and report the bytes written."""
    from show2.device_session import find_device_with_interface

    with find_device_with_interface(vid, pid, interface) as show:
        packet = show.into_packet(text)
        sent = packet.start_transaction(timeout)
        print(f"Handshake acknowledged: length {packet.length} ({sent} byte written)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

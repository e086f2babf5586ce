#!/usr/bin/env -S python3 -B -u
"""
Command line front end for the Linux firewall backend.

Every invocation first restores persisted state, exactly as the service
does at startup, then performs the requested operation.

Usage:
    sudo ipban-firewall init
    sudo ipban-firewall block 10.0.0.1 10.0.0.2
    sudo ipban-firewall allow 192.168.1.10
    sudo ipban-firewall block-ranges tor 1.2.3.0/24 --allow-port 80 --allow-port 443
    sudo ipban-firewall list blocked
    sudo ipban-firewall check 10.0.0.1
"""

import argparse
import sys
from typing import List, Optional

from ..core.config_loader import load_firewall_config
from ..core.exceptions import ErrorCode, ErrorHandler
from ..core.structured_logging import setup_logging
from ..executors.command_executor import ShellCommandExecutor
from ..firewall.linux_firewall import LinuxFirewall


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ipban-firewall',
        description='Reconcile ipset/iptables state for IPBan'
    )
    parser.add_argument('-v', '--verbose', action='count', default=0, dest='verbose_level',
                        help='Increase verbosity (-v, -vv, -vvv)')
    parser.add_argument('--config', help='Path to ipban_firewall.yaml')
    parser.add_argument('--data-dir', help='Directory holding set files and the table snapshot')
    parser.add_argument('--prefix', help='Rule prefix (default IPBan_)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init', help='Restore persisted sets and rules')

    block = subparsers.add_parser('block', help='Replace the block set')
    block.add_argument('addresses', nargs='*')

    allow = subparsers.add_parser('allow', help='Replace the allow set')
    allow.add_argument('addresses', nargs='*')

    ranges = subparsers.add_parser('block-ranges', help='Replace a range block set')
    ranges.add_argument('suffix')
    ranges.add_argument('ranges', nargs='*')
    ranges.add_argument('--allow-port', action='append', default=[], dest='allowed_ports',
                        help='Port or range left open (repeatable)')

    listing = subparsers.add_parser('list', help='Print blocked or allowed addresses')
    listing.add_argument('which', choices=['blocked', 'allowed'])

    check = subparsers.add_parser('check', help='Show whether an address is blocked or allowed')
    check.add_argument('address')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    return run(build_parser().parse_args(argv))


@ErrorHandler.wrap_main
def run(args: argparse.Namespace) -> int:
    setup_logging(args.verbose_level)

    config = load_firewall_config(args.config, data_directory=args.data_dir)
    executor = ShellCommandExecutor(config.shell, config.command_timeout, args.verbose_level)
    firewall = LinuxFirewall(config, executor)
    firewall.initialize(args.prefix)

    if args.command == 'init':
        return ErrorCode.SUCCESS

    if args.command == 'block':
        ok = firewall.block_addresses(args.addresses)
    elif args.command == 'allow':
        ok = firewall.allow_addresses(args.addresses)
    elif args.command == 'block-ranges':
        ok = firewall.block_ranges(args.suffix, args.ranges, args.allowed_ports)
    elif args.command == 'list':
        addresses = firewall.enumerate_blocked() if args.which == 'blocked' else firewall.enumerate_allowed()
        for address in sorted(addresses, key=lambda a: tuple(int(o) for o in a.split('.'))):
            print(address)
        return ErrorCode.SUCCESS
    else:
        print(f"{args.address}: blocked={firewall.is_blocked(args.address)} "
              f"allowed={firewall.is_allowed(args.address)}")
        return ErrorCode.SUCCESS

    return ErrorCode.SUCCESS if ok else ErrorCode.OPERATION_FAILED


if __name__ == '__main__':
    sys.exit(main())

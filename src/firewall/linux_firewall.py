#!/usr/bin/env -S python3 -B -u
"""
Linux Firewall Module - ipset/iptables Reconciliation Engine

This module keeps the kernel's ipset address sets and the iptables rules
that reference them in the state requested by the caller, and mirrors the
membership of the default block and allow sets in memory.

Key features:
- Diffs desired membership against the in-memory mirror and writes the
  result as an ``ipset restore`` script
- Installs the script atomically and applies it with ``ipset restore``
- Keeps exactly one iptables rule per set, optionally port restricted
- Rebuilds kernel state and mirrors from disk on startup

Set names are derived from the rule prefix: ``<prefix>0`` blocks,
``<prefix>1`` allows and ``<prefix>0_<suffix>`` holds CIDR ranges.

Mutating operations are serialized by an instance lock. Mirrors are
immutable frozensets swapped by assignment, so readers always see a
complete snapshot without locking.

Author: IPBan Contributors
License: MIT
"""

import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

from ..core.addresses import ipv4_to_string, parse_ipv4, try_firewall_address
from ..core.config_loader import DEFAULT_RULE_PREFIX, FirewallConfig, load_firewall_config
from ..core.exceptions import CommandExecutionError
from ..core.file_ops import RetryPolicy
from ..core.models import (
    EMPTY_MIRROR, AddressMirror, NamedSet, OperationResult, PortRange,
    RuleAction, SetHashType, UpdateResult, validate_set_name
)
from ..core.structured_logging import get_logger
from ..executors.command_executor import CommandExecutor, ShellCommandExecutor
from .base import FirewallBackend, RangeLike
from .restorer import StartupRestorer
from .rule_table import RuleTableManager
from .set_store import SetFileStore


PortLike = Union[PortRange, str, int]


class LinuxFirewall(FirewallBackend):
    """
    ipset/iptables firewall backend.

    Attributes:
        config: Loaded firewall configuration
        executor: Command executor for all external tools
        set_store: On-disk set file store
        rule_table: iptables rule manager
        rule_prefix: Prefix all set names derive from
    """

    def __init__(self, config: Optional[FirewallConfig] = None,
                 executor: Optional[CommandExecutor] = None,
                 data_directory: Optional[Union[str, Path]] = None):
        """
        Initialize the backend without touching the kernel.

        Args:
            config: Configuration (loaded from the standard locations if omitted)
            executor: Command executor (a shell executor if omitted)
            data_directory: Overrides the configured data directory
        """
        self.config = config or load_firewall_config()
        self.data_directory = Path(data_directory or self.config.data_directory)
        self.executor = executor or ShellCommandExecutor(self.config.shell, self.config.command_timeout)
        self.logger = get_logger(__name__)

        delete_policy = RetryPolicy(self.config.delete_retry_attempts, self.config.delete_retry_delay)
        self.set_store = SetFileStore(self.data_directory, self.config.set_suffix, delete_policy)
        self.rule_table = RuleTableManager(self.executor, self.data_directory, self.config.chain,
                                           self.config.table_file, delete_policy)
        self.restorer = StartupRestorer(self.executor, self.set_store, self.rule_table)

        self._lock = threading.RLock()
        self._blocked: AddressMirror = EMPTY_MIRROR
        self._allowed: AddressMirror = EMPTY_MIRROR
        self._set_rule_prefix(self.config.rule_prefix)

    def _set_rule_prefix(self, rule_prefix: Optional[str]) -> None:
        if rule_prefix is None or not str(rule_prefix).strip():
            rule_prefix = DEFAULT_RULE_PREFIX
        rule_prefix = str(rule_prefix).strip()
        # set names reach the shell and the data directory
        self.block_rule_name = validate_set_name(f"{rule_prefix}0")
        self.allow_rule_name = validate_set_name(f"{rule_prefix}1")
        self.rule_prefix = rule_prefix

    def _named_set(self, name: str, hash_type: SetHashType, max_count: int) -> NamedSet:
        return NamedSet(name, hash_type, max_count,
                        family=self.config.family, hash_size=self.config.hash_size)

    @property
    def block_set(self) -> NamedSet:
        return self._named_set(self.block_rule_name, SetHashType.IP, self.config.block_max_count)

    @property
    def allow_set(self) -> NamedSet:
        return self._named_set(self.allow_rule_name, SetHashType.IP, self.config.allow_max_count)

    def range_set(self, rule_name_suffix: str) -> NamedSet:
        """Named set holding the CIDR ranges blocked under ``rule_name_suffix``."""
        return self._named_set(f"{self.block_rule_name}_{rule_name_suffix}", SetHashType.NET,
                               self.config.block_ranges_max_count)

    # Startup

    def initialize(self, rule_prefix: Optional[str] = None) -> None:
        """
        Restore persisted sets and rules, then rebuild both mirrors.

        Args:
            rule_prefix: Prefix for set names; blank falls back to the
                configured prefix, then to ``IPBan_``

        Raises:
            InvalidSetNameError: If the prefix does not form valid set names
        """
        if rule_prefix is None or not str(rule_prefix).strip():
            rule_prefix = self.config.rule_prefix

        with self._lock:
            self._set_rule_prefix(rule_prefix)
            with self.logger.timer(f"initialize {self.rule_prefix}"):
                self.restorer.restore_sets()
                self.restorer.restore_rule_table()
                self._allowed = self.restorer.load_mirror(self.allow_set, RuleAction.ACCEPT)
                self._blocked = self.restorer.load_mirror(self.block_set, RuleAction.DROP)

        self.logger.info("Firewall initialized", prefix=self.rule_prefix,
                         blocked=len(self._blocked), allowed=len(self._allowed))

    # Reconciliation

    @staticmethod
    def _normalize(addresses: Iterable[RangeLike], range_mode: bool) -> Tuple[Dict[str, None], AddressMirror]:
        """
        Parse the desired members.

        Returns:
            Ordered unique firewall text of the valid members, and their
            numeric mirror (empty in range mode)
        """
        desired: Dict[str, None] = {}
        numeric = set()
        for address in addresses:
            value = parse_ipv4(address)
            if value == 0:
                continue
            text, ok = try_firewall_address(address)
            if not ok:
                continue
            if not range_mode:
                # individual addresses only
                if '/' in text:
                    continue
                numeric.add(value)
            desired[text] = None
        return desired, frozenset(numeric)

    def _update_rule(self, named_set: NamedSet, action: RuleAction,
                     addresses: Iterable[RangeLike], previous: AddressMirror,
                     range_mode: bool, allowed_ports: Sequence[PortRange] = ()) -> UpdateResult:
        """
        Reconcile one set and its rule.

        The rule is ensured even when ``ipset restore`` fails, so an
        existing set never ends up without its rule.
        """
        desired, mirror = self._normalize(addresses, range_mode)

        write = self.set_store.write_set(named_set, desired, previous)
        if not write.success:
            return UpdateResult(EMPTY_MIRROR, write, write)

        set_file = write.details['path']
        exit_code = self.executor.run('ipset', 'restore', True, input_file=set_file)
        if exit_code == 0:
            restore = OperationResult.ok(exit_code=exit_code)
        else:
            restore = OperationResult.failed(
                CommandExecutionError(f"ipset restore < {set_file}", exit_code), exit_code=exit_code)

        rule = self.rule_table.ensure(named_set, action, allowed_ports)
        if not rule.success and rule.error is not None:
            self.logger.warning(rule.error.message, **rule.error.details)

        self.logger.log_set_update(named_set.name, write.details['added'],
                                   write.details['removed'], restore.success)
        return UpdateResult(EMPTY_MIRROR if range_mode else mirror, restore, rule)

    def _report(self, operation: str, result: UpdateResult) -> bool:
        if not result.success and result.restore.error is not None:
            self.logger.error(f"{operation} failed: {result.restore.error.message}",
                              **result.restore.error.details)
        return result.success

    def block_addresses(self, addresses: Iterable[str]) -> bool:
        """Replace the default block set with ``addresses``; invalid entries are dropped."""
        with self._lock:
            try:
                result = self._update_rule(self.block_set, RuleAction.DROP, list(addresses),
                                           self._blocked, False)
            except Exception as e:
                self.logger.exception("block_addresses failed", e)
                return False
            if result.success:
                self._blocked = result.mirror
            return self._report("block_addresses", result)

    def allow_addresses(self, addresses: Iterable[str]) -> bool:
        """Replace the default allow set with ``addresses``; invalid entries are dropped."""
        with self._lock:
            try:
                result = self._update_rule(self.allow_set, RuleAction.ACCEPT, list(addresses),
                                           self._allowed, False)
            except Exception as e:
                self.logger.exception("allow_addresses failed", e)
                return False
            if result.success:
                self._allowed = result.mirror
            return self._report("allow_addresses", result)

    def block_ranges(self, rule_name_suffix: str, ranges: Iterable[RangeLike],
                     allowed_ports: Sequence[PortLike] = ()) -> bool:
        """
        Replace the range block set ``<block>_<suffix>`` with ``ranges``.

        ``allowed_ports`` stay reachable from the blocked ranges. The
        default block mirror is not touched.
        """
        with self._lock:
            try:
                ports = [p if isinstance(p, PortRange) else PortRange.parse(str(p))
                         for p in allowed_ports or ()]
                result = self._update_rule(self.range_set(rule_name_suffix), RuleAction.DROP,
                                           [str(r) for r in ranges], EMPTY_MIRROR, True, ports)
            except Exception as e:
                self.logger.exception("block_ranges failed", e)
                return False
            return self._report("block_ranges", result)

    # Queries

    def enumerate_blocked(self) -> Iterator[str]:
        """Blocked addresses as text, in no particular order."""
        mirror = self._blocked
        return (ipv4_to_string(value) for value in mirror)

    def enumerate_allowed(self) -> Iterator[str]:
        """Allowed addresses as text, in no particular order."""
        mirror = self._allowed
        return (ipv4_to_string(value) for value in mirror)

    @staticmethod
    def _host_value(address: str) -> int:
        # a range is never a member of an address set
        if address is None or '/' in str(address):
            return 0
        return parse_ipv4(address)

    def is_blocked(self, address: str) -> bool:
        return self._host_value(address) in self._blocked

    def is_allowed(self, address: str) -> bool:
        return self._host_value(address) in self._allowed

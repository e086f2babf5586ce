#!/usr/bin/env -S python3 -B -u
"""
Set file store.

Each named set is persisted as an ``ipset restore`` script named
``<set>.set`` in the data directory:

    create <set> hash:<kind> family inet hashsize 1024 maxelem <n> -exist
    del <set> <value> -exist
    add <set> <value> -exist

The script is written to ``<set>.set.tmp`` and then moved over the live
file, since ``ipset restore`` reads the live file right afterwards.
"""

from pathlib import Path
from typing import Iterable, List, Set, Union

from ..core.addresses import ipv4_to_string, parse_ipv4, try_firewall_address
from ..core.exceptions import SetFileError
from ..core.file_ops import DEFAULT_DELETE_POLICY, RetryPolicy, replace_file, scoped_temp_file
from ..core.models import AddressMirror, NamedSet, OperationResult, SetHashType
from ..core.structured_logging import get_logger


class SetFileStore:
    """Reads and atomically replaces the on-disk script of each named set."""

    def __init__(self, data_directory: Union[str, Path], set_suffix: str = '.set',
                 delete_policy: RetryPolicy = DEFAULT_DELETE_POLICY):
        self.data_directory = Path(data_directory)
        self.set_suffix = set_suffix
        self.delete_policy = delete_policy
        self.logger = get_logger(__name__)

    def set_file_path(self, set_name: str) -> Path:
        """Canonical path of the set file for ``set_name``."""
        return self.data_directory / f"{set_name}{self.set_suffix}"

    def list_set_files(self) -> List[Path]:
        """All persisted set files, sorted by name."""
        if not self.data_directory.is_dir():
            return []
        return sorted(self.data_directory.glob(f"*{self.set_suffix}"))

    @staticmethod
    def removed_members(previous: AddressMirror, desired: Iterable[str]) -> List[str]:
        """Previous members, as text, that are absent from ``desired``."""
        desired_text = set(desired)
        return sorted(text for text in (ipv4_to_string(value) for value in previous)
                      if text not in desired_text)

    @staticmethod
    def render_script(named_set: NamedSet, desired: Iterable[str], removed: Iterable[str]) -> List[str]:
        """Lines of the restore script, without trailing newlines."""
        lines = [named_set.create_arguments()]
        for address in removed:
            lines.append(f"del {named_set.name} {address} -exist")
        for address in desired:
            firewall_address, ok = try_firewall_address(address)
            if ok:
                lines.append(f"add {named_set.name} {firewall_address} -exist")
        return lines

    def write_set(self, named_set: NamedSet, desired: Iterable[str],
                  previous: AddressMirror) -> OperationResult:
        """
        Write and install the set file for ``named_set``.

        Every desired member is written as an ``add`` line, including those
        already present, and every previous member missing from
        ``desired`` as a ``del`` line.

        Returns:
            OperationResult with the target path and line counts
        """
        desired = list(desired)
        removed = self.removed_members(previous, desired)
        lines = self.render_script(named_set, desired, removed)
        target = self.set_file_path(named_set.name)

        try:
            self.data_directory.mkdir(parents=True, exist_ok=True)
            with scoped_temp_file(path=f"{target}.tmp", policy=self.delete_policy) as temp_path:
                with open(temp_path, 'w') as f:
                    f.write('\n'.join(lines) + '\n')
                replace_file(temp_path, target, self.delete_policy)
        except OSError as e:
            error = SetFileError(named_set.name, str(target), str(e), cause=e)
            self.logger.exception(error.message, e, file=str(target))
            return OperationResult.failed(error)

        self.logger.debug(f"Wrote set file {target}", added=len(desired), removed=len(removed))
        return OperationResult.ok(path=target, added=len(desired), removed=len(removed))

    def read_addresses(self, set_name: str, hash_type: SetHashType = SetHashType.IP) -> AddressMirror:
        """
        Parse the numeric members of an ``ip`` set file.

        Lines other than ``add <set> <address>`` with a parseable address
        are ignored. A missing or unreadable file yields what was read so
        far, possibly nothing.
        """
        addresses: Set[int] = set()
        if hash_type != SetHashType.IP:
            self.logger.error(f"Can only load hash of type 'ip', not '{hash_type.value}'",
                              set=set_name)
            return frozenset()

        path = self.set_file_path(set_name)
        if not path.exists():
            return frozenset()

        try:
            with open(path, 'r') as f:
                next(f, None)
                for line in f:
                    pieces = line.split()
                    if len(pieces) > 2 and pieces[0] == 'add':
                        value = parse_ipv4(pieces[2])
                        if value != 0:
                            addresses.add(value)
        except (OSError, UnicodeDecodeError) as e:
            self.logger.exception(f"Failed to read set file {path}", e)

        return frozenset(addresses)

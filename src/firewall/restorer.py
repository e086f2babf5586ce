#!/usr/bin/env -S python3 -B -u
"""
Startup restorer.

Replays persisted set files and the rule table snapshot into the kernel,
then rebuilds the in-memory mirrors from the set files. Sets are restored
before the table so that the restored rules can bind to them.
"""

from typing import Dict

from ..core.models import AddressMirror, NamedSet, RuleAction, SetHashType
from ..core.structured_logging import get_logger
from ..executors.command_executor import CommandExecutor
from .rule_table import RuleTableManager
from .set_store import SetFileStore


class StartupRestorer:
    """Best-effort replay of on-disk firewall state."""

    def __init__(self, executor: CommandExecutor, set_store: SetFileStore,
                 rule_table: RuleTableManager):
        self.executor = executor
        self.set_store = set_store
        self.rule_table = rule_table
        self.logger = get_logger(__name__)

    def restore_sets(self) -> Dict[str, int]:
        """
        Run ``ipset restore`` for every persisted set file.

        Failures are logged and do not stop the loop.

        Returns:
            Mapping of set file name to exit code
        """
        results = {}
        for set_file in self.set_store.list_set_files():
            exit_code = self.executor.run('ipset', 'restore', True, input_file=set_file)
            if exit_code != 0:
                self.logger.warning(f"Restore of {set_file.name} failed", exit_code=exit_code)
            results[set_file.name] = exit_code
        return results

    def restore_rule_table(self) -> bool:
        """Restore the rule table snapshot; True when absent or restored."""
        exit_code = self.rule_table.restore_table()
        if exit_code is None:
            self.logger.debug("No rule table snapshot to restore")
            return True
        if exit_code != 0:
            self.logger.warning("Rule table restore failed", exit_code=exit_code)
        return exit_code == 0

    def load_mirror(self, named_set: NamedSet, action: RuleAction) -> AddressMirror:
        """Ensure the rule for ``named_set`` and read its members back from disk."""
        try:
            if named_set.hash_type != SetHashType.IP:
                raise ValueError("Can only load hash of type 'ip'")
            self.rule_table.ensure(named_set, action)
            return self.set_store.read_addresses(named_set.name, named_set.hash_type)
        except Exception as e:
            self.logger.exception(f"Failed to load set {named_set.name}", e)
            return frozenset()

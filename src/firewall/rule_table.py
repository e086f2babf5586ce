#!/usr/bin/env -S python3 -B -u
"""
Rule table manager.

Keeps exactly one iptables rule per set name in the configured chain.
A rule is located by a case-insensitive substring match of the set name
against ``iptables -L <chain> -n --line-numbers`` output; the first match
in chain order wins, so a set whose name contains another set's name
(``IPBan_0`` inside ``IPBan_0_tor``) resolves to whichever rule comes
first. An existing rule is replaced at its line number, otherwise a new
rule is appended. The whole table is saved to the snapshot file after
every call.
"""

import shlex
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..core.addresses import format_allow, format_block_except
from ..core.exceptions import FirewallError, PortValidationError, RuleTableError
from ..core.file_ops import DEFAULT_DELETE_POLICY, RetryPolicy, scoped_temp_file
from ..core.models import NamedSet, OperationResult, PortRange, RuleAction
from ..core.structured_logging import get_logger
from ..executors.command_executor import CommandExecutor


class RuleTableManager:
    """
    Creates or rewrites the chain rule binding a set to an action.

    Attributes:
        executor: Command executor used for ipset/iptables calls
        data_directory: Directory holding the table snapshot
        chain: iptables chain the rules live in
        table_file: Snapshot file name inside ``data_directory``
    """

    def __init__(self, executor: CommandExecutor, data_directory: Union[str, Path],
                 chain: str = 'INPUT', table_file: str = 'ipban.tbl',
                 delete_policy: RetryPolicy = DEFAULT_DELETE_POLICY):
        self.executor = executor
        self.data_directory = Path(data_directory)
        self.chain = chain
        self.table_file = table_file
        self.delete_policy = delete_policy
        self.logger = get_logger(__name__)

    def table_file_path(self) -> Path:
        """Path of the rule table snapshot."""
        return self.data_directory / self.table_file

    @staticmethod
    def build_port_clause(action: RuleAction, port_ranges: Sequence[PortRange]) -> str:
        """
        Render the multiport match for ``port_ranges``.

        DROP rules block every port except the given ranges, ACCEPT rules
        only match the given ranges. No ranges means all ports.
        """
        if not port_ranges:
            return ''
        if action == RuleAction.DROP:
            port_list = format_block_except(port_ranges)
        else:
            port_list = format_allow(port_ranges)
        if not port_list:
            raise PortValidationError(','.join(str(r) for r in port_ranges))
        # iptables uses ':' instead of '-' for ranges
        return f" -p tcp -m multiport --dports {port_list.replace('-', ':')}"

    @staticmethod
    def rule_specification(rule_name: str, action: RuleAction, port_clause: str = '') -> str:
        """Match and target part of the rule, shared by append and replace."""
        return f"-m set --match-set {shlex.quote(rule_name)} src{port_clause} -j {RuleAction(action).value}"

    @staticmethod
    def find_rule_number(lines: Sequence[str], rule_name: str) -> Optional[int]:
        """Line number of the first rule mentioning ``rule_name``, if any."""
        needle = rule_name.lower()
        for line in lines:
            if needle not in line.lower():
                continue
            # rule number is the first piece of the line
            pieces = line.split(None, 1)
            if pieces and pieces[0].isdigit():
                return int(pieces[0])
        return None

    def list_rules(self) -> List[str]:
        """Current chain listing with line numbers."""
        with scoped_temp_file(policy=self.delete_policy) as temp_path:
            exit_code = self.executor.run('iptables', f"-L {shlex.quote(self.chain)} -n --line-numbers", True,
                                          output_file=temp_path)
            if exit_code != 0:
                self.logger.warning(f"Listing chain {self.chain} failed", exit_code=exit_code)
            with open(temp_path, 'r') as f:
                return f.read().splitlines()

    def save_table(self) -> int:
        """Persist the full rule table to the snapshot file."""
        self.data_directory.mkdir(parents=True, exist_ok=True)
        return self.executor.run('iptables-save', '', True, output_file=self.table_file_path())

    def restore_table(self) -> Optional[int]:
        """Load the snapshot into the kernel, if one exists."""
        path = self.table_file_path()
        if not path.exists():
            return None
        return self.executor.run('iptables-restore', '', True, input_file=path)

    def ensure(self, named_set: NamedSet, action: RuleAction,
               port_ranges: Sequence[PortRange] = ()) -> OperationResult:
        """
        Make sure ``named_set`` exists and exactly one rule binds it to ``action``.

        Returns:
            OperationResult of the append/replace step
        """
        rule_name = named_set.name

        # the set must exist before a rule can reference it
        self.executor.run('ipset', named_set.create_arguments(), False)

        try:
            lines = self.list_rules()
            port_clause = self.build_port_clause(action, port_ranges)
            specification = self.rule_specification(rule_name, action, port_clause)

            rule_number = self.find_rule_number(lines, rule_name)
            if rule_number is not None:
                operation = 'replace'
                exit_code = self.executor.run(
                    'iptables', f"-R {shlex.quote(self.chain)} {rule_number} {specification}", True)
            else:
                operation = 'append'
                exit_code = self.executor.run('iptables', f"-A {shlex.quote(self.chain)} {specification}", True)

            if exit_code == 0:
                result = OperationResult.ok(operation=operation, rule_number=rule_number)
            else:
                result = OperationResult.failed(
                    RuleTableError(rule_name, f"iptables {operation} exited with {exit_code}"),
                    operation=operation, exit_code=exit_code)
        except (FirewallError, OSError) as e:
            error = e if isinstance(e, FirewallError) else RuleTableError(rule_name, str(e), cause=e)
            self.logger.exception(f"Failed to update rule for {rule_name}", e)
            result = OperationResult.failed(error)

        save_code = self.save_table()
        if save_code != 0:
            self.logger.warning("Rule table snapshot failed", exit_code=save_code)
        result.details['snapshot_exit_code'] = save_code
        return result

#!/usr/bin/env -S python3 -B -u
"""
Test Suite for the Shell Command Executor

subprocess.run is patched; no external tool is started.
"""

import os
import subprocess
import sys
import unittest
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.executors.command_executor import (
    EXIT_NOT_FOUND, EXIT_TIMEOUT, ShellCommandExecutor, build_command_line
)


class TestBuildCommandLine(unittest.TestCase):
    """Test redirect formatting."""

    def test_01_plain(self):
        """Test a command without redirects."""
        self.assertEqual(build_command_line('iptables', '-L INPUT -n --line-numbers'),
                         'iptables -L INPUT -n --line-numbers')

    def test_02_redirects(self):
        """Test input and output redirects."""
        self.assertEqual(build_command_line('ipset', 'restore', input_file='/var/lib/ipban/IPBan_0.set'),
                         'ipset restore < /var/lib/ipban/IPBan_0.set')
        self.assertEqual(build_command_line('iptables-save', '', output_file='/var/lib/ipban/ipban.tbl'),
                         'iptables-save > /var/lib/ipban/ipban.tbl')

    def test_03_paths_are_quoted(self):
        """Test that paths with spaces are quoted for the shell."""
        self.assertEqual(build_command_line('ipset', 'restore', input_file='/data dir/x.set'),
                         "ipset restore < '/data dir/x.set'")


class TestShellCommandExecutor(unittest.TestCase):
    """Test ShellCommandExecutor.run."""

    def setUp(self):
        self.executor = ShellCommandExecutor('/bin/bash', timeout=5, verbose_level=0)

    @patch('src.executors.command_executor.subprocess.run')
    def test_01_returns_exit_code(self, mock_run):
        """Test that the process exit code is returned."""
        mock_run.return_value = MagicMock(returncode=3, stderr='boom')

        exit_code = self.executor.run('ipset', 'create IPBan_0 hash:ip -exist', True)

        self.assertEqual(exit_code, 3)
        args, kwargs = mock_run.call_args
        self.assertEqual(args[0], ['/bin/bash', '-c', 'ipset create IPBan_0 hash:ip -exist'])
        self.assertEqual(kwargs['timeout'], 5)
        self.assertEqual(kwargs['stdout'], subprocess.DEVNULL)
        self.assertEqual(kwargs['errors'], 'replace')

    @patch('src.executors.command_executor.subprocess.run')
    def test_02_output_file_keeps_stdout(self, mock_run):
        """Test that stdout is left to the shell redirect."""
        mock_run.return_value = MagicMock(returncode=0, stderr='')

        self.assertEqual(self.executor.run('iptables-save', '', output_file='/tmp/t.tbl'), 0)

        args, kwargs = mock_run.call_args
        self.assertEqual(args[0][2], 'iptables-save > /tmp/t.tbl')
        self.assertIsNone(kwargs['stdout'])

    @patch('src.executors.command_executor.subprocess.run')
    def test_03_timeout(self, mock_run):
        """Test that a timed out command reports 124."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd='ipset', timeout=5)
        self.assertEqual(self.executor.run('ipset', 'restore', True, input_file='/tmp/x'), EXIT_TIMEOUT)

    @patch('src.executors.command_executor.subprocess.run')
    def test_04_missing_shell(self, mock_run):
        """Test that a launch failure reports 127 instead of raising."""
        mock_run.side_effect = FileNotFoundError('/bin/bash')
        self.assertEqual(self.executor.run('iptables', '-L INPUT'), EXIT_NOT_FOUND)

    @patch('src.executors.command_executor.subprocess.run')
    def test_05_stderr_on_success_is_not_an_error(self, mock_run):
        """Test that stderr from a successful command does not change the result."""
        mock_run.return_value = MagicMock(returncode=0, stderr='ipset v7.15: Warning')
        self.assertEqual(self.executor.run('ipset', 'restore', True, input_file='/tmp/x'), 0)

    @unittest.skipUnless(os.path.exists('/bin/bash'), "requires /bin/bash")
    def test_06_undecodable_stderr(self):
        """Test that non-UTF-8 bytes on stderr still yield the exit code."""
        executor = ShellCommandExecutor('/bin/bash', timeout=10)
        self.assertEqual(executor.run('printf', "'\\xff\\xfe' >&2; false", True), 1)
        self.assertEqual(executor.run('printf', "'\\xff\\xfe' >&2", False), 0)


if __name__ == '__main__':
    unittest.main()

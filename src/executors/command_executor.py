#!/usr/bin/env -S python3 -B -u
"""
Command Executor Module - External Firewall Tool Invocation

This module runs ipset, iptables, iptables-save and iptables-restore on
behalf of the firewall components. Every invocation reports an exit code;
callers decide whether non-zero is an error. Nothing here raises to the
caller.

Key features:
- Narrow interface (program, arguments, optional input/output files) so
  the engine can be tested against a fake executor
- Redirects expressed as ``<`` / ``>`` clauses appended to the command line
- Bounded execution time; a timed out command is killed and reported as
  exit code 124

Author: IPBan Contributors
License: MIT
"""

import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from ..core.exceptions import CommandExecutionError, CommandTimeoutError
from ..core.structured_logging import get_logger


PathLike = Union[str, Path]

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


class CommandExecutor(ABC):
    """Interface for running one external command and returning its exit code."""

    @abstractmethod
    def run(self, program: str, arguments: str, require_success: bool = False,
            input_file: Optional[PathLike] = None,
            output_file: Optional[PathLike] = None) -> int:
        """
        Run ``program`` with ``arguments`` and wait for it to finish.

        Args:
            program: Executable name (e.g. ``ipset``)
            arguments: Argument string, already quoted where needed
            require_success: Log an error when the exit code is non-zero
            input_file: File connected to stdin
            output_file: File that receives stdout (truncated first)

        Returns:
            Process exit code
        """
        pass


def build_command_line(program: str, arguments: str,
                       input_file: Optional[PathLike] = None,
                       output_file: Optional[PathLike] = None) -> str:
    """Format the shell line for one invocation."""
    command_line = f"{program} {arguments}".strip()
    if input_file is not None:
        command_line += f" < {shlex.quote(str(input_file))}"
    if output_file is not None:
        command_line += f" > {shlex.quote(str(output_file))}"
    return command_line


class ShellCommandExecutor(CommandExecutor):
    """
    Runs commands through ``/bin/bash -c``.

    Attributes:
        shell: Shell used to interpret the command line
        timeout: Seconds before a command is killed (None waits forever)
        verbose_level: Logging verbosity (0-3)
    """

    def __init__(self, shell: str = '/bin/bash', timeout: Optional[float] = 60,
                 verbose_level: Optional[int] = None):
        self.shell = shell
        self.timeout = timeout
        self.logger = get_logger(__name__, verbose_level)

    def run(self, program: str, arguments: str, require_success: bool = False,
            input_file: Optional[PathLike] = None,
            output_file: Optional[PathLike] = None) -> int:
        command_line = build_command_line(program, arguments, input_file, output_file)
        self.logger.log_command_execution([self.shell, '-c', command_line])

        try:
            result = subprocess.run(
                [self.shell, '-c', command_line],
                stdout=subprocess.DEVNULL if output_file is None else None,
                stderr=subprocess.PIPE,
                text=True,
                errors='replace',
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            error = CommandTimeoutError(command_line, self.timeout, EXIT_TIMEOUT)
            self.logger.error(error.message, command=command_line)
            return EXIT_TIMEOUT
        except OSError as e:
            error = CommandExecutionError(command_line, EXIT_NOT_FOUND, cause=e)
            self.logger.exception(error.message, e, command=command_line)
            return EXIT_NOT_FOUND

        exit_code = result.returncode
        self.logger.log_command_execution(command_line, exit_code)
        stderr = (result.stderr or '').strip()
        if require_success and exit_code != 0:
            self.logger.error(f"Process {command_line} had exit code {exit_code}",
                              stderr=stderr)
        elif stderr:
            self.logger.trace(f"Process {command_line} wrote to stderr", stderr=stderr)
        return exit_code

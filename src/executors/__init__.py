"""External command execution."""

from .command_executor import (
    CommandExecutor,
    ShellCommandExecutor,
    build_command_line,
    EXIT_TIMEOUT,
    EXIT_NOT_FOUND,
)

__all__ = [
    'CommandExecutor',
    'ShellCommandExecutor',
    'build_command_line',
    'EXIT_TIMEOUT',
    'EXIT_NOT_FOUND',
]

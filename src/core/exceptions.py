"""
Structured Exception Hierarchy for the IPBan Linux Firewall

This module provides the exception hierarchy shared by the firewall
components, with operator-facing messages and suggested actions.

Key Features:
- Structured exceptions for configuration, set file, rule table and
  command execution failures
- User-friendly error messages without technical details
- Suggested actions for error resolution
- Debug information available only in verbose mode
"""

import sys
import traceback
from typing import Optional, Dict, Any
from enum import IntEnum


class ErrorCode(IntEnum):
    """Standard exit codes for the application."""
    SUCCESS = 0
    OPERATION_FAILED = 1
    INVALID_INPUT = 10
    CONFIGURATION_ERROR = 11
    COMMAND_ERROR = 12
    PERMISSION_ERROR = 13
    IO_ERROR = 14
    INTERNAL_ERROR = 15


class FirewallError(Exception):
    """
    Base exception class for all firewall errors.

    Provides structured error information with user-friendly messages
    and suggested actions for resolution.
    """

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """
        Initialize firewall error with structured information.

        Args:
            message: User-friendly error message
            suggestion: Suggested action to resolve the error
            error_code: Exit code for the error
            details: Additional error details (shown only in verbose mode)
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def format_error(self, verbose_level: int = 0) -> str:
        """
        Format error message based on verbosity level.

        Args:
            verbose_level: 0=basic, 1=verbose, 2=debug, 3=full details

        Returns:
            Formatted error message
        """
        lines = [f"Error: {self.message}"]

        if self.suggestion:
            lines.append(f"Suggestion: {self.suggestion}")

        if verbose_level >= 1 and self.details:
            lines.append("\nDetails:")
            for key, value in self.details.items():
                lines.append(f"  {key}: {value}")

        if verbose_level >= 2 and self.cause:
            lines.append(f"\nCaused by: {type(self.cause).__name__}: {str(self.cause)}")

        if verbose_level >= 3:
            lines.append("\nStack trace:")
            if self.cause is not None and self.cause.__traceback__ is not None:
                lines.append(''.join(traceback.format_tb(self.cause.__traceback__)))
            elif sys.exc_info()[2]:
                lines.append(''.join(traceback.format_tb(sys.exc_info()[2])))
            else:
                lines.append("(No active exception - stack trace not available)")

        return "\n".join(lines)


# Configuration Errors

class ConfigurationError(FirewallError):
    """Raised when there are configuration-related issues."""

    def __init__(self, message: str, config_file: Optional[str] = None, **kwargs):
        suggestion = "Check your configuration file format and values."
        if config_file:
            suggestion += f" Configuration file: {config_file}"
            kwargs['details'] = kwargs.get('details', {})
            kwargs['details']['config_file'] = config_file
        super().__init__(
            message=message,
            suggestion=suggestion,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            **kwargs
        )


# Persistence Errors

class SetFileError(FirewallError):
    """Raised when a set file cannot be written or installed."""

    def __init__(self, set_name: str, file_path: str, reason: str, **kwargs):
        details = kwargs.pop('details', {})
        details.update({
            "set": set_name,
            "file": file_path,
            "reason": reason
        })
        super().__init__(
            message=f"Failed to install set file for '{set_name}'",
            suggestion=(
                "The set file could not be replaced. Check:\n"
                "  1. The data directory exists and is writable\n"
                "  2. No other process holds the file open\n"
                "  3. There is free space on the device"
            ),
            error_code=ErrorCode.IO_ERROR,
            details=details,
            **kwargs
        )


class RuleTableError(FirewallError):
    """Raised when the INPUT chain cannot be listed or updated."""

    def __init__(self, rule_name: str, reason: str, **kwargs):
        details = kwargs.pop('details', {})
        details.update({"rule": rule_name, "reason": reason})
        super().__init__(
            message=f"Failed to update firewall rule for set '{rule_name}'",
            suggestion=(
                "Check that iptables is installed and that the process "
                "runs with CAP_NET_ADMIN (usually root)."
            ),
            error_code=ErrorCode.COMMAND_ERROR,
            details=details,
            **kwargs
        )


# Execution Errors

class CommandExecutionError(FirewallError):
    """Raised when an external command fails."""

    def __init__(self, command: str, exit_code: int, **kwargs):
        super().__init__(
            message=f"Command execution failed with exit code {exit_code}",
            suggestion=(
                "The command failed to execute properly. Check:\n"
                "  1. Required tools are installed (ipset, iptables, iptables-save)\n"
                "  2. Sufficient permissions to run the command\n"
                "  3. The set and rule files are well formed"
            ),
            error_code=ErrorCode.COMMAND_ERROR,
            details={
                "command": command,
                "exit_code": exit_code
            },
            **kwargs
        )


class CommandTimeoutError(CommandExecutionError):
    """Raised when an external command exceeds its timeout."""

    def __init__(self, command: str, timeout: float, exit_code: int = 124, **kwargs):
        super().__init__(command, exit_code, **kwargs)
        self.message = f"Command timed out after {timeout}s"
        self.details['timeout'] = timeout


# Validation Errors

class ValidationError(FirewallError):
    """Base class for input validation errors."""

    def __init__(self, field: str, value: Any, requirement: str, **kwargs):
        super().__init__(
            message=f"Invalid {field}: {value}",
            suggestion=f"The {field} must {requirement}",
            error_code=ErrorCode.INVALID_INPUT,
            details={"field": field, "value": value, "requirement": requirement},
            **kwargs
        )


class InvalidSetNameError(ValidationError):
    """Raised when a set name or rule prefix is not a valid ipset name."""

    def __init__(self, name: str, **kwargs):
        super().__init__(
            field="set name",
            value=name,
            requirement=("start with a letter, digit or underscore, contain only "
                         "letters, digits, '_', '.' and '-', and be at most 31 characters"),
            **kwargs
        )


class PortValidationError(ValidationError):
    """Raised when a port or port range is invalid."""

    def __init__(self, port: str, **kwargs):
        super().__init__(
            field="port",
            value=port,
            requirement="be a number between 0 and 65535, or a range such as 8000-8080",
            **kwargs
        )


# Error Handler Utility

class ErrorHandler:
    """Utility class for consistent error handling in command line tools."""

    @staticmethod
    def handle_error(error: Exception, verbose_level: int = 0) -> int:
        """
        Handle an error and return appropriate exit code.

        Args:
            error: The exception to handle
            verbose_level: Verbosity level (0-3)

        Returns:
            Exit code for the application
        """
        if isinstance(error, FirewallError):
            print(error.format_error(verbose_level), file=sys.stderr)
            return error.error_code
        elif isinstance(error, PermissionError):
            print(f"Error: Permission denied: {error.filename or error}", file=sys.stderr)
            print("Suggestion: Run as root (sudo ipban-firewall ...) or check the data directory "
                  "permissions.", file=sys.stderr)
            return ErrorCode.PERMISSION_ERROR
        else:
            print("Error: An unexpected error occurred", file=sys.stderr)
            print("Suggestion: This might be a bug. Please report it with the full error output.", file=sys.stderr)

            if verbose_level >= 1:
                print(f"\nError type: {type(error).__name__}", file=sys.stderr)
                print(f"Error message: {str(error)}", file=sys.stderr)

            if verbose_level >= 3:
                print("\nStack trace:", file=sys.stderr)
                traceback.print_exc(file=sys.stderr)

            return ErrorCode.INTERNAL_ERROR

    @staticmethod
    def wrap_main(main_func):
        """
        Decorator to wrap main functions with error handling.

        Usage:
            @ErrorHandler.wrap_main
            def main(argv=None):
                ...
        """
        def wrapper(*args, **kwargs):
            try:
                return main_func(*args, **kwargs)
            except KeyboardInterrupt:
                print("\nOperation cancelled by user", file=sys.stderr)
                return ErrorCode.INTERNAL_ERROR
            except Exception as e:
                verbose_level = kwargs.get('verbose_level', 0)
                if args and hasattr(args[0], 'verbose_level'):
                    verbose_level = args[0].verbose_level
                return ErrorHandler.handle_error(e, verbose_level)

        wrapper.__name__ = main_func.__name__
        wrapper.__doc__ = main_func.__doc__
        return wrapper

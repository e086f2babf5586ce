#!/usr/bin/env -S python3 -B -u
"""
Data Models for the IPBan Linux Firewall

Type-safe data structures shared by the set file store, the rule table
manager and the reconciliation engine.
"""

import re
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from .exceptions import FirewallError, InvalidSetNameError, PortValidationError


# In-memory mirror of one set's membership, keyed by numeric IPv4 address
AddressMirror = FrozenSet[int]

EMPTY_MIRROR: AddressMirror = frozenset()

MIN_PORT = 0
MAX_PORT = 65535

# ipset limits names to 31 characters; a leading dash would read as an option
SET_NAME_PATTERN = re.compile(r'[A-Za-z0-9_][A-Za-z0-9_.-]{0,30}')


def validate_set_name(name: str) -> str:
    """Return ``name`` if it is a valid ipset name, else raise InvalidSetNameError."""
    if not isinstance(name, str) or not SET_NAME_PATTERN.fullmatch(name):
        raise InvalidSetNameError(str(name))
    return name


class SetHashType(str, Enum):
    """ipset hash kind."""
    IP = "ip"
    NET = "net"


class RuleAction(str, Enum):
    """iptables jump target for a set binding."""
    DROP = "DROP"
    ACCEPT = "ACCEPT"


@dataclass(frozen=True)
class PortRange:
    """Inclusive TCP port range."""
    min_port: int
    max_port: int

    def __post_init__(self):
        if not (MIN_PORT <= self.min_port <= self.max_port <= MAX_PORT):
            raise PortValidationError(f"{self.min_port}-{self.max_port}")

    @classmethod
    def parse(cls, text: str) -> 'PortRange':
        """Parse ``"80"`` or ``"8000-8080"``."""
        value = str(text).strip()
        try:
            if '-' in value:
                low, high = value.split('-', 1)
                return cls(int(low), int(high))
            port = int(value)
        except ValueError:
            raise PortValidationError(value)
        return cls(port, port)

    def __str__(self) -> str:
        if self.min_port == self.max_port:
            return str(self.min_port)
        return f"{self.min_port}-{self.max_port}"


@dataclass(frozen=True)
class NamedSet:
    """
    A kernel ipset as created by this engine.

    Attributes:
        name: Set name, also used for the set file and rule lookup
        hash_type: ``ip`` for exact addresses, ``net`` for CIDR ranges
        max_count: Upper bound on the number of elements
        family: Address family, always ``inet``
        hash_size: Initial hash table size hint
    """
    name: str
    hash_type: SetHashType
    max_count: int
    family: str = "inet"
    hash_size: int = 1024

    def __post_init__(self):
        validate_set_name(self.name)

    def create_arguments(self) -> str:
        """Arguments shared by ``ipset create`` and the restore script header."""
        return (f"create {shlex.quote(self.name)} hash:{self.hash_type.value} "
                f"family {shlex.quote(self.family)} hashsize {self.hash_size} maxelem {self.max_count} -exist")


@dataclass
class OperationResult:
    """
    Outcome of one internal step.

    Attributes:
        success: Whether the step achieved its goal
        error: Structured error describing the failure, if any
        details: Extra values worth logging (counts, exit codes)
    """
    success: bool
    error: Optional[FirewallError] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details: Any) -> 'OperationResult':
        return cls(True, None, details)

    @classmethod
    def failed(cls, error: FirewallError, **details: Any) -> 'OperationResult':
        return cls(False, error, details)

    def __bool__(self) -> bool:
        return self.success


@dataclass
class UpdateResult:
    """Result of reconciling one set: the new mirror and the restore outcome."""
    mirror: AddressMirror
    restore: OperationResult
    rule: OperationResult

    @property
    def success(self) -> bool:
        return self.restore.success

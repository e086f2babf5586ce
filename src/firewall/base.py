#!/usr/bin/env -S python3 -B -u
"""
Firewall backend interface.

Implemented once per operating system; the Linux backend lives in
``linux_firewall``. Apart from an invalid rule prefix given to
``initialize``, none of the operations raise to the caller.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional, Sequence, Union
import ipaddress

from ..core.models import PortRange


RangeLike = Union[str, ipaddress.IPv4Network]


class FirewallBackend(ABC):
    """Abstract interface for OS firewall backends."""

    @abstractmethod
    def initialize(self, rule_prefix: Optional[str] = None) -> None:
        """Restore persisted state and load the block/allow mirrors."""
        pass

    @abstractmethod
    def block_addresses(self, addresses: Iterable[str]) -> bool:
        """Make the default block set contain exactly ``addresses``."""
        pass

    @abstractmethod
    def block_ranges(self, rule_name_suffix: str, ranges: Iterable[RangeLike],
                     allowed_ports: Sequence[PortRange] = ()) -> bool:
        """Make the range block set ``<block>_<suffix>`` contain exactly ``ranges``."""
        pass

    @abstractmethod
    def allow_addresses(self, addresses: Iterable[str]) -> bool:
        """Make the default allow set contain exactly ``addresses``."""
        pass

    @abstractmethod
    def enumerate_blocked(self) -> Iterator[str]:
        pass

    @abstractmethod
    def enumerate_allowed(self) -> Iterator[str]:
        pass

    @abstractmethod
    def is_blocked(self, address: str) -> bool:
        pass

    @abstractmethod
    def is_allowed(self, address: str) -> bool:
        pass

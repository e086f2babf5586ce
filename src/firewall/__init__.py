#!/usr/bin/env -S python3 -B -u
"""
Firewall Module

ipset/iptables reconciliation engine and its building blocks.
"""

from .base import FirewallBackend
from .linux_firewall import LinuxFirewall
from .restorer import StartupRestorer
from .rule_table import RuleTableManager
from .set_store import SetFileStore

__all__ = [
    'FirewallBackend',
    'LinuxFirewall',
    'StartupRestorer',
    'RuleTableManager',
    'SetFileStore',
]
